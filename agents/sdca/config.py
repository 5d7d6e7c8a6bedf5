from decimal import Decimal
from shared.config import settings

AGENT_NAME = "sdca"
DEFAULT_STRATEGY_ID = "SDCA"

# Recovery sweep
RECOVERY_INTERVAL = 300            # Sweep failed/stale attempts every 5 minutes
STALE_PENDING_MINUTES = 10         # PENDING older than this is considered lost
MAX_RETRIES = 3

# Price analysis
HISTORY_DAYS = 30
MIN_SAMPLES = 30
SHORT_WINDOW = 7
LONG_WINDOW = 30

# Risk level -> amount multiplier
RISK_MULTIPLIERS = {
    "no_risk": Decimal("1.0"),
    "low_risk": Decimal("1.2"),
    "medium_risk": Decimal("1.5"),
    "high_risk": Decimal("2.0"),
}

# Frequency -> APScheduler cron fields
FREQUENCY_CRON = {
    "daily": {"minute": "0", "hour": "0"},
    "weekly": {"minute": "0", "hour": "0", "day_of_week": "sun"},
    "monthly": {"minute": "0", "hour": "0", "day": "1"},
    "test_minute": {"minute": "*"},
    "test_10_seconds": {"second": "*/10"},
}

# Balance ledger
QUOTE_TOKEN = settings.QUOTE_TOKEN_SYMBOL
WELCOME_QUOTE_BALANCE = Decimal(settings.WELCOME_QUOTE_BALANCE)
LEDGER_CAS_RETRIES = 5

# chain id -> {symbol: display name}; first entry is the chain's native token
CHAIN_TOKENS = {
    "injective": {"INJ": "Injective", "USDT": "Tether USD"},
    "aptos": {"APT": "Aptos", "USDC": "USD Coin", "USDT": "Tether USD"},
    "sonic": {"SONIC": "Sonic SVM", "USDC": "USD Coin", "USDT": "Tether USD"},
    "mock": {"USDT": "Tether USD", "BTC": "Bitcoin", "ETH": "Ethereum", "SOL": "Solana", "INJ": "Injective"},
}

NATIVE_TOKENS = {
    "injective": "INJ",
    "aptos": "APT",
    "sonic": "SONIC",
    "mock": "USDT",
}

# Mock trading
MOCK_CHAIN = "mock"
MOCK_BASE_PRICES = {"BTC": 50000.0, "ETH": 3000.0, "SOL": 100.0, "INJ": 20.0}
MOCK_DEFAULT_PRICE = 1000.0
MOCK_PRICE_STEP_SECONDS = 60
MOCK_MAX_STEP_PCT = 5.0
MOCK_QUOTE_BALANCE = Decimal("1000")
MOCK_USD_RATE = Decimal("100")

STABLECOINS = {"USDT", "USDC"}
