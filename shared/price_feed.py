"""
Shared price feed — CoinGecko spot prices and market-chart history.

Spot prices are cached for 60 seconds. History is fetched uncached and
raises on failure; callers decide whether to fail open.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timezone
import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from shared.config import settings
import structlog

logger = structlog.get_logger()

# CoinGecko IDs for tokens tradable through the DCA plugins
TOKEN_COINGECKO_IDS = {
    "INJ": "injective-protocol",
    "APT": "aptos",
    "SONIC": "sonic-svm",
    "USDT": "tether",
    "USDC": "usd-coin",
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
}

# Chain id -> CoinGecko id of the chain's native token
CHAIN_TO_TOKEN_ID = {
    "injective": "injective-protocol",
    "aptos": "aptos",
    "sonic": "sonic-svm",
}

# Price cache: {coingecko_id: (price_usd, timestamp)}
_price_cache: dict[str, tuple[float, float]] = {}
CACHE_TTL = 60  # seconds


class PriceFeedError(Exception):
    """Raised when historical price data cannot be fetched."""


@dataclass(frozen=True)
class PriceSample:
    timestamp: datetime
    price: float


async def get_price_by_symbol(symbol: str) -> float | None:
    """Get USD price by token symbol."""
    cg_id = TOKEN_COINGECKO_IDS.get(symbol.upper())
    if not cg_id:
        return None
    return await _fetch_price(cg_id)


async def _fetch_price(coingecko_id: str) -> float | None:
    """Fetch a single token price from CoinGecko with caching."""
    now = time.time()
    if coingecko_id in _price_cache:
        cached_price, cached_at = _price_cache[coingecko_id]
        if (now - cached_at) < CACHE_TTL:
            return cached_price

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(
                f"{settings.COINGECKO_API_URL}/simple/price",
                params={"ids": coingecko_id, "vs_currencies": "usd"},
            )
            data = resp.json()
            if coingecko_id in data and "usd" in data[coingecko_id]:
                price = data[coingecko_id]["usd"]
                _price_cache[coingecko_id] = (price, now)
                return price
    except Exception as e:
        logger.error("price_fetch_failed", coingecko_id=coingecko_id, error=str(e))

    # Return stale cache if available
    if coingecko_id in _price_cache:
        return _price_cache[coingecko_id][0]
    return None


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type(httpx.TransportError),
    reraise=True,
)
async def _get_market_chart(token_id: str, days: int) -> dict:
    async with httpx.AsyncClient(timeout=15) as client:
        resp = await client.get(
            f"{settings.COINGECKO_API_URL}/coins/{token_id}/market_chart",
            params={"vs_currency": "usd", "days": days},
        )
        resp.raise_for_status()
        return resp.json()


async def fetch_history(token_id: str, days: int = 30) -> list[PriceSample]:
    """Fetch USD price history for a CoinGecko id, ordered by timestamp."""
    try:
        data = await _get_market_chart(token_id, days)
    except (httpx.HTTPError, ValueError) as e:
        logger.error("price_history_fetch_failed", token_id=token_id, error=str(e))
        raise PriceFeedError(f"Failed to fetch historical prices for {token_id}") from e

    samples = [
        PriceSample(
            timestamp=datetime.fromtimestamp(ms / 1000, tz=timezone.utc),
            price=float(price),
        )
        for ms, price in data.get("prices", [])
    ]
    samples.sort(key=lambda s: s.timestamp)
    return samples
