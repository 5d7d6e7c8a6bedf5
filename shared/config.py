from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = ""

    # Injective (EVM JSON-RPC)
    INJECTIVE_RPC_URL: str = "https://k8s.testnet.json-rpc.injective.network"
    INJECTIVE_CHAIN_ID: int = 1439
    INJECTIVE_ROUTER_ADDRESS: str = "0x0000000000000000000000000000000000000000"
    INJECTIVE_USDT_ADDRESS: str = "0x0000000000000000000000000000000000000000"
    INJECTIVE_WINJ_ADDRESS: str = "0x0000000000000000000000000000000000000000"
    PRIVATE_KEY_INJECTIVE: str = ""

    # Aptos
    APTOS_NODE_URL: str = "https://fullnode.devnet.aptoslabs.com/v1"
    APTOS_CONTRACT_ADDRESS: str = "0xa5d3ac4d429052674ed38adc62d010e52d7c24ca159194d17ddc196ddb7e480b"
    APTOS_USDC_TYPE: str = (
        "0x498d8926f16eb9ca90cab1b3a26aa6f97a080b3fcbe6e83ae150b7243a00fb68::devnet_coins::DevnetUSDC"
    )
    APTOS_COIN_TYPE: str = "0x1::aptos_coin::AptosCoin"
    PRIVATE_KEY_APTOS: str = ""

    # Sonic (Solana VM)
    SONIC_RPC_URL: str = "https://api.testnet.sonic.game"
    SONIC_PROGRAM_ID: str = "HoGLe4rmFQ25oNNiRQ4rueYsKzEJdnoLFhoVtafjcC66"
    SONIC_POOL_ACCOUNT: str = "BbLDYff58ov1rBPgjyoUPXPpDc5wn57Y2qyoYXdBuMVK"
    SONIC_USDC_MINT: str = "7kdH6DvwPSxov7pGUrDwta6CNsosZuH1HVbxSdLH57AU"
    SONIC_MINT: str = "8GgYcsRw6WCtAXvcuvLmeHH3jA6WAMrecXQu3UcMRTQ6"
    PRIVATE_KEY_SONIC: str = ""

    # Price data
    COINGECKO_API_URL: str = "https://api.coingecko.com/api/v3"

    # Balances
    QUOTE_TOKEN_SYMBOL: str = "USDT"
    WELCOME_QUOTE_BALANCE: str = "500"

    # Application
    API_SECRET_KEY: str = "dev-secret-key"
    ADMIN_API_KEY: str = "dev-admin-key"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
