"""
Aptos plugin — entry-function transactions over the fullnode REST API.

Transactions are encoded by the node (`/transactions/encode_submission`),
signed locally with the ed25519 key in PRIVATE_KEY_APTOS and submitted as
JSON.
"""
import hashlib
import time
from decimal import Decimal
import httpx
from nacl.signing import SigningKey
from shared.chains.base import ExternalChainError, from_base_units, to_base_units
from shared.config import settings
from shared.price_feed import get_price_by_symbol
import structlog

logger = structlog.get_logger()

USDC_DECIMALS = 6
APT_DECIMALS = 8
MAX_GAS_AMOUNT = "200000"
GAS_UNIT_PRICE = "100"
EXPIRATION_SECS = 600


def _parse_private_key(raw: str) -> bytes:
    key = raw.strip()
    # AIP-80 keys are prefixed with the scheme
    if key.startswith("ed25519-priv-"):
        key = key[len("ed25519-priv-"):]
    if key.startswith("0x"):
        key = key[2:]
    return bytes.fromhex(key)


class AptosPlugin:
    name = "aptos"
    native_token = "APT"
    quote_token = "USDC"

    def __init__(self):
        self.node_url = settings.APTOS_NODE_URL.rstrip("/")
        logger.info("aptos_plugin_initialized", node=self.node_url)

    def _signing_key(self) -> SigningKey:
        if not settings.PRIVATE_KEY_APTOS:
            raise ExternalChainError("Private key not configured (PRIVATE_KEY_APTOS)")
        return SigningKey(_parse_private_key(settings.PRIVATE_KEY_APTOS))

    @staticmethod
    def _account_address(signing_key: SigningKey) -> str:
        # Single-signer ed25519 auth key: sha3-256(pubkey || 0x00)
        auth_key = hashlib.sha3_256(signing_key.verify_key.encode() + b"\x00").hexdigest()
        return "0x" + auth_key

    async def _submit(self, function: str, type_arguments: list[str], arguments: list) -> str:
        signing_key = self._signing_key()
        sender = self._account_address(signing_key)

        async with httpx.AsyncClient(base_url=self.node_url, timeout=20) as client:
            resp = await client.get(f"/accounts/{sender}")
            resp.raise_for_status()
            sequence_number = resp.json()["sequence_number"]

            txn = {
                "sender": sender,
                "sequence_number": sequence_number,
                "max_gas_amount": MAX_GAS_AMOUNT,
                "gas_unit_price": GAS_UNIT_PRICE,
                "expiration_timestamp_secs": str(int(time.time()) + EXPIRATION_SECS),
                "payload": {
                    "type": "entry_function_payload",
                    "function": function,
                    "type_arguments": type_arguments,
                    "arguments": arguments,
                },
            }
            resp = await client.post("/transactions/encode_submission", json=txn)
            resp.raise_for_status()
            signing_message = bytes.fromhex(resp.json().removeprefix("0x"))

            signature = signing_key.sign(signing_message).signature
            txn["signature"] = {
                "type": "ed25519_signature",
                "public_key": "0x" + signing_key.verify_key.encode().hex(),
                "signature": "0x" + signature.hex(),
            }
            resp = await client.post("/transactions", json=txn)
            resp.raise_for_status()
            return resp.json()["hash"]

    async def send_swap(self, amount: Decimal, from_address: str, token_symbol: str | None = None) -> str:
        try:
            tx_hash = await self._submit(
                f"{settings.APTOS_CONTRACT_ADDRESS}::pool::swap_x_to_y",
                [settings.APTOS_USDC_TYPE, settings.APTOS_COIN_TYPE],
                [str(to_base_units(amount, USDC_DECIMALS)), "0"],
            )
        except ExternalChainError:
            raise
        except Exception as e:
            logger.error("aptos_swap_failed", amount=str(amount), from_address=from_address, error=str(e))
            raise ExternalChainError(f"Aptos swap failed: {e}") from e

        logger.info("aptos_swap_sent", amount=str(amount), from_address=from_address, tx=tx_hash)
        return tx_hash

    async def withdraw(self, amount: Decimal, to_address: str) -> str:
        try:
            tx_hash = await self._submit(
                "0x1::aptos_account::transfer",
                [],
                [to_address, str(to_base_units(amount, APT_DECIMALS))],
            )
        except ExternalChainError:
            raise
        except Exception as e:
            logger.error("aptos_withdraw_failed", amount=str(amount), to=to_address, error=str(e))
            raise ExternalChainError(f"Aptos withdrawal failed: {e}") from e

        logger.info("aptos_withdraw_sent", amount=str(amount), to=to_address, tx=tx_hash)
        return tx_hash

    async def get_balance(self, address: str, token: str | None = None) -> Decimal:
        if token and token.upper() == self.quote_token:
            coin_type, decimals = settings.APTOS_USDC_TYPE, USDC_DECIMALS
        else:
            coin_type, decimals = settings.APTOS_COIN_TYPE, APT_DECIMALS
        try:
            async with httpx.AsyncClient(base_url=self.node_url, timeout=10) as client:
                resp = await client.post(
                    "/view",
                    json={
                        "function": "0x1::coin::balance",
                        "type_arguments": [coin_type],
                        "arguments": [address],
                    },
                )
                resp.raise_for_status()
                return from_base_units(resp.json()[0], decimals)
        except Exception as e:
            raise ExternalChainError(f"Aptos balance query failed: {e}") from e

    async def convert_to_usd(self, amount: Decimal) -> Decimal:
        price = await get_price_by_symbol(self.native_token)
        if price is None:
            raise ExternalChainError("APT price unavailable")
        return Decimal(amount) * Decimal(str(price))
