"""
Sonic plugin — SVM swap program on Sonic, raw JSON-RPC + solders.

The swap instruction is a one-byte tag (1) followed by the USDC amount as a
little-endian u64 in 6-decimal base units.
"""
import base64
from decimal import Decimal
import base58
import httpx
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction
from shared.chains.base import ExternalChainError, to_base_units
from shared.config import settings
from shared.price_feed import get_price_by_symbol
import structlog

logger = structlog.get_logger()

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

USDC_DECIMALS = 6
SONIC_DECIMALS = 9
SWAP_INSTRUCTION_TAG = 1
SPL_TRANSFER_TAG = 3


def associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


class SonicPlugin:
    name = "sonic"
    native_token = "SONIC"
    quote_token = "USDC"

    def __init__(self):
        self.rpc_url = settings.SONIC_RPC_URL
        self.program_id = Pubkey.from_string(settings.SONIC_PROGRAM_ID)
        self.pool_account = Pubkey.from_string(settings.SONIC_POOL_ACCOUNT)
        self.usdc_mint = Pubkey.from_string(settings.SONIC_USDC_MINT)
        self.sonic_mint = Pubkey.from_string(settings.SONIC_MINT)
        logger.info("sonic_plugin_initialized", rpc=self.rpc_url)

    def _keypair(self) -> Keypair:
        if not settings.PRIVATE_KEY_SONIC:
            raise ExternalChainError("Private key not configured (PRIVATE_KEY_SONIC)")
        try:
            return Keypair.from_bytes(base58.b58decode(settings.PRIVATE_KEY_SONIC))
        except ValueError as e:
            raise ExternalChainError(f"Invalid PRIVATE_KEY_SONIC: {e}") from e

    async def _rpc(self, client: httpx.AsyncClient, method: str, params: list):
        res = await client.post(
            self.rpc_url, json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        )
        out = res.json()
        if "error" in out:
            raise ExternalChainError(f"RPC error for {method}: {out['error']}")
        return out.get("result")

    async def _send(self, keypair: Keypair, instruction: Instruction) -> str:
        async with httpx.AsyncClient(timeout=30) as client:
            res = await self._rpc(client, "getLatestBlockhash", [])
            blockhash = Hash.from_string(res["value"]["blockhash"])

            msg = Message.new_with_blockhash([instruction], keypair.pubkey(), blockhash)
            tx = Transaction.new_unsigned(msg)
            tx.sign([keypair], blockhash)

            raw = base64.b64encode(bytes(tx)).decode()
            signature = await self._rpc(
                client, "sendTransaction", [raw, {"encoding": "base64", "skipPreflight": False}]
            )
            return str(signature)

    async def send_swap(self, amount: Decimal, from_address: str, token_symbol: str | None = None) -> str:
        keypair = self._keypair()
        owner = keypair.pubkey()
        data = bytes([SWAP_INSTRUCTION_TAG]) + to_base_units(amount, USDC_DECIMALS).to_bytes(8, "little")
        instruction = Instruction(
            self.program_id,
            data,
            [
                AccountMeta(owner, is_signer=True, is_writable=True),
                AccountMeta(self.pool_account, is_signer=False, is_writable=True),
                AccountMeta(associated_token_address(owner, self.usdc_mint), is_signer=False, is_writable=True),
                AccountMeta(associated_token_address(owner, self.sonic_mint), is_signer=False, is_writable=True),
                AccountMeta(self.usdc_mint, is_signer=False, is_writable=False),
                AccountMeta(self.sonic_mint, is_signer=False, is_writable=False),
                AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            ],
        )
        try:
            signature = await self._send(keypair, instruction)
        except ExternalChainError:
            raise
        except Exception as e:
            logger.error("sonic_swap_failed", amount=str(amount), from_address=from_address, error=str(e))
            raise ExternalChainError(f"Sonic swap failed: {e}") from e

        logger.info("sonic_swap_sent", amount=str(amount), from_address=from_address, tx=signature)
        return signature

    async def withdraw(self, amount: Decimal, to_address: str) -> str:
        keypair = self._keypair()
        owner = keypair.pubkey()
        try:
            recipient = Pubkey.from_string(to_address)
        except ValueError as e:
            raise ExternalChainError(f"Invalid Sonic address {to_address!r}: {e}") from e
        destination = associated_token_address(recipient, self.sonic_mint)
        data = bytes([SPL_TRANSFER_TAG]) + to_base_units(amount, SONIC_DECIMALS).to_bytes(8, "little")
        instruction = Instruction(
            TOKEN_PROGRAM_ID,
            data,
            [
                AccountMeta(associated_token_address(owner, self.sonic_mint), is_signer=False, is_writable=True),
                AccountMeta(destination, is_signer=False, is_writable=True),
                AccountMeta(owner, is_signer=True, is_writable=False),
            ],
        )
        try:
            signature = await self._send(keypair, instruction)
        except ExternalChainError:
            raise
        except Exception as e:
            logger.error("sonic_withdraw_failed", amount=str(amount), to=to_address, error=str(e))
            raise ExternalChainError(f"Sonic withdrawal failed: {e}") from e

        logger.info("sonic_withdraw_sent", amount=str(amount), to=to_address, tx=signature)
        return signature

    async def get_balance(self, address: str, token: str | None = None) -> Decimal:
        mint = self.usdc_mint if token and token.upper() == self.quote_token else self.sonic_mint
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                res = await self._rpc(
                    client,
                    "getTokenAccountsByOwner",
                    [address, {"mint": str(mint)}, {"encoding": "jsonParsed"}],
                )
        except ExternalChainError:
            raise
        except Exception as e:
            raise ExternalChainError(f"Sonic balance query failed: {e}") from e

        accounts = res.get("value") or []
        if not accounts:
            return Decimal("0")
        token_amount = accounts[0]["account"]["data"]["parsed"]["info"]["tokenAmount"]
        return Decimal(token_amount.get("uiAmountString") or "0")

    async def convert_to_usd(self, amount: Decimal) -> Decimal:
        price = await get_price_by_symbol(self.native_token)
        if price is None:
            raise ExternalChainError("SONIC price unavailable")
        return Decimal(amount) * Decimal(str(price))
