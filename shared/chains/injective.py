"""
Injective plugin — USDT -> INJ swaps through a V2-style router on Injective EVM.

Signs with PRIVATE_KEY_INJECTIVE. The custodial wallet is the signer, so the
user's address is only used for logging on swaps.
"""
import json
import time
from decimal import Decimal
from pathlib import Path
from web3 import AsyncWeb3
from eth_account import Account
from shared.chains.base import ExternalChainError, from_base_units, to_base_units
from shared.config import settings
from shared.price_feed import get_price_by_symbol
import structlog

logger = structlog.get_logger()

ABI_DIR = Path(__file__).resolve().parent.parent / "abis"

USDT_DECIMALS = 6
INJ_DECIMALS = 18
SLIPPAGE_PCT = 1.0
SWAP_GAS = 350_000
APPROVE_GAS = 100_000
TRANSFER_GAS = 21_000


def _load_abi(name: str) -> list:
    with open(ABI_DIR / f"{name}.json") as f:
        return json.load(f)


class InjectivePlugin:
    name = "injective"
    native_token = "INJ"
    quote_token = "USDT"

    def __init__(self):
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.INJECTIVE_RPC_URL))
        self.router = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(settings.INJECTIVE_ROUTER_ADDRESS),
            abi=_load_abi("SwapRouter"),
        )
        self.usdt = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(settings.INJECTIVE_USDT_ADDRESS),
            abi=_load_abi("ERC20"),
        )
        self.winj = AsyncWeb3.to_checksum_address(settings.INJECTIVE_WINJ_ADDRESS)
        logger.info("injective_plugin_initialized", rpc=settings.INJECTIVE_RPC_URL)

    def _account(self):
        if not settings.PRIVATE_KEY_INJECTIVE:
            raise ExternalChainError("Private key not configured (PRIVATE_KEY_INJECTIVE)")
        try:
            return Account.from_key(settings.PRIVATE_KEY_INJECTIVE)
        except Exception as e:
            raise ExternalChainError(f"Invalid PRIVATE_KEY_INJECTIVE: {e}") from e

    async def _tx_params(self, sender: str, gas: int) -> dict:
        return {
            "from": sender,
            "nonce": await self.w3.eth.get_transaction_count(sender),
            "gas": gas,
            "gasPrice": await self.w3.eth.gas_price,
            "chainId": settings.INJECTIVE_CHAIN_ID,
        }

    async def _sign_and_send(self, account, tx: dict) -> str:
        signed = account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return AsyncWeb3.to_hex(tx_hash)

    async def send_swap(self, amount: Decimal, from_address: str, token_symbol: str | None = None) -> str:
        account = self._account()
        amount_in = to_base_units(amount, USDT_DECIMALS)
        path = [self.usdt.address, self.winj]
        try:
            allowance = await self.usdt.functions.allowance(account.address, self.router.address).call()
            if allowance < amount_in:
                approve_tx = await self.usdt.functions.approve(
                    self.router.address, 2**256 - 1
                ).build_transaction(await self._tx_params(account.address, APPROVE_GAS))
                approve_hash = await self._sign_and_send(account, approve_tx)
                await self.w3.eth.wait_for_transaction_receipt(approve_hash, timeout=60)

            amounts_out = await self.router.functions.getAmountsOut(amount_in, path).call()
            min_out = int(amounts_out[-1] * (1 - SLIPPAGE_PCT / 100))
            deadline = int(time.time()) + 300

            tx = await self.router.functions.swapExactTokensForTokens(
                amount_in, min_out, path, account.address, deadline
            ).build_transaction(await self._tx_params(account.address, SWAP_GAS))
            tx_hash = await self._sign_and_send(account, tx)
        except Exception as e:
            logger.error("injective_swap_failed", amount=str(amount), from_address=from_address, error=str(e))
            raise ExternalChainError(f"Injective swap failed: {e}") from e

        logger.info("injective_swap_sent", amount=str(amount), from_address=from_address, tx=tx_hash)
        return tx_hash

    async def withdraw(self, amount: Decimal, to_address: str) -> str:
        account = self._account()
        try:
            tx = await self._tx_params(account.address, TRANSFER_GAS)
            tx.update(
                to=AsyncWeb3.to_checksum_address(to_address),
                value=to_base_units(amount, INJ_DECIMALS),
            )
            tx_hash = await self._sign_and_send(account, tx)
        except Exception as e:
            logger.error("injective_withdraw_failed", amount=str(amount), to=to_address, error=str(e))
            raise ExternalChainError(f"Injective withdrawal failed: {e}") from e

        logger.info("injective_withdraw_sent", amount=str(amount), to=to_address, tx=tx_hash)
        return tx_hash

    async def get_balance(self, address: str, token: str | None = None) -> Decimal:
        try:
            checksum = AsyncWeb3.to_checksum_address(address)
            if token and token.upper() == self.quote_token:
                raw = await self.usdt.functions.balanceOf(checksum).call()
                return from_base_units(raw, USDT_DECIMALS)
            raw = await self.w3.eth.get_balance(checksum)
            return from_base_units(raw, INJ_DECIMALS)
        except Exception as e:
            raise ExternalChainError(f"Injective balance query failed: {e}") from e

    async def convert_to_usd(self, amount: Decimal) -> Decimal:
        price = await get_price_by_symbol(self.native_token)
        if price is None:
            raise ExternalChainError("INJ price unavailable")
        return Decimal(amount) * Decimal(str(price))
