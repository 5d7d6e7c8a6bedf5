"""
Chain plugin capability set shared by every DCA chain integration.
"""
from decimal import Decimal, ROUND_DOWN
from typing import Protocol


class ExternalChainError(Exception):
    """A blockchain SDK/RPC call failed. Never retried by the plugin itself."""


class ChainPlugin(Protocol):
    name: str
    native_token: str
    quote_token: str

    async def send_swap(self, amount: Decimal, from_address: str, token_symbol: str | None = None) -> str:
        """Buy `token_symbol` (the chain native token when None) with `amount` of the quote token."""
        ...

    async def withdraw(self, amount: Decimal, to_address: str) -> str: ...

    async def get_balance(self, address: str, token: str | None = None) -> Decimal: ...

    async def convert_to_usd(self, amount: Decimal) -> Decimal: ...


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a human amount to integer base units, truncating dust."""
    return int((Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(raw: int | str, decimals: int) -> Decimal:
    return Decimal(int(raw)) / (Decimal(10) ** decimals)
