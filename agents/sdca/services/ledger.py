"""
Balance ledger — per-user, per-chain, per-token decimal balances.

Balances are stored as decimal strings. Every mutation is a compare-and-swap
on the row version (UPDATE ... WHERE version = :seen); a lost race re-reads
and retries up to LEDGER_CAS_RETRIES times before ConcurrentModification.
"""
import secrets
from decimal import Decimal
from typing import Callable
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from shared.models.base import utcnow
from agents.sdca.config import (
    CHAIN_TOKENS, LEDGER_CAS_RETRIES, NATIVE_TOKENS, QUOTE_TOKEN, WELCOME_QUOTE_BALANCE,
)
from agents.sdca.errors import ConcurrentModification, InsufficientBalance, UnsupportedToken
from agents.sdca.models.db import Allocation, BalanceEntry, UserBalance
import structlog

logger = structlog.get_logger()


def fmt_amount(value: Decimal) -> str:
    """Plain decimal string without exponent or trailing zeros."""
    value = Decimal(value)
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def resolve_token(chain: str, token: str | None = None) -> str:
    """Validate chain/token and default to the chain's native token."""
    tokens = CHAIN_TOKENS.get(chain)
    if tokens is None:
        raise UnsupportedToken(chain)
    symbol = (token or NATIVE_TOKENS[chain]).upper()
    if symbol not in tokens:
        raise UnsupportedToken(chain, symbol)
    return symbol


def _view(entry: BalanceEntry) -> dict:
    return {
        "chain_id": entry.chain_id,
        "token_symbol": entry.token_symbol,
        "token_name": CHAIN_TOKENS.get(entry.chain_id, {}).get(entry.token_symbol, entry.token_symbol),
        "balance": entry.balance,
        "last_updated": entry.last_updated,
    }


class BalanceLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_or_create(self, user_id: int) -> UserBalance:
        async with self.session_factory() as db:
            record = (
                await db.execute(select(UserBalance).where(UserBalance.user_id == user_id))
            ).scalar_one_or_none()
            if record is not None:
                return record

            record = UserBalance(user_id=user_id, total_deposited="0", total_withdrawn="0", version=0)
            db.add(record)
            for chain, tokens in CHAIN_TOKENS.items():
                for symbol in tokens:
                    opening = WELCOME_QUOTE_BALANCE if symbol == QUOTE_TOKEN else Decimal(0)
                    db.add(BalanceEntry(
                        user_id=user_id, chain_id=chain, token_symbol=symbol,
                        balance=fmt_amount(opening), version=0,
                    ))
            try:
                await db.commit()
            except IntegrityError:
                # Another request seeded the record first
                await db.rollback()
                return (
                    await db.execute(select(UserBalance).where(UserBalance.user_id == user_id))
                ).scalar_one()

            logger.info("balance_record_created", user_id=user_id)
            return record

    async def _entry(self, db: AsyncSession, user_id: int, chain: str, token: str) -> BalanceEntry | None:
        result = await db.execute(
            select(BalanceEntry).where(
                BalanceEntry.user_id == user_id,
                BalanceEntry.chain_id == chain,
                BalanceEntry.token_symbol == token,
            )
        )
        return result.scalar_one_or_none()

    async def _mutate(
        self,
        user_id: int,
        chain: str,
        token: str,
        delta: Decimal,
        total_field: str | None = None,
        extra: Callable[[AsyncSession], object] | None = None,
    ) -> tuple[Decimal, object]:
        """Apply delta to one balance entry (and optionally a lifetime total) atomically."""
        await self.get_or_create(user_id)
        delta = Decimal(delta)

        for attempt in range(LEDGER_CAS_RETRIES):
            async with self.session_factory() as db:
                entry = await self._entry(db, user_id, chain, token)
                if entry is None:
                    db.add(BalanceEntry(user_id=user_id, chain_id=chain, token_symbol=token, balance="0", version=0))
                    try:
                        await db.commit()
                    except IntegrityError:
                        await db.rollback()
                    continue

                current = Decimal(entry.balance)
                new_balance = current + delta
                if new_balance < 0:
                    raise InsufficientBalance(chain, token, current, -delta)

                result = await db.execute(
                    update(BalanceEntry)
                    .where(BalanceEntry.id == entry.id, BalanceEntry.version == entry.version)
                    .values(balance=fmt_amount(new_balance), version=entry.version + 1, last_updated=utcnow())
                )
                if result.rowcount != 1:
                    await db.rollback()
                    logger.debug("balance_cas_conflict", user_id=user_id, chain=chain, token=token, attempt=attempt)
                    continue

                if total_field:
                    record = (
                        await db.execute(select(UserBalance).where(UserBalance.user_id == user_id))
                    ).scalar_one()
                    total = Decimal(getattr(record, total_field)) + abs(delta)
                    result = await db.execute(
                        update(UserBalance)
                        .where(UserBalance.id == record.id, UserBalance.version == record.version)
                        .values(**{total_field: fmt_amount(total)}, version=record.version + 1, last_updated=utcnow())
                    )
                    if result.rowcount != 1:
                        await db.rollback()
                        continue

                created = extra(db) if extra else None
                await db.commit()
                return new_balance, created

        raise ConcurrentModification(f"balance {user_id}/{chain}/{token}")

    async def credit(self, user_id: int, chain: str, token: str, amount: Decimal) -> Decimal:
        symbol = resolve_token(chain, token)
        balance, _ = await self._mutate(user_id, chain, symbol, Decimal(amount))
        return balance

    async def debit(self, user_id: int, chain: str, token: str, amount: Decimal) -> Decimal:
        symbol = resolve_token(chain, token)
        balance, _ = await self._mutate(user_id, chain, symbol, -Decimal(amount))
        return balance

    async def available(self, user_id: int, chain: str, token: str | None = None) -> Decimal:
        symbol = resolve_token(chain, token)
        await self.get_or_create(user_id)
        async with self.session_factory() as db:
            entry = await self._entry(db, user_id, chain, symbol)
        return Decimal(entry.balance) if entry else Decimal(0)

    async def deposit(self, user_id: int, chain: str, amount: Decimal, tx_hash: str, token: str | None = None) -> dict:
        symbol = resolve_token(chain, token)
        balance, _ = await self._mutate(user_id, chain, symbol, Decimal(amount), total_field="total_deposited")
        logger.info("deposit_processed", user_id=user_id, chain=chain, token=symbol, amount=str(amount), tx_hash=tx_hash)
        return await self.get_token_balance(user_id, chain, symbol)

    async def withdraw(
        self, user_id: int, chain: str, amount: Decimal, destination: str, token: str | None = None
    ) -> dict:
        symbol = resolve_token(chain, token)
        try:
            await self._mutate(user_id, chain, symbol, -Decimal(amount), total_field="total_withdrawn")
        except InsufficientBalance:
            return {"success": False, "error": "Insufficient balance"}

        # Ledger-internal reference; on-chain transfers go through the chain plugins
        tx_hash = "0x" + secrets.token_hex(32)
        logger.info("withdrawal_processed", user_id=user_id, chain=chain, token=symbol, amount=str(amount),
                    destination=destination, tx_hash=tx_hash)
        return {"success": True, "tx_hash": tx_hash}

    async def allocate(
        self, user_id: int, chain: str, amount: Decimal, strategy_id: str, token: str | None = None
    ) -> dict:
        symbol = resolve_token(chain, token)

        def _add_allocation(db: AsyncSession) -> Allocation:
            allocation = Allocation(
                user_id=user_id, chain_id=chain, strategy_id=strategy_id,
                token_symbol=symbol, amount=fmt_amount(amount), status="active", start_date=utcnow(),
            )
            db.add(allocation)
            return allocation

        try:
            _, allocation = await self._mutate(user_id, chain, symbol, -Decimal(amount), extra=_add_allocation)
        except InsufficientBalance:
            return {"success": False, "error": "Insufficient balance"}

        logger.info("allocation_created", user_id=user_id, chain=chain, token=symbol,
                    amount=str(amount), strategy_id=strategy_id)
        return {"success": True, "allocation": allocation}

    async def get_all_balances(self, user_id: int) -> list[dict]:
        await self.get_or_create(user_id)
        async with self.session_factory() as db:
            result = await db.execute(
                select(BalanceEntry)
                .where(BalanceEntry.user_id == user_id)
                .order_by(BalanceEntry.chain_id, BalanceEntry.id)
            )
            return [_view(e) for e in result.scalars().all()]

    async def get_chain_balances(self, user_id: int, chain: str) -> list[dict]:
        if chain not in CHAIN_TOKENS:
            raise UnsupportedToken(chain)
        return [b for b in await self.get_all_balances(user_id) if b["chain_id"] == chain]

    async def get_token_balance(self, user_id: int, chain: str, token: str | None = None) -> dict:
        symbol = resolve_token(chain, token)
        await self.get_or_create(user_id)
        async with self.session_factory() as db:
            entry = await self._entry(db, user_id, chain, symbol)
        if entry is None:
            return {
                "chain_id": chain,
                "token_symbol": symbol,
                "token_name": CHAIN_TOKENS[chain][symbol],
                "balance": "0",
                "last_updated": None,
            }
        return _view(entry)

    async def get_allocations(self, user_id: int) -> list[Allocation]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Allocation).where(Allocation.user_id == user_id).order_by(Allocation.id.desc())
            )
            return list(result.scalars().all())

    @staticmethod
    def chain_tokens() -> dict[str, dict[str, str]]:
        return CHAIN_TOKENS
