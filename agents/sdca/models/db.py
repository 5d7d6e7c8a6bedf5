from sqlalchemy import (
    Column, Integer, String, Text, Numeric,
    Boolean, DateTime, Index, ForeignKey, UniqueConstraint
)
from shared.models.base import Base, TimestampMixin, utcnow

Amount = Numeric(30, 18)

PLAN_FREQUENCIES = ("daily", "weekly", "monthly", "test_minute", "test_10_seconds")
RISK_LEVELS = ("no_risk", "low_risk", "medium_risk", "high_risk")


class AttemptStatus:
    PENDING = "pending"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


class AttemptType:
    BUY = "buy"
    SELL = "sell"
    SWAP = "swap"


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    address = Column(String(128))  # custodial wallet used as the swap source


class Admin(Base, TimestampMixin):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    email = Column(String(255), nullable=False)


class InvestmentPlan(Base, TimestampMixin):
    __tablename__ = "investment_plans"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    chain = Column(String(30), nullable=False)
    token_symbol = Column(String(20), nullable=False)
    strategy_id = Column(String(30), default="SDCA", nullable=False)

    # Strategy params
    frequency = Column(String(20), default="daily", nullable=False)
    risk_level = Column(String(20), default="no_risk", nullable=False)
    amount = Column(Amount, nullable=False)
    user_wallet_address = Column(String(128))

    # Tracking
    initial_amount = Column(Amount, default=0, nullable=False)
    total_invested = Column(Amount, default=0, nullable=False)
    execution_count = Column(Integer, default=0, nullable=False)
    last_execution_time = Column(DateTime(timezone=True))

    # State
    is_active = Column(Boolean, default=True, nullable=False)
    start_date = Column(DateTime(timezone=True), default=utcnow)
    end_date = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_plans_user", "user_id"),
        Index("idx_plans_active", "is_active"),
        Index("idx_plans_chain", "chain"),
    )


class TransactionAttempt(Base, TimestampMixin):
    __tablename__ = "transaction_attempts"

    id = Column(Integer, primary_key=True)
    plan_id = Column(Integer, ForeignKey("investment_plans.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    chain = Column(String(30), nullable=False)
    type = Column(String(10), default=AttemptType.BUY, nullable=False)

    from_token = Column(String(20), nullable=False)
    from_amount = Column(Amount, nullable=False)
    to_token = Column(String(20), nullable=False)
    to_amount = Column(Amount, default=0, nullable=False)
    price = Column(Amount, default=0, nullable=False)
    value = Column(Amount, default=0, nullable=False)
    invested = Column(Amount, default=0, nullable=False)

    status = Column(String(20), default=AttemptStatus.PENDING, nullable=False)
    retry_count = Column(Integer, default=0, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)
    last_attempt_time = Column(DateTime(timezone=True), default=utcnow)
    error = Column(Text)
    tx_hash = Column(String(128))

    __table_args__ = (
        Index("idx_attempts_plan", "plan_id"),
        Index("idx_attempts_status", "status"),
    )


class UserBalance(Base):
    __tablename__ = "user_balances"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    total_deposited = Column(String(80), default="0", nullable=False)
    total_withdrawn = Column(String(80), default="0", nullable=False)
    last_updated = Column(DateTime(timezone=True), default=utcnow)
    version = Column(Integer, default=0, nullable=False)


class BalanceEntry(Base):
    __tablename__ = "balance_entries"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    chain_id = Column(String(30), nullable=False)
    token_symbol = Column(String(20), nullable=False)
    balance = Column(String(80), default="0", nullable=False)  # decimal string
    last_updated = Column(DateTime(timezone=True), default=utcnow)
    version = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "chain_id", "token_symbol", name="uq_balance_user_chain_token"),
    )


class Allocation(Base):
    __tablename__ = "allocations"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    chain_id = Column(String(30), nullable=False)
    strategy_id = Column(String(30), nullable=False)
    token_symbol = Column(String(20), nullable=False)
    amount = Column(String(80), nullable=False)
    status = Column(String(20), default="active", nullable=False)  # pending, active, completed, failed
    start_date = Column(DateTime(timezone=True), default=utcnow)
    end_date = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_allocations_user", "user_id"),
    )
