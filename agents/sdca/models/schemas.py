from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

Frequency = Literal["daily", "weekly", "monthly", "test_minute", "test_10_seconds"]
RiskLevel = Literal["no_risk", "low_risk", "medium_risk", "high_risk"]


class PlanCreate(BaseModel):
    chain: str
    token_symbol: str
    amount: Decimal = Field(gt=0)
    frequency: Frequency = "daily"
    risk_level: RiskLevel = "no_risk"
    strategy_id: str = "SDCA"
    user_wallet_address: Optional[str] = None


class PlanResponse(BaseModel):
    id: int
    user_id: int
    chain: str
    token_symbol: str
    strategy_id: str
    frequency: str
    risk_level: str
    amount: Decimal
    initial_amount: Decimal
    total_invested: Decimal
    execution_count: int
    user_wallet_address: Optional[str]
    is_active: bool
    last_execution_time: Optional[datetime]
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class AttemptResponse(BaseModel):
    id: int
    plan_id: int
    chain: str
    type: str
    from_token: str
    from_amount: Decimal
    to_token: str
    to_amount: Decimal
    price: Decimal
    value: Decimal
    invested: Decimal
    status: str
    retry_count: int
    max_retries: int
    last_attempt_time: Optional[datetime]
    error: Optional[str]
    tx_hash: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class TotalInvestmentResponse(BaseModel):
    user_id: int
    total_invested: Decimal


class PositionResponse(BaseModel):
    chain: str
    token: str
    balance: Decimal
    usd_value: Optional[Decimal] = None
    error: Optional[str] = None


class WithdrawRequest(BaseModel):
    chain: str
    amount: Decimal = Field(gt=0)
    to_address: str


class TxResponse(BaseModel):
    tx_hash: str


class StopResponse(BaseModel):
    stopped: int


class PlanAnalytics(BaseModel):
    plan_id: int
    chain: str
    token_symbol: str
    frequency: str
    active: bool
    amount: Decimal
    initial_amount: Decimal
    total_invested: Decimal
    tokens_held: Decimal
    average_buy_price: Decimal
    current_token_price: Decimal
    portfolio_value: Decimal
    profit: Decimal
    profit_percentage: Decimal
    total_transactions: int


class RecoveryStats(BaseModel):
    total: int
    pending: int
    retrying: int
    completed: int
    failed: int
    recovery_rate: float


class BalanceView(BaseModel):
    chain_id: str
    token_symbol: str
    token_name: str
    balance: str
    last_updated: Optional[datetime]


class DepositRequest(BaseModel):
    chain: str
    amount: Decimal = Field(gt=0)
    tx_hash: str
    token_symbol: Optional[str] = None


class BalanceWithdrawRequest(BaseModel):
    chain: str
    amount: Decimal = Field(gt=0)
    destination_address: str
    token_symbol: Optional[str] = None


class WithdrawResult(BaseModel):
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class AllocateRequest(BaseModel):
    chain: str
    amount: Decimal = Field(gt=0)
    strategy_id: str = "SDCA"
    token_symbol: Optional[str] = None


class AllocationResponse(BaseModel):
    id: int
    chain_id: str
    strategy_id: str
    token_symbol: str
    amount: str
    status: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]

    model_config = {"from_attributes": True}


class AllocateResult(BaseModel):
    success: bool
    allocation: Optional[AllocationResponse] = None
    error: Optional[str] = None


class ChainPlansSummary(BaseModel):
    chain: str
    plan_count: int
    total_invested: Decimal
    plans: list[PlanResponse]


class MockTradeCreate(BaseModel):
    token_symbol: str
    amount: Decimal = Field(gt=0)
    strategy_id: str = "SDCA"
    risk_level: RiskLevel = "medium_risk"
    frequency: Frequency = "daily"


class HealthResponse(BaseModel):
    status: str = "ok"
    agent: str = "sdca"
    version: str = "1.0.0"
    active_plans: int = 0
    scheduled_jobs: int = 0
    chains: list[str] = []
