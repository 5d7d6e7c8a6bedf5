"""
Balance ledger routes — deposits, withdrawals and strategy allocations.
"""
from fastapi import APIRouter, Depends
from shared.auth import verify_api_key
from agents.sdca.models.db import User
from agents.sdca.models.schemas import (
    BalanceView, DepositRequest, BalanceWithdrawRequest, WithdrawResult,
    AllocateRequest, AllocateResult, AllocationResponse,
)
from agents.sdca.routes.deps import get_ledger, require_user

router = APIRouter(prefix="/api/v1/balance", tags=["balance"])


@router.get("", response_model=list[BalanceView])
async def all_balances(
    user: User = Depends(require_user),
    ledger=Depends(get_ledger),
    _key: bool = Depends(verify_api_key),
):
    return await ledger.get_all_balances(user.id)


@router.get("/tokens")
async def chain_tokens(
    ledger=Depends(get_ledger),
    _key: bool = Depends(verify_api_key),
):
    return ledger.chain_tokens()


@router.get("/allocations", response_model=list[AllocationResponse])
async def allocations(
    user: User = Depends(require_user),
    ledger=Depends(get_ledger),
    _key: bool = Depends(verify_api_key),
):
    return await ledger.get_allocations(user.id)


@router.get("/{chain}", response_model=list[BalanceView])
async def chain_balances(
    chain: str,
    user: User = Depends(require_user),
    ledger=Depends(get_ledger),
    _key: bool = Depends(verify_api_key),
):
    return await ledger.get_chain_balances(user.id, chain)


@router.get("/{chain}/{token_symbol}", response_model=BalanceView)
async def token_balance(
    chain: str,
    token_symbol: str,
    user: User = Depends(require_user),
    ledger=Depends(get_ledger),
    _key: bool = Depends(verify_api_key),
):
    return await ledger.get_token_balance(user.id, chain, token_symbol)


@router.post("/deposit", response_model=BalanceView)
async def deposit(
    body: DepositRequest,
    user: User = Depends(require_user),
    ledger=Depends(get_ledger),
    _key: bool = Depends(verify_api_key),
):
    return await ledger.deposit(user.id, body.chain, body.amount, body.tx_hash, body.token_symbol)


@router.post("/withdraw", response_model=WithdrawResult)
async def withdraw(
    body: BalanceWithdrawRequest,
    user: User = Depends(require_user),
    ledger=Depends(get_ledger),
    _key: bool = Depends(verify_api_key),
):
    return await ledger.withdraw(user.id, body.chain, body.amount, body.destination_address, body.token_symbol)


@router.post("/allocate", response_model=AllocateResult)
async def allocate(
    body: AllocateRequest,
    user: User = Depends(require_user),
    ledger=Depends(get_ledger),
    _key: bool = Depends(verify_api_key),
):
    return await ledger.allocate(user.id, body.chain, body.amount, body.strategy_id, body.token_symbol)
