"""
HTTP tests for the S-DCA routers
"""
from decimal import Decimal

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from httpx import ASGITransport, AsyncClient

from shared.database import get_db
from agents.sdca.main import app, init_services
from agents.sdca.models.db import User
from agents.sdca.services.mock_chain import MockPlugin


API_KEY = {"X-API-Key": "dev-secret-key"}
ADMIN_KEY = {"X-Admin-Key": "dev-admin-key"}


def as_user(user_id: int) -> dict:
    return {**API_KEY, "X-User-Id": str(user_id)}


async def fixed_price(symbol):
    return 20.0


@pytest.fixture
async def client(session_factory, registry, analyzer):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    init_services(app, session_factory, AsyncIOScheduler(timezone="UTC"), registry=registry, analyzer=analyzer)
    app.state.analytics.price_lookup = fixed_price
    app.state.plans.price_lookup = fixed_price
    registry.register("mock", lambda: MockPlugin(session_factory, app.state.ledger))
    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def headers(user):
    return as_user(user.id)


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/v1/sdca/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["chains"] == ["injective", "mock"]
    assert data["active_plans"] == 0


@pytest.mark.asyncio
async def test_wrong_api_key_rejected(client, user):
    resp = await client.get("/api/v1/sdca/plans", headers={"X-API-Key": "nope", "X-User-Id": str(user.id)})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_unknown_user_is_404(client):
    resp = await client.get("/api/v1/sdca/plans", headers=as_user(4242))
    assert resp.status_code == 404
    assert resp.json()["error"] == "UserNotFound"


@pytest.mark.asyncio
async def test_plan_lifecycle(client, headers):
    resp = await client.post(
        "/api/v1/sdca/plans",
        json={"chain": "injective", "token_symbol": "inj", "amount": "100", "frequency": "weekly", "risk_level": "low_risk"},
        headers=headers,
    )
    assert resp.status_code == 200
    plan = resp.json()
    assert plan["token_symbol"] == "INJ"
    assert plan["is_active"] is True
    assert Decimal(plan["amount"]) == Decimal("100")

    resp = await client.get("/api/v1/sdca/plans", headers=headers)
    assert [p["id"] for p in resp.json()] == [plan["id"]]

    resp = await client.get(f"/api/v1/sdca/plans/{plan['id']}", headers=headers)
    assert resp.status_code == 200

    resp = await client.post(f"/api/v1/sdca/plans/{plan['id']}/stop", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    resp = await client.get("/api/v1/sdca/plans?active_only=true", headers=headers)
    assert resp.json() == []


@pytest.mark.asyncio
async def test_create_plan_unknown_chain(client, headers):
    resp = await client.post(
        "/api/v1/sdca/plans", json={"chain": "ethereum", "token_symbol": "ETH", "amount": "10"}, headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "UnknownChain", "detail": "Plugin ethereum not found"}


@pytest.mark.asyncio
async def test_create_plan_validation(client, headers):
    bad_frequency = {"chain": "injective", "token_symbol": "INJ", "amount": "10", "frequency": "hourly"}
    assert (await client.post("/api/v1/sdca/plans", json=bad_frequency, headers=headers)).status_code == 422
    bad_amount = {"chain": "injective", "token_symbol": "INJ", "amount": "0"}
    assert (await client.post("/api/v1/sdca/plans", json=bad_amount, headers=headers)).status_code == 422


@pytest.mark.asyncio
async def test_other_users_plan_is_hidden(client, headers, session_factory):
    async with session_factory() as db:
        other = User(name="Other", email="other@example.com", address="0xother")
        db.add(other)
        await db.commit()
        await db.refresh(other)

    resp = await client.post(
        "/api/v1/sdca/plans", json={"chain": "injective", "token_symbol": "INJ", "amount": "5"}, headers=headers,
    )
    plan_id = resp.json()["id"]

    assert (await client.get(f"/api/v1/sdca/plans/{plan_id}", headers=as_user(other.id))).status_code == 404
    assert (await client.post(f"/api/v1/sdca/plans/{plan_id}/emergency-stop", headers=as_user(other.id))).status_code == 404


@pytest.mark.asyncio
async def test_executed_plan_transactions_and_totals(client, headers):
    resp = await client.post(
        "/api/v1/sdca/plans", json={"chain": "injective", "token_symbol": "INJ", "amount": "50"}, headers=headers,
    )
    plan_id = resp.json()["id"]
    await app.state.plans.execute_plan(plan_id)

    txs = (await client.get(f"/api/v1/sdca/plans/{plan_id}/transactions", headers=headers)).json()
    assert len(txs) == 1
    assert txs[0]["status"] == "completed"
    assert txs[0]["tx_hash"] == "0xswap1"

    total = (await client.get("/api/v1/sdca/total-investment", headers=headers)).json()
    assert Decimal(total["total_invested"]) == Decimal("50")

    analytics = (await client.get(f"/api/v1/sdca/plans/{plan_id}/analytics", headers=headers)).json()
    assert Decimal(analytics["tokens_held"]) == Decimal("2.5")
    assert analytics["total_transactions"] == 1

    positions = (await client.get("/api/v1/sdca/positions", headers=headers)).json()
    assert positions[0]["chain"] == "injective"
    assert Decimal(positions[0]["usd_value"]) == Decimal("60")

    stats = (await client.get("/api/v1/sdca/recovery/stats", headers=API_KEY)).json()
    assert stats["completed"] == 1
    assert stats["recovery_rate"] == 1.0


@pytest.mark.asyncio
async def test_withdraw_through_plugin(client, headers, fake_plugin):
    resp = await client.post(
        "/api/v1/sdca/withdraw", json={"chain": "injective", "amount": "1.5", "to_address": "0xdest"}, headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json() == {"tx_hash": "0xwithdraw1"}

    fake_plugin.fail = True
    resp = await client.post(
        "/api/v1/sdca/withdraw", json={"chain": "injective", "amount": "1", "to_address": "0xdest"}, headers=headers,
    )
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_stop_all_user_plans(client, headers):
    for _ in range(2):
        await client.post(
            "/api/v1/sdca/plans", json={"chain": "injective", "token_symbol": "INJ", "amount": "5"}, headers=headers,
        )
    resp = await client.post("/api/v1/sdca/plans/stop-all", headers=headers)
    assert resp.json() == {"stopped": 2}


@pytest.mark.asyncio
async def test_balance_routes(client, headers):
    balances = (await client.get("/api/v1/balance", headers=headers)).json()
    usdt = [b for b in balances if b["chain_id"] == "aptos" and b["token_symbol"] == "USDT"]
    assert usdt[0]["balance"] == "500"

    resp = await client.post(
        "/api/v1/balance/deposit", json={"chain": "aptos", "amount": "1.25", "tx_hash": "0xdep"}, headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["token_symbol"] == "APT"
    assert resp.json()["balance"] == "1.25"

    resp = await client.get("/api/v1/balance/aptos/apt", headers=headers)
    assert resp.json()["balance"] == "1.25"
    assert len((await client.get("/api/v1/balance/aptos", headers=headers)).json()) == 3

    resp = await client.post(
        "/api/v1/balance/withdraw",
        json={"chain": "aptos", "amount": "5", "destination_address": "0xdest", "token_symbol": "APT"},
        headers=headers,
    )
    assert resp.json()["success"] is False
    assert resp.json()["error"] == "Insufficient balance"

    resp = await client.post(
        "/api/v1/balance/allocate", json={"chain": "aptos", "amount": "100", "token_symbol": "USDT"}, headers=headers,
    )
    assert resp.json()["success"] is True
    assert resp.json()["allocation"]["amount"] == "100"

    allocations = (await client.get("/api/v1/balance/allocations", headers=headers)).json()
    assert len(allocations) == 1
    assert (await client.get("/api/v1/balance/aptos/usdt", headers=headers)).json()["balance"] == "400"


@pytest.mark.asyncio
async def test_balance_unsupported_token(client, headers):
    resp = await client.get("/api/v1/balance/aptos/DOGE", headers=headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "UnsupportedToken"

    tokens = (await client.get("/api/v1/balance/tokens", headers=API_KEY)).json()
    assert set(tokens) == {"injective", "aptos", "sonic", "mock"}


@pytest.mark.asyncio
async def test_admin_routes(client, headers):
    await client.post(
        "/api/v1/sdca/plans", json={"chain": "injective", "token_symbol": "INJ", "amount": "5"}, headers=headers,
    )

    assert (await client.get("/api/v1/admin/plans/active", headers={"X-Admin-Key": "wrong"})).status_code == 401

    summary = (await client.get("/api/v1/admin/plans/active", headers=ADMIN_KEY)).json()
    assert summary[0]["chain"] == "injective"
    assert summary[0]["plan_count"] == 1
    assert (await client.get("/api/v1/admin/plans/active?chain=sonic", headers=ADMIN_KEY)).json() == []

    resp = await client.post("/api/v1/admin/plans/stop-all", headers=ADMIN_KEY)
    assert resp.json() == {"stopped": 1}


@pytest.mark.asyncio
async def test_mock_trade_routes(client, headers):
    resp = await client.post("/api/v1/mock/trades", json={"token_symbol": "sol", "amount": "10"}, headers=headers)
    assert resp.status_code == 200
    trade = resp.json()
    assert trade["chain"] == "mock"
    assert trade["risk_level"] == "medium_risk"

    assert [t["id"] for t in (await client.get("/api/v1/mock/trades", headers=headers)).json()] == [trade["id"]]

    await app.state.plans.execute_plan(trade["id"])

    position = (await client.get(f"/api/v1/mock/trades/{trade['id']}/position", headers=headers)).json()
    assert position["token"] == "SOL"
    assert Decimal(position["balance"]) == Decimal("0.1")

    details = (await client.get(f"/api/v1/mock/trades/{trade['id']}", headers=headers)).json()
    assert details["total_transactions"] == 1

    resp = await client.post(f"/api/v1/mock/trades/{trade['id']}/stop", headers=headers)
    assert resp.json()["is_active"] is False

    resp = await client.post("/api/v1/mock/trades", json={"token_symbol": "DOGE", "amount": "10"}, headers=headers)
    assert resp.status_code == 400
