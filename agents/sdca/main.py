"""
S-DCA Agent — FastAPI application (port 8010)

Smart dollar-cost averaging across Injective, Aptos and Sonic: risk-adjusted
recurring buys, a per-user balance ledger, paper trading on a mock chain and
a periodic recovery sweep for failed on-chain transactions.
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from shared.chains.base import ExternalChainError
from shared.chains.registry import PluginRegistry
from shared.database import async_session
from shared.utils.logging import setup_logging
from shared.utils.scheduler import start_scheduler, stop_scheduler, scheduler
from agents.sdca.errors import SDCAError
from agents.sdca.routes.api import router as sdca_router
from agents.sdca.routes.balance import router as balance_router
from agents.sdca.routes.admin import router as admin_router
from agents.sdca.routes.mock import router as mock_router
from agents.sdca.services.executor import PlanScheduler
from agents.sdca.services.ledger import BalanceLedger
from agents.sdca.services.mock_chain import build_registry
from agents.sdca.services.mock_trading import MockTradeService
from agents.sdca.services.price_analysis import PriceAnalyzer
from agents.sdca.services.recovery import TransactionRecorder, TransactionRecoveryService
from agents.sdca.services.tracker import PlanAnalyticsService
import structlog

logger = structlog.get_logger()


def init_services(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    sched: AsyncIOScheduler,
    registry: PluginRegistry | None = None,
    analyzer: PriceAnalyzer | None = None,
) -> None:
    ledger = BalanceLedger(session_factory)
    registry = registry or build_registry(session_factory, ledger)
    recorder = TransactionRecorder(session_factory)
    plans = PlanScheduler(session_factory, sched, registry, recorder, ledger, analyzer=analyzer)
    analytics = PlanAnalyticsService(session_factory, recorder)

    app.state.ledger = ledger
    app.state.registry = registry
    app.state.recorder = recorder
    app.state.plans = plans
    app.state.analytics = analytics
    app.state.recovery = TransactionRecoveryService(session_factory, registry, recorder, ledger, sched)
    app.state.mock_trades = MockTradeService(plans, analytics)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("sdca_agent_starting")

    init_services(app, async_session, scheduler)
    start_scheduler()
    await app.state.plans.load_active_plans()
    app.state.recovery.start()

    yield

    app.state.recovery.stop()
    stop_scheduler()
    logger.info("sdca_agent_stopped")


app = FastAPI(
    title="S-DCA Agent",
    description="Risk-adjusted dollar-cost averaging across Injective, Aptos and Sonic with transaction recovery.",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(SDCAError)
async def sdca_error_handler(request: Request, exc: SDCAError):
    return JSONResponse(status_code=exc.status_code, content={"error": type(exc).__name__, "detail": str(exc)})


@app.exception_handler(ExternalChainError)
async def chain_error_handler(request: Request, exc: ExternalChainError):
    logger.error("external_chain_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=502, content={"error": "ExternalChainError", "detail": str(exc)})


app.include_router(sdca_router)
app.include_router(balance_router)
app.include_router(admin_router)
app.include_router(mock_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("agents.sdca.main:app", host="0.0.0.0", port=8010, reload=True)
