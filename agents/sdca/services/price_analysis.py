"""
Price/Risk analyzer — turns a 30-day price history into a sizing signal.

The 24h change selects the sample closest to (latest - 24h); the price factor
maps that change into [0, 2] with a piecewise uniform draw. Any failure while
fetching or analysing yields NEUTRAL_ANALYSIS so a tick never dies here.
"""
import random
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Sequence
from shared.price_feed import CHAIN_TO_TOKEN_ID, TOKEN_COINGECKO_IDS, PriceSample, fetch_history
from agents.sdca.config import HISTORY_DAYS, LONG_WINDOW, MIN_SAMPLES, SHORT_WINDOW
from agents.sdca.errors import InsufficientData
import structlog

logger = structlog.get_logger()

HistoryFetcher = Callable[[str, int], Awaitable[list[PriceSample]]]


@dataclass(frozen=True)
class AnalysisResult:
    moving_average_7d: float
    moving_average_30d: float
    price_change_percentage: float
    price_factor: float
    is_price_going_up: bool


NEUTRAL_ANALYSIS = AnalysisResult(0.0, 0.0, 0.0, 1.0, False)


def moving_average(samples: Sequence[PriceSample], window: int) -> float:
    recent = samples[-min(window, len(samples)):]
    return sum(s.price for s in recent) / len(recent)


def price_change_percentage(samples: Sequence[PriceSample]) -> float:
    if len(samples) < 2:
        raise InsufficientData("Need at least two samples for a 24h change")

    ordered = sorted(samples, key=lambda s: s.timestamp)
    latest = ordered[-1]
    target = latest.timestamp - timedelta(hours=24)

    closest = ordered[0]
    best = abs(closest.timestamp - target)
    for sample in ordered[1:]:
        diff = abs(sample.timestamp - target)
        if diff < best:  # strict: ties keep the earlier sample
            closest, best = sample, diff

    return (latest.price - closest.price) / closest.price * 100


def price_factor(change: float, rng: random.Random | None = None) -> float:
    rng = rng or random
    magnitude = abs(change)
    if change < 0:
        if magnitude <= 3:
            return rng.uniform(0.7, 1.0)
        if magnitude <= 10:
            return rng.uniform(0.4, 0.7)
        return rng.uniform(0.1, 0.3)
    if magnitude <= 3:
        return rng.uniform(1.0, 1.3)
    if magnitude <= 10:
        return rng.uniform(1.4, 1.7)
    return rng.uniform(1.7, 1.9)


def analyze_samples(samples: Sequence[PriceSample], rng: random.Random | None = None) -> AnalysisResult:
    if len(samples) < MIN_SAMPLES:
        raise InsufficientData(f"Need at least {MIN_SAMPLES} price samples, got {len(samples)}")

    ordered = sorted(samples, key=lambda s: s.timestamp)
    change = price_change_percentage(ordered)
    return AnalysisResult(
        moving_average_7d=moving_average(ordered, SHORT_WINDOW),
        moving_average_30d=moving_average(ordered, LONG_WINDOW),
        price_change_percentage=change,
        price_factor=price_factor(change, rng),
        is_price_going_up=change > 0,
    )


class PriceAnalyzer:
    def __init__(self, fetcher: HistoryFetcher = fetch_history, rng: random.Random | None = None):
        self.fetcher = fetcher
        self.rng = rng

    @staticmethod
    def token_id_for(chain: str, token_symbol: str | None = None) -> str | None:
        if chain in CHAIN_TO_TOKEN_ID:
            return CHAIN_TO_TOKEN_ID[chain]
        if token_symbol:
            return TOKEN_COINGECKO_IDS.get(token_symbol.upper())
        return None

    async def analyze_token_price(self, chain: str, token_symbol: str | None = None) -> AnalysisResult:
        token_id = self.token_id_for(chain, token_symbol)
        if token_id is None:
            logger.warning("price_analysis_unknown_token", chain=chain, token=token_symbol)
            return NEUTRAL_ANALYSIS
        try:
            samples = await self.fetcher(token_id, HISTORY_DAYS)
            result = analyze_samples(samples, self.rng)
        except Exception as e:
            logger.warning("price_analysis_failed", chain=chain, token_id=token_id, error=str(e))
            return NEUTRAL_ANALYSIS

        logger.info(
            "price_analysis",
            chain=chain,
            token_id=token_id,
            change_pct=round(result.price_change_percentage, 4),
            price_factor=round(result.price_factor, 4),
            going_up=result.is_price_going_up,
        )
        return result
