"""
Risk-adjusted investment sizing.

    UA = IA * M
    RN = (UA - IA) * PF
    amount = UA - RN   if the price is going up
             UA + RN   otherwise
"""
from decimal import Decimal
from agents.sdca.config import RISK_MULTIPLIERS
from agents.sdca.services.price_analysis import AnalysisResult


def risk_multiplier(risk_level: str) -> Decimal:
    return RISK_MULTIPLIERS.get(risk_level, RISK_MULTIPLIERS["no_risk"])


def calculate_investment_amount(initial_amount: Decimal, risk_level: str, analysis: AnalysisResult) -> Decimal:
    ia = Decimal(initial_amount)
    ua = ia * risk_multiplier(risk_level)
    rn = (ua - ia) * Decimal(str(analysis.price_factor))
    return ua - rn if analysis.is_price_going_up else ua + rn


def next_tick_amount(plan, analysis: AnalysisResult) -> Decimal:
    """Amount for the upcoming tick. The first execution always invests plan.amount."""
    if not plan.execution_count:
        return Decimal(plan.amount)
    return calculate_investment_amount(plan.initial_amount, plan.risk_level, analysis)
