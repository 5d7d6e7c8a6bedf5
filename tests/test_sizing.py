"""
Unit tests for risk-adjusted sizing
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from agents.sdca.services.price_analysis import AnalysisResult
from agents.sdca.services.sizing import calculate_investment_amount, next_tick_amount, risk_multiplier


def analysis(pf, up):
    return AnalysisResult(0.0, 0.0, 0.0, pf, up)


def test_medium_risk_second_tick_going_up():
    # UA = 150, RN = 50 * 1.2 = 60, amount = 150 - 60
    assert calculate_investment_amount(Decimal("100"), "medium_risk", analysis(1.2, True)) == Decimal("90")


def test_medium_risk_going_down_adds_component():
    assert calculate_investment_amount(Decimal("100"), "medium_risk", analysis(0.5, False)) == Decimal("175")


@pytest.mark.parametrize("pf,up", [(0.1, True), (1.9, True), (0.3, False), (1.7, False)])
def test_no_risk_collapses_to_initial_amount(pf, up):
    assert calculate_investment_amount(Decimal("42.5"), "no_risk", analysis(pf, up)) == Decimal("42.5")


def test_multipliers():
    assert risk_multiplier("low_risk") == Decimal("1.2")
    assert risk_multiplier("high_risk") == Decimal("2.0")
    assert risk_multiplier("unknown") == Decimal("1.0")


def test_first_tick_invests_plan_amount_unmodified():
    plan = SimpleNamespace(amount=Decimal("100"), initial_amount=Decimal("0"), execution_count=0, risk_level="high_risk")
    assert next_tick_amount(plan, analysis(1.9, False)) == Decimal("100")


def test_later_ticks_size_from_initial_amount():
    plan = SimpleNamespace(amount=Decimal("500"), initial_amount=Decimal("100"), execution_count=3, risk_level="medium_risk")
    assert next_tick_amount(plan, analysis(1.2, True)) == Decimal("90")
