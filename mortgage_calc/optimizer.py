"""Overpayment analysis.

Everything here works by recomputing the full schedule for a loan with
different synthesized overpayment plans and comparing the result to the same
loan without overpayments. Any plans already attached to the loan are
replaced, not combined. Nothing is cached: a sweep with ``steps`` points
costs ``steps + 1`` schedule computations.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from decimal import Decimal
from typing import List, Optional, Sequence

from .data_models import (
    CalculationResults,
    LoanDetails,
    LumpSumComparison,
    OptimizationParameters,
    OptimizationResult,
    OverpaymentImpact,
    OverpaymentPlan,
    StrategyResult,
)
from .engine import calculate_loan_details
from .errors import InvalidInputError
from .utils import round_to_cents, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_AMOUNT = Decimal("100")
GOALS = ("interest", "time", "balanced")
ZERO = Decimal("0")


def _amount(value, label: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise InvalidInputError([f"{label} must be a number"]) from exc
    if not amount.is_finite():
        raise InvalidInputError([f"{label} must be a finite number"])
    return amount


def _calculate(loan: LoanDetails, plans: Sequence[OverpaymentPlan]) -> CalculationResults:
    return calculate_loan_details(replace(loan, overpayments=list(plans)))


def _monthly_plan(amount: Decimal, start_month: int = 1, end_month: Optional[int] = None) -> OverpaymentPlan:
    return OverpaymentPlan(
        amount=amount,
        start_month=start_month,
        end_month=end_month,
        frequency="monthly",
        type="term",
    )


def _impact(amount: Decimal, baseline: CalculationResults, scenario: CalculationResults) -> OverpaymentImpact:
    return OverpaymentImpact(
        amount=amount,
        interest_saved=baseline.total_interest - scenario.total_interest,
        term_reduction=baseline.actual_term - scenario.actual_term,
    )


def analyze_overpayment_impact(
    loan_details: LoanDetails, max_monthly_amount, steps: int = 5
) -> List[OverpaymentImpact]:
    """Map monthly overpayment size to interest saved and months saved.

    Amounts sweep linearly: step ``i`` of ``steps`` overpays
    ``max_monthly_amount / steps * i`` every month from the first payment,
    shortening the term. A non-positive maximum is replaced by
    ``DEFAULT_SWEEP_AMOUNT`` so the sweep still says something.
    """
    if isinstance(steps, bool) or not isinstance(steps, int) or steps < 1:
        raise InvalidInputError(["Steps must be a positive integer"])
    maximum = _amount(max_monthly_amount, "Maximum monthly overpayment")
    if maximum <= 0:
        maximum = DEFAULT_SWEEP_AMOUNT

    baseline = _calculate(loan_details, [])
    step_size = maximum / Decimal(steps)
    impacts: List[OverpaymentImpact] = []
    for i in range(1, steps + 1):
        amount = round_to_cents(step_size * i)
        scenario = _calculate(loan_details, [_monthly_plan(amount)])
        impacts.append(_impact(amount, baseline, scenario))

    logger.debug("Overpayment sweep up to %s in %d steps", maximum, steps)
    return impacts


def _strategies(params: OptimizationParameters) -> List[StrategyResult]:
    monthly = params.max_monthly_overpayment
    lump_sum = params.max_one_time_overpayment
    one_time = OverpaymentPlan(amount=lump_sum, start_month=1, frequency="one-time", type="term")

    strategies: List[StrategyResult] = []
    if lump_sum > 0:
        strategies.append(
            StrategyResult(
                name="Lump Sum at Beginning",
                description="Make a one-time lump sum payment at the beginning of the loan",
                overpayments=[one_time],
            )
        )
    if monthly > 0:
        strategies.append(
            StrategyResult(
                name="Regular Monthly Overpayments",
                description="Make regular monthly overpayments throughout the loan term",
                overpayments=[_monthly_plan(monthly)],
            )
        )
    if lump_sum > 0 and monthly > 0:
        strategies.append(
            StrategyResult(
                name="Combination Strategy",
                description="Make a lump sum payment at the beginning and regular monthly overpayments",
                overpayments=[one_time, _monthly_plan(monthly)],
            )
        )
    if monthly > 0:
        strategies.append(
            StrategyResult(
                name="Graduated Overpayments",
                description="Start with smaller overpayments and increase them over time",
                overpayments=[
                    _monthly_plan(round_to_cents(monthly * Decimal("0.5")), 1, 24),
                    _monthly_plan(round_to_cents(monthly * Decimal("0.75")), 25, 60),
                    _monthly_plan(monthly, 61),
                ],
            )
        )
    if lump_sum > 0:
        strategies.append(
            StrategyResult(
                name="Quarterly Lump Sums",
                description="Make quarterly lump sum payments",
                overpayments=[
                    OverpaymentPlan(
                        amount=round_to_cents(lump_sum / 4),
                        start_month=1,
                        frequency="quarterly",
                        type="term",
                    )
                ],
            )
        )
    return strategies


def _best_strategy(strategies: List[StrategyResult], goal: str) -> StrategyResult:
    if goal == "interest":
        key = lambda s: s.interest_saved
    elif goal == "time":
        key = lambda s: (s.term_reduction, s.interest_saved)
    else:
        key = lambda s: s.effectiveness_ratio
    # max() keeps the first of equal candidates, i.e. the simpler strategy
    return max(strategies, key=key)


def _interest_by_year(results: CalculationResults, years: int) -> List[Decimal]:
    values = [year.total_interest for year in results.yearly_data]
    while len(values) < years:
        values.append(values[-1] if values else ZERO)
    return values


def optimize_overpayments(loan_details: LoanDetails, params: OptimizationParameters) -> OptimizationResult:
    """Evaluate the standard overpayment strategies and pick the best one.

    Strategies are built from the monthly and one-time budgets in
    ``params``; a strategy needing a budget that is zero is skipped. The
    effectiveness ratio is interest saved per unit of money actually
    overpaid. The optimization fee is ``fee_percentage`` of the interest
    saved by the chosen strategy.
    """
    if params.goal not in GOALS:
        raise InvalidInputError([f"Optimization goal must be one of {', '.join(GOALS)}"])
    params = replace(
        params,
        max_monthly_overpayment=_amount(params.max_monthly_overpayment, "Maximum monthly overpayment"),
        max_one_time_overpayment=_amount(params.max_one_time_overpayment, "Maximum one-time overpayment"),
        fee_percentage=_amount(params.fee_percentage, "Fee percentage"),
    )

    baseline = _calculate(loan_details, [])
    strategies = _strategies(params)
    if not strategies:
        return OptimizationResult(
            optimized_overpayments=[],
            interest_saved=ZERO,
            term_reduction=0,
            optimization_value=ZERO,
            optimization_fee=ZERO,
            strategies=[],
        )

    optimized_results = {}
    for strategy in strategies:
        results = _calculate(loan_details, strategy.overpayments)
        overpaid = sum((record.overpayment_amount for record in results.schedule), ZERO)
        strategy.interest_saved = baseline.total_interest - results.total_interest
        strategy.term_reduction = baseline.actual_term - results.actual_term
        if overpaid > 0:
            strategy.effectiveness_ratio = (strategy.interest_saved / overpaid).quantize(Decimal("0.0001"))
        optimized_results[strategy.name] = results

    best = _best_strategy(strategies, params.goal)
    best.is_best = True
    optimized = optimized_results[best.name]

    years = max(len(baseline.yearly_data), len(optimized.yearly_data))
    logger.debug("Best overpayment strategy for goal %s: %s", params.goal, best.name)
    return OptimizationResult(
        optimized_overpayments=best.overpayments,
        interest_saved=best.interest_saved,
        term_reduction=best.term_reduction,
        optimization_value=best.interest_saved,
        optimization_fee=round_to_cents(best.interest_saved * params.fee_percentage / 100),
        strategies=strategies,
        chart_labels=[f"Year {year}" for year in range(1, years + 1)],
        baseline_interest_by_year=_interest_by_year(baseline, years),
        optimized_interest_by_year=_interest_by_year(optimized, years),
    )


def compare_lump_sum_vs_regular(loan_details: LoanDetails, lump_sum_amount, monthly_amount) -> LumpSumComparison:
    """Compare one lump sum at the first payment with a monthly overpayment."""
    lump_sum = _amount(lump_sum_amount, "Lump sum")
    monthly = _amount(monthly_amount, "Monthly amount")
    if lump_sum <= 0 or monthly <= 0:
        raise InvalidInputError(["Lump sum and monthly amount must be greater than zero"])

    baseline = _calculate(loan_details, [])
    lump_sum_results = _calculate(
        loan_details, [OverpaymentPlan(amount=lump_sum, start_month=1, frequency="one-time", type="term")]
    )
    monthly_results = _calculate(loan_details, [_monthly_plan(monthly)])
    return LumpSumComparison(
        lump_sum=_impact(lump_sum, baseline, lump_sum_results),
        monthly=_impact(monthly, baseline, monthly_results),
        break_even_month=math.ceil(lump_sum / monthly),
    )
