"""Side-by-side comparison of loan scenarios.

The first scenario is the base: aggregate differences are always "base minus
other", so a positive ``total_interest_diff`` means the other scenario pays
less interest. Per-period series and the break-even point compare the first
two scenarios only, aligned by payment number up to the shorter schedule.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from .data_models import (
    CalculationResults,
    ComparisonOptions,
    PaymentRecord,
    Scenario,
    ScenarioComparison,
    ScenarioDifference,
)
from .engine import calculate_loan_details
from .errors import ComparisonUsageError
from .utils import round_to_cents

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = Decimal(12)


def calculate_cumulative_cost_difference(
    schedule1: Sequence[PaymentRecord], schedule2: Sequence[PaymentRecord]
) -> List[Decimal]:
    """Running ``total_payment`` of schedule1 minus schedule2, per period."""
    length = min(len(schedule1), len(schedule2))
    return [schedule1[i].total_payment - schedule2[i].total_payment for i in range(length)]


def calculate_monthly_payment_difference(
    schedule1: Sequence[PaymentRecord], schedule2: Sequence[PaymentRecord]
) -> List[Decimal]:
    length = min(len(schedule1), len(schedule2))
    return [
        (schedule1[i].monthly_payment + schedule1[i].fees)
        - (schedule2[i].monthly_payment + schedule2[i].fees)
        for i in range(length)
    ]


def calculate_break_even_point(
    schedule1: Sequence[PaymentRecord], schedule2: Sequence[PaymentRecord]
) -> Optional[int]:
    """Payment number at which the cheaper-so-far scenario stops being cheaper.

    The sign of the first non-zero cumulative cost difference is taken as the
    starting position; the break-even point is the first later period where
    the difference reaches zero or changes sign. Returns ``None`` when the
    curves never cross within the shorter schedule, including when the two
    schedules cost exactly the same throughout.
    """
    initial_sign = 0
    for period, diff in enumerate(calculate_cumulative_cost_difference(schedule1, schedule2), start=1):
        if initial_sign == 0:
            if diff != 0:
                initial_sign = 1 if diff > 0 else -1
            continue
        if diff * initial_sign <= 0:
            return period
    return None


def _difference(
    base: CalculationResults, other: CalculationResults, options: ComparisonOptions
) -> ScenarioDifference:
    term_diff = (Decimal(base.actual_term) - Decimal(other.actual_term)) / MONTHS_PER_YEAR
    total_cost_diff = None
    if options.include_total_cost_comparison:
        total_cost_diff = base.total_cost - other.total_cost
    return ScenarioDifference(
        monthly_payment_diff=base.monthly_payment - other.monthly_payment,
        total_interest_diff=base.total_interest - other.total_interest,
        term_diff=round_to_cents(term_diff),
        total_cost_diff=total_cost_diff,
    )


def compare_scenarios(
    scenarios: Sequence[Scenario], options: Optional[ComparisonOptions] = None
) -> ScenarioComparison:
    """Compare two or more scenarios.

    Scenarios without ``results`` are calculated first; the input objects
    are not modified. Raises ``ComparisonUsageError`` for fewer than two
    scenarios and ``InvalidInputError`` if a loan cannot be calculated.
    """
    if len(scenarios) < 2:
        raise ComparisonUsageError("At least two scenarios are required for a comparison")
    options = options or ComparisonOptions()

    computed = [
        scenario if scenario.results is not None
        else replace(scenario, results=calculate_loan_details(scenario.loan_details))
        for scenario in scenarios
    ]
    base = computed[0].results
    differences = [_difference(base, other.results, options) for other in computed[1:]]

    first = base.schedule
    second = computed[1].results.schedule
    comparison = ScenarioComparison(scenarios=computed, differences=differences)
    if options.include_break_even_analysis:
        comparison.break_even_point = calculate_break_even_point(first, second)
    if options.include_amortization_comparison:
        comparison.cumulative_cost_difference = calculate_cumulative_cost_difference(first, second)
    if options.include_monthly_payment_comparison:
        comparison.monthly_payment_difference = calculate_monthly_payment_difference(first, second)

    logger.debug(
        "Compared %d scenarios; break-even point %s", len(computed), comparison.break_even_point
    )
    return comparison


def compare_calculations(
    with_overpayments: CalculationResults, without_overpayments: CalculationResults
) -> Dict[str, float]:
    """Savings obtained by overpaying, as a summary dict.

    Positive values mean the overpaying calculation is cheaper or shorter.
    """
    baseline_interest = without_overpayments.total_interest
    interest_saved = baseline_interest - with_overpayments.total_interest
    percentage_saved = Decimal(0)
    if baseline_interest > 0:
        percentage_saved = interest_saved / baseline_interest * 100
    return {
        "baseline_total_interest": float(baseline_interest),
        "interest_saved": float(interest_saved),
        "total_cost_saved": float(without_overpayments.total_cost - with_overpayments.total_cost),
        "months_saved": without_overpayments.actual_term - with_overpayments.actual_term,
        "percentage_saved": float(round_to_cents(percentage_saved)),
    }
