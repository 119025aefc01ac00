"""Output helpers for the mortgage calculator.

This module provides simple functions to render amortization schedules,
summaries, scenario comparisons and overpayment analyses in a tabular text
format using built-in printing and string formatting.
"""

from __future__ import annotations

from typing import Dict, Iterable, Sequence

from .data_models import (
    OptimizationResult,
    OverpaymentImpact,
    PaymentRecord,
    ScenarioComparison,
)
from .utils import currency_symbol


def print_summary(summary: Dict[str, object]) -> None:
    """Print a summary of loan metrics in a human-readable format."""
    symbol = currency_symbol(str(summary.get("currency", "USD")))
    print("Summary")
    print("-" * 72)
    print(f"Principal financed : {symbol}{summary['principal_financed']:.2f}")
    print(f"Monthly payment    : {symbol}{summary['monthly_payment']:.2f}")
    print(f"Total interest     : {symbol}{summary['total_interest']:.2f}")
    if summary.get("total_overpayment", 0):
        print(f"Total overpayment  : {symbol}{summary['total_overpayment']:.2f}")
    if summary.get("one_time_fees", 0) or summary.get("recurring_fees", 0):
        print(f"One-time fees      : {symbol}{summary['one_time_fees']:.2f}")
        print(f"Recurring fees     : {symbol}{summary['recurring_fees']:.2f}")
    print(f"Total cost         : {symbol}{summary['total_cost']:.2f}")
    print(f"APR                : {summary['apr']:.2f}%")
    if "original_end_date" in summary:
        print(f"Original end date  : {summary['original_end_date']}")
        print(f"New end date       : {summary['new_end_date']}")
    print(f"Payments made      : {summary['payments_made']} of {summary['term_months']}")
    # For annuity loans this equals the installment plus any overpayment; for
    # decreasing loans it is usually the first payment.
    if summary.get("max_payment"):
        print(f"Highest payment    : {symbol}{summary['max_payment']:.2f}")
    if not summary.get("converged", True):
        print("WARNING: the loan is not repaid within the maximum number of payments")
    comparison = summary.get("comparison")
    if comparison:
        print(f"Baseline interest  : {symbol}{comparison['baseline_total_interest']:.2f}")
        print(f"Interest saved     : {symbol}{comparison['interest_saved']:.2f}")
        print(f"Total cost saved   : {symbol}{comparison['total_cost_saved']:.2f}")
        if comparison.get("months_saved"):
            print(f"Term reduction     : {int(comparison['months_saved'])} months")
    print("-" * 72)


def print_schedule(schedule: Iterable[PaymentRecord]) -> None:
    """Print the amortization schedule as a simple table."""
    headers = [
        "Period",
        "Date",
        "Payment",
        "Principal",
        "Interest",
        "Overpay",
        "Fees",
        "Balance",
        "TotalInterest",
    ]
    print("\t".join(headers))
    for entry in schedule:
        row = [
            str(entry.period),
            entry.payment_date.strftime("%Y-%m") if entry.payment_date else "-",
            f"{entry.monthly_payment:.2f}",
            f"{entry.principal_payment:.2f}",
            f"{entry.interest_payment:.2f}",
            f"{entry.overpayment_amount:.2f}",
            f"{entry.fees:.2f}",
            f"{entry.balance:.2f}",
            f"{entry.total_interest:.2f}",
        ]
        print("\t".join(row))


def print_comparison(comparison: ScenarioComparison) -> None:
    """Print scenario metrics side by side.

    Differences are base (first scenario) minus each other scenario, so a
    positive difference means the other scenario is cheaper or shorter.
    """
    print("Comparison")
    print("=" * 72)
    header = f"{'Metric':20s}" + "".join(f" {s.name[:15]:>15s}" for s in comparison.scenarios)
    print(header)
    rows = [
        ("monthly_payment", lambda r: float(r.monthly_payment)),
        ("total_interest", lambda r: float(r.total_interest)),
        ("total_cost", lambda r: float(r.total_cost)),
        ("payments_made", lambda r: float(r.actual_term)),
    ]
    for label, getter in rows:
        values = "".join(f" {getter(s.results):15.2f}" for s in comparison.scenarios)
        print(f"{label:20s}{values}")
    print("-" * 72)
    for scenario, diff in zip(comparison.scenarios[1:], comparison.differences):
        print(f"{comparison.scenarios[0].name} vs {scenario.name}")
        print(f"  Monthly payment difference : {diff.monthly_payment_diff:.2f}")
        print(f"  Total interest difference  : {diff.total_interest_diff:.2f}")
        print(f"  Term difference (years)    : {diff.term_diff:.2f}")
        if diff.total_cost_diff is not None:
            print(f"  Total cost difference      : {diff.total_cost_diff:.2f}")
    if comparison.break_even_point is not None:
        print(f"Break-even point   : payment {comparison.break_even_point}")
    else:
        print("Break-even point   : none")
    print("=" * 72)


def print_impact(impacts: Sequence[OverpaymentImpact]) -> None:
    print(f"{'Monthly extra':>15s} {'Interest saved':>15s} {'Months saved':>13s}")
    for impact in impacts:
        print(f"{impact.amount:15.2f} {impact.interest_saved:15.2f} {impact.term_reduction:13d}")


def print_optimization(result: OptimizationResult) -> None:
    print("Overpayment strategies")
    print("=" * 72)
    print(f"{'Strategy':32s} {'Interest saved':>15s} {'Months':>7s} {'Ratio':>8s}")
    for strategy in result.strategies:
        marker = "*" if strategy.is_best else " "
        print(
            f"{marker}{strategy.name[:31]:31s} {strategy.interest_saved:15.2f} "
            f"{strategy.term_reduction:7d} {strategy.effectiveness_ratio:8.4f}"
        )
    print("-" * 72)
    print(f"Interest saved     : {result.interest_saved:.2f}")
    print(f"Term reduction     : {result.term_reduction} months")
    if result.optimization_fee:
        print(f"Optimization fee   : {result.optimization_fee:.2f}")
    print("=" * 72)
