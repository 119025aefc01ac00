"""Data models for the mortgage calculator.

This module defines dataclasses representing the different entities used by the
calculator: interest rate periods, overpayment plans, the overall loan
description, individual schedule entries and the result objects produced by
the engine, the scenario comparison and the overpayment optimizer. Using
dataclasses makes it easy to construct, inspect and serialize these
structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

LOAN_TYPES = ("annuity", "decreasing")
OVERPAYMENT_TYPES = ("term", "installment")
FREQUENCIES = ("one-time", "monthly", "quarterly", "annual")
FEE_TYPES = ("fixed", "percentage")

# Number of periods between two payments of a recurring overpayment.
FREQUENCY_STEP = {"monthly": 1, "quarterly": 3, "annual": 12}


@dataclass(frozen=True)
class InterestRatePeriod:
    """A span of payments sharing one fixed annual rate.

    Attributes
    ----------
    start_month: int
        The 1-based payment index from which ``rate`` applies. A period
        stays in force until the next period's ``start_month``.
    rate: Decimal
        Annual nominal interest rate in percent (``Decimal("4.5")`` = 4.5 %).
    """

    start_month: int
    rate: Decimal


@dataclass(frozen=True)
class OverpaymentPlan:
    """Represents extra money applied to the principal.

    Attributes
    ----------
    amount: Decimal
        The amount paid on top of the installment each time the plan fires.
    start_month: int, optional
        The 1-based payment index of the first overpayment. Either this or
        ``start_date`` is required; a date is converted to a month once the
        loan start date is known.
    end_month: int, optional
        The last payment index at which a recurring plan may fire.
    frequency: str
        ``"one-time"``, ``"monthly"``, ``"quarterly"`` or ``"annual"``.
    type: str
        The overpayment effect. ``"term"`` means reduce the loan term while
        keeping the monthly payment constant. ``"installment"`` means reduce
        the future monthly payment by re-amortizing the remaining balance.
    """

    amount: Decimal
    start_month: Optional[int] = None
    end_month: Optional[int] = None
    frequency: str = "one-time"
    type: str = "term"  # "term" or "installment"
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def is_recurring(self) -> bool:
        return self.frequency != "one-time"


@dataclass(frozen=True)
class LegacyOverpayment:
    """Single overpayment given as ``amount``/``month``/``reduce_term``.

    Older callers describe a one-off overpayment with three loose values.
    ``validation.resolve_overpayments`` turns it into an ``OverpaymentPlan``
    before the schedule is built.
    """

    amount: Decimal
    month: int
    reduce_term: bool = True


@dataclass(frozen=True)
class AdditionalCosts:
    """Fees charged on top of interest.

    Each fee is either ``"fixed"`` (an amount) or ``"percentage"``. The
    origination fee is charged once (percentage of the principal); insurance
    and administrative fees are charged every period (annual percentage of
    the remaining balance, spread over twelve months).
    """

    origination_fee: Decimal = Decimal("0")
    origination_fee_type: str = "fixed"
    loan_insurance: Decimal = Decimal("0")
    loan_insurance_type: str = "fixed"
    administrative_fees: Decimal = Decimal("0")
    administrative_fees_type: str = "fixed"


@dataclass
class LoanDetails:
    """Description of a loan.

    This collects all user inputs into a single object, making it easy to
    pass around and serialize. The principal value is the financed amount.
    """

    principal: Decimal
    rate_periods: List[InterestRatePeriod]
    term_years: int
    overpayments: List[OverpaymentPlan] = field(default_factory=list)
    start_date: Optional[date] = None  # first payment date (month/year)
    loan_type: str = "annuity"  # 'annuity' or 'decreasing'
    currency: str = "USD"
    name: str = ""
    additional_costs: Optional[AdditionalCosts] = None


@dataclass
class PaymentRecord:
    """An entry in the amortization schedule.

    ``monthly_payment`` is the total cash paid in the period, including any
    overpayment. Monetary fields are rounded to cents when the record is
    created; ``total_interest`` and ``total_payment`` are running sums filled
    in once the whole schedule is known.
    """

    period: int
    monthly_payment: Decimal
    principal_payment: Decimal
    interest_payment: Decimal
    balance: Decimal
    is_overpayment: bool
    overpayment_amount: Decimal
    total_interest: Decimal = Decimal("0")
    total_payment: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    payment_date: Optional[date] = None


@dataclass
class YearlyData:
    year: int
    principal: Decimal
    interest: Decimal
    payment: Decimal
    balance: Decimal
    total_interest: Decimal


@dataclass
class CalculationResults:
    """Outcome of a full loan calculation.

    Terms are expressed in months. ``monthly_payment`` is the regular
    installment of the first period, without overpayments. ``converged`` is
    False when the schedule was cut at the period cap with money still owed.
    """

    monthly_payment: Decimal
    total_interest: Decimal
    original_term: int
    actual_term: int
    schedule: List[PaymentRecord]
    yearly_data: List[YearlyData]
    one_time_fees: Decimal = Decimal("0")
    recurring_fees: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    apr: Optional[Decimal] = None
    converged: bool = True


@dataclass
class Scenario:
    name: str
    loan_details: LoanDetails
    results: Optional[CalculationResults] = None
    id: str = ""


@dataclass(frozen=True)
class ComparisonOptions:
    include_break_even_analysis: bool = True
    include_amortization_comparison: bool = True
    include_monthly_payment_comparison: bool = True
    include_total_cost_comparison: bool = True


@dataclass
class ScenarioDifference:
    """Base scenario minus another scenario. ``term_diff`` is in years."""

    monthly_payment_diff: Decimal
    total_interest_diff: Decimal
    term_diff: Decimal
    total_cost_diff: Optional[Decimal] = None


@dataclass
class ScenarioComparison:
    scenarios: List[Scenario]
    differences: List[ScenarioDifference]
    break_even_point: Optional[int] = None
    cumulative_cost_difference: List[Decimal] = field(default_factory=list)
    monthly_payment_difference: List[Decimal] = field(default_factory=list)


@dataclass
class OverpaymentImpact:
    """One point of the overpayment sweep. ``term_reduction`` is in months."""

    amount: Decimal
    interest_saved: Decimal
    term_reduction: int


@dataclass(frozen=True)
class OptimizationParameters:
    """Inputs of the strategy search.

    ``goal`` is ``"interest"`` (maximize interest saved), ``"time"``
    (maximize term reduction) or ``"balanced"`` (best interest saved per
    unit of money overpaid).
    """

    max_monthly_overpayment: Decimal = Decimal("0")
    max_one_time_overpayment: Decimal = Decimal("0")
    goal: str = "balanced"
    fee_percentage: Decimal = Decimal("0")


@dataclass
class StrategyResult:
    name: str
    description: str
    overpayments: List[OverpaymentPlan]
    interest_saved: Decimal = Decimal("0")
    term_reduction: int = 0
    effectiveness_ratio: Decimal = Decimal("0")
    is_best: bool = False


@dataclass
class OptimizationResult:
    optimized_overpayments: List[OverpaymentPlan]
    interest_saved: Decimal
    term_reduction: int
    optimization_value: Decimal
    optimization_fee: Decimal
    strategies: List[StrategyResult]
    chart_labels: List[str] = field(default_factory=list)
    baseline_interest_by_year: List[Decimal] = field(default_factory=list)
    optimized_interest_by_year: List[Decimal] = field(default_factory=list)


@dataclass
class LumpSumComparison:
    """Savings of one lump sum versus the same money paid monthly.

    ``break_even_month`` is the number of monthly overpayments needed to
    match the lump sum.
    """

    lump_sum: OverpaymentImpact
    monthly: OverpaymentImpact
    break_even_month: int
