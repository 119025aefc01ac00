"""Input validation and normalization.

Everything the engine consumes passes through here first: amounts are turned
into ``Decimal``, rate periods are checked, and the different ways callers
describe overpayments (a plan, a list of plans, or the legacy
amount/month/reduce-term triple) are collapsed into a single list of
``OverpaymentPlan`` objects with resolved month indexes.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Union

from .data_models import (
    FEE_TYPES,
    FREQUENCIES,
    LOAN_TYPES,
    OVERPAYMENT_TYPES,
    AdditionalCosts,
    InterestRatePeriod,
    LegacyOverpayment,
    LoanDetails,
    OverpaymentPlan,
)
from .errors import InvalidInputError
from .utils import months_between, round_to_cents, to_decimal

OverpaymentInput = Union[
    None, OverpaymentPlan, LegacyOverpayment, Iterable[Union[OverpaymentPlan, LegacyOverpayment]]
]


def _finite_decimal(value, label: str, errors: List[str]) -> Optional[Decimal]:
    try:
        number = to_decimal(value)
    except (ArithmeticError, TypeError, ValueError):
        errors.append(f"{label} must be a number")
        return None
    if not number.is_finite():
        errors.append(f"{label} must be a finite number")
        return None
    return number


def validate_principal(principal) -> Decimal:
    errors: List[str] = []
    value = _finite_decimal(principal, "Principal", errors)
    if value is not None and value <= 0:
        errors.append("Principal amount must be greater than zero")
    elif value is not None and round_to_cents(value) <= 0:
        errors.append("Principal amount must be at least 0.01")
    if errors:
        raise InvalidInputError(errors)
    return value


def validate_term(term_years) -> int:
    if isinstance(term_years, bool) or not isinstance(term_years, int):
        raise InvalidInputError(["Loan term must be a whole number of years"])
    if term_years <= 0:
        raise InvalidInputError(["Loan term must be greater than zero"])
    return term_years


def validate_rate_periods(periods: Optional[Sequence[InterestRatePeriod]]) -> List[InterestRatePeriod]:
    """Return the periods with ``Decimal`` rates, or raise ``InvalidInputError``.

    Periods must be non-empty, start at month 1 (0 is accepted as an alias)
    and be strictly ascending by ``start_month``. Unsorted input is rejected
    rather than reordered.
    """
    if not periods:
        raise InvalidInputError(["At least one interest rate period is required"])

    errors: List[str] = []
    normalized: List[InterestRatePeriod] = []
    previous_start: Optional[int] = None
    for index, period in enumerate(periods, start=1):
        start = period.start_month
        if isinstance(start, bool) or not isinstance(start, int) or start < 0:
            errors.append(f"Rate period #{index}: start month must be a non-negative integer")
            continue
        if index == 1 and start > 1:
            errors.append("The first rate period must start at month 1")
        if previous_start is not None and start <= previous_start:
            errors.append("Rate periods must be in ascending order of start month")
        previous_start = start
        rate = _finite_decimal(period.rate, f"Rate period #{index}: interest rate", errors)
        if rate is None:
            continue
        if rate < 0:
            errors.append(f"Rate period #{index}: interest rate cannot be negative")
        normalized.append(InterestRatePeriod(start_month=start, rate=rate))

    if errors:
        raise InvalidInputError(errors)
    return normalized


def _resolve_month(
    month: Optional[int], when: Optional[date], loan_start: Optional[date], label: str, errors: List[str]
) -> Optional[int]:
    if month is not None:
        if isinstance(month, bool) or not isinstance(month, int) or month < 1:
            errors.append(f"{label} must be a positive payment number")
            return None
        return month
    if when is None:
        return None
    if loan_start is None:
        errors.append(f"{label} is given as a date but the loan has no start date")
        return None
    resolved = months_between(loan_start, when) + 1
    if resolved < 1:
        errors.append(f"{label} is before the first payment")
        return None
    return resolved


def _normalize_plan(plan: OverpaymentPlan, index: int, loan_start: Optional[date]) -> OverpaymentPlan:
    errors: List[str] = []
    label = f"Overpayment plan #{index}"
    amount = _finite_decimal(plan.amount, f"{label}: amount", errors)
    if amount is not None and amount <= 0:
        errors.append(f"{label}: amount must be greater than zero")
    if plan.frequency not in FREQUENCIES:
        errors.append(f"{label}: frequency must be one of {', '.join(FREQUENCIES)}")
    if plan.type not in OVERPAYMENT_TYPES:
        errors.append(f"{label}: type must be 'term' or 'installment'")

    start = _resolve_month(plan.start_month, plan.start_date, loan_start, f"{label}: start", errors)
    end = _resolve_month(plan.end_month, plan.end_date, loan_start, f"{label}: end", errors)
    if start is None and not errors:
        errors.append(f"{label}: a start month or start date is required")
    if start is not None and end is not None and end < start:
        errors.append(f"{label}: end must not be before start")

    if errors:
        raise InvalidInputError(errors)
    return replace(plan, amount=amount, start_month=start, end_month=end)


def resolve_overpayments(value: OverpaymentInput, loan_start: Optional[date] = None) -> List[OverpaymentPlan]:
    """Collapse any accepted overpayment description into a list of plans.

    ``value`` may be ``None``, a single ``OverpaymentPlan``, a
    ``LegacyOverpayment`` or an iterable mixing both. Date-based plans are
    converted to payment numbers relative to ``loan_start``.
    """
    if value is None:
        return []
    if isinstance(value, (OverpaymentPlan, LegacyOverpayment)):
        items = [value]
    else:
        items = list(value)

    plans: List[OverpaymentPlan] = []
    for index, item in enumerate(items, start=1):
        if isinstance(item, LegacyOverpayment):
            item = OverpaymentPlan(
                amount=item.amount,
                start_month=item.month,
                end_month=item.month,
                frequency="one-time",
                type="term" if item.reduce_term else "installment",
            )
        elif not isinstance(item, OverpaymentPlan):
            raise InvalidInputError([f"Overpayment plan #{index}: unsupported value {item!r}"])
        plans.append(_normalize_plan(item, index, loan_start))
    return plans


def validate_additional_costs(costs: Optional[AdditionalCosts]) -> Optional[AdditionalCosts]:
    if costs is None:
        return None
    errors: List[str] = []
    values = {}
    for name in ("origination_fee", "loan_insurance", "administrative_fees"):
        amount = _finite_decimal(getattr(costs, name), name.replace("_", " ").capitalize(), errors)
        if amount is not None and amount < 0:
            errors.append(f"{name.replace('_', ' ').capitalize()} cannot be negative")
        values[name] = amount
        fee_type = getattr(costs, f"{name}_type")
        if fee_type not in FEE_TYPES:
            errors.append(f"{name}_type must be 'fixed' or 'percentage'")
    if errors:
        raise InvalidInputError(errors)
    return replace(costs, **values)


def _collect(errors: List[str], check, *args):
    try:
        return check(*args)
    except InvalidInputError as exc:
        errors.extend(exc.errors)
        return None


def validate_loan_details(details: LoanDetails) -> LoanDetails:
    """Return a normalized copy of ``details`` or raise ``InvalidInputError``.

    All problems are collected before raising so the caller sees every
    invalid field at once.
    """
    errors: List[str] = []
    principal = _collect(errors, validate_principal, details.principal)
    term = _collect(errors, validate_term, details.term_years)
    rate_periods = _collect(errors, validate_rate_periods, details.rate_periods)
    if details.loan_type not in LOAN_TYPES:
        errors.append("Loan type must be 'annuity' or 'decreasing'")
    plans = _collect(errors, resolve_overpayments, details.overpayments, details.start_date)
    costs = _collect(errors, validate_additional_costs, details.additional_costs)
    if errors:
        raise InvalidInputError(errors)

    return replace(
        details,
        principal=principal,
        term_years=term,
        rate_periods=rate_periods,
        overpayments=plans,
        additional_costs=costs,
    )
