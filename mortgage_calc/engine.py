"""Core calculation engine for the mortgage calculator.

This module implements the financial logic required to build amortization
schedules for both annuity (equal) and decreasing installment loans. It
supports several interest rate periods, one-time and recurring overpayments
that either shorten the loan or lower the installment, and optional loan fees.
Results are returned as ``PaymentRecord`` lists or as a complete
``CalculationResults`` object.

Every function here is pure: inputs are never mutated and each call builds a
fresh schedule.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from decimal import Decimal, getcontext
from typing import Dict, List, Optional, Sequence, Tuple

from .data_models import (
    FREQUENCY_STEP,
    AdditionalCosts,
    CalculationResults,
    InterestRatePeriod,
    LoanDetails,
    OverpaymentPlan,
    PaymentRecord,
    YearlyData,
)
from .errors import InvalidInputError, NonConvergenceError
from .utils import add_months, round_to_cents, to_decimal
from .validation import (
    OverpaymentInput,
    resolve_overpayments,
    validate_loan_details,
    validate_principal,
    validate_rate_periods,
    validate_term,
)

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

MAX_PERIODS = 600  # 50 years of monthly payments
BALANCE_TOLERANCE = Decimal("0.01")
NEAR_ZERO_RATE = Decimal("0.0001")
LOW_RATE = Decimal("0.001")
ZERO = Decimal("0")

APR_MAX_ITERATIONS = 200
APR_TOLERANCE = 1e-10


def calculate_monthly_payment(principal, periodic_rate, periods: int) -> Decimal:
    """Return the installment that repays ``principal`` over ``periods``.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the periodic interest rate and
    ``n`` is the number of payments. Near zero the denominator collapses, so
    two fallbacks are used instead: below 0.0001 per period the payment is
    ``P / n``, and below 0.001 a linear approximation
    ``P * (1 + i * n) / n``. The result is rounded to cents.
    """
    if periods <= 0:
        raise InvalidInputError(["Number of payments must be positive"])
    principal = to_decimal(principal)
    rate = to_decimal(periodic_rate)
    n = Decimal(periods)
    if abs(rate) < NEAR_ZERO_RATE:
        return round_to_cents(principal / n)
    if rate < LOW_RATE:
        return round_to_cents(principal * (1 + rate * n) / n)
    factor = (1 + rate) ** periods
    return round_to_cents(principal * (rate * factor) / (factor - 1))


def monthly_rate(annual_percent: Decimal) -> Decimal:
    """Convert an annual rate in percent to a monthly fraction."""
    return to_decimal(annual_percent) / Decimal(100) / Decimal(12)


def rate_for_period(rate_periods: Sequence[InterestRatePeriod], period: int) -> Decimal:
    """Annual rate of the latest period whose ``start_month`` is <= ``period``.

    ``rate_periods`` must already be validated (ascending, first period
    starting at month 1).
    """
    rate = rate_periods[0].rate
    for rate_period in rate_periods:
        if rate_period.start_month > period:
            break
        rate = rate_period.rate
    return rate


def is_overpayment_due(plan: OverpaymentPlan, period: int) -> bool:
    """Return True when ``plan`` pays extra at payment number ``period``."""
    if period < plan.start_month:
        return False
    if plan.end_month is not None and period > plan.end_month:
        return False
    if plan.frequency == "one-time":
        return period == plan.start_month
    return (period - plan.start_month) % FREQUENCY_STEP[plan.frequency] == 0


def periods_to_repay(balance: Decimal, periodic_rate: Decimal, payment: Decimal, limit: int) -> int:
    """Number of payments of ``payment`` needed to clear ``balance``.

    Solves ``n = -ln(1 - B*r/P) / ln(1 + r)`` (or ``B / P`` near a zero
    rate), rounded up and kept within ``1..limit``. A payment that does not
    cover the interest never repays, so ``limit`` is returned.
    """
    if payment <= 0:
        return limit
    if abs(periodic_rate) < NEAR_ZERO_RATE:
        needed = balance / payment
    else:
        coverage = 1 - balance * periodic_rate / payment
        if coverage <= 0:
            return limit
        needed = -coverage.ln() / (1 + periodic_rate).ln()
    return max(1, min(limit, math.ceil(needed)))


def _build_schedule(
    principal: Decimal,
    rate_periods: Sequence[InterestRatePeriod],
    term_years: int,
    plans: Sequence[OverpaymentPlan],
    start_date: Optional[date],
    loan_type: str,
) -> Tuple[List[PaymentRecord], Decimal]:
    """Simulate the loan payment by payment.

    Returns the records (without running totals) and the balance left after
    the last record, which is zero unless the period cap was reached.
    """
    total_periods = term_years * 12
    last_period = min(total_periods, MAX_PERIODS)
    # final payment number; moves earlier when a held installment meets a new rate
    scheduled_end = total_periods

    balance = round_to_cents(principal)
    # constant principal component for decreasing loans
    constant_principal = round_to_cents(balance / Decimal(total_periods))
    # installment kept after a term-reducing overpayment (annuity loans)
    held_payment: Optional[Decimal] = None
    current_rate: Optional[Decimal] = None

    records: List[PaymentRecord] = []
    period = 1
    while period <= last_period and balance > 0:
        annual_rate = rate_for_period(rate_periods, period)
        if current_rate is not None and annual_rate != current_rate and held_payment is not None:
            # Keep the shortened term: re-amortize at the new rate over the
            # payments the held installment still needed at the old rate.
            scheduled_end = period - 1 + periods_to_repay(
                balance, monthly_rate(current_rate), held_payment, scheduled_end - period + 1
            )
            held_payment = None
        current_rate = annual_rate
        rate = monthly_rate(annual_rate)
        remaining_periods = scheduled_end - period + 1

        interest_payment = round_to_cents(balance * rate)
        if loan_type == "decreasing":
            principal_payment = constant_principal
            installment = principal_payment + interest_payment
        else:
            if held_payment is not None:
                installment = held_payment
            else:
                installment = calculate_monthly_payment(balance, rate, remaining_periods)
            principal_payment = installment - interest_payment
        if principal_payment < 0:
            principal_payment = ZERO
        scheduled_principal = principal_payment

        extra = ZERO
        reduce_installment = False
        reduce_term = False
        for plan in plans:
            if is_overpayment_due(plan, period):
                extra += plan.amount
                if plan.type == "installment":
                    reduce_installment = True
                else:
                    reduce_term = True
        principal_payment = round_to_cents(principal_payment + extra)

        # Last payment (or a payment that overshoots) clears the balance exactly
        if principal_payment > balance or period == scheduled_end:
            principal_payment = balance
        balance -= principal_payment

        # Round very small residuals down to zero so no phantom period follows.
        if balance <= BALANCE_TOLERANCE:
            principal_payment += balance
            balance = ZERO

        overpayment_amount = ZERO
        if extra > 0:
            overpayment_amount = min(extra, max(principal_payment - scheduled_principal, ZERO))

        records.append(
            PaymentRecord(
                period=period,
                monthly_payment=principal_payment + interest_payment,
                principal_payment=principal_payment,
                interest_payment=interest_payment,
                balance=balance,
                is_overpayment=overpayment_amount > 0,
                overpayment_amount=overpayment_amount,
                payment_date=add_months(start_date, period - 1) if start_date else None,
            )
        )

        if reduce_installment and balance > 0:
            # Re-amortize the lower balance over the periods that are left
            held_payment = None
            periods_left = scheduled_end - period
            if loan_type == "decreasing" and periods_left > 0:
                constant_principal = round_to_cents(balance / Decimal(periods_left))
        elif reduce_term and loan_type == "annuity" and held_payment is None:
            held_payment = installment

        period += 1

    return records, balance


def accumulate_totals(records: List[PaymentRecord]) -> List[PaymentRecord]:
    """Fill ``total_interest`` and ``total_payment`` as running sums, in place."""
    running_interest = ZERO
    running_payment = ZERO
    for record in records:
        running_interest += record.interest_payment
        running_payment += record.monthly_payment + record.fees
        record.total_interest = running_interest
        record.total_payment = running_payment
    return records


def generate_schedule(
    principal,
    rate_periods: Sequence[InterestRatePeriod],
    term_years: int,
    overpayments: OverpaymentInput = None,
    start_date: Optional[date] = None,
    loan_type: str = "annuity",
    strict: bool = False,
) -> List[PaymentRecord]:
    """Compute the amortization schedule for a loan.

    Parameters
    ----------
    principal:
        Financed amount.
    rate_periods: Sequence[InterestRatePeriod]
        Annual rates in percent, ascending by ``start_month``.
    term_years: int
        Scheduled duration of the loan.
    overpayments:
        ``None``, an ``OverpaymentPlan``, a ``LegacyOverpayment`` or a list
        of them. See ``validation.resolve_overpayments``.
    start_date: date, optional
        Date of the first payment; used to stamp ``payment_date`` and to
        place date-based overpayment plans.
    loan_type: str
        ``"annuity"`` (equal installments) or ``"decreasing"``.
    strict: bool
        Raise ``NonConvergenceError`` instead of logging a warning when the
        period cap is reached with money still owed.

    Returns
    -------
    List[PaymentRecord]
        One record per payment, at most ``MAX_PERIODS`` long, with running
        totals filled in.
    """
    principal = validate_principal(principal)
    term_years = validate_term(term_years)
    rate_periods = validate_rate_periods(rate_periods)
    if loan_type not in ("annuity", "decreasing"):
        raise InvalidInputError(["Loan type must be 'annuity' or 'decreasing'"])
    plans = resolve_overpayments(overpayments, start_date)

    records, remaining = _build_schedule(principal, rate_periods, term_years, plans, start_date, loan_type)
    accumulate_totals(records)
    if remaining > 0:
        _report_non_convergence(remaining, len(records), None, strict)
    return records


def _report_non_convergence(remaining: Decimal, periods: int, results, strict: bool) -> None:
    if strict:
        raise NonConvergenceError(remaining, periods, results)
    logger.warning(
        "Schedule stopped at %d payments with %s still outstanding", periods, remaining
    )


def calculate_one_time_fees(principal: Decimal, costs: Optional[AdditionalCosts]) -> Decimal:
    if costs is None:
        return ZERO
    if costs.origination_fee_type == "fixed":
        fee = costs.origination_fee
    else:
        fee = principal * costs.origination_fee / Decimal(100)
    return round_to_cents(fee)


def calculate_recurring_fees(balance: Decimal, costs: Optional[AdditionalCosts]) -> Decimal:
    """Fees charged for one period on an outstanding ``balance``.

    Percentage fees are annual rates applied to the balance, spread over
    twelve months.
    """
    if costs is None:
        return ZERO
    fees = ZERO
    for amount, fee_type in (
        (costs.loan_insurance, costs.loan_insurance_type),
        (costs.administrative_fees, costs.administrative_fees_type),
    ):
        if fee_type == "fixed":
            fees += amount
        else:
            fees += balance * amount / Decimal(100) / Decimal(12)
    return round_to_cents(fees)


def _present_value(cash_flows: Sequence[float], rate: float) -> float:
    value = 0.0
    discount = 1.0
    for flow in cash_flows:
        discount /= 1 + rate
        value += flow * discount
    return value


def calculate_apr(net_amount: Decimal, cash_flows: Sequence[Decimal]) -> Decimal:
    """Annual percentage rate that discounts ``cash_flows`` to ``net_amount``.

    ``net_amount`` is what the borrower actually receives (principal minus
    one-time fees); ``cash_flows`` are the monthly outflows including
    recurring fees. The monthly rate is found by bisection, since the
    present value falls monotonically as the rate rises. Returns percent,
    rounded to cents; zero when the flows do not exceed the amount received.
    """
    flows = [float(flow) for flow in cash_flows]
    target = float(net_amount)
    if not flows or target <= 0 or sum(flows) <= target:
        return ZERO

    low, high = 0.0, 1.0
    while _present_value(flows, high) > target:
        high *= 2
    for _ in range(APR_MAX_ITERATIONS):
        mid = (low + high) / 2
        if _present_value(flows, mid) > target:
            low = mid
        else:
            high = mid
        if high - low < APR_TOLERANCE:
            break
    return round_to_cents(Decimal(repr((low + high) / 2 * 12 * 100)))


def aggregate_yearly_data(schedule: Sequence[PaymentRecord]) -> List[YearlyData]:
    """Group payments into loan years (payments 1-12 are year 1, and so on)."""
    years: Dict[int, YearlyData] = {}
    for record in schedule:
        year = (record.period - 1) // 12 + 1
        entry = years.get(year)
        if entry is None:
            entry = YearlyData(
                year=year,
                principal=ZERO,
                interest=ZERO,
                payment=ZERO,
                balance=record.balance,
                total_interest=record.total_interest,
            )
            years[year] = entry
        entry.principal += record.principal_payment
        entry.interest += record.interest_payment
        entry.payment += record.monthly_payment
        entry.balance = record.balance
        entry.total_interest = record.total_interest
    return list(years.values())


def calculate_loan_details(details: LoanDetails, strict: bool = False) -> CalculationResults:
    """Compute the schedule and summary metrics for ``details``.

    The loan is validated first (``InvalidInputError`` on bad input). Fees
    from ``additional_costs`` are attached to each record and included in
    ``total_payment``, ``total_cost`` and the APR. When the schedule is cut
    at ``MAX_PERIODS`` with a balance left, the result has
    ``converged=False``; with ``strict=True`` a ``NonConvergenceError``
    carrying that result is raised instead.
    """
    loan = validate_loan_details(details)
    records, remaining = _build_schedule(
        loan.principal,
        loan.rate_periods,
        loan.term_years,
        loan.overpayments,
        loan.start_date,
        loan.loan_type,
    )

    costs = loan.additional_costs
    for record in records:
        opening_balance = record.balance + record.principal_payment
        record.fees = calculate_recurring_fees(opening_balance, costs)
    accumulate_totals(records)

    one_time_fees = calculate_one_time_fees(loan.principal, costs)
    recurring_fees = sum((record.fees for record in records), ZERO)
    total_interest = records[-1].total_interest if records else ZERO
    first_payment = records[0].monthly_payment - records[0].overpayment_amount if records else ZERO
    apr = calculate_apr(
        loan.principal - one_time_fees,
        [record.monthly_payment + record.fees for record in records],
    )

    results = CalculationResults(
        monthly_payment=first_payment,
        total_interest=total_interest,
        original_term=loan.term_years * 12,
        actual_term=len(records),
        schedule=records,
        yearly_data=aggregate_yearly_data(records),
        one_time_fees=one_time_fees,
        recurring_fees=recurring_fees,
        total_cost=round_to_cents(loan.principal) + total_interest + one_time_fees + recurring_fees,
        apr=apr,
        converged=remaining == 0,
    )
    logger.debug(
        "Calculated %s loan: payment=%s interest=%s term=%d/%d",
        loan.loan_type,
        results.monthly_payment,
        results.total_interest,
        results.actual_term,
        results.original_term,
    )
    if remaining > 0:
        _report_non_convergence(remaining, len(records), results, strict)
    return results


def summarize(details: LoanDetails, results: CalculationResults) -> Dict[str, object]:
    """Flatten ``results`` into a dictionary of plain floats and strings.

    Used by the CLI printer and the JSON API. ``apr`` is in percent.
    """
    schedule = results.schedule
    summary: Dict[str, object] = {
        "principal_financed": float(details.principal),
        "monthly_payment": float(results.monthly_payment),
        "total_interest": float(results.total_interest),
        "total_overpayment": float(sum((r.overpayment_amount for r in schedule), ZERO)),
        "one_time_fees": float(results.one_time_fees),
        "recurring_fees": float(results.recurring_fees),
        "total_cost": float(results.total_cost),
        "apr": float(results.apr or ZERO),
        "term_months": results.original_term,
        "payments_made": results.actual_term,
        "max_payment": float(max((r.monthly_payment + r.fees for r in schedule), default=ZERO)),
        "converged": results.converged,
        "currency": details.currency,
    }
    if details.start_date is not None:
        original_end_date = add_months(details.start_date, results.original_term - 1)
        new_end_date = schedule[-1].payment_date if schedule else details.start_date
        summary["original_end_date"] = original_end_date.strftime("%Y-%m")
        summary["new_end_date"] = new_end_date.strftime("%Y-%m")
    return summary
