"""
Tests for the schedule engine.
"""

import logging
from datetime import date
from decimal import Decimal

import pytest

from mortgage_calc.data_models import (
    AdditionalCosts,
    InterestRatePeriod,
    LegacyOverpayment,
    OverpaymentPlan,
)
from mortgage_calc.engine import (
    MAX_PERIODS,
    aggregate_yearly_data,
    calculate_apr,
    calculate_loan_details,
    calculate_monthly_payment,
    generate_schedule,
    is_overpayment_due,
    periods_to_repay,
    rate_for_period,
    summarize,
)
from mortgage_calc.errors import InvalidInputError, NonConvergenceError
from mortgage_calc.utils import round_to_cents
from mortgage_calc.validation import resolve_overpayments, validate_rate_periods


def single_rate(rate):
    return [InterestRatePeriod(start_month=1, rate=Decimal(rate))]


class TestMonthlyPayment:
    """Test the installment formula and its low-rate fallbacks."""

    def test_standard_annuity(self):
        """300k at 4.5% over 30 years."""
        payment = calculate_monthly_payment(Decimal("300000"), Decimal("0.045") / 12, 360)
        assert payment == Decimal("1520.06")

    def test_zero_rate_is_simple_division(self):
        payment = calculate_monthly_payment(Decimal("300000"), Decimal("0"), 360)
        assert payment == Decimal("833.33")

    def test_near_zero_rate_is_simple_division(self):
        # 0.1% annual is below 0.0001 per month
        payment = calculate_monthly_payment(Decimal("300000"), Decimal("0.001") / 12, 360)
        assert payment == Decimal("833.33")

    def test_low_rate_uses_linear_approximation(self):
        # 0.6% annual = 0.0005 per month
        payment = calculate_monthly_payment(Decimal("120000"), Decimal("0.0005"), 120)
        assert payment == Decimal("1060.00")

    def test_result_is_rounded_to_cents(self):
        payment = calculate_monthly_payment(Decimal("1000"), Decimal("0.01"), 7)
        assert payment == payment.quantize(Decimal("0.01"))

    def test_non_positive_periods_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_monthly_payment(Decimal("1000"), Decimal("0.01"), 0)


class TestGenerateSchedule:
    """Test the payment-by-payment simulation."""

    def test_standard_loan_is_fully_repaid(self):
        schedule = generate_schedule(Decimal("300000"), single_rate("4.5"), 30)
        assert len(schedule) == 360
        assert schedule[0].monthly_payment == Decimal("1520.06")
        assert schedule[-1].balance == 0

    def test_principal_is_conserved(self):
        schedule = generate_schedule(Decimal("300000"), single_rate("4.5"), 30)
        assert sum(r.principal_payment for r in schedule) == Decimal("300000")

    def test_balance_never_increases(self):
        schedule = generate_schedule(Decimal("250000"), single_rate("7"), 25)
        balances = [r.balance for r in schedule]
        assert all(a >= b for a, b in zip(balances, balances[1:]))

    def test_interest_is_charged_on_previous_balance(self):
        schedule = generate_schedule(Decimal("300000"), single_rate("4.5"), 30)
        for previous, record in zip(schedule, schedule[1:]):
            expected = round_to_cents(previous.balance * Decimal("0.045") / 12)
            assert record.interest_payment == expected

    def test_running_totals(self):
        schedule = generate_schedule(Decimal("100000"), single_rate("5"), 15)
        assert schedule[-1].total_interest == sum(r.interest_payment for r in schedule)
        assert schedule[-1].total_payment == sum(r.monthly_payment for r in schedule)
        assert schedule[0].total_interest == schedule[0].interest_payment

    def test_near_zero_rate_loan(self):
        schedule = generate_schedule(Decimal("300000"), single_rate("0.1"), 30)
        total_interest = schedule[-1].total_interest
        assert len(schedule) == 360
        assert schedule[-1].balance == 0
        assert 0 < total_interest < 10000

    def test_zero_rate_loan(self):
        schedule = generate_schedule(Decimal("120000"), single_rate("0"), 10)
        assert len(schedule) == 120
        assert all(r.interest_payment == 0 for r in schedule)
        assert schedule[0].monthly_payment == Decimal("1000.00")

    def test_generation_is_idempotent(self):
        plans = [OverpaymentPlan(amount=Decimal("150"), start_month=6, frequency="monthly")]
        first = generate_schedule(Decimal("200000"), single_rate("5.5"), 25, plans)
        second = generate_schedule(Decimal("200000"), single_rate("5.5"), 25, plans)
        assert first == second

    def test_payment_dates(self):
        schedule = generate_schedule(Decimal("50000"), single_rate("5"), 5, start_date=date(2025, 1, 1))
        assert schedule[0].payment_date == date(2025, 1, 1)
        assert schedule[12].payment_date == date(2026, 1, 1)
        assert schedule[-1].payment_date == date(2029, 12, 1)

    def test_invalid_loan_type(self):
        with pytest.raises(InvalidInputError):
            generate_schedule(Decimal("1000"), single_rate("5"), 1, loan_type="balloon")

    def test_one_cent_loan(self, caplog):
        with caplog.at_level(logging.WARNING, logger="mortgage_calc.engine"):
            schedule = generate_schedule(Decimal("0.01"), single_rate("5"), 1)
        assert len(schedule) == 1
        assert schedule[0].principal_payment == Decimal("0.01")
        assert schedule[0].balance == 0
        assert "still outstanding" not in caplog.text

    def test_one_cent_loan_converges_in_strict_mode(self, loan_factory):
        results = calculate_loan_details(loan_factory(principal="0.01", term_years=1), strict=True)
        assert results.converged
        assert results.actual_term == 1

    def test_principal_below_one_cent_rejected(self):
        with pytest.raises(InvalidInputError, match="at least 0.01"):
            generate_schedule(Decimal("0.004"), single_rate("5"), 1)


class TestRatePeriods:
    """Test loans whose rate changes over time."""

    def test_rate_for_period(self):
        periods = [
            InterestRatePeriod(start_month=1, rate=Decimal("4")),
            InterestRatePeriod(start_month=61, rate=Decimal("6")),
        ]
        assert rate_for_period(periods, 1) == Decimal("4")
        assert rate_for_period(periods, 60) == Decimal("4")
        assert rate_for_period(periods, 61) == Decimal("6")
        assert rate_for_period(periods, 360) == Decimal("6")

    def test_new_rate_applies_from_start_month(self):
        periods = [
            InterestRatePeriod(start_month=1, rate=Decimal("4")),
            InterestRatePeriod(start_month=61, rate=Decimal("6")),
        ]
        schedule = generate_schedule(Decimal("200000"), periods, 30)
        assert schedule[59].interest_payment == round_to_cents(schedule[58].balance * Decimal("0.04") / 12)
        assert schedule[60].interest_payment == round_to_cents(schedule[59].balance * Decimal("0.06") / 12)
        assert schedule[60].monthly_payment > schedule[59].monthly_payment
        assert schedule[-1].balance == 0
        assert len(schedule) == 360

    def test_unsorted_periods_rejected(self):
        periods = [
            InterestRatePeriod(start_month=1, rate=Decimal("4")),
            InterestRatePeriod(start_month=61, rate=Decimal("6")),
            InterestRatePeriod(start_month=30, rate=Decimal("5")),
        ]
        with pytest.raises(InvalidInputError, match="ascending"):
            validate_rate_periods(periods)

    def test_first_period_must_start_at_first_payment(self):
        with pytest.raises(InvalidInputError, match="month 1"):
            validate_rate_periods([InterestRatePeriod(start_month=5, rate=Decimal("4"))])

    def test_month_zero_is_accepted(self):
        periods = validate_rate_periods([InterestRatePeriod(start_month=0, rate=4.5)])
        assert periods[0].rate == Decimal("4.5")

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidInputError, match="negative"):
            validate_rate_periods(single_rate("-1"))

    def test_empty_periods_rejected(self):
        with pytest.raises(InvalidInputError):
            validate_rate_periods([])

    def test_term_overpayment_survives_rate_change(self):
        periods = [
            InterestRatePeriod(start_month=1, rate=Decimal("5")),
            InterestRatePeriod(start_month=61, rate=Decimal("6")),
        ]
        plan = OverpaymentPlan(amount=Decimal("20000"), start_month=1, type="term")
        schedule = generate_schedule(Decimal("100000"), periods, 30, plan)
        assert len(schedule) < 360
        assert schedule[59].monthly_payment == Decimal("536.82")
        assert schedule[60].monthly_payment > Decimal("536.82")
        assert schedule[-1].balance == 0
        assert sum(r.principal_payment for r in schedule) == Decimal("100000")

    def test_installment_overpayment_keeps_full_term_across_rate_change(self):
        periods = [
            InterestRatePeriod(start_month=1, rate=Decimal("5")),
            InterestRatePeriod(start_month=61, rate=Decimal("6")),
        ]
        plan = OverpaymentPlan(amount=Decimal("20000"), start_month=1, type="installment")
        schedule = generate_schedule(Decimal("100000"), periods, 30, plan)
        assert len(schedule) == 360
        assert schedule[60].monthly_payment > schedule[59].monthly_payment

    def test_periods_to_repay(self):
        assert periods_to_repay(Decimal("100000"), Decimal("0.05") / 12, Decimal("536.83"), 400) == 360
        assert periods_to_repay(Decimal("1000"), Decimal("0"), Decimal("300"), 10) == 4
        # payment below the monthly interest never repays
        assert periods_to_repay(Decimal("100000"), Decimal("0.01"), Decimal("500"), 50) == 50

    def test_invalid_first_rate_keeps_its_position(self):
        periods = [
            InterestRatePeriod(start_month=1, rate="abc"),
            InterestRatePeriod(start_month=61, rate=Decimal("5")),
        ]
        with pytest.raises(InvalidInputError) as excinfo:
            validate_rate_periods(periods)
        assert excinfo.value.errors == ["Rate period #1: interest rate must be a number"]

    def test_late_first_period_reported_despite_invalid_rate(self):
        periods = [
            InterestRatePeriod(start_month=5, rate="abc"),
            InterestRatePeriod(start_month=61, rate=Decimal("5")),
        ]
        with pytest.raises(InvalidInputError) as excinfo:
            validate_rate_periods(periods)
        assert "The first rate period must start at month 1" in excinfo.value.errors


class TestDecreasingInstallments:
    """Test the constant-principal repayment model."""

    def test_constant_principal(self):
        schedule = generate_schedule(Decimal("120000"), single_rate("6"), 10, loan_type="decreasing")
        assert len(schedule) == 120
        assert schedule[0].principal_payment == Decimal("1000.00")
        assert schedule[0].interest_payment == Decimal("600.00")
        assert schedule[0].monthly_payment == Decimal("1600.00")
        assert all(r.principal_payment == Decimal("1000.00") for r in schedule)
        assert schedule[-1].balance == 0

    def test_payments_decrease(self):
        schedule = generate_schedule(Decimal("120000"), single_rate("6"), 10, loan_type="decreasing")
        payments = [r.monthly_payment for r in schedule]
        assert all(a >= b for a, b in zip(payments, payments[1:]))

    def test_uneven_principal_is_cleared_by_last_payment(self):
        schedule = generate_schedule(Decimal("100000"), single_rate("5"), 30, loan_type="decreasing")
        assert len(schedule) == 360
        assert schedule[-1].balance == 0
        assert sum(r.principal_payment for r in schedule) == Decimal("100000")


class TestOverpayments:
    """Test one-time and recurring overpayment plans."""

    def test_is_overpayment_due(self):
        one_time = OverpaymentPlan(amount=Decimal("1"), start_month=5)
        monthly = OverpaymentPlan(amount=Decimal("1"), start_month=5, end_month=7, frequency="monthly")
        quarterly = OverpaymentPlan(amount=Decimal("1"), start_month=3, frequency="quarterly")
        annual = OverpaymentPlan(amount=Decimal("1"), start_month=12, frequency="annual")
        assert [p for p in range(1, 10) if is_overpayment_due(one_time, p)] == [5]
        assert [p for p in range(1, 10) if is_overpayment_due(monthly, p)] == [5, 6, 7]
        assert [p for p in range(1, 13) if is_overpayment_due(quarterly, p)] == [3, 6, 9, 12]
        assert [p for p in range(1, 40) if is_overpayment_due(annual, p)] == [12, 24, 36]

    def test_monthly_term_overpayment_shortens_loan(self):
        """250k at 4.5% with 200 extra every month."""
        plan = OverpaymentPlan(amount=Decimal("200"), start_month=1, frequency="monthly", type="term")
        baseline = generate_schedule(Decimal("250000"), single_rate("4.5"), 30)
        schedule = generate_schedule(Decimal("250000"), single_rate("4.5"), 30, plan)
        assert len(schedule) < 360
        assert schedule[-1].balance == 0
        assert schedule[-1].total_interest < baseline[-1].total_interest
        assert sum(r.principal_payment for r in schedule) == Decimal("250000")

    def test_term_overpayment_keeps_installment(self):
        plan = OverpaymentPlan(amount=Decimal("20000"), start_month=1, type="term")
        schedule = generate_schedule(Decimal("100000"), single_rate("5"), 30, plan)
        assert schedule[0].overpayment_amount == Decimal("20000")
        assert schedule[0].is_overpayment
        assert schedule[1].monthly_payment == Decimal("536.82")
        assert schedule[100].monthly_payment == Decimal("536.82")
        assert len(schedule) < 360

    def test_installment_overpayment_lowers_payment(self):
        plan = OverpaymentPlan(amount=Decimal("20000"), start_month=1, type="installment")
        schedule = generate_schedule(Decimal("100000"), single_rate("5"), 30, plan)
        assert schedule[0].monthly_payment == Decimal("20536.82")
        assert schedule[1].monthly_payment < Decimal("536.82")
        assert len(schedule) == 360
        assert schedule[-1].balance == 0
        assert sum(r.principal_payment for r in schedule) == Decimal("100000")

    def test_quarterly_plan(self):
        plan = OverpaymentPlan(amount=Decimal("1000"), start_month=3, frequency="quarterly")
        schedule = generate_schedule(Decimal("100000"), single_rate("5"), 30, plan)
        assert schedule[2].overpayment_amount == Decimal("1000")
        assert schedule[3].overpayment_amount == 0
        assert schedule[5].overpayment_amount == Decimal("1000")

    def test_annual_plan_with_end(self):
        plan = OverpaymentPlan(amount=Decimal("2500"), start_month=12, end_month=36, frequency="annual")
        schedule = generate_schedule(Decimal("100000"), single_rate("5"), 30, plan)
        overpaid = [r.period for r in schedule if r.is_overpayment]
        assert overpaid == [12, 24, 36]

    def test_overpayment_larger_than_balance_is_capped(self):
        plan = OverpaymentPlan(amount=Decimal("50000"), start_month=2)
        schedule = generate_schedule(Decimal("10000"), single_rate("5"), 5, plan)
        assert len(schedule) == 2
        assert schedule[-1].balance == 0
        assert schedule[-1].overpayment_amount < Decimal("50000")
        assert sum(r.principal_payment for r in schedule) == Decimal("10000")

    def test_date_based_plan(self):
        plan = OverpaymentPlan(amount=Decimal("5000"), start_date=date(2025, 6, 1))
        schedule = generate_schedule(
            Decimal("200000"), single_rate("6"), 20, plan, start_date=date(2025, 1, 1)
        )
        assert [r.period for r in schedule if r.is_overpayment] == [6]

    def test_date_based_plan_needs_loan_start(self):
        plan = OverpaymentPlan(amount=Decimal("5000"), start_date=date(2025, 6, 1))
        with pytest.raises(InvalidInputError, match="start date"):
            generate_schedule(Decimal("200000"), single_rate("6"), 20, plan)

    def test_legacy_overpayment(self):
        plans = resolve_overpayments(LegacyOverpayment(amount=5000, month=12, reduce_term=False))
        assert len(plans) == 1
        assert plans[0].amount == Decimal("5000")
        assert plans[0].start_month == 12
        assert plans[0].frequency == "one-time"
        assert plans[0].type == "installment"

    def test_invalid_plan(self):
        plan = OverpaymentPlan(amount=Decimal("-5"), start_month=1, frequency="weekly")
        with pytest.raises(InvalidInputError) as excinfo:
            resolve_overpayments([plan])
        assert len(excinfo.value.errors) == 2

    def test_plan_end_before_start(self):
        plan = OverpaymentPlan(amount=Decimal("5"), start_month=10, end_month=5, frequency="monthly")
        with pytest.raises(InvalidInputError, match="end"):
            resolve_overpayments(plan)


class TestCalculateLoanDetails:
    """Test the full calculation with fees, APR and yearly data."""

    def test_summary_metrics(self, standard_loan):
        results = calculate_loan_details(standard_loan)
        assert results.monthly_payment == Decimal("1520.06")
        assert results.original_term == 360
        assert results.actual_term == 360
        assert results.converged
        assert Decimal("247100") < results.total_interest < Decimal("247350")
        assert results.total_cost == Decimal("300000.00") + results.total_interest

    def test_apr_without_fees_matches_nominal_rate(self, standard_loan):
        results = calculate_loan_details(standard_loan)
        assert abs(results.apr - Decimal("4.5")) < Decimal("0.02")

    def test_fees(self, loan_factory):
        costs = AdditionalCosts(
            origination_fee=Decimal("1"),
            origination_fee_type="percentage",
            loan_insurance=Decimal("50"),
            loan_insurance_type="fixed",
        )
        results = calculate_loan_details(loan_factory(additional_costs=costs))
        assert results.one_time_fees == Decimal("3000.00")
        assert results.recurring_fees == Decimal("18000.00")
        assert results.schedule[0].fees == Decimal("50.00")
        assert results.schedule[0].total_payment == results.schedule[0].monthly_payment + Decimal("50")
        assert results.total_cost == Decimal("300000.00") + results.total_interest + Decimal("21000.00")
        assert results.apr > Decimal("4.6")

    def test_percentage_insurance_follows_balance(self, loan_factory):
        costs = AdditionalCosts(loan_insurance=Decimal("0.12"), loan_insurance_type="percentage")
        results = calculate_loan_details(loan_factory(additional_costs=costs))
        # 0.12% a year of 300000, charged monthly
        assert results.schedule[0].fees == Decimal("30.00")
        assert results.schedule[-1].fees < Decimal("1")

    def test_calculate_apr_without_cost(self):
        assert calculate_apr(Decimal("1000"), [Decimal("500"), Decimal("500")]) == 0

    def test_yearly_data(self, standard_loan):
        results = calculate_loan_details(standard_loan)
        yearly = results.yearly_data
        assert len(yearly) == 30
        assert yearly[0].interest == sum(r.interest_payment for r in results.schedule[:12])
        assert yearly[0].total_interest == results.schedule[11].total_interest
        assert yearly[0].balance == results.schedule[11].balance
        assert yearly[-1].balance == 0
        assert sum(y.principal for y in yearly) == Decimal("300000")

    def test_partial_last_year(self):
        schedule = generate_schedule(Decimal("10000"), single_rate("5"), 2, OverpaymentPlan(amount=5000, start_month=1))
        yearly = aggregate_yearly_data(schedule)
        assert yearly[-1].balance == 0
        assert sum(y.payment for y in yearly) == schedule[-1].total_payment

    def test_inputs_are_not_modified(self, loan_factory):
        plan = OverpaymentPlan(amount=100, start_month=1, frequency="monthly")
        loan = loan_factory(overpayments=[plan])
        calculate_loan_details(loan)
        assert loan.overpayments == [plan]
        assert loan.principal == Decimal("300000")

    def test_all_errors_are_reported(self, loan_factory):
        loan = loan_factory(principal="-1", term_years=0, loan_type="balloon")
        with pytest.raises(InvalidInputError) as excinfo:
            calculate_loan_details(loan)
        assert len(excinfo.value.errors) == 3

    def test_non_integer_term_rejected(self, loan_factory):
        with pytest.raises(InvalidInputError, match="whole number"):
            calculate_loan_details(loan_factory(term_years=2.5))

    def test_summarize_with_dates(self, dated_loan):
        plan = OverpaymentPlan(amount=Decimal("500"), start_month=1, frequency="monthly")
        dated_loan.overpayments = [plan]
        results = calculate_loan_details(dated_loan)
        summary = summarize(dated_loan, results)
        assert summary["original_end_date"] == "2044-12"
        assert summary["new_end_date"] < summary["original_end_date"]
        assert summary["total_overpayment"] > 0
        assert summary["payments_made"] < summary["term_months"]


class TestNonConvergence:
    """Test loans longer than the safety cap."""

    def test_schedule_is_capped(self, loan_factory, caplog):
        with caplog.at_level(logging.WARNING, logger="mortgage_calc.engine"):
            results = calculate_loan_details(loan_factory(term_years=60))
        assert len(results.schedule) == MAX_PERIODS
        assert not results.converged
        assert results.schedule[-1].balance > 0
        assert "still outstanding" in caplog.text

    def test_strict_mode_raises(self, loan_factory):
        with pytest.raises(NonConvergenceError) as excinfo:
            calculate_loan_details(loan_factory(term_years=60), strict=True)
        assert excinfo.value.periods == MAX_PERIODS
        assert excinfo.value.remaining_balance > 0
        assert excinfo.value.results is not None

    def test_fifty_year_loan_converges(self, loan_factory):
        results = calculate_loan_details(loan_factory(term_years=50))
        assert results.converged
        assert results.actual_term == MAX_PERIODS
