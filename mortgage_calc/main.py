"""Command-line interface for the mortgage calculator.

This module uses the ``click`` library to implement a multi-command
interface. Users can compute full amortization schedules, view summaries,
compare loan scenarios and analyze overpayments. Results are printed to the
terminal.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import click

from .comparison import compare_calculations, compare_scenarios
from .data_models import (
    AdditionalCosts,
    InterestRatePeriod,
    LoanDetails,
    OptimizationParameters,
    OverpaymentPlan,
    Scenario,
)
from .engine import calculate_loan_details, summarize
from .errors import MortgageCalcError
from .formatter import (
    print_comparison,
    print_impact,
    print_optimization,
    print_schedule,
    print_summary,
)
from .optimizer import analyze_overpayment_impact, optimize_overpayments
from .utils import CURRENCIES, decimal_from_str, parse_year_month

MAX_PRINTED_ROWS = 120


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000). Returns a Decimal.
    """
    value = value.strip().lower()
    value = value.replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_fee(value: Optional[str]) -> Tuple[Decimal, str]:
    """Parse a fee given as an amount ("500") or a percentage ("1.5%")."""
    if not value:
        return Decimal(0), "fixed"
    value = value.strip()
    if value.endswith("%"):
        return parse_amount(value[:-1]), "percentage"
    return parse_amount(value), "fixed"


def parse_rate_strings(values: Tuple[str, ...]) -> List[InterestRatePeriod]:
    """Parse rates given as ``RATE`` or ``MONTH:RATE``.

    A bare rate applies from the first payment.
    """
    periods: List[InterestRatePeriod] = []
    for item in values:
        parts = item.split(":")
        if len(parts) == 1:
            month_str, rate_str = "1", parts[0]
        elif len(parts) == 2:
            month_str, rate_str = parts
        else:
            raise click.BadParameter(f"Rate must be in RATE or MONTH:RATE format; got {item}")
        try:
            month = int(month_str)
            rate = decimal_from_str(rate_str.rstrip("%"))
        except ValueError as exc:
            raise click.BadParameter(str(exc))
        periods.append(InterestRatePeriod(start_month=month, rate=rate))
    return periods


def _parse_start(value: str) -> Dict[str, Any]:
    """A plan start/end is either a payment number or a YYYY-MM date."""
    if value.isdigit():
        return {"month": int(value)}
    try:
        return {"date": parse_year_month(value)}
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def parse_overpayment_strings(values: Tuple[str, ...]) -> List[OverpaymentPlan]:
    """Parse ``START:AMOUNT:TYPE[:FREQUENCY[:END]]`` overpayment entries.

    START and END are payment numbers or YYYY-MM dates, TYPE is ``term`` or
    ``installment`` and FREQUENCY defaults to ``one-time``.
    """
    overpayments: List[OverpaymentPlan] = []
    for item in values:
        parts = item.split(":")
        if len(parts) < 3 or len(parts) > 5:
            raise click.BadParameter(
                f"Overpayment must be in START:AMOUNT:TYPE[:FREQUENCY[:END]] format; got {item}"
            )
        start = _parse_start(parts[0])
        amount = parse_amount(parts[1])
        typ = parts[2].lower()
        if typ not in ("term", "installment"):
            raise click.BadParameter(
                f"Overpayment type must be 'term' or 'installment'; got {typ}"
            )
        frequency = parts[3].lower() if len(parts) > 3 else "one-time"
        end = _parse_start(parts[4]) if len(parts) > 4 else {}
        overpayments.append(
            OverpaymentPlan(
                amount=amount,
                start_month=start.get("month"),
                start_date=start.get("date"),
                end_month=end.get("month"),
                end_date=end.get("date"),
                frequency=frequency,
                type=typ,
            )
        )
    return overpayments


def build_loan_from_options(
    principal: str,
    rate: Tuple[str, ...],
    term: int,
    loan_type: str = "annuity",
    start_date: Optional[str] = None,
    overpayment: Tuple[str, ...] = (),
    monthly_overpayment: Optional[str] = None,
    currency: str = "USD",
    name: str = "",
    origination_fee: Optional[str] = None,
    insurance: Optional[str] = None,
    admin_fee: Optional[str] = None,
) -> LoanDetails:
    start_dt = None
    if start_date:
        try:
            start_dt = parse_year_month(start_date)
        except ValueError as exc:
            raise click.BadParameter(str(exc))
    overpayments = parse_overpayment_strings(overpayment) if overpayment else []
    # Handle monthly overpayment: string of format AMOUNT:TYPE
    if monthly_overpayment:
        parts = monthly_overpayment.split(":")
        if len(parts) != 2:
            raise click.BadParameter(
                "Monthly overpayment must be in AMOUNT:TYPE format, e.g., '500:term'"
            )
        amt_str, typ = parts
        if typ.lower() not in ("term", "installment"):
            raise click.BadParameter(
                "Monthly overpayment type must be 'term' or 'installment'"
            )
        overpayments.append(
            OverpaymentPlan(
                amount=parse_amount(amt_str),
                start_month=1,
                frequency="monthly",
                type=typ.lower(),
            )
        )

    costs = None
    if origination_fee or insurance or admin_fee:
        origination, origination_type = parse_fee(origination_fee)
        insurance_value, insurance_type = parse_fee(insurance)
        admin, admin_type = parse_fee(admin_fee)
        costs = AdditionalCosts(
            origination_fee=origination,
            origination_fee_type=origination_type,
            loan_insurance=insurance_value,
            loan_insurance_type=insurance_type,
            administrative_fees=admin,
            administrative_fees_type=admin_type,
        )

    return LoanDetails(
        principal=parse_amount(principal),
        rate_periods=parse_rate_strings(rate),
        term_years=term,
        overpayments=overpayments,
        start_date=start_dt,
        loan_type=loan_type.lower(),
        currency=currency.upper(),
        name=name,
        additional_costs=costs,
    )


def loan_options(func: Callable) -> Callable:
    """Attach the options describing a loan to a command."""
    options = [
        click.option("--principal", "-p", "principal", required=True, help="Loan amount (e.g. 300000 or 300k)"),
        click.option(
            "--rate",
            "-r",
            "rate",
            required=True,
            multiple=True,
            help="Annual rate in percent, as RATE or MONTH:RATE for later rate periods",
        ),
        click.option("--term", "-t", "term", required=True, type=int, help="Loan term in years"),
        click.option(
            "--type",
            "loan_type",
            type=click.Choice(["annuity", "decreasing"]),
            default="annuity",
            help="Installment type",
        ),
        click.option("--start-date", "-s", "start_date", help="First payment date (YYYY-MM)"),
        click.option(
            "--overpayment",
            "overpayment",
            multiple=True,
            help="Overpayment in START:AMOUNT:TYPE[:FREQUENCY[:END]] format",
        ),
        click.option(
            "--monthly-overpayment",
            "monthly_overpayment",
            help="Apply the same overpayment every month in AMOUNT:TYPE format. Example: --monthly-overpayment 500:term",
        ),
        click.option(
            "--currency",
            "currency",
            type=click.Choice(sorted(CURRENCIES), case_sensitive=False),
            default="USD",
            help="Currency used for display",
        ),
        click.option("--name", "name", default="", help="Scenario name"),
        click.option("--origination-fee", "origination_fee", help="One-time fee, amount or percent (e.g. 1%)"),
        click.option("--insurance", "insurance", help="Monthly insurance, amount or annual percent of balance"),
        click.option("--admin-fee", "admin_fee", help="Monthly administrative fee, amount or annual percent"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _run(func: Callable, *args, **kwargs):
    """Call an engine function, reporting calculation errors as CLI errors."""
    try:
        return func(*args, **kwargs)
    except MortgageCalcError as exc:
        raise click.ClickException(str(exc))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """A command-line mortgage calculator supporting complex scenarios."""
    # Without --verbose, warnings still reach stderr through logging's last-resort handler
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@loan_options
@click.option("--rows", "rows", type=int, default=MAX_PRINTED_ROWS, help="Maximum schedule rows to print")
def schedule(rows: int, **options: Any) -> None:
    """Compute and print the full amortization schedule."""
    loan = build_loan_from_options(**options)
    results = _run(calculate_loan_details, loan)
    print_summary(summarize(loan, results))
    # Limit schedule length printed to avoid flooding the terminal
    if len(results.schedule) > rows:
        click.echo(f"Schedule has {len(results.schedule)} rows; showing first {rows} rows.")
        print_schedule(results.schedule[:rows])
    else:
        print_schedule(results.schedule)


@cli.command()
@loan_options
def summary(**options: Any) -> None:
    """Compute and print only the summary metrics for a loan."""
    loan = build_loan_from_options(**options)
    results = _run(calculate_loan_details, loan)
    summary_data = summarize(loan, results)
    if loan.overpayments:
        baseline = _run(calculate_loan_details, replace(loan, overpayments=[]))
        summary_data["comparison"] = compare_calculations(results, baseline)
    print_summary(summary_data)


@click.command()
@loan_options
def scenario_options(**options: Any) -> None:
    """Parser for the option strings passed to ``compare --scenario``."""


def parse_scenario_opts(opts: str) -> Dict[str, Any]:
    """Parse a quoted scenario string with the same options as ``schedule``."""
    try:
        ctx = scenario_options.make_context("scenario", shlex.split(opts))
    except click.ClickException as exc:
        raise click.BadParameter(f"Invalid scenario '{opts}': {exc.format_message()}")
    return ctx.params


@cli.command()
@click.option("--scenario", "scenarios", multiple=True, required=True, help="Scenario options quoted string")
def compare(scenarios: Tuple[str, ...]) -> None:
    """Compare two or more loan scenarios.

    Scenarios are provided as quoted option strings, for example:

        mortgage-calc compare --scenario "-p 300k -r 5 -t 30" --scenario "-p 300k -r 3.5 -t 30"
    """
    if len(scenarios) < 2:
        raise click.UsageError("Provide at least two --scenario options")
    parsed: List[Scenario] = []
    for index, opts in enumerate(scenarios, start=1):
        loan = build_loan_from_options(**parse_scenario_opts(opts))
        parsed.append(Scenario(name=loan.name or f"Scenario{index}", loan_details=loan, id=str(index)))
    print_comparison(_run(compare_scenarios, parsed))


@cli.command()
@loan_options
@click.option("--max-amount", "max_amount", default="200", help="Largest monthly overpayment to try")
@click.option("--steps", "steps", type=click.IntRange(min=1), default=5, help="Number of amounts to try")
def impact(max_amount: str, steps: int, **options: Any) -> None:
    """Show how interest and term savings grow with the monthly overpayment."""
    loan = build_loan_from_options(**options)
    print_impact(_run(analyze_overpayment_impact, loan, parse_amount(max_amount), steps))


@cli.command()
@loan_options
@click.option("--max-monthly", "max_monthly", default="0", help="Monthly overpayment budget")
@click.option("--max-one-time", "max_one_time", default="0", help="One-time overpayment budget")
@click.option(
    "--goal",
    "goal",
    type=click.Choice(["interest", "time", "balanced"]),
    default="balanced",
    help="What the best strategy should maximize",
)
@click.option("--fee-percentage", "fee_percentage", default="0", help="Fee charged on the interest saved (percent)")
def optimize(max_monthly: str, max_one_time: str, goal: str, fee_percentage: str, **options: Any) -> None:
    """Evaluate overpayment strategies and highlight the best one."""
    loan = build_loan_from_options(**options)
    params = OptimizationParameters(
        max_monthly_overpayment=parse_amount(max_monthly),
        max_one_time_overpayment=parse_amount(max_one_time),
        goal=goal,
        fee_percentage=parse_amount(fee_percentage),
    )
    print_optimization(_run(optimize_overpayments, loan, params))


if __name__ == "__main__":
    cli()
