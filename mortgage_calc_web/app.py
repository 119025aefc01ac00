"""JSON API for the mortgage calculator.

Every endpoint is stateless: the request carries the full loan description
and the response carries the full result. Nothing is stored between
requests.

Configuration is read from the environment when the app is created:

``MAX_OPTIMIZER_STEPS``
    Largest ``steps`` accepted by the overpayment sweep (default 50).
``DEFAULT_CURRENCY``
    Currency assumed when a loan does not name one (default USD).
``LOG_LEVEL``
    Level of the ``mortgage_calc`` loggers (default WARNING).
"""

import logging
import os
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from mortgage_calc.comparison import compare_calculations, compare_scenarios
from mortgage_calc.data_models import (
    AdditionalCosts,
    CalculationResults,
    ComparisonOptions,
    InterestRatePeriod,
    LoanDetails,
    OptimizationParameters,
    OverpaymentPlan,
    PaymentRecord,
    Scenario,
)
from mortgage_calc.engine import calculate_loan_details, summarize
from mortgage_calc.errors import InvalidInputError, MortgageCalcError
from mortgage_calc.optimizer import (
    analyze_overpayment_impact,
    compare_lump_sum_vs_regular,
    optimize_overpayments,
)
from mortgage_calc.utils import CURRENCIES, parse_year_month

logger = logging.getLogger(__name__)


def _optional_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return parse_year_month(value)
    except ValueError as exc:
        raise InvalidInputError([str(exc)]) from exc


def _plan_from_json(data: Dict[str, Any]) -> OverpaymentPlan:
    return OverpaymentPlan(
        amount=data.get("amount"),
        start_month=data.get("start_month"),
        end_month=data.get("end_month"),
        frequency=data.get("frequency", "one-time"),
        type=data.get("type", "term"),
        start_date=_optional_date(data.get("start_date")),
        end_date=_optional_date(data.get("end_date")),
    )


def _costs_from_json(data: Optional[Dict[str, Any]]) -> Optional[AdditionalCosts]:
    if not data:
        return None
    return AdditionalCosts(
        origination_fee=data.get("origination_fee", 0),
        origination_fee_type=data.get("origination_fee_type", "fixed"),
        loan_insurance=data.get("loan_insurance", 0),
        loan_insurance_type=data.get("loan_insurance_type", "fixed"),
        administrative_fees=data.get("administrative_fees", 0),
        administrative_fees_type=data.get("administrative_fees_type", "fixed"),
    )


def loan_from_json(data: Any, default_currency: str = "USD") -> LoanDetails:
    """Build ``LoanDetails`` from a request body.

    Rates are given either as ``rate_periods`` (a list of
    ``{"start_month", "rate"}``) or as a single ``rate``. Values are checked
    later by the engine; this function only rejects bodies of the wrong
    shape.
    """
    if not isinstance(data, dict):
        raise InvalidInputError(["Loan must be a JSON object"])
    try:
        if "rate_periods" in data:
            rate_periods = [
                InterestRatePeriod(start_month=p.get("start_month", 1), rate=p.get("rate"))
                for p in data["rate_periods"]
            ]
        elif "rate" in data:
            rate_periods = [InterestRatePeriod(start_month=1, rate=data["rate"])]
        else:
            rate_periods = []
        overpayments = [_plan_from_json(p) for p in data.get("overpayments") or []]
        return LoanDetails(
            principal=data.get("principal"),
            rate_periods=rate_periods,
            term_years=data.get("term_years"),
            overpayments=overpayments,
            start_date=_optional_date(data.get("start_date")),
            loan_type=data.get("loan_type", "annuity"),
            currency=str(data.get("currency") or default_currency).upper(),
            name=data.get("name", ""),
            additional_costs=_costs_from_json(data.get("additional_costs")),
        )
    except (AttributeError, TypeError) as exc:
        raise InvalidInputError([f"Malformed loan description: {exc}"]) from exc


def _serialize_schedule(schedule: List[PaymentRecord]) -> List[Dict[str, Any]]:
    """Convert schedule entries into JSON-serialisable dictionaries."""
    serialized = []
    for entry in schedule:
        serialized.append(
            {
                "period": entry.period,
                "date": entry.payment_date.strftime("%Y-%m") if entry.payment_date else None,
                "payment": float(entry.monthly_payment),
                "principal": float(entry.principal_payment),
                "interest": float(entry.interest_payment),
                "overpayment": float(entry.overpayment_amount),
                "fees": float(entry.fees),
                "balance": float(entry.balance),
                "total_interest": float(entry.total_interest),
                "total_payment": float(entry.total_payment),
            }
        )
    return serialized


def _serialize_results(loan: LoanDetails, results: CalculationResults, include_schedule: bool = True) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "summary": summarize(loan, results),
        "yearly_data": [
            {
                "year": y.year,
                "principal": float(y.principal),
                "interest": float(y.interest),
                "payment": float(y.payment),
                "balance": float(y.balance),
                "total_interest": float(y.total_interest),
            }
            for y in results.yearly_data
        ],
    }
    if include_schedule:
        payload["schedule"] = _serialize_schedule(results.schedule)
    return payload


def _serialize_plan(plan: OverpaymentPlan) -> Dict[str, Any]:
    return {
        "amount": float(plan.amount),
        "start_month": plan.start_month,
        "end_month": plan.end_month,
        "frequency": plan.frequency,
        "type": plan.type,
    }


def _float_list(values: List[Decimal]) -> List[float]:
    return [float(v) for v in values]


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidInputError(["Request body must be a JSON object"])
    return body


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config["MAX_OPTIMIZER_STEPS"] = int(os.environ.get("MAX_OPTIMIZER_STEPS", "50"))
    app.config["DEFAULT_CURRENCY"] = os.environ.get("DEFAULT_CURRENCY", "USD").upper()
    app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "WARNING").upper()
    if config:
        app.config.update(config)
    logging.getLogger("mortgage_calc").setLevel(app.config["LOG_LEVEL"])

    def loan_from_body(body: Dict[str, Any]) -> LoanDetails:
        return loan_from_json(body.get("loan"), app.config["DEFAULT_CURRENCY"])

    @app.errorhandler(MortgageCalcError)
    def handle_calculation_error(exc: MortgageCalcError):
        errors = getattr(exc, "errors", [str(exc)])
        logger.info("Rejected request: %s", exc)
        return jsonify({"error": str(exc), "errors": errors}), 400

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.get("/api/currencies")
    def currencies():
        return jsonify(CURRENCIES)

    @app.post("/api/calculate")
    def calculate():
        body = _json_body()
        loan = loan_from_body(body)
        results = calculate_loan_details(loan)
        payload = _serialize_results(loan, results, bool(body.get("include_schedule", True)))
        if loan.overpayments and body.get("compare_baseline"):
            baseline = calculate_loan_details(replace(loan, overpayments=[]))
            payload["summary"]["comparison"] = compare_calculations(results, baseline)
        return jsonify(payload)

    @app.post("/api/compare")
    def compare():
        body = _json_body()
        items = body.get("scenarios")
        if not isinstance(items, list):
            raise InvalidInputError(["'scenarios' must be a list"])
        scenarios = []
        for index, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                raise InvalidInputError([f"Scenario #{index} must be a JSON object"])
            scenarios.append(
                Scenario(
                    name=item.get("name") or f"Scenario {index}",
                    loan_details=loan_from_body(item),
                    id=str(item.get("id", index)),
                )
            )
        try:
            options = ComparisonOptions(**(body.get("options") or {}))
        except TypeError as exc:
            raise InvalidInputError([f"Unknown comparison option: {exc}"]) from exc
        comparison = compare_scenarios(scenarios, options)
        return jsonify(
            {
                "scenarios": [
                    {
                        "id": s.id,
                        "name": s.name,
                        "summary": summarize(s.loan_details, s.results),
                    }
                    for s in comparison.scenarios
                ],
                "differences": [
                    {
                        "monthly_payment_diff": float(d.monthly_payment_diff),
                        "total_interest_diff": float(d.total_interest_diff),
                        "term_diff": float(d.term_diff),
                        "total_cost_diff": None if d.total_cost_diff is None else float(d.total_cost_diff),
                    }
                    for d in comparison.differences
                ],
                "break_even_point": comparison.break_even_point,
                "cumulative_cost_difference": _float_list(comparison.cumulative_cost_difference),
                "monthly_payment_difference": _float_list(comparison.monthly_payment_difference),
            }
        )

    @app.post("/api/optimize/impact")
    def overpayment_impact():
        body = _json_body()
        steps = body.get("steps", 5)
        if isinstance(steps, int) and steps > app.config["MAX_OPTIMIZER_STEPS"]:
            raise InvalidInputError([f"At most {app.config['MAX_OPTIMIZER_STEPS']} steps are allowed"])
        impacts = analyze_overpayment_impact(loan_from_body(body), body.get("max_monthly_amount", 0), steps)
        return jsonify(
            [
                {
                    "amount": float(i.amount),
                    "interest_saved": float(i.interest_saved),
                    "term_reduction": i.term_reduction,
                }
                for i in impacts
            ]
        )

    @app.post("/api/optimize")
    def optimize():
        body = _json_body()
        params = OptimizationParameters(
            max_monthly_overpayment=body.get("max_monthly_overpayment", 0),
            max_one_time_overpayment=body.get("max_one_time_overpayment", 0),
            goal=body.get("goal", "balanced"),
            fee_percentage=body.get("fee_percentage", 0),
        )
        result = optimize_overpayments(loan_from_body(body), params)
        return jsonify(
            {
                "optimized_overpayments": [_serialize_plan(p) for p in result.optimized_overpayments],
                "interest_saved": float(result.interest_saved),
                "term_reduction": result.term_reduction,
                "optimization_value": float(result.optimization_value),
                "optimization_fee": float(result.optimization_fee),
                "strategies": [
                    {
                        "name": s.name,
                        "description": s.description,
                        "interest_saved": float(s.interest_saved),
                        "term_reduction": s.term_reduction,
                        "effectiveness_ratio": float(s.effectiveness_ratio),
                        "is_best": s.is_best,
                    }
                    for s in result.strategies
                ],
                "comparison_chart": {
                    "labels": result.chart_labels,
                    "original_data": _float_list(result.baseline_interest_by_year),
                    "optimized_data": _float_list(result.optimized_interest_by_year),
                },
            }
        )

    @app.post("/api/optimize/lump-sum")
    def lump_sum_vs_regular():
        body = _json_body()
        result = compare_lump_sum_vs_regular(loan_from_body(body), body.get("lump_sum"), body.get("monthly"))
        return jsonify(
            {
                "lump_sum": {
                    "amount": float(result.lump_sum.amount),
                    "interest_saved": float(result.lump_sum.interest_saved),
                    "term_reduction": result.lump_sum.term_reduction,
                },
                "monthly": {
                    "amount": float(result.monthly.amount),
                    "interest_saved": float(result.monthly.interest_saved),
                    "term_reduction": result.monthly.term_reduction,
                },
                "break_even_month": result.break_even_month,
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    print("Starting Mortgage Calculator API...")
    app.run(host="0.0.0.0", port=8710, debug=True)
