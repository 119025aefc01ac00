"""
Pytest configuration and shared fixtures.
"""

from datetime import date
from decimal import Decimal

import pytest

from mortgage_calc.data_models import InterestRatePeriod, LoanDetails
from mortgage_calc_web.app import create_app


def make_loan(principal="300000", rate="4.5", term_years=30, **kwargs):
    """Build a single-rate loan; extra keyword arguments go to LoanDetails."""
    return LoanDetails(
        principal=Decimal(principal),
        rate_periods=[InterestRatePeriod(start_month=1, rate=Decimal(rate))],
        term_years=term_years,
        **kwargs,
    )


@pytest.fixture
def loan_factory():
    return make_loan


@pytest.fixture
def standard_loan():
    """300k at 4.5% over 30 years."""
    return make_loan()


@pytest.fixture
def small_loan():
    """100k at 5% over 30 years."""
    return make_loan("100000", "5")


@pytest.fixture
def dated_loan():
    return make_loan("200000", "6", 20, start_date=date(2025, 1, 1))


@pytest.fixture
def app():
    return create_app({"TESTING": True, "MAX_OPTIMIZER_STEPS": 10})


@pytest.fixture
def client(app):
    return app.test_client()
