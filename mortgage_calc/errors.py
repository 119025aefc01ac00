"""Exceptions raised by the mortgage calculator.

All errors derive from ``ValueError`` so callers that already guard the
calculation with ``except ValueError`` keep working.
"""

from __future__ import annotations

from typing import List, Optional


class MortgageCalcError(ValueError):
    """Base class for calculator errors."""


class InvalidInputError(MortgageCalcError):
    """Loan inputs that cannot be calculated.

    ``errors`` lists every problem found, so a form layer can show them all
    at once instead of one per round trip.
    """

    def __init__(self, errors: List[str]) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NonConvergenceError(MortgageCalcError):
    """The schedule hit the period cap with a balance still outstanding."""

    def __init__(self, remaining_balance, periods: int, results: Optional[object] = None) -> None:
        self.remaining_balance = remaining_balance
        self.periods = periods
        self.results = results
        super().__init__(
            f"Loan not repaid after {periods} payments; "
            f"remaining balance {remaining_balance}"
        )


class ComparisonUsageError(MortgageCalcError):
    """Fewer than two scenarios were passed to a comparison."""
