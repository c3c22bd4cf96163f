"""
accrual.py - Simple Interest Accrual

Interest accrues lazily: nothing happens in storage until an operation
touches the position. Two entry points share one formula:

1. accrue(): folds elapsed-time interest into the debt and moves the
   accrual timestamp forward. Used by mutating operations.
2. project_debt(): returns what accrue() would produce without touching
   anything. Used by health factor and borrow limit queries so that views
   never have side effects.

Key Formula:
    interest = borrowed * annual_rate * elapsed // (PRECISION * SECONDS_PER_YEAR)

Interest is simple within one call; repeated accruals compound because each
one folds interest into the principal the next one starts from.
"""

from __future__ import annotations
from dataclasses import dataclass, replace

from .core import Position, PRECISION, SECONDS_PER_YEAR


@dataclass(frozen=True, slots=True)
class AccrualResult:
    """
    Outcome of accrue().

    Attributes:
        position: Position after accrual (timestamp moved to now)
        interest: Amount folded into borrowed_amount (0 for first touch)
    """
    position: Position
    interest: int


def calculate_interest(borrowed_amount: int, annual_rate: int, elapsed: int) -> int:
    """
    Calculate simple interest for an elapsed period.

    PURE FUNCTION - All inputs explicit, floor rounding.

    Args:
        borrowed_amount: Outstanding debt
        annual_rate: Annualized rate at PRECISION (5% == 0.05e18)
        elapsed: Seconds since the last accrual

    Returns:
        Interest owed for the period, rounded down.
    """
    if borrowed_amount <= 0 or annual_rate <= 0 or elapsed <= 0:
        return 0
    return borrowed_amount * annual_rate * elapsed // (PRECISION * SECONDS_PER_YEAR)


def _elapsed(position: Position, now: int) -> int:
    elapsed = now - position.last_accrual_timestamp
    if elapsed < 0:
        raise ValueError(
            f"Cannot accrue backwards: now={now} < last accrual {position.last_accrual_timestamp}"
        )
    return elapsed


def accrue(position: Position, now: int, annual_rate: int) -> AccrualResult:
    """
    Fold interest accrued since the last touch into the debt.

    PURE FUNCTION - Returns a new Position; the input is never modified.

    A position with no debt, or one that has never been accrued, is only
    stamped with now. That first touch is not an interest event.

    Args:
        position: Position to accrue
        now: Current unix time in seconds
        annual_rate: Annualized rate at PRECISION

    Returns:
        AccrualResult with the updated position and the interest added.

    Raises:
        ValueError: If now is earlier than the last accrual timestamp.
    """
    if position.borrowed_amount == 0 or position.last_accrual_timestamp == 0:
        return AccrualResult(replace(position, last_accrual_timestamp=now), 0)

    elapsed = _elapsed(position, now)
    if elapsed == 0:
        return AccrualResult(position, 0)

    interest = calculate_interest(position.borrowed_amount, annual_rate, elapsed)
    accrued = replace(
        position,
        borrowed_amount=position.borrowed_amount + interest,
        last_accrual_timestamp=now,
    )
    return AccrualResult(accrued, interest)


def project_debt(position: Position, now: int, annual_rate: int) -> int:
    """
    Debt the position would carry if accrued at now.

    PURE FUNCTION - Read-only counterpart of accrue(); the two agree exactly
    for identical inputs because both go through calculate_interest().

    Args:
        position: Position to project
        now: Current unix time in seconds
        annual_rate: Annualized rate at PRECISION

    Returns:
        borrowed_amount plus pending interest.
    """
    if position.borrowed_amount == 0 or position.last_accrual_timestamp == 0:
        return position.borrowed_amount
    elapsed = _elapsed(position, now)
    return position.borrowed_amount + calculate_interest(position.borrowed_amount, annual_rate, elapsed)
