"""
Core types and constants for the lending engine.

This module provides the foundational data structures shared by every layer:
1. Fixed-point constants: ratio precision (1e18) and USD price precision (1e8)
2. Immutable data structures: Position, ProtocolParameters
3. Protocols: PriceOracle, AssetTransfer, RewardsDistributor, AccrualListener
4. Exceptions: LendingError and the categorised error taxonomy

All amounts are Python ints. Every division in the engine is a floor
division, so rounding is reproducible and never rounds up.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Tuple, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Ratio scale: 1e18 == 100%.
PRECISION = 10 ** 18

# USD price scale: 1e8 == $1.00.
PRICE_PRECISION = 10 ** 8

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Health factor reported for a position without debt ("infinitely healthy").
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# Health factor below which a position may be liquidated.
LIQUIDATION_HEALTH_FACTOR = PRECISION

# Share of a position's debt that a single liquidation may close.
CLOSE_FACTOR_DIVISOR = 2

MAX_LIQUIDATION_BONUS = PRECISION // 2
MAX_INTEREST_RATE = PRECISION


# ============================================================================
# ERROR TAXONOMY
# ============================================================================

class ErrorCode(Enum):
    """
    Machine-checkable reason attached to every LendingError.
    """
    INVALID_AMOUNT = "invalid_amount"
    INVALID_ACCOUNT = "invalid_account"
    INVALID_PARAMETERS = "invalid_parameters"
    INSUFFICIENT_COLLATERAL = "insufficient_collateral"
    NO_COLLATERAL = "no_collateral"
    NO_DEBT = "no_debt"
    BORROW_LIMIT_EXCEEDED = "borrow_limit_exceeded"
    REENTRANT_CALL = "reentrant_call"
    UNHEALTHY_POSITION = "unhealthy_position"
    POSITION_HEALTHY = "position_healthy"
    NOT_ADMINISTRATOR = "not_administrator"
    UNAUTHORIZED_CALLER = "unauthorized_caller"
    PAUSED = "paused"
    INVALID_PRICE = "invalid_price"
    TRANSFER_FAILED = "transfer_failed"
    REWARDS_FAILED = "rewards_failed"
    LISTENER_FAILED = "listener_failed"


class LendingError(Exception):
    """
    Base exception for all lending engine errors.

    Every error aborts the operation that raised it with no state change.

    Attributes:
        code: ErrorCode describing the specific reason
        category: Taxonomy bucket, one string per subclass
    """
    category = "lending"

    def __init__(self, code: ErrorCode, message: str = ""):
        self.code = code
        super().__init__(message or code.value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value}: {self})"


class ValidationError(LendingError):
    """Raised for zero or malformed amounts, accounts and parameters."""
    category = "validation"


class StateError(LendingError):
    """Raised when the position's state does not allow the operation."""
    category = "state"


class RiskError(LendingError):
    """Raised when an operation would leave a position unhealthy, or targets a healthy one."""
    category = "risk"


class AuthorizationError(LendingError):
    """Raised when a caller is not allowed to invoke a gated operation."""
    category = "authorization"


class PausedError(LendingError):
    """Raised for mutating operations while the protocol is paused."""
    category = "paused"

    def __init__(self, message: str = ""):
        super().__init__(ErrorCode.PAUSED, message or "protocol is paused")


class ExternalFailure(LendingError):
    """Raised when an oracle, asset transfer or notification collaborator fails."""
    category = "external"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Position:
    """
    One account's lending position.

    Attributes:
        collateral_amount: Collateral asset held on the account's behalf.
        borrowed_amount: Outstanding debt. Accrued interest is folded into
                         this figure on every accrual; principal and interest
                         are not tracked separately.
        last_accrual_timestamp: Unix seconds of the last accrual (0 = never).
    """
    collateral_amount: int = 0
    borrowed_amount: int = 0
    last_accrual_timestamp: int = 0

    def __post_init__(self):
        if self.collateral_amount < 0:
            raise ValueError(f"collateral_amount cannot be negative, got {self.collateral_amount}")
        if self.borrowed_amount < 0:
            raise ValueError(f"borrowed_amount cannot be negative, got {self.borrowed_amount}")

    @property
    def has_debt(self) -> bool:
        return self.borrowed_amount > 0

    def __repr__(self) -> str:
        return (f"Position(collateral={self.collateral_amount}, "
                f"debt={self.borrowed_amount}, accrued_at={self.last_accrual_timestamp})")


@dataclass(frozen=True, slots=True)
class ProtocolParameters:
    """
    Risk and interest configuration, all fixed-point at PRECISION.

    Attributes:
        ltv: Maximum borrow value as a fraction of collateral value.
        liquidation_threshold: Fraction of collateral value counted toward health.
        liquidation_bonus: Extra collateral fraction paid to liquidators.
        interest_rate: Annualized simple interest rate.
    """
    ltv: int
    liquidation_threshold: int
    liquidation_bonus: int
    interest_rate: int

    def validate(self) -> None:
        """
        Check the configuration invariants.

        Raises:
            ValidationError: (INVALID_PARAMETERS) unless
                0 < ltv < liquidation_threshold <= PRECISION,
                0 <= liquidation_bonus <= PRECISION / 2 and
                0 <= interest_rate <= PRECISION.
        """
        for name in ('ltv', 'liquidation_threshold', 'liquidation_bonus', 'interest_rate'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(
                    ErrorCode.INVALID_PARAMETERS, f"{name} must be an int, got {value!r}"
                )
        if self.ltv <= 0:
            raise ValidationError(ErrorCode.INVALID_PARAMETERS, f"ltv must be positive, got {self.ltv}")
        if self.ltv >= self.liquidation_threshold:
            raise ValidationError(
                ErrorCode.INVALID_PARAMETERS,
                f"ltv ({self.ltv}) must be below liquidation_threshold ({self.liquidation_threshold})",
            )
        if self.liquidation_threshold > PRECISION:
            raise ValidationError(
                ErrorCode.INVALID_PARAMETERS,
                f"liquidation_threshold cannot exceed {PRECISION}, got {self.liquidation_threshold}",
            )
        if not 0 <= self.liquidation_bonus <= MAX_LIQUIDATION_BONUS:
            raise ValidationError(
                ErrorCode.INVALID_PARAMETERS,
                f"liquidation_bonus must be in [0, {MAX_LIQUIDATION_BONUS}], got {self.liquidation_bonus}",
            )
        validate_interest_rate(self.interest_rate)


def validate_interest_rate(rate: int) -> None:
    """Raise ValidationError unless 0 <= rate <= MAX_INTEREST_RATE."""
    if isinstance(rate, bool) or not isinstance(rate, int) or not 0 <= rate <= MAX_INTEREST_RATE:
        raise ValidationError(
            ErrorCode.INVALID_PARAMETERS,
            f"interest_rate must be an int in [0, {MAX_INTEREST_RATE}], got {rate!r}",
        )


def validate_amount(amount: int) -> None:
    """Raise ValidationError unless amount is a positive int."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(ErrorCode.INVALID_AMOUNT, f"amount must be an int, got {amount!r}")
    if amount <= 0:
        raise ValidationError(ErrorCode.INVALID_AMOUNT, f"amount must be positive, got {amount}")


def validate_account(account: str) -> None:
    """Raise ValidationError unless account is a non-empty string."""
    if not isinstance(account, str) or not account.strip():
        raise ValidationError(ErrorCode.INVALID_ACCOUNT, f"invalid account {account!r}")


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceOracle(Protocol):
    """
    USD price feed for both assets.

    Prices are fixed-point at PRICE_PRECISION. Staleness policy belongs to
    the oracle; the engine only rejects missing or non-positive prices.
    """

    def get_price(self, asset_id: str) -> int:
        """Return the latest price of asset_id."""
        ...

    def get_price_with_timestamp(self, asset_id: str) -> Tuple[int, int]:
        """Return (price, last update unix seconds) for asset_id."""
        ...


@runtime_checkable
class AssetTransfer(Protocol):
    """
    Movement of one asset between an account and the protocol's custody.

    Both methods must raise on failure; a partial transfer is never allowed.
    """

    def pull(self, source: str, amount: int) -> None:
        """Move amount from source into protocol custody."""
        ...

    def push(self, dest: str, amount: int) -> None:
        """Move amount from protocol custody to dest."""
        ...


@runtime_checkable
class RewardsDistributor(Protocol):
    """
    Receiver of collateral-balance change notifications.

    The caller argument carries the controller's identity so the
    distributor can authenticate the notification without holding a
    reference back to the controller.
    """

    def notify_deposit_change(self, account: str, new_collateral_total: int, caller: str) -> None:
        ...


class AccrualListener(Protocol):
    """Per-account callback invoked after interest is folded into debt."""

    def __call__(self, account: str, interest: int, new_debt: int) -> None:
        ...
