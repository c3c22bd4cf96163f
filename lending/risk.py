"""
risk.py - Valuation, Health Factor and Borrow Limit

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_* and *_value_usd):
   - Take positions, parameters and prices explicitly
   - No ledger, no oracle, no hidden state

2. PRICE ADAPTER (fetch_prices):
   - The ONLY place that reads the oracle
   - Rejects missing and non-positive prices

3. RiskEngine:
   - Binds a PositionLedger and a PriceOracle
   - Loads the account's position, fetches prices, calls the pure functions

Key Formulas (all floor division):
    collateral_value = collateral * collateral_price // 1e8
    debt_value       = debt * borrow_price // 1e8
    health_factor    = (collateral_value * threshold // 1e18) * 1e18 // debt_value
    max_borrowable   = (collateral_value * ltv // 1e18 - debt_value) * 1e8 // borrow_price

Debt is always projected to now, so queries never mutate the position.
"""

from __future__ import annotations
from dataclasses import dataclass
import logging

from .accrual import project_debt
from .core import (
    Position, ProtocolParameters, PriceOracle,
    PRECISION, PRICE_PRECISION, MAX_HEALTH_FACTOR, LIQUIDATION_HEALTH_FACTOR,
    ErrorCode, ExternalFailure, LendingError,
)
from .positions import PositionLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Prices:
    """Validated USD prices of both assets at PRICE_PRECISION."""
    collateral_price: int
    borrow_price: int


@dataclass(frozen=True, slots=True)
class RiskAssessment:
    """
    Immutable valuation snapshot of one position.

    All USD figures are in the same units as the valuation formulas above.
    """
    collateral_value_usd: int
    debt_with_interest: int
    debt_value_usd: int
    health_factor: int
    max_borrowable: int

    @property
    def liquidatable(self) -> bool:
        return self.health_factor < LIQUIDATION_HEALTH_FACTOR


# ============================================================================
# PRICE ADAPTER
# ============================================================================

def _read_price(oracle: PriceOracle, asset_id: str) -> int:
    try:
        price = oracle.get_price(asset_id)
    except LendingError:
        raise
    except Exception as exc:
        raise ExternalFailure(
            ErrorCode.INVALID_PRICE, f"price unavailable for {asset_id}: {exc}"
        ) from exc
    if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
        raise ExternalFailure(ErrorCode.INVALID_PRICE, f"invalid price for {asset_id}: {price!r}")
    return price


def fetch_prices(oracle: PriceOracle, collateral_asset: str, borrow_asset: str) -> Prices:
    """
    Read and validate both asset prices.

    Raises:
        ExternalFailure: (INVALID_PRICE) if the oracle fails or returns a
                         missing, non-integer or non-positive price.
    """
    return Prices(
        collateral_price=_read_price(oracle, collateral_asset),
        borrow_price=_read_price(oracle, borrow_asset),
    )


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def collateral_value_usd(collateral_amount: int, collateral_price: int) -> int:
    return collateral_amount * collateral_price // PRICE_PRECISION


def debt_value_usd(debt_with_interest: int, borrow_price: int) -> int:
    return debt_with_interest * borrow_price // PRICE_PRECISION


def calculate_health_factor(
    position: Position,
    parameters: ProtocolParameters,
    prices: Prices,
    now: int,
) -> int:
    """
    Health factor of a position at now.

    PURE FUNCTION - All inputs explicit.

    A value >= 1e18 is healthy. A position without debt reports
    MAX_HEALTH_FACTOR. Dust debt whose USD value floors to zero reports
    the same sentinel instead of dividing by zero.

    Args:
        position: Stored position (interest is projected, not applied)
        parameters: Current protocol parameters
        prices: Validated asset prices
        now: Current unix time in seconds

    Returns:
        Health factor at PRECISION.
    """
    if position.borrowed_amount == 0:
        return MAX_HEALTH_FACTOR

    threshold_value = (
        collateral_value_usd(position.collateral_amount, prices.collateral_price)
        * parameters.liquidation_threshold // PRECISION
    )
    debt = project_debt(position, now, parameters.interest_rate)
    debt_value = debt_value_usd(debt, prices.borrow_price)
    if debt_value == 0:
        return MAX_HEALTH_FACTOR
    return threshold_value * PRECISION // debt_value


def calculate_max_borrowable(
    position: Position,
    parameters: ProtocolParameters,
    prices: Prices,
    now: int,
) -> int:
    """
    Additional borrow-asset units the position can take on at now.

    PURE FUNCTION - All inputs explicit.

    Returns:
        Remaining LTV headroom converted back to borrow-asset units,
        or 0 when the position is at or above its LTV limit.
    """
    max_value = (
        collateral_value_usd(position.collateral_amount, prices.collateral_price)
        * parameters.ltv // PRECISION
    )
    debt = project_debt(position, now, parameters.interest_rate)
    current_value = debt_value_usd(debt, prices.borrow_price)
    if current_value >= max_value:
        return 0
    return (max_value - current_value) * PRICE_PRECISION // prices.borrow_price


def calculate_assessment(
    position: Position,
    parameters: ProtocolParameters,
    prices: Prices,
    now: int,
) -> RiskAssessment:
    """Compute every valuation figure for a position in one pass."""
    debt = project_debt(position, now, parameters.interest_rate)
    return RiskAssessment(
        collateral_value_usd=collateral_value_usd(position.collateral_amount, prices.collateral_price),
        debt_with_interest=debt,
        debt_value_usd=debt_value_usd(debt, prices.borrow_price),
        health_factor=calculate_health_factor(position, parameters, prices, now),
        max_borrowable=calculate_max_borrowable(position, parameters, prices, now),
    )


# ============================================================================
# RISK ENGINE
# ============================================================================

class RiskEngine:
    """
    Account-level risk queries over a PositionLedger and a PriceOracle.

    Every method is read-only. Positions whose interest has not been
    accrued are projected to now.

    Example:
        engine = RiskEngine(positions, oracle, "WETH", "USDC")
        hf = engine.health_factor("alice", parameters, now)
    """

    def __init__(
        self,
        positions: PositionLedger,
        oracle: PriceOracle,
        collateral_asset: str,
        borrow_asset: str,
    ):
        self.positions = positions
        self.oracle = oracle
        self.collateral_asset = collateral_asset
        self.borrow_asset = borrow_asset

    def prices(self) -> Prices:
        """Fetch validated prices for the engine's asset pair."""
        return fetch_prices(self.oracle, self.collateral_asset, self.borrow_asset)

    def health_factor(self, account: str, parameters: ProtocolParameters, now: int) -> int:
        position = self.positions.read(account)
        if position.borrowed_amount == 0:
            # No debt: skip the oracle entirely.
            return MAX_HEALTH_FACTOR
        return calculate_health_factor(position, parameters, self.prices(), now)

    def max_borrowable(self, account: str, parameters: ProtocolParameters, now: int) -> int:
        position = self.positions.read(account)
        return calculate_max_borrowable(position, parameters, self.prices(), now)

    def assess(self, account: str, parameters: ProtocolParameters, now: int) -> RiskAssessment:
        position = self.positions.read(account)
        assessment = calculate_assessment(position, parameters, self.prices(), now)
        logger.debug("Assessed %s: %s", account, assessment)
        return assessment
