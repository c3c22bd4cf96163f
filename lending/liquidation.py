"""
liquidation.py - Partial Liquidation

A position whose health factor has fallen below 1e18 may be partially
closed by a third party. The liquidator repays part of the debt and
receives collateral worth that debt plus a bonus.

Algorithm for a proposed debt_amount:
    1. max_liquidatable = borrowed // 2
    2. debt_repaid      = min(debt_amount, max_liquidatable)
    3. debt_value       = debt_repaid * borrow_price // 1e8
    4. nominal          = debt_value * (1e18 + bonus) // collateral_price * 1e8 // 1e18
    5. seized           = min(nominal, collateral_amount)

When the position holds less collateral than the nominal amount the
liquidator simply receives less. That shortfall is an accepted outcome,
reported on the result and logged, never raised.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
import logging
from typing import Tuple

from .core import (
    Position, ProtocolParameters,
    PRECISION, PRICE_PRECISION, CLOSE_FACTOR_DIVISOR, LIQUIDATION_HEALTH_FACTOR,
    ErrorCode, RiskError, StateError,
)
from .risk import Prices, debt_value_usd

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Amounts settled by one liquidation.

    Attributes:
        debt_repaid: Borrow-asset units paid by the liquidator
        collateral_seized: Collateral units transferred to the liquidator
        nominal_collateral: Collateral the bonus formula called for
        bonus_shortfall: nominal_collateral - collateral_seized (0 unless capped)
    """
    debt_repaid: int
    collateral_seized: int
    nominal_collateral: int
    bonus_shortfall: int


def is_liquidatable(health_factor: int) -> bool:
    """A position may be liquidated only strictly below a health factor of 1.0."""
    return health_factor < LIQUIDATION_HEALTH_FACTOR


def max_liquidatable(borrowed_amount: int) -> int:
    """Largest debt a single liquidation may close (integer-floor half)."""
    return borrowed_amount // CLOSE_FACTOR_DIVISOR


def calculate_liquidation(
    position: Position,
    debt_amount: int,
    parameters: ProtocolParameters,
    prices: Prices,
) -> LiquidationResult:
    """
    Compute debt repaid and collateral seized for a proposed liquidation.

    PURE FUNCTION - Does not check eligibility; see LiquidationEngine.

    Args:
        position: Position after interest accrual
        debt_amount: Debt the liquidator offers to repay
        parameters: Current protocol parameters (for liquidation_bonus)
        prices: Validated asset prices

    Returns:
        LiquidationResult with the settled amounts.
    """
    repaid = min(debt_amount, max_liquidatable(position.borrowed_amount))
    debt_value = debt_value_usd(repaid, prices.borrow_price)
    nominal = (
        debt_value * (PRECISION + parameters.liquidation_bonus) // prices.collateral_price
        * PRICE_PRECISION // PRECISION
    )
    seized = min(nominal, position.collateral_amount)
    return LiquidationResult(
        debt_repaid=repaid,
        collateral_seized=seized,
        nominal_collateral=nominal,
        bonus_shortfall=nominal - seized,
    )


def apply_liquidation(position: Position, result: LiquidationResult) -> Position:
    """Debit the settled debt and collateral from a position."""
    return replace(
        position,
        borrowed_amount=position.borrowed_amount - result.debt_repaid,
        collateral_amount=position.collateral_amount - result.collateral_seized,
    )


class LiquidationEngine:
    """
    Eligibility gate plus liquidation arithmetic.

    The engine is stateless; the controller supplies a freshly accrued
    position, its health factor and validated prices.
    """

    def liquidate(
        self,
        account: str,
        position: Position,
        debt_amount: int,
        parameters: ProtocolParameters,
        prices: Prices,
        health_factor: int,
    ) -> Tuple[LiquidationResult, Position]:
        """
        Settle a liquidation against an accrued position.

        Returns:
            (result, position after debiting debt and collateral)

        Raises:
            StateError: (NO_DEBT) if the position carries no debt.
            RiskError: (POSITION_HEALTHY) if health_factor >= 1e18.
        """
        if position.borrowed_amount == 0:
            raise StateError(ErrorCode.NO_DEBT, f"{account} has no debt")
        if not is_liquidatable(health_factor):
            raise RiskError(
                ErrorCode.POSITION_HEALTHY,
                f"{account} is healthy (health factor {health_factor})",
            )

        result = calculate_liquidation(position, debt_amount, parameters, prices)
        if result.bonus_shortfall:
            logger.warning(
                "Liquidation of %s capped at available collateral: seized %d of %d",
                account, result.collateral_seized, result.nominal_collateral,
            )
        return result, apply_liquidation(position, result)
