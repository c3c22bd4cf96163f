"""
controller.py - Lending Protocol Controller

The ProtocolController is the only component that mutates positions. It
orchestrates the five mutating operations (deposit, withdraw, borrow,
repay, liquidate) on top of the PositionLedger, the accrual functions,
the RiskEngine and the LiquidationEngine, and calls out to the asset,
oracle and rewards collaborators.

Key responsibilities:
    - Single-flight execution: a nested call into any mutating operation
      while one is running fails immediately (reentrancy guard)
    - All-or-nothing: positions and totals are snapshotted before every
      operation and restored on any error; external effects that already
      happened are compensated in reverse order
    - Pause gate for mutating operations; queries always work
    - Administrator-gated parameter changes
    - Incrementally maintained totals and an audit log of completed operations
    - Logical clock that only moves forward
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Tuple
import logging
import time

from .accrual import AccrualResult, accrue, project_debt
from .core import (
    Position, ProtocolParameters,
    PriceOracle, AssetTransfer, RewardsDistributor, AccrualListener,
    LIQUIDATION_HEALTH_FACTOR,
    ErrorCode, LendingError, StateError, RiskError,
    AuthorizationError, PausedError, ExternalFailure,
    validate_amount, validate_account, validate_interest_rate,
)
from .liquidation import LiquidationEngine, LiquidationResult
from .positions import PositionLedger
from .risk import RiskAssessment, RiskEngine, calculate_health_factor, calculate_max_borrowable

if TYPE_CHECKING:
    from .config import LendingSettings

logger = logging.getLogger(__name__)


DEFAULT_IDENTITY = "lending_pool"


class OperationKind(Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    LIQUIDATE = "liquidate"


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    Immutable audit record of one completed mutating operation.

    Attributes:
        sequence: Monotonic position in the controller's operation log
        kind: Which operation ran
        caller: Account that invoked it (the liquidator for LIQUIDATE)
        account: Position that changed
        amount: Amount requested by the caller
        collateral_delta: Signed change of the position's collateral
        debt_delta: Signed change of the position's debt, excluding interest
        interest_accrued: Interest folded into the debt during the operation
        timestamp: Controller time at execution
    """
    sequence: int
    kind: OperationKind
    caller: str
    account: str
    amount: int
    collateral_delta: int
    debt_delta: int
    interest_accrued: int
    timestamp: int


class _Operation:
    """
    State of the mutating operation in flight.

    Holds the parameters and time the operation runs with, the undo
    actions for external effects already performed, the notifications
    held back until it commits, and the figures for its audit record.
    """

    def __init__(self, kind: OperationKind, caller: str, parameters: ProtocolParameters, now: int):
        self.kind = kind
        self.caller = caller
        self.parameters = parameters
        self.now = now
        self.account = caller
        self.amount = 0
        self.collateral_delta = 0
        self.debt_delta = 0
        self.interest_accrued = 0
        self._compensations: List[Tuple[str, Callable[[], None]]] = []
        self._deferred: List[Tuple[str, Callable[[], None]]] = []

    def on_rollback(self, description: str, action: Callable[[], None]) -> None:
        self._compensations.append((description, action))

    def after_commit(self, description: str, action: Callable[[], None]) -> None:
        self._deferred.append((description, action))

    def take_deferred(self) -> List[Tuple[str, Callable[[], None]]]:
        deferred, self._deferred = self._deferred, []
        return deferred

    def rollback(self) -> None:
        """Undo external effects, newest first."""
        for description, action in reversed(self._compensations):
            try:
                action()
            except Exception:
                logger.exception("Compensation failed during %s rollback: %s", self.kind.value, description)
        self._compensations.clear()
        self._deferred.clear()


class ProtocolController:
    """
    Overcollateralized lending pool for one collateral / borrow asset pair.

    Identities are plain strings and trusted as given.

    Example:
        pool = ProtocolController(
            admin="admin",
            oracle=oracle,
            collateral_token=LedgerAssetTransfer(assets, "WETH", "lending_pool"),
            borrow_token=LedgerAssetTransfer(assets, "USDC", "lending_pool"),
            parameters=ProtocolParameters(
                ltv=75 * 10**16, liquidation_threshold=80 * 10**16,
                liquidation_bonus=10 * 10**16, interest_rate=5 * 10**16,
            ),
            collateral_asset="WETH",
            borrow_asset="USDC",
        )
        pool.deposit("alice", 10 * 10**18)
        pool.borrow("alice", 10_000 * 10**18)
    """

    def __init__(
        self,
        admin: str,
        oracle: PriceOracle,
        collateral_token: AssetTransfer,
        borrow_token: AssetTransfer,
        parameters: ProtocolParameters,
        collateral_asset: str = "COLLATERAL",
        borrow_asset: str = "BORROW",
        rewards: Optional[RewardsDistributor] = None,
        identity: str = DEFAULT_IDENTITY,
        initial_time: Optional[int] = None,
        positions: Optional[PositionLedger] = None,
        paused: bool = False,
    ):
        """
        Create a controller.

        Args:
            admin: The single administrator identity
            oracle: USD price feed for both assets
            collateral_token: Transfer adapter for the collateral asset
            borrow_token: Transfer adapter for the borrow asset
            parameters: Initial protocol parameters (validated)
            collateral_asset: Oracle id of the collateral asset
            borrow_asset: Oracle id of the borrow asset
            rewards: Optional collateral-change notification receiver
            identity: Identity presented to collaborators
            initial_time: Starting unix time (default: now)
            positions: Existing position store (totals are recomputed from it)
            paused: Start in the paused state

        Raises:
            ValidationError: If admin is empty or parameters are invalid
            ValueError: If initial_time is not positive
        """
        validate_account(admin)
        parameters.validate()
        if initial_time is None:
            initial_time = int(time.time())
        if initial_time <= 0:
            raise ValueError(f"initial_time must be positive, got {initial_time}")

        self.admin = admin
        self.identity = identity
        self.collateral_token = collateral_token
        self.borrow_token = borrow_token
        self.positions = positions if positions is not None else PositionLedger()
        self.risk = RiskEngine(self.positions, oracle, collateral_asset, borrow_asset)
        self.liquidations = LiquidationEngine()
        self.operation_log: List[OperationRecord] = []

        self._parameters = parameters
        self._paused = paused
        self._rewards = rewards
        self._current_time = initial_time
        self._busy = False
        self._accrual_listeners: Dict[str, AccrualListener] = {}
        self._total_collateral = sum(p.collateral_amount for _, p in self.positions.items())
        self._total_borrowed = sum(p.borrowed_amount for _, p in self.positions.items())

    @classmethod
    def from_settings(
        cls,
        settings: LendingSettings,
        oracle: PriceOracle,
        collateral_token: AssetTransfer,
        borrow_token: AssetTransfer,
        rewards: Optional[RewardsDistributor] = None,
        initial_time: Optional[int] = None,
    ) -> ProtocolController:
        """Build a controller from a config.LendingSettings."""
        return cls(
            admin=settings.admin,
            oracle=oracle,
            collateral_token=collateral_token,
            borrow_token=borrow_token,
            parameters=settings.parameters,
            collateral_asset=settings.collateral_asset,
            borrow_asset=settings.borrow_asset,
            rewards=rewards,
            identity=settings.identity,
            initial_time=initial_time,
            paused=settings.paused,
        )

    # ========================================================================
    # TIME
    # ========================================================================

    @property
    def current_time(self) -> int:
        """Current logical time (unix seconds)."""
        return self._current_time

    def advance_time(self, new_time: int) -> None:
        """
        Move the logical clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._current_time}")
        self._current_time = new_time

    # ========================================================================
    # QUERIES (side-effect free)
    # ========================================================================

    @property
    def parameters(self) -> ProtocolParameters:
        return self._parameters

    @property
    def ltv(self) -> int:
        return self._parameters.ltv

    @property
    def liquidation_threshold(self) -> int:
        return self._parameters.liquidation_threshold

    @property
    def liquidation_bonus(self) -> int:
        return self._parameters.liquidation_bonus

    @property
    def interest_rate(self) -> int:
        return self._parameters.interest_rate

    @property
    def total_collateral(self) -> int:
        return self._total_collateral

    @property
    def total_borrowed(self) -> int:
        return self._total_borrowed

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def rewards_distributor(self) -> Optional[RewardsDistributor]:
        return self._rewards

    def get_position(self, account: str) -> Position:
        """Stored position, without pending interest."""
        return self.positions.read(account)

    def debt_of(self, account: str) -> int:
        """Debt including interest projected to the current time."""
        return project_debt(self.positions.read(account), self._current_time, self._parameters.interest_rate)

    def health_factor(self, account: str) -> int:
        return self.risk.health_factor(account, self._parameters, self._current_time)

    def max_borrowable(self, account: str) -> int:
        return self.risk.max_borrowable(account, self._parameters, self._current_time)

    def assess(self, account: str) -> RiskAssessment:
        return self.risk.assess(account, self._parameters, self._current_time)

    def verify_totals(self) -> Dict[str, Any]:
        """
        Recompute the totals from every position and compare.

        Returns:
            Dict with keys:
            - 'valid': bool - True if both running totals match the sums
            - 'total_collateral', 'total_borrowed': the running totals
            - 'discrepancies': list of {'total', 'expected', 'actual'}
        """
        collateral_sum = 0
        borrowed_sum = 0
        for _, position in self.positions.items():
            collateral_sum += position.collateral_amount
            borrowed_sum += position.borrowed_amount

        discrepancies = []
        if collateral_sum != self._total_collateral:
            discrepancies.append({
                'total': 'total_collateral',
                'expected': collateral_sum,
                'actual': self._total_collateral,
            })
        if borrowed_sum != self._total_borrowed:
            discrepancies.append({
                'total': 'total_borrowed',
                'expected': borrowed_sum,
                'actual': self._total_borrowed,
            })
        return {
            'valid': not discrepancies,
            'total_collateral': self._total_collateral,
            'total_borrowed': self._total_borrowed,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # ADMINISTRATION (admin only, bypasses pause)
    # ========================================================================

    def _require_admin(self, caller: str) -> None:
        if caller != self.admin:
            raise AuthorizationError(ErrorCode.NOT_ADMINISTRATOR, f"{caller!r} is not the administrator")

    def set_parameters(self, caller: str, ltv: int, liquidation_threshold: int, liquidation_bonus: int) -> None:
        """
        Replace the risk parameters.

        Raises:
            AuthorizationError: (NOT_ADMINISTRATOR) for any caller but the admin
            ValidationError: (INVALID_PARAMETERS) unless
                ltv < liquidation_threshold <= 1e18 and liquidation_bonus <= 0.5e18
        """
        self._require_admin(caller)
        updated = replace(
            self._parameters,
            ltv=ltv,
            liquidation_threshold=liquidation_threshold,
            liquidation_bonus=liquidation_bonus,
        )
        updated.validate()
        self._parameters = updated
        logger.info("Parameters set: ltv=%d threshold=%d bonus=%d", ltv, liquidation_threshold, liquidation_bonus)

    def set_interest_rate(self, caller: str, rate: int) -> None:
        """
        Replace the annual interest rate.

        Only the 100% ceiling is enforced. Existing debt is not accrued at
        the old rate first: the next touch of each position uses the new one.
        """
        self._require_admin(caller)
        validate_interest_rate(rate)
        self._parameters = replace(self._parameters, interest_rate=rate)
        logger.info("Interest rate set to %d", rate)

    def pause(self, caller: str) -> None:
        self._require_admin(caller)
        self._paused = True
        logger.warning("Protocol paused by %s", caller)

    def unpause(self, caller: str) -> None:
        self._require_admin(caller)
        self._paused = False
        logger.info("Protocol unpaused by %s", caller)

    def set_rewards_distributor(self, caller: str, distributor: Optional[RewardsDistributor]) -> None:
        """Install or remove (None) the rewards collaborator."""
        self._require_admin(caller)
        self._rewards = distributor
        logger.info("Rewards distributor set to %r", distributor)

    def set_accrual_listener(self, caller: str, listener: Optional[AccrualListener]) -> None:
        """
        Opt the caller's own position into accrual notifications.

        The listener is called as listener(account, interest, new_debt)
        whenever a mutating operation folds positive interest into the
        caller's debt. Passing None removes it.
        """
        validate_account(caller)
        if listener is None:
            self._accrual_listeners.pop(caller, None)
        else:
            self._accrual_listeners[caller] = listener

    # ========================================================================
    # OPERATION PLUMBING
    # ========================================================================

    @contextmanager
    def _mutation(self, kind: OperationKind, caller: str) -> Iterator[_Operation]:
        """
        Run one mutating operation under the guard, pause gate and rollback.

        The reentrancy check comes first and raises without touching the
        busy flag, so a rejected nested call leaves the outer one running.
        Accrual listeners run after the body succeeds and before the record
        is written; a failing listener still rolls the operation back.
        """
        if self._busy:
            raise StateError(
                ErrorCode.REENTRANT_CALL,
                f"{kind.value} called while another operation is in progress",
            )
        self._busy = True
        try:
            if self._paused:
                raise PausedError(f"{kind.value} rejected: protocol is paused")
            validate_account(caller)

            op = _Operation(kind, caller, self._parameters, self._current_time)
            snapshot = self.positions.snapshot()
            totals = (self._total_collateral, self._total_borrowed)
            try:
                yield op
                for description, action in op.take_deferred():
                    self._call_external(ErrorCode.LISTENER_FAILED, description, action)
            except Exception:
                op.rollback()
                self.positions.restore(snapshot)
                self._total_collateral, self._total_borrowed = totals
                raise
            self._record(op)
        except LendingError as exc:
            logger.warning("Rejected %s by %s: %s (%s)", kind.value, caller, exc.code.value, exc)
            raise
        finally:
            self._busy = False

    def _record(self, op: _Operation) -> None:
        record = OperationRecord(
            sequence=len(self.operation_log),
            kind=op.kind,
            caller=op.caller,
            account=op.account,
            amount=op.amount,
            collateral_delta=op.collateral_delta,
            debt_delta=op.debt_delta,
            interest_accrued=op.interest_accrued,
            timestamp=op.now,
        )
        self.operation_log.append(record)
        logger.info(
            "%s by %s on %s: amount=%d collateral%+d debt%+d interest=%d",
            op.kind.value, op.caller, op.account, op.amount,
            op.collateral_delta, op.debt_delta, op.interest_accrued,
        )

    def _accrue(self, account: str, op: _Operation) -> AccrualResult:
        """Fold pending interest into the stored position and the totals."""
        result = accrue(self.positions.read(account), op.now, op.parameters.interest_rate)
        self.positions.write(account, result.position)
        if result.interest:
            self._total_borrowed += result.interest
            op.interest_accrued += result.interest
            listener = self._accrual_listeners.get(account)
            if listener is not None:
                # Delivered after the operation body succeeds.
                op.after_commit(
                    f"accrual listener for {account}",
                    lambda: listener(account, result.interest, result.position.borrowed_amount),
                )
        return result

    @staticmethod
    def _call_external(code: ErrorCode, description: str, action: Callable[[], None]) -> None:
        try:
            action()
        except LendingError:
            raise
        except Exception as exc:
            raise ExternalFailure(code, f"{description} failed: {exc}") from exc

    def _pull(self, token: AssetTransfer, source: str, amount: int, op: _Operation) -> None:
        if amount == 0:
            return
        self._call_external(ErrorCode.TRANSFER_FAILED, f"pull of {amount} from {source}",
                            lambda: token.pull(source, amount))
        op.on_rollback(f"push {amount} back to {source}", lambda: token.push(source, amount))

    def _push(self, token: AssetTransfer, dest: str, amount: int, op: _Operation) -> None:
        if amount == 0:
            return
        self._call_external(ErrorCode.TRANSFER_FAILED, f"push of {amount} to {dest}",
                            lambda: token.push(dest, amount))
        op.on_rollback(f"pull {amount} back from {dest}", lambda: token.pull(dest, amount))

    def _notify_rewards(self, account: str, new_total: int, previous_total: int, op: _Operation) -> None:
        rewards = self._rewards
        if rewards is None:
            return
        self._call_external(ErrorCode.REWARDS_FAILED, f"rewards notification for {account}",
                            lambda: rewards.notify_deposit_change(account, new_total, self.identity))
        op.on_rollback(
            f"restore rewards total {previous_total} for {account}",
            lambda: rewards.notify_deposit_change(account, previous_total, self.identity),
        )

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    def deposit(self, caller: str, amount: int) -> None:
        """
        Deposit collateral.

        Raises:
            ValidationError: amount not a positive int
            PausedError: protocol paused
            ExternalFailure: collateral transfer or rewards notification failed
        """
        with self._mutation(OperationKind.DEPOSIT, caller) as op:
            validate_amount(amount)
            self._pull(self.collateral_token, caller, amount, op)

            position = self.positions.read(caller)
            updated = replace(position, collateral_amount=position.collateral_amount + amount)
            self.positions.write(caller, updated)
            self._total_collateral += amount
            self._notify_rewards(caller, updated.collateral_amount, position.collateral_amount, op)

            op.amount = amount
            op.collateral_delta = amount

    def withdraw(self, caller: str, amount: int) -> None:
        """
        Withdraw collateral, keeping an indebted position healthy.

        Raises:
            ValidationError: amount not a positive int
            StateError: (INSUFFICIENT_COLLATERAL) amount exceeds the collateral
            RiskError: (UNHEALTHY_POSITION) resulting health factor below 1e18
            PausedError: protocol paused
            ExternalFailure: price, transfer or rewards failure
        """
        with self._mutation(OperationKind.WITHDRAW, caller) as op:
            validate_amount(amount)
            deposited = self.positions.read(caller).collateral_amount
            if amount > deposited:
                raise StateError(
                    ErrorCode.INSUFFICIENT_COLLATERAL,
                    f"{caller} cannot withdraw {amount}: only {deposited} deposited",
                )

            position = self._accrue(caller, op).position
            remaining = position.collateral_amount - amount
            self._notify_rewards(caller, remaining, position.collateral_amount, op)

            position = replace(position, collateral_amount=remaining)
            self.positions.write(caller, position)
            self._total_collateral -= amount

            if position.borrowed_amount > 0:
                health = calculate_health_factor(position, op.parameters, self.risk.prices(), op.now)
                if health < LIQUIDATION_HEALTH_FACTOR:
                    raise RiskError(
                        ErrorCode.UNHEALTHY_POSITION,
                        f"withdrawing {amount} would leave {caller} at health factor {health}",
                    )

            self._push(self.collateral_token, caller, amount, op)
            op.amount = amount
            op.collateral_delta = -amount

    def borrow(self, caller: str, amount: int) -> None:
        """
        Borrow against deposited collateral, up to the LTV limit.

        Raises:
            ValidationError: amount not a positive int
            StateError: (NO_COLLATERAL) nothing deposited;
                        (BORROW_LIMIT_EXCEEDED) amount above max_borrowable
            PausedError: protocol paused
            ExternalFailure: price or transfer failure
        """
        with self._mutation(OperationKind.BORROW, caller) as op:
            validate_amount(amount)
            if self.positions.read(caller).collateral_amount == 0:
                raise StateError(ErrorCode.NO_COLLATERAL, f"{caller} has no collateral")

            position = self._accrue(caller, op).position
            limit = calculate_max_borrowable(position, op.parameters, self.risk.prices(), op.now)
            if amount > limit:
                raise StateError(
                    ErrorCode.BORROW_LIMIT_EXCEEDED,
                    f"{caller} cannot borrow {amount}: limit is {limit}",
                )

            self.positions.write(caller, replace(
                position,
                borrowed_amount=position.borrowed_amount + amount,
                last_accrual_timestamp=op.now,
            ))
            self._total_borrowed += amount
            self._push(self.borrow_token, caller, amount, op)

            op.amount = amount
            op.debt_delta = amount

    def repay(self, caller: str, amount: int) -> int:
        """
        Repay debt. Over-payment is capped at the outstanding debt.

        Returns:
            The amount actually pulled from the caller.

        Raises:
            ValidationError: amount not a positive int
            StateError: (NO_DEBT) nothing to repay
            PausedError: protocol paused
            ExternalFailure: transfer failure
        """
        with self._mutation(OperationKind.REPAY, caller) as op:
            validate_amount(amount)
            if self.positions.read(caller).borrowed_amount == 0:
                raise StateError(ErrorCode.NO_DEBT, f"{caller} has no debt")

            position = self._accrue(caller, op).position
            actual = min(amount, position.borrowed_amount)
            self._pull(self.borrow_token, caller, actual, op)

            self.positions.write(caller, replace(position, borrowed_amount=position.borrowed_amount - actual))
            self._total_borrowed -= actual

            op.amount = amount
            op.debt_delta = -actual
        return actual

    def liquidate(self, caller: str, account: str, debt_amount: int) -> LiquidationResult:
        """
        Repay part of an unhealthy position's debt in exchange for its collateral.

        At most half of the accrued debt is closed per call. The liquidator
        pays the repaid debt and receives the seized collateral, which may
        fall short of the nominal bonus when collateral runs out.

        Returns:
            LiquidationResult with the settled amounts.

        Raises:
            ValidationError: invalid account or debt_amount not a positive int
            StateError: (NO_DEBT) target has no debt
            RiskError: (POSITION_HEALTHY) target health factor >= 1e18
            PausedError: protocol paused
            ExternalFailure: price, transfer or rewards failure
        """
        with self._mutation(OperationKind.LIQUIDATE, caller) as op:
            validate_account(account)
            validate_amount(debt_amount)
            if self.positions.read(account).borrowed_amount == 0:
                raise StateError(ErrorCode.NO_DEBT, f"{account} has no debt")

            position = self._accrue(account, op).position
            prices = self.risk.prices()
            health = calculate_health_factor(position, op.parameters, prices, op.now)
            result, updated = self.liquidations.liquidate(
                account, position, debt_amount, op.parameters, prices, health,
            )

            self.positions.write(account, updated)
            self._total_borrowed -= result.debt_repaid
            self._total_collateral -= result.collateral_seized
            if result.collateral_seized:
                self._notify_rewards(account, updated.collateral_amount, position.collateral_amount, op)

            self._pull(self.borrow_token, caller, result.debt_repaid, op)
            self._push(self.collateral_token, caller, result.collateral_seized, op)

            op.account = account
            op.amount = debt_amount
            op.collateral_delta = -result.collateral_seized
            op.debt_delta = -result.debt_repaid
        return result

    def __repr__(self) -> str:
        state = "paused" if self._paused else "active"
        return (f"ProtocolController({self.identity}, {state}, "
                f"collateral={self._total_collateral}, borrowed={self._total_borrowed})")
