"""
fakes.py - Test helpers for the lending engine

Provides a ready-made "world" (asset ledger, oracle, rewards tracker and
controller wired together) and collaborator fakes that fail, misbehave or
call back into the controller.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from lending import (
    AssetLedger, LedgerAssetTransfer, StaticPriceOracle, DepositTracker,
    ProtocolController, ProtocolParameters, LendingError,
    PRECISION, usd,
)


E18 = PRECISION
T0 = 1_700_000_000
DAY = 24 * 60 * 60
YEAR = 365 * DAY

ADMIN = "admin"
POOL = "lending_pool"
ACCOUNTS = ("alice", "bob", "carol")


def ratio(percent) -> int:
    """ratio(75) == 0.75e18"""
    return int(Decimal(str(percent)) * PRECISION) // 100


def default_parameters(**overrides) -> ProtocolParameters:
    values = dict(ltv=ratio(75), liquidation_threshold=ratio(80),
                  liquidation_bonus=ratio(10), interest_rate=ratio(5))
    values.update(overrides)
    return ProtocolParameters(**values)


@dataclass
class World:
    assets: AssetLedger
    oracle: StaticPriceOracle
    tracker: DepositTracker
    pool: ProtocolController


def build_world(
    parameters: Optional[ProtocolParameters] = None,
    collateral_each: int = 100 * E18,
    stable_each: int = 1_000_000 * E18,
    pool_liquidity: int = 10_000_000 * E18,
    with_rewards: bool = True,
) -> World:
    """WETH collateral at $2000, USDC debt at $1, three funded accounts."""
    assets = AssetLedger("tokens")
    assets.register_asset("WETH")
    assets.register_asset("USDC")
    assets.register_wallet(POOL)
    assets.mint("USDC", POOL, pool_liquidity)
    for account in ACCOUNTS:
        assets.register_wallet(account)
        assets.mint("WETH", account, collateral_each)
        assets.mint("USDC", account, stable_each)

    oracle = StaticPriceOracle({"WETH": usd(2000), "USDC": usd(1)}, timestamp=T0)
    tracker = DepositTracker(POOL)
    pool = ProtocolController(
        admin=ADMIN,
        oracle=oracle,
        collateral_token=LedgerAssetTransfer(assets, "WETH", POOL),
        borrow_token=LedgerAssetTransfer(assets, "USDC", POOL),
        parameters=parameters or default_parameters(),
        collateral_asset="WETH",
        borrow_asset="USDC",
        rewards=tracker if with_rewards else None,
        identity=POOL,
        initial_time=T0,
    )
    return World(assets, oracle, tracker, pool)


def observable_state(world: World) -> Tuple[Any, ...]:
    """Everything an operation may change, for before/after comparison."""
    balances = {
        (wallet, asset): amount
        for wallet, per_asset in world.assets.balances.items()
        for asset, amount in per_asset.items()
        if amount
    }
    return (
        dict(world.pool.positions.items()),
        world.pool.total_collateral,
        world.pool.total_borrowed,
        balances,
        dict(world.tracker.balances),
        len(world.pool.operation_log),
    )


# =============================================================================
# FAILING COLLABORATORS
# =============================================================================

class FailingTransfer:
    """Wraps an AssetTransfer and fails pull and/or push on demand."""

    def __init__(self, inner, fail_pull: bool = False, fail_push: bool = False,
                 error: Optional[Exception] = None):
        self.inner = inner
        self.fail_pull = fail_pull
        self.fail_push = fail_push
        self.error = error

    def pull(self, source: str, amount: int) -> None:
        if self.fail_pull:
            raise self.error or RuntimeError(f"pull of {amount} rejected")
        self.inner.pull(source, amount)

    def push(self, dest: str, amount: int) -> None:
        if self.fail_push:
            raise self.error or RuntimeError(f"push of {amount} rejected")
        self.inner.push(dest, amount)


class FailingRewards:
    """Rewards distributor that accepts `succeed` notifications, then raises."""

    def __init__(self, succeed: int = 0, error: Optional[Exception] = None):
        self.remaining = succeed
        self.error = error
        self.calls: List[Tuple[str, int, str]] = []

    def notify_deposit_change(self, account: str, new_collateral_total: int, caller: str) -> None:
        self.calls.append((account, new_collateral_total, caller))
        if self.remaining <= 0:
            raise self.error or RuntimeError("rewards offline")
        self.remaining -= 1


class BrokenOracle:
    """Oracle returning a fixed (possibly invalid) value or raising."""

    def __init__(self, value: Any = None, error: Optional[Exception] = None):
        self.value = value
        self.error = error
        self.calls = 0

    def get_price(self, asset_id: str):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.value

    def get_price_with_timestamp(self, asset_id: str):
        return self.get_price(asset_id), T0


# =============================================================================
# CALLBACK COLLABORATORS
# =============================================================================

class ReentrantTransfer:
    """
    Wraps an AssetTransfer and runs `reenter` before forwarding each call.

    LendingErrors raised by the callback are captured in `errors` so the
    outer operation can carry on.
    """

    def __init__(self, inner, reenter: Optional[Callable[[], Any]] = None):
        self.inner = inner
        self.reenter = reenter
        self.errors: List[LendingError] = []
        self.results: List[Any] = []

    def _callback(self) -> None:
        if self.reenter is None:
            return
        try:
            self.results.append(self.reenter())
        except LendingError as exc:
            self.errors.append(exc)

    def pull(self, source: str, amount: int) -> None:
        self._callback()
        self.inner.pull(source, amount)

    def push(self, dest: str, amount: int) -> None:
        self._callback()
        self.inner.push(dest, amount)


class ReentrantRewards:
    """Rewards distributor that calls back into the controller."""

    def __init__(self, reenter: Callable[[], Any]):
        self.reenter = reenter
        self.errors: List[LendingError] = []

    def notify_deposit_change(self, account: str, new_collateral_total: int, caller: str) -> None:
        try:
            self.reenter()
        except LendingError as exc:
            self.errors.append(exc)


class RecordingListener:
    def __init__(self):
        self.events: List[Tuple[str, int, int]] = []

    def __call__(self, account: str, interest: int, new_debt: int) -> None:
        self.events.append((account, interest, new_debt))


class FailingListener:
    def __call__(self, account: str, interest: int, new_debt: int) -> None:
        raise RuntimeError("listener exploded")


def balances_of(world: World, account: str) -> Dict[str, int]:
    return {asset: world.assets.get_balance(account, asset) for asset in ("WETH", "USDC")}
