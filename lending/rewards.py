"""
rewards.py - Reference rewards collaborator

The lending controller notifies a RewardsDistributor every time an
account's collateral total changes. Reward accrual and claiming live
outside this package; DepositTracker keeps only what a distributor
needs as input: the latest collateral total per account.

Notifications flow one way. The tracker stores the controller's identity
string, never the controller itself, and rejects notifications from any
other caller.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List

from .core import AuthorizationError, ErrorCode


@dataclass(frozen=True, slots=True)
class DepositChange:
    """One notification received by the tracker."""
    account: str
    new_collateral_total: int
    caller: str


class DepositTracker:
    """
    RewardsDistributor that records collateral totals per account.

    Example:
        tracker = DepositTracker(controller_id="lending_pool")
        pool.set_rewards_distributor("admin", tracker)
        tracker.balance_of("alice")
    """

    def __init__(self, controller_id: str):
        self.controller_id = controller_id
        self.balances: Dict[str, int] = {}
        self.history: List[DepositChange] = []

    def notify_deposit_change(self, account: str, new_collateral_total: int, caller: str) -> None:
        """
        Raises:
            AuthorizationError: (UNAUTHORIZED_CALLER) if caller is not the controller
        """
        if caller != self.controller_id:
            raise AuthorizationError(
                ErrorCode.UNAUTHORIZED_CALLER,
                f"{caller!r} is not the lending controller",
            )
        self.balances[account] = new_collateral_total
        self.history.append(DepositChange(account, new_collateral_total, caller))

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def total_tracked(self) -> int:
        return sum(self.balances.values())

    def __repr__(self) -> str:
        return f"DepositTracker({len(self.balances)} accounts, {len(self.history)} notifications)"
