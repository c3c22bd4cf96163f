"""
positions.py - Per-account position store

The PositionLedger holds one Position per account and nothing else. It
applies no business rules: every invariant is enforced by the controller
before a position is written.

Positions are immutable, so a snapshot is a shallow copy of the mapping and
restoring it rolls back every write made since the snapshot was taken.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Tuple

from .core import Position


ZERO_POSITION = Position()

PositionSnapshot = Dict[str, Position]


class PositionLedger:
    """
    Durable store of positions keyed by account id.

    Not thread-safe. The controller is its only writer.

    Example:
        positions = PositionLedger()
        positions.read("alice")            # Position() for untouched accounts
        positions.write("alice", Position(collateral_amount=10))
    """

    def __init__(self):
        self._positions: Dict[str, Position] = {}

    def read(self, account: str) -> Position:
        """Return the account's position, or a zero position if never written."""
        return self._positions.get(account, ZERO_POSITION)

    def write(self, account: str, position: Position) -> None:
        """Replace the account's position."""
        self._positions[account] = position

    def accounts(self) -> List[str]:
        """List every account that has ever been written, sorted."""
        return sorted(self._positions)

    def items(self) -> Iterator[Tuple[str, Position]]:
        """Iterate (account, position) pairs in account order."""
        for account in self.accounts():
            yield account, self._positions[account]

    def snapshot(self) -> PositionSnapshot:
        """Capture the current state for a later restore()."""
        return dict(self._positions)

    def restore(self, snapshot: PositionSnapshot) -> None:
        """Roll the store back to a snapshot taken earlier."""
        self._positions = dict(snapshot)

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, account: str) -> bool:
        return account in self._positions

    def __repr__(self) -> str:
        return f"PositionLedger({len(self._positions)} accounts)"
