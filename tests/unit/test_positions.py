"""
test_positions.py - Unit tests for the PositionLedger store
"""

from lending import Position, PositionLedger, ZERO_POSITION


def test_untouched_account_reads_zero():
    positions = PositionLedger()
    assert positions.read("alice") == ZERO_POSITION
    assert "alice" not in positions
    assert len(positions) == 0


def test_write_and_read():
    positions = PositionLedger()
    positions.write("bob", Position(collateral_amount=2))
    positions.write("alice", Position(collateral_amount=1))
    assert positions.read("alice").collateral_amount == 1
    assert positions.accounts() == ["alice", "bob"]
    assert [account for account, _ in positions.items()] == ["alice", "bob"]


def test_restore_discards_later_writes():
    positions = PositionLedger()
    positions.write("alice", Position(collateral_amount=1))
    snapshot = positions.snapshot()

    positions.write("alice", Position(collateral_amount=5))
    positions.write("bob", Position(borrowed_amount=3))
    positions.restore(snapshot)

    assert positions.read("alice").collateral_amount == 1
    assert "bob" not in positions


def test_snapshot_is_independent_copy():
    positions = PositionLedger()
    snapshot = positions.snapshot()
    positions.write("alice", Position(collateral_amount=1))
    assert snapshot == {}
