"""
test_accrual.py - Unit tests for simple interest accrual and debt projection
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lending import (
    Position, calculate_interest, accrue, project_debt,
    PRECISION, SECONDS_PER_YEAR,
)
from tests.fakes import E18, T0, DAY, YEAR, ratio


RATE = ratio(5)


class TestCalculateInterest:

    def test_one_year_at_five_percent(self):
        assert calculate_interest(10_000 * E18, RATE, SECONDS_PER_YEAR) == 500 * E18

    def test_floor_rounding(self):
        # 1 * 0.05 * 1s / year is far below one unit
        assert calculate_interest(1, RATE, 1) == 0

    @pytest.mark.parametrize("borrowed, rate, elapsed", [
        (0, RATE, DAY),
        (E18, 0, DAY),
        (E18, RATE, 0),
        (E18, RATE, -5),
    ])
    def test_zero_cases(self, borrowed, rate, elapsed):
        assert calculate_interest(borrowed, rate, elapsed) == 0

    def test_formula(self):
        borrowed, elapsed = 1234 * E18 + 7, 17 * DAY + 3
        expected = borrowed * RATE * elapsed // (PRECISION * SECONDS_PER_YEAR)
        assert calculate_interest(borrowed, RATE, elapsed) == expected


class TestAccrue:

    def test_first_touch_only_stamps_time(self):
        result = accrue(Position(borrowed_amount=100 * E18), T0, RATE)
        assert result.interest == 0
        assert result.position.borrowed_amount == 100 * E18
        assert result.position.last_accrual_timestamp == T0

    def test_no_debt_only_stamps_time(self):
        position = Position(collateral_amount=E18, last_accrual_timestamp=T0)
        result = accrue(position, T0 + DAY, RATE)
        assert result.interest == 0
        assert result.position == Position(collateral_amount=E18, last_accrual_timestamp=T0 + DAY)

    def test_zero_elapsed_is_noop(self):
        position = Position(borrowed_amount=100 * E18, last_accrual_timestamp=T0)
        result = accrue(position, T0, RATE)
        assert result.interest == 0
        assert result.position is position

    def test_year_of_interest_folded_into_debt(self):
        position = Position(collateral_amount=E18, borrowed_amount=10_000 * E18, last_accrual_timestamp=T0)
        result = accrue(position, T0 + YEAR, RATE)
        assert result.interest == 500 * E18
        assert result.position.borrowed_amount == 10_500 * E18
        assert result.position.last_accrual_timestamp == T0 + YEAR
        assert result.position.collateral_amount == E18

    def test_input_not_modified(self):
        position = Position(borrowed_amount=10_000 * E18, last_accrual_timestamp=T0)
        accrue(position, T0 + YEAR, RATE)
        assert position.borrowed_amount == 10_000 * E18

    def test_backwards_clock_rejected(self):
        position = Position(borrowed_amount=E18, last_accrual_timestamp=T0)
        with pytest.raises(ValueError, match="backwards"):
            accrue(position, T0 - 1, RATE)

    def test_repeated_accrual_compounds(self):
        position = Position(borrowed_amount=10_000 * E18, last_accrual_timestamp=T0)
        once = accrue(position, T0 + YEAR, RATE).position
        half = accrue(position, T0 + YEAR // 2, RATE).position
        twice = accrue(half, T0 + YEAR, RATE).position
        assert twice.borrowed_amount > once.borrowed_amount


class TestProjectDebt:

    def test_untouched_position(self):
        assert project_debt(Position(borrowed_amount=7), T0, RATE) == 7

    def test_does_not_stamp(self):
        position = Position(borrowed_amount=10_000 * E18, last_accrual_timestamp=T0)
        assert project_debt(position, T0 + YEAR, RATE) == 10_500 * E18
        assert position.last_accrual_timestamp == T0

    @given(
        borrowed=st.integers(min_value=0, max_value=10 ** 30),
        rate=st.integers(min_value=0, max_value=PRECISION),
        elapsed=st.integers(min_value=0, max_value=10 * SECONDS_PER_YEAR),
    )
    @settings(max_examples=100)
    def test_projection_matches_accrual(self, borrowed, rate, elapsed):
        """PROPERTY: project_debt() and accrue() agree bit for bit."""
        position = Position(borrowed_amount=borrowed, last_accrual_timestamp=T0)
        projected = project_debt(position, T0 + elapsed, rate)
        accrued = accrue(position, T0 + elapsed, rate)
        assert projected == accrued.position.borrowed_amount
        assert accrued.interest == projected - borrowed
