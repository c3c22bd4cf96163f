"""
test_types.py - Unit tests for core types, validation and the error taxonomy
"""

import pytest
from dataclasses import FrozenInstanceError

from lending import (
    Position, ErrorCode,
    LendingError, ValidationError, StateError, RiskError,
    AuthorizationError, PausedError, ExternalFailure,
    validate_amount, validate_account, validate_interest_rate,
    PRECISION, MAX_LIQUIDATION_BONUS,
)
from tests.fakes import ratio, default_parameters


class TestPosition:

    def test_defaults_are_zero(self):
        position = Position()
        assert position.collateral_amount == 0
        assert position.borrowed_amount == 0
        assert position.last_accrual_timestamp == 0
        assert not position.has_debt

    def test_is_immutable(self):
        position = Position(collateral_amount=5)
        with pytest.raises(FrozenInstanceError):
            position.collateral_amount = 10

    def test_negative_collateral_rejected(self):
        with pytest.raises(ValueError, match="collateral_amount"):
            Position(collateral_amount=-1)

    def test_negative_debt_rejected(self):
        with pytest.raises(ValueError, match="borrowed_amount"):
            Position(borrowed_amount=-1)

    def test_has_debt(self):
        assert Position(borrowed_amount=1).has_debt


class TestProtocolParameters:

    def test_default_parameters_valid(self):
        default_parameters().validate()

    def test_threshold_may_equal_one(self):
        default_parameters(liquidation_threshold=PRECISION).validate()

    def test_bonus_may_be_half(self):
        default_parameters(liquidation_bonus=MAX_LIQUIDATION_BONUS).validate()

    @pytest.mark.parametrize("overrides", [
        dict(ltv=ratio(80)),                               # ltv == threshold
        dict(ltv=ratio(85)),                               # ltv > threshold
        dict(ltv=0),
        dict(liquidation_threshold=PRECISION + 1),
        dict(liquidation_bonus=MAX_LIQUIDATION_BONUS + 1),
        dict(liquidation_bonus=-1),
        dict(interest_rate=PRECISION + 1),
        dict(interest_rate=-1),
        dict(ltv=0.75),
        dict(liquidation_bonus=True),
    ])
    def test_invalid_parameters(self, overrides):
        with pytest.raises(ValidationError) as exc_info:
            default_parameters(**overrides).validate()
        assert exc_info.value.code == ErrorCode.INVALID_PARAMETERS


class TestValidation:

    @pytest.mark.parametrize("amount", [0, -1, True, 1.5, "10", None])
    def test_invalid_amounts(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            validate_amount(amount)
        assert exc_info.value.code == ErrorCode.INVALID_AMOUNT

    def test_valid_amount(self):
        validate_amount(1)
        validate_amount(10 ** 40)

    @pytest.mark.parametrize("account", ["", "   ", None, 42])
    def test_invalid_accounts(self, account):
        with pytest.raises(ValidationError) as exc_info:
            validate_account(account)
        assert exc_info.value.code == ErrorCode.INVALID_ACCOUNT

    def test_interest_rate_bounds(self):
        validate_interest_rate(0)
        validate_interest_rate(PRECISION)
        with pytest.raises(ValidationError):
            validate_interest_rate(PRECISION + 1)


class TestErrorTaxonomy:

    @pytest.mark.parametrize("cls, category", [
        (ValidationError, "validation"),
        (StateError, "state"),
        (RiskError, "risk"),
        (AuthorizationError, "authorization"),
        (ExternalFailure, "external"),
    ])
    def test_categories(self, cls, category):
        error = cls(ErrorCode.NO_DEBT, "message")
        assert isinstance(error, LendingError)
        assert error.category == category
        assert error.code == ErrorCode.NO_DEBT
        assert str(error) == "message"

    def test_paused_error_has_fixed_code(self):
        error = PausedError()
        assert error.code == ErrorCode.PAUSED
        assert error.category == "paused"

    def test_message_defaults_to_code(self):
        assert str(StateError(ErrorCode.NO_COLLATERAL)) == "no_collateral"

    def test_repr_includes_code(self):
        assert "no_debt" in repr(StateError(ErrorCode.NO_DEBT, "x"))
