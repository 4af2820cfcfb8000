"""Tests for order models."""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from arbcore.models.order import OrderState, TradeOrder, TradeResult


class TestOrderState:
    def test_terminal_states(self) -> None:
        assert OrderState.FILLED.is_terminal is True
        assert OrderState.REJECTED.is_terminal is True
        assert OrderState.ERRORED.is_terminal is True

    def test_non_terminal_states(self) -> None:
        for state in (
            OrderState.CREATED,
            OrderState.QUOTED,
            OrderState.RISK_CHECKED,
            OrderState.COST_ESTIMATED,
            OrderState.SUBMITTED,
        ):
            assert state.is_terminal is False


class TestTradeOrder:
    def test_defaults(self) -> None:
        order = TradeOrder(token_in="USDC", token_out="USDT", amount_in=Decimal("10"), deadline=100)
        assert order.id
        assert order.min_amount_out == Decimal("0")
        assert order.slippage == Decimal("0.5")
        assert order.pair == "USDC/USDT"

    def test_unique_ids(self) -> None:
        a = TradeOrder(token_in="USDC", token_out="USDT", amount_in=Decimal("1"), deadline=1)
        b = TradeOrder(token_in="USDC", token_out="USDT", amount_in=Decimal("1"), deadline=1)
        assert a.id != b.id

    def test_zero_amount_allowed_at_construction(self) -> None:
        order = TradeOrder(token_in="USDC", token_out="USDT", amount_in=Decimal("0"), deadline=1)
        assert order.amount_in == 0

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TradeOrder(token_in="USDC", token_out="USDT", amount_in=Decimal("-1"), deadline=1)

    def test_is_expired(self) -> None:
        order = TradeOrder(token_in="USDC", token_out="USDT", amount_in=Decimal("1"), deadline=100)
        assert order.is_expired(99.5) is False
        assert order.is_expired(100) is True
        assert order.is_expired(101) is True

    def test_frozen(self) -> None:
        order = TradeOrder(token_in="USDC", token_out="USDT", amount_in=Decimal("1"), deadline=1)
        with pytest.raises(ValidationError):
            order.amount_in = Decimal("2")  # type: ignore[misc]


class TestTradeResult:
    def test_success(self) -> None:
        result = TradeResult(success=True, price=Decimal("1"), amount=Decimal("99.9"), tx_hash="0xabc")
        assert result.error is None

    def test_failure_helper(self) -> None:
        result = TradeResult.failure("InsufficientBalance", "need 1000, have 500")
        assert result.success is False
        assert result.error == "InsufficientBalance"
        assert result.message == "need 1000, have 500"

    def test_failure_requires_error(self) -> None:
        with pytest.raises(ValidationError):
            TradeResult(success=False)

    def test_success_cannot_carry_error(self) -> None:
        with pytest.raises(ValidationError):
            TradeResult(success=True, error="CircuitOpen")
