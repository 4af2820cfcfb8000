"""Tests for RiskManager."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from arbcore.config.settings import RiskLimits
from arbcore.models.market import MarketQuote
from arbcore.models.order import TradeOrder
from arbcore.risk.kill_switch import KillSwitch
from arbcore.risk.risk_manager import RiskManager


def _order(amount: str = "100", slippage: str = "0.5", min_out: str = "0") -> TradeOrder:
    return TradeOrder(
        token_in="USDC",
        token_out="USDT",
        amount_in=Decimal(amount),
        min_amount_out=Decimal(min_out),
        slippage=Decimal(slippage),
        deadline=2_000_000_000,
    )


def _quote(price: str = "1") -> MarketQuote:
    return MarketQuote(pair="USDC/USDT", price=Decimal(price), source="Synthetic", timestamp=0.0)


class TestRiskManager:
    def test_approves_within_limits(self) -> None:
        decision = RiskManager().check_order(_order(), _quote())
        assert decision.approved is True
        assert decision.max_size == Decimal("10000")

    def test_rejects_slippage_above_cap(self) -> None:
        decision = RiskManager(max_slippage_pct=Decimal("1")).check_order(_order(slippage="1.5"), _quote())
        assert decision.approved is False
        assert "slippage" in decision.reason

    def test_rejects_oversized_position(self) -> None:
        decision = RiskManager(max_position_size=Decimal("50")).check_order(_order("51"), _quote())
        assert decision.approved is False
        assert "position size" in decision.reason

    def test_rejects_when_quote_cannot_cover_min_out(self) -> None:
        # 100 * 1.0 * (1 - 0.5%) = 99.5 < 99.6
        decision = RiskManager().check_order(_order(min_out="99.6"), _quote())
        assert decision.approved is False
        assert "below minimum" in decision.reason

    def test_accepts_when_quote_covers_min_out(self) -> None:
        assert RiskManager().check_order(_order(min_out="99.5"), _quote()).approved is True

    def test_kill_switch_takes_priority(self) -> None:
        ks = KillSwitch()
        ks._state = {"active": True, "reason": "manual halt", "triggered_at": None}
        decision = RiskManager(kill_switch=ks).check_order(_order(), _quote())
        assert decision.approved is False
        assert "manual halt" in decision.reason


class TestDailyLoss:
    def test_losses_accumulate_until_limit(self) -> None:
        rm = RiskManager(max_daily_loss=Decimal("100"))
        rm.record_pnl(Decimal("-60"))
        assert rm.check_order(_order(), _quote()).approved is True
        rm.record_pnl(Decimal("-40"))
        assert rm.daily_loss == Decimal("100")
        decision = rm.check_order(_order(), _quote())
        assert decision.approved is False
        assert "daily loss" in decision.reason

    def test_profits_do_not_offset_losses(self) -> None:
        rm = RiskManager()
        rm.record_pnl(Decimal("-10"))
        rm.record_pnl(Decimal("50"))
        assert rm.daily_loss == Decimal("10")

    def test_resets_on_new_utc_day(self) -> None:
        current = {"day": date(2024, 1, 1)}

        def today() -> date:
            return current["day"]

        rm = RiskManager(max_daily_loss=Decimal("10"), today=today)
        rm.record_pnl(Decimal("-10"))
        assert rm.check_order(_order(), _quote()).approved is False
        current["day"] = date(2024, 1, 2)
        assert rm.daily_loss == Decimal("0")
        assert rm.check_order(_order(), _quote()).approved is True


class TestFromLimits:
    def test_builds_from_settings(self) -> None:
        rm = RiskManager.from_limits(RiskLimits(max_position_size=Decimal("5")))
        assert rm.check_order(_order("6"), _quote()).approved is False

    @pytest.mark.asyncio()
    async def test_shares_kill_switch(self) -> None:
        ks = KillSwitch()
        rm = RiskManager.from_limits(RiskLimits(), kill_switch=ks)
        await ks.trigger("reserve breach")
        assert rm.kill_switch is ks
        assert rm.check_order(_order(), _quote()).approved is False
