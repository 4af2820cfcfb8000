"""Pre-trade risk gate. Validates every order before cost estimation."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from arbcore.core.logging import get_logger
from arbcore.interfaces import RiskDecision
from arbcore.risk.kill_switch import KillSwitch

if TYPE_CHECKING:
    from arbcore.config.settings import RiskLimits
    from arbcore.models.market import MarketQuote
    from arbcore.models.order import TradeOrder

log = get_logger(__name__)


def _utc_today() -> date:
    return datetime.now(tz=UTC).date()


class RiskManager:
    """Checks slippage, position size, daily loss and expected output."""

    def __init__(
        self,
        max_position_size: Decimal = Decimal("10000"),
        max_daily_loss: Decimal = Decimal("500"),
        max_slippage_pct: Decimal = Decimal("1.0"),
        kill_switch: KillSwitch | None = None,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._max_position_size = max_position_size
        self._max_daily_loss = max_daily_loss
        self._max_slippage_pct = max_slippage_pct
        self._kill_switch = kill_switch or KillSwitch()
        self._today = today
        self._loss_day = today()
        self._daily_loss = Decimal("0")

    @classmethod
    def from_limits(cls, limits: RiskLimits, kill_switch: KillSwitch | None = None) -> RiskManager:
        return cls(
            max_position_size=limits.max_position_size,
            max_daily_loss=limits.max_daily_loss,
            max_slippage_pct=limits.max_slippage_pct,
            kill_switch=kill_switch,
        )

    @property
    def kill_switch(self) -> KillSwitch:
        return self._kill_switch

    @property
    def daily_loss(self) -> Decimal:
        self._roll_day()
        return self._daily_loss

    def record_pnl(self, pnl: Decimal) -> None:
        """Feed realized P&L (negative = loss) into the daily-loss tracker."""
        self._roll_day()
        if pnl < 0:
            self._daily_loss += -pnl
            log.info("risk.loss_recorded", pnl=str(pnl), daily_loss=str(self._daily_loss))

    def check_order(self, order: TradeOrder, quote: MarketQuote) -> RiskDecision:
        """Validate an order against all risk limits.

        Returns:
            RiskDecision with approved=True if all checks pass,
            or approved=False with the rejection reason.
        """
        self._roll_day()

        # 1. Kill switch check (highest priority)
        if self._kill_switch.is_active:
            reason = f"kill switch is active: {self._kill_switch.reason}"
            log.warning("risk_rejected", reason=reason, order_id=order.id)
            return RiskDecision(approved=False, reason=reason)

        # 2. Slippage tolerance
        if order.slippage > self._max_slippage_pct:
            reason = (
                f"slippage {order.slippage}% exceeds max {self._max_slippage_pct}%"
            )
            log.warning("risk_rejected", reason=reason, order_id=order.id)
            return RiskDecision(approved=False, reason=reason)

        # 3. Position size
        if order.amount_in > self._max_position_size:
            reason = (
                f"position size {order.amount_in} exceeds max {self._max_position_size}"
            )
            log.warning("risk_rejected", reason=reason, order_id=order.id)
            return RiskDecision(approved=False, reason=reason, max_size=self._max_position_size)

        # 4. Daily loss (halt only once the limit is reached)
        if self._daily_loss >= self._max_daily_loss:
            reason = (
                f"daily loss {self._daily_loss} reached limit {self._max_daily_loss}"
            )
            log.warning("risk_rejected", reason=reason, order_id=order.id)
            return RiskDecision(approved=False, reason=reason)

        # 5. Quoted output after slippage must cover the order's minimum
        worst_out = order.amount_in * quote.price * (1 - order.slippage / 100)
        if worst_out < order.min_amount_out:
            reason = (
                f"worst-case output {worst_out:.6f} below minimum {order.min_amount_out}"
            )
            log.warning("risk_rejected", reason=reason, order_id=order.id)
            return RiskDecision(approved=False, reason=reason)

        return RiskDecision(
            approved=True,
            reason="all checks passed",
            max_size=self._max_position_size,
        )

    def _roll_day(self) -> None:
        today = self._today()
        if today != self._loss_day:
            log.info("risk.daily_loss_reset", previous=str(self._daily_loss))
            self._loss_day = today
            self._daily_loss = Decimal("0")
