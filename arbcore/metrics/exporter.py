"""Prometheus exposition for trading outcomes.

The exporter owns its ``CollectorRegistry`` so several engines (or tests)
never collide on metric names. ``bind`` wires it to an event channel.
"""

from __future__ import annotations

import statistics
from collections import deque
from collections.abc import Callable
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest, start_http_server

from arbcore.core.logging import get_logger
from arbcore.models.events import Event, EventKind
from arbcore.models.order import OrderState

if TYPE_CHECKING:
    from arbcore.events.channel import EventChannel

logger = get_logger(__name__)

LATENCY_BUCKETS_MS = (10, 50, 100, 200, 500, 1000, 2000, 5000)


class MetricsExporter:
    """Equity, win rate, gas, latency and Sharpe ratio gauges.

    Win rate counts only orders that reached the executor: fills against
    executor-reported rejections and execution errors.
    """

    def __init__(
        self,
        registry: CollectorRegistry | None = None,
        returns_window: int = 500,
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.equity = Gauge(
            "arbitrage_equity_usd",
            "Current equity in USD",
            registry=self.registry,
        )
        self.win_rate = Gauge(
            "arbitrage_win_rate",
            "Win rate percentage of executed orders",
            registry=self.registry,
        )
        self.gas_spent = Counter(
            "arbitrage_gas_spent",
            "Total gas spent in gwei",
            registry=self.registry,
        )
        self.sharpe_ratio = Gauge(
            "arbitrage_sharpe_ratio",
            "Per-trade Sharpe ratio of realized versus quoted returns",
            registry=self.registry,
        )
        self.trade_latency = Histogram(
            "arbitrage_trade_latency_ms",
            "Trade execution latency in milliseconds",
            buckets=LATENCY_BUCKETS_MS,
            registry=self.registry,
        )
        self._wins = 0
        self._executed = 0
        self._returns: deque[float] = deque(maxlen=returns_window)

    @property
    def executed(self) -> int:
        return self._executed

    def bind(self, channel: EventChannel) -> Callable[[], None]:
        """Subscribe to every event. Returns the unsubscribe callable."""
        return channel.subscribe_all(self.handle_event)

    def handle_event(self, event: Event) -> None:
        data = event.data
        if event.kind == EventKind.FILL:
            self._record_outcome(win=True)
            self._observe_latency(data)
            gas_cost = data.get("gas_cost_gwei")
            if gas_cost is not None:
                self.increment_gas_spent(Decimal(str(gas_cost)))
            ret = data.get("return_pct")
            if ret is not None:
                self.record_return(float(ret))
        elif event.kind in (EventKind.REJECT, EventKind.ERROR):
            self._observe_latency(data)
            if data.get("stage") == OrderState.SUBMITTED.value:
                self._record_outcome(win=False)
        elif event.kind == EventKind.BALANCE_UPDATE:
            equity = data.get("equity")
            if equity is not None:
                self.update_equity(Decimal(str(equity)))

    def update_equity(self, value: Decimal) -> None:
        self.equity.set(float(value))

    def update_win_rate(self, value: float) -> None:
        self.win_rate.set(value)

    def increment_gas_spent(self, value: Decimal) -> None:
        if value > 0:
            self.gas_spent.inc(float(value))

    def update_sharpe_ratio(self, value: float) -> None:
        self.sharpe_ratio.set(value)

    def record_trade_latency(self, latency_ms: float) -> None:
        self.trade_latency.observe(latency_ms)

    def record_return(self, value: float) -> None:
        self._returns.append(value)
        if len(self._returns) < 2:
            return
        stdev = statistics.pstdev(self._returns)
        if stdev == 0:
            return
        self.update_sharpe_ratio(statistics.fmean(self._returns) / stdev)

    def render(self) -> bytes:
        """Text exposition of every metric in this registry."""
        return generate_latest(self.registry)

    def start_server(self, port: int = 9090, addr: str = "0.0.0.0") -> Any:
        result = start_http_server(port, addr=addr, registry=self.registry)
        logger.info("metrics.server_started", port=port, addr=addr)
        return result

    def _record_outcome(self, win: bool) -> None:
        self._executed += 1
        if win:
            self._wins += 1
        self.update_win_rate(self._wins / self._executed * 100)

    def _observe_latency(self, data: dict[str, Any]) -> None:
        latency = data.get("latency_ms")
        if latency is not None:
            self.record_trade_latency(float(latency))
