"""Price circuit breaker. Halts trading on an asset after abnormal moves.

Each asset keeps a rolling window of price samples. A move of at least
``threshold_pct`` between the earliest sample of the last ``window_seconds``
and the newest one opens the asset's breaker. The breaker closes again
exactly ``cooldown_seconds`` after the trip, independent of later prices.

All state changes are single synchronous steps, so interleaved coroutines
never observe a half-updated window or flag.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Callable
from decimal import Decimal
from typing import TYPE_CHECKING

from arbcore.core.logging import get_logger
from arbcore.models.events import EventKind
from arbcore.models.market import CircuitState, PriceSample

if TYPE_CHECKING:
    from arbcore.config.settings import BreakerSettings
    from arbcore.events.channel import EventChannel

logger = get_logger(__name__)


class PriceCircuitBreaker:
    """Per-asset open/closed flag driven by short-horizon price movement.

    States:
        closed -- normal operation
        open   -- trading on the asset is refused until the cool-down ends
    """

    def __init__(
        self,
        events: EventChannel | None = None,
        threshold_pct: Decimal = Decimal("2.0"),
        window_seconds: float = 60.0,
        history_seconds: float = 120.0,
        cooldown_seconds: float = 300.0,
        funding_rate_floor_pct: Decimal = Decimal("-0.05"),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._events = events
        self._threshold_pct = threshold_pct
        self._window_seconds = window_seconds
        self._history_seconds = history_seconds
        self._cooldown_seconds = cooldown_seconds
        self._funding_floor = funding_rate_floor_pct
        self._clock = clock
        self._history: dict[str, deque[PriceSample]] = {}
        self._states: dict[str, CircuitState] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    @classmethod
    def from_settings(
        cls,
        settings: BreakerSettings,
        events: EventChannel | None = None,
        clock: Callable[[], float] = time.time,
    ) -> PriceCircuitBreaker:
        return cls(
            events=events,
            threshold_pct=settings.threshold_pct,
            window_seconds=settings.window_seconds,
            history_seconds=settings.history_seconds,
            cooldown_seconds=settings.cooldown_seconds,
            funding_rate_floor_pct=settings.funding_rate_floor_pct,
            clock=clock,
        )

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown_seconds

    def observe(self, asset: str, price: Decimal) -> bool:
        """Record a price sample. Returns True if this sample tripped the breaker."""
        now = self._clock()
        self._refresh(asset, now)

        samples = self._history.get(asset, deque())
        samples.append(PriceSample(asset=asset, price=price, timestamp=now))
        history_cutoff = now - self._history_seconds
        samples = deque(s for s in samples if s.timestamp > history_cutoff)
        self._history[asset] = samples

        window_cutoff = now - self._window_seconds
        last_window = [s for s in samples if s.timestamp > window_cutoff]
        if len(last_window) < 2:
            return False

        baseline = last_window[0].price
        if baseline <= 0:
            return False
        change_pct = abs(price - baseline) / baseline * 100

        if change_pct >= self._threshold_pct:
            return self._trip(asset, change_pct, now)
        return False

    def is_open(self, asset: str) -> bool:
        self._refresh(asset, self._clock())
        state = self._states.get(asset)
        return state is not None and state.is_open

    def open_assets(self, *assets: str) -> list[str]:
        return [a for a in assets if self.is_open(a)]

    def state(self, asset: str) -> CircuitState:
        self._refresh(asset, self._clock())
        state = self._states.get(asset)
        if state is None:
            return CircuitState(asset=asset)
        return state.model_copy()

    def history(self, asset: str) -> list[PriceSample]:
        return list(self._history.get(asset, ()))

    def check_funding(self, rate: Decimal) -> bool:
        """Funding gate: False (reject) when the hourly rate is below the floor."""
        if rate < self._funding_floor:
            logger.warning(
                "circuit_breaker.funding_rejected",
                funding_rate=str(rate),
                floor=str(self._funding_floor),
            )
            return False
        return True

    def reset(self) -> None:
        """Operator reset: close every breaker and drop all price history."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._states.clear()
        self._history.clear()
        logger.warning("circuit_breaker.manual_reset")

    def _trip(self, asset: str, change_pct: Decimal, now: float) -> bool:
        state = self._states.get(asset)
        if state is not None and state.is_open:
            logger.debug("circuit_breaker.already_open", asset=asset)
            return False

        self._states[asset] = CircuitState(
            asset=asset,
            is_open=True,
            tripped_at=now,
            price_change=change_pct,
        )
        logger.warning(
            "circuit_breaker.tripped",
            asset=asset,
            price_change_pct=f"{change_pct:.2f}",
            cooldown=self._cooldown_seconds,
        )
        if self._events is not None:
            self._events.emit(
                EventKind.CIRCUIT_TRIPPED,
                asset=asset,
                price_change_pct=str(change_pct),
                tripped_at=now,
            )
        self._schedule_reset(asset)
        return True

    def _schedule_reset(self, asset: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the flag still closes lazily on the next read.
            return
        self._timers[asset] = loop.call_later(self._cooldown_seconds, self._expire, asset)

    def _expire(self, asset: str) -> None:
        self._timers.pop(asset, None)
        state = self._states.get(asset)
        if state is not None and state.is_open:
            self._close(asset)

    def _refresh(self, asset: str, now: float) -> None:
        state = self._states.get(asset)
        if (
            state is not None
            and state.is_open
            and state.tripped_at is not None
            and now - state.tripped_at >= self._cooldown_seconds
        ):
            self._close(asset)

    def _close(self, asset: str) -> None:
        handle = self._timers.pop(asset, None)
        if handle is not None:
            handle.cancel()
        self._states[asset] = CircuitState(asset=asset)
        logger.info("circuit_breaker.reset", asset=asset)
        if self._events is not None:
            self._events.emit(EventKind.CIRCUIT_RESET, asset=asset)
