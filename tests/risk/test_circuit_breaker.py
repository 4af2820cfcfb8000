"""Tests for the per-asset price circuit breaker."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from arbcore.config.settings import BreakerSettings
from arbcore.events.channel import EventChannel
from arbcore.models.events import Event, EventKind
from arbcore.risk.circuit_breaker import PriceCircuitBreaker


class Clock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _breaker(clock: Clock, events: EventChannel | None = None, **kwargs: object) -> PriceCircuitBreaker:
    return PriceCircuitBreaker(events=events, clock=clock, **kwargs)  # type: ignore[arg-type]


class TestTrip:
    def test_opens_on_two_percent_move_within_minute(self) -> None:
        clock = Clock()
        breaker = _breaker(clock)
        for t, price in [(0, "100"), (20, "100"), (45, "103")]:
            clock.now = t
            tripped = breaker.observe("X", Decimal(price))
        assert tripped is True
        assert breaker.is_open("X") is True
        assert breaker.state("X").tripped_at == 45

    def test_single_sample_never_trips(self) -> None:
        breaker = _breaker(Clock())
        assert breaker.observe("X", Decimal("100")) is False
        assert breaker.is_open("X") is False

    def test_small_move_stays_closed(self) -> None:
        clock = Clock()
        breaker = _breaker(clock)
        breaker.observe("X", Decimal("100"))
        clock.now = 30
        assert breaker.observe("X", Decimal("101.99")) is False
        assert breaker.is_open("X") is False

    def test_move_outside_window_ignored(self) -> None:
        clock = Clock()
        breaker = _breaker(clock)
        breaker.observe("X", Decimal("100"))
        clock.now = 61
        assert breaker.observe("X", Decimal("110")) is False

    def test_assets_are_independent(self) -> None:
        clock = Clock()
        breaker = _breaker(clock)
        breaker.observe("X", Decimal("100"))
        clock.now = 1
        breaker.observe("X", Decimal("90"))
        assert breaker.is_open("X") is True
        assert breaker.is_open("Y") is False
        assert breaker.open_assets("X", "Y") == ["X"]

    def test_history_pruned(self) -> None:
        clock = Clock()
        breaker = _breaker(clock)
        breaker.observe("X", Decimal("100"))
        clock.now = 200
        breaker.observe("X", Decimal("100"))
        assert [s.timestamp for s in breaker.history("X")] == [200]

    def test_trip_publishes_event_once(self) -> None:
        clock = Clock()
        channel = EventChannel()
        seen: list[Event] = []
        channel.subscribe(EventKind.CIRCUIT_TRIPPED, seen.append)
        breaker = _breaker(clock, channel)
        breaker.observe("X", Decimal("100"))
        clock.now = 1
        breaker.observe("X", Decimal("105"))
        clock.now = 2
        assert breaker.observe("X", Decimal("120")) is False
        assert len(seen) == 1
        assert seen[0].data["asset"] == "X"

    @given(
        base=st.integers(min_value=1, max_value=1_000_000),
        pct=st.decimals(min_value=2, max_value=50, places=2),
        up=st.booleans(),
        dt=st.floats(min_value=0.001, max_value=59.9),
    )
    def test_any_threshold_move_within_window_opens(
        self, base: int, pct: Decimal, up: bool, dt: float,
    ) -> None:
        clock = Clock()
        breaker = _breaker(clock)
        breaker.observe("X", Decimal(base))
        clock.now = dt
        factor = (100 + pct) if up else (100 - pct)
        breaker.observe("X", Decimal(base) * factor / 100)
        assert breaker.is_open("X") is True

    @given(
        moves=st.lists(
            st.tuples(
                st.floats(min_value=0.001, max_value=5.0),
                st.decimals(min_value=Decimal("-1.9"), max_value=Decimal("1.9"), places=2),
            ),
            max_size=10,
        ),
    )
    def test_sub_threshold_moves_never_open(self, moves: list[tuple[float, Decimal]]) -> None:
        clock = Clock()
        breaker = _breaker(clock)
        breaker.observe("X", Decimal("100"))
        for dt, pct in moves:
            clock.now += dt
            breaker.observe("X", Decimal("100") + pct)
        assert breaker.is_open("X") is False


class TestCooldown:
    def _tripped(self, clock: Clock, events: EventChannel | None = None) -> PriceCircuitBreaker:
        breaker = _breaker(clock, events)
        clock.now = 1000
        breaker.observe("X", Decimal("100"))
        clock.now = 1001
        breaker.observe("X", Decimal("110"))
        assert breaker.is_open("X")
        return breaker

    def test_closes_exactly_after_cooldown(self) -> None:
        clock = Clock()
        breaker = self._tripped(clock)
        clock.now = 1001 + 299.999
        assert breaker.is_open("X") is True
        clock.now = 1001 + 300
        assert breaker.is_open("X") is False

    def test_intervening_samples_do_not_extend_cooldown(self) -> None:
        clock = Clock()
        breaker = self._tripped(clock)
        for offset, price in [(10, "150"), (100, "80"), (290, "200")]:
            clock.now = 1001 + offset
            breaker.observe("X", Decimal(price))
        assert breaker.state("X").tripped_at == 1001
        clock.now = 1001 + 300
        assert breaker.is_open("X") is False

    def test_reset_event_published_once(self) -> None:
        clock = Clock()
        channel = EventChannel()
        resets: list[Event] = []
        channel.subscribe(EventKind.CIRCUIT_RESET, resets.append)
        breaker = self._tripped(clock, channel)
        clock.now = 2000
        assert breaker.is_open("X") is False
        assert breaker.is_open("X") is False
        assert len(resets) == 1

    @pytest.mark.asyncio()
    async def test_timer_closes_breaker(self) -> None:
        clock = Clock()
        channel = EventChannel()
        resets: list[Event] = []
        channel.subscribe(EventKind.CIRCUIT_RESET, resets.append)
        breaker = _breaker(clock, channel, cooldown_seconds=0.01)
        breaker.observe("X", Decimal("100"))
        clock.now = 1
        breaker.observe("X", Decimal("110"))
        await asyncio.sleep(0.05)
        assert len(resets) == 1
        assert breaker.state("X").is_open is False

    def test_manual_reset(self) -> None:
        clock = Clock()
        breaker = self._tripped(clock)
        breaker.reset()
        assert breaker.is_open("X") is False
        assert breaker.history("X") == []


class TestFunding:
    @given(rate=st.decimals(min_value=-10, max_value=10, places=4))
    def test_rejects_iff_below_floor(self, rate: Decimal) -> None:
        breaker = _breaker(Clock())
        assert breaker.check_funding(rate) is (rate >= Decimal("-0.05"))

    def test_independent_of_breaker_state(self) -> None:
        clock = Clock()
        breaker = _breaker(clock)
        breaker.observe("X", Decimal("100"))
        clock.now = 1
        breaker.observe("X", Decimal("110"))
        assert breaker.check_funding(Decimal("-0.05")) is True
        assert breaker.check_funding(Decimal("-0.0501")) is False


class TestFromSettings:
    def test_thresholds_come_from_settings(self) -> None:
        clock = Clock()
        breaker = PriceCircuitBreaker.from_settings(
            BreakerSettings(threshold_pct=Decimal("5"), cooldown_seconds=10), clock=clock,
        )
        breaker.observe("X", Decimal("100"))
        clock.now = 1
        assert breaker.observe("X", Decimal("104")) is False
        assert breaker.cooldown_seconds == 10
