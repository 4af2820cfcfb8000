"""Interleaving of concurrent orders around the circuit breaker."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from decimal import Decimal
from unittest.mock import patch

import pytest

from arbcore.engine.trading_engine import TradingEngine
from arbcore.models.events import Event, EventKind
from arbcore.models.market import GasEstimate, MarketQuote
from arbcore.models.order import OrderState, TradeOrder

EngineFactory = Callable[..., tuple[TradingEngine, list[Event]]]


class TestBreakerInterleaving:
    @pytest.mark.asyncio()
    async def test_trip_after_check_does_not_stop_inflight_order(
        self,
        sim_engine_factory: EngineFactory,
        make_order: Callable[..., TradeOrder],
        clock: Callable[[], float],
    ) -> None:
        engine, log = sim_engine_factory()
        entered = asyncio.Event()
        release = asyncio.Event()

        async def held_estimate(_order: TradeOrder) -> GasEstimate:
            entered.set()
            await release.wait()
            return GasEstimate(gas_limit=150_000, gas_price_gwei=Decimal("30"))

        inflight = make_order(amount="100")
        with patch.object(engine.providers.gas, "estimate", new=held_estimate):
            task = asyncio.create_task(engine.execute(inflight))
            await entered.wait()
            assert engine.get_state(inflight.id) is OrderState.RISK_CHECKED

            tripped = engine.ingest_quote(
                MarketQuote(pair="USDC/USDT", price=Decimal("1.05"), source="test", timestamp=clock()),
            )
            assert tripped
            assert engine.breaker.is_open("USDC")

            release.set()
            first = await task

        assert first.success
        assert engine.get_state(inflight.id) is OrderState.FILLED

        second = await engine.execute(make_order(amount="100"))
        assert second.error == "CircuitOpen"

        kinds = [e.kind for e in log]
        assert kinds.index(EventKind.CIRCUIT_TRIPPED) < kinds.index(EventKind.FILL)

    @pytest.mark.asyncio()
    async def test_concurrent_orders_each_get_one_result(
        self,
        sim_engine_factory: EngineFactory,
        make_order: Callable[..., TradeOrder],
    ) -> None:
        engine, log = sim_engine_factory()
        orders = [make_order(amount="10") for _ in range(5)]

        results = await asyncio.gather(*(engine.execute(o) for o in orders))

        assert all(r.success for r in results)
        fills = [e for e in log if e.kind is EventKind.FILL]
        assert sorted(e.order_id for e in fills) == sorted(o.id for o in orders)
        assert await engine.get_balance("USDC") == Decimal("9950")
