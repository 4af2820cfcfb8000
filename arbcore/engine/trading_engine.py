"""Trading engine: one order from quote to terminal result.

Lifecycle per order::

    CREATED -> QUOTED -> RISK_CHECKED -> COST_ESTIMATED -> SUBMITTED
            -> FILLED | REJECTED | ERRORED

Concurrency note: the circuit-breaker check happens once, at RISK_CHECKED.
The engine suspends at every provider call after that, so another order
for the same asset can trip the breaker while this one is estimating gas
or executing, and this order still goes through. A later trip never
stops an order that already passed its check.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from arbcore.chain.rpc import ChainClient
from arbcore.config.loader import ConfigError
from arbcore.config.settings import GasLimits, TradingMode
from arbcore.core.errors import (
    CircuitOpen,
    DuplicateOrder,
    InsufficientBalance,
    InvalidOrder,
    QuoteUnavailable,
    RiskLimitExceeded,
    TradingError,
)
from arbcore.core.logging import get_logger, log_order_event, order_context
from arbcore.events.channel import EventChannel
from arbcore.models.events import EventKind
from arbcore.models.order import OrderState, TradeOrder, TradeResult
from arbcore.providers import ProviderSet, build_providers
from arbcore.risk.circuit_breaker import PriceCircuitBreaker
from arbcore.risk.risk_manager import RiskManager

if TYPE_CHECKING:
    from arbcore.config.settings import CoreConfig
    from arbcore.execution.private_relay import PrivateRelay
    from arbcore.interfaces import FundingRateSource, Signer
    from arbcore.models.market import GasEstimate, MarketQuote

logger = get_logger(__name__)

# Failures that end an order as REJECTED; anything else before submission is ERRORED.
_GATE_FAILURES = (CircuitOpen, RiskLimitExceeded, InsufficientBalance, InvalidOrder)


class TradingEngine:
    """Composes providers, breaker and risk gate into a single order lifecycle.

    ``execute`` never raises: every outcome is a ``TradeResult`` plus exactly
    one terminal event (Fill, Reject or Error) on the event channel.
    """

    def __init__(
        self,
        providers: ProviderSet,
        events: EventChannel | None = None,
        breaker: PriceCircuitBreaker | None = None,
        risk: RiskManager | None = None,
        gas_limits: GasLimits | None = None,
        quote_timeout: float = 5.0,
        funding: FundingRateSource | None = None,
        equity_tokens: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._providers = providers
        self._events = events if events is not None else EventChannel()
        self._breaker = breaker if breaker is not None else PriceCircuitBreaker(
            events=self._events, clock=clock,
        )
        self._risk = risk if risk is not None else RiskManager()
        self._gas_limits = gas_limits or GasLimits()
        self._quote_timeout = quote_timeout
        self._funding = funding
        self._equity_tokens = list(equity_tokens)
        self._clock = clock
        self._states: dict[str, OrderState] = {}

        logger.info("engine.initialized", mode=self.mode.value, executor=providers.executor.mode)

    @classmethod
    def create(
        cls,
        config: CoreConfig,
        signer: Signer | None = None,
        *,
        chain: ChainClient | None = None,
        relay: PrivateRelay | None = None,
        providers: ProviderSet | None = None,
        events: EventChannel | None = None,
        breaker: PriceCircuitBreaker | None = None,
        risk: RiskManager | None = None,
        funding: FundingRateSource | None = None,
        clock: Callable[[], float] = time.time,
    ) -> TradingEngine:
        """Build an engine with its own channel, breaker, risk gate and providers.

        Raises:
            ConfigError: live mode without a usable signer.
        """
        if config.mode is TradingMode.LIVE and signer is None:
            msg = "Live mode requires a signer (set ARBCORE_PRIVATE_KEY or ARBCORE_KEYSTORE_PATH)"
            raise ConfigError(msg)

        events = events if events is not None else EventChannel()
        if breaker is None:
            breaker = PriceCircuitBreaker.from_settings(config.circuit_breaker, events, clock)
        if risk is None:
            risk = RiskManager.from_limits(config.risk)
        if providers is None:
            if config.mode is TradingMode.LIVE and chain is None:
                chain = ChainClient(config.rpc_url)
            providers = build_providers(config, signer, chain, relay)

        return cls(
            providers=providers,
            events=events,
            breaker=breaker,
            risk=risk,
            gas_limits=config.gas,
            quote_timeout=config.market.quote_timeout_seconds,
            funding=funding,
            equity_tokens=config.metrics.equity_tokens,
            clock=clock,
        )

    @property
    def mode(self) -> TradingMode:
        return self._providers.mode

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def breaker(self) -> PriceCircuitBreaker:
        return self._breaker

    @property
    def risk(self) -> RiskManager:
        return self._risk

    @property
    def providers(self) -> ProviderSet:
        return self._providers

    def get_state(self, order_id: str) -> OrderState | None:
        return self._states.get(order_id)

    async def get_quote(self, pair: str) -> MarketQuote:
        """Fetch a quote and feed it to the breaker."""
        quote = await self._fetch_quote(pair)
        self.ingest_quote(quote)
        return quote

    async def get_balance(self, token: str) -> Decimal:
        return await self._providers.wallet.balance_of(token)

    def ingest_quote(self, quote: MarketQuote, order_id: str | None = None) -> bool:
        """Record an externally observed price. Returns True if it tripped the breaker."""
        tripped = self._breaker.observe(quote.base, quote.price)
        self._events.emit(
            EventKind.QUOTE,
            order_id=order_id,
            pair=quote.pair,
            price=str(quote.price),
            source=quote.source,
            timestamp=quote.timestamp,
        )
        return tripped

    async def execute(self, order: TradeOrder) -> TradeResult:
        with order_context(order.id, mode=self.mode.value):
            return await self._execute(order)

    async def _execute(self, order: TradeOrder) -> TradeResult:
        started = time.perf_counter()

        if order.id in self._states:
            # The admitted order keeps the only terminal event for its id.
            exc = DuplicateOrder(f"order {order.id} already admitted")
            log_order_event("duplicate", order.id, state=self._states[order.id].value)
            self._events.emit(
                EventKind.REJECT,
                duplicate_order_id=order.id,
                error=exc.code,
                message=exc.message,
                stage=OrderState.CREATED.value,
                timestamp=self._clock(),
            )
            return TradeResult.failure(exc.code, exc.message)

        self._states[order.id] = OrderState.CREATED
        log_order_event(
            "admit", order.id,
            pair=order.pair, amount_in=str(order.amount_in), mode=self.mode.value,
        )

        try:
            self._admit(order)
            quote = await self._fetch_quote(order.pair)
            self._advance(order, OrderState.QUOTED)
            self.ingest_quote(quote, order_id=order.id)

            await self._risk_check(order, quote)
            self._advance(order, OrderState.RISK_CHECKED)

            gas = await self._providers.gas.estimate(order)
            if gas.gas_price_gwei > self._gas_limits.max_gas_price_gwei:
                msg = f"gas price {gas.gas_price_gwei} gwei exceeds max {self._gas_limits.max_gas_price_gwei}"
                raise RiskLimitExceeded(msg)
            self._advance(order, OrderState.COST_ESTIMATED)

            if order.is_expired(self._clock()):
                msg = f"deadline {order.deadline} elapsed before submission"
                raise InvalidOrder(msg)
        except _GATE_FAILURES as exc:
            return self._reject(order, exc.code, exc.message, started)
        except TradingError as exc:
            return self._error(order, exc.code, exc.message, started)
        except Exception as exc:
            logger.exception("engine.unexpected_error", order_id=order.id)
            return self._error(order, TradingError.code, str(exc), started)

        self._advance(order, OrderState.SUBMITTED)
        try:
            result = await self._providers.executor.swap(order, quote, gas)
        except TradingError as exc:
            return self._error(order, exc.code, exc.message, started)
        except Exception as exc:
            logger.exception("engine.executor_failed", order_id=order.id)
            return self._error(order, TradingError.code, str(exc), started)

        if not result.success:
            return self._reject(
                order, result.error or TradingError.code, result.message or "", started, result,
            )
        return await self._fill(order, quote, gas, result, started)

    def _admit(self, order: TradeOrder) -> None:
        if order.amount_in <= 0:
            msg = "amount_in must be positive"
            raise InvalidOrder(msg)
        if order.is_expired(self._clock()):
            msg = f"deadline {order.deadline} already elapsed"
            raise InvalidOrder(msg)
        kill_switch = self._risk.kill_switch
        if kill_switch.is_active:
            msg = f"kill switch is active: {kill_switch.reason}"
            raise RiskLimitExceeded(msg)

    async def _fetch_quote(self, pair: str) -> MarketQuote:
        try:
            return await asyncio.wait_for(
                self._providers.market.get_quote(pair), timeout=self._quote_timeout,
            )
        except TimeoutError as exc:
            msg = f"quote for {pair} timed out after {self._quote_timeout}s"
            raise QuoteUnavailable(msg) from exc

    async def _risk_check(self, order: TradeOrder, quote: MarketQuote) -> None:
        open_assets = self._breaker.open_assets(order.token_in, order.token_out)
        if open_assets:
            msg = f"circuit open for {', '.join(open_assets)}"
            raise CircuitOpen(msg)

        if self._funding is not None:
            rate = await self._funding.funding_rate(order.token_in)
            if not self._breaker.check_funding(rate):
                msg = f"funding rate {rate}% below floor"
                raise RiskLimitExceeded(msg)

        decision = self._risk.check_order(order, quote)
        if not decision.approved:
            raise RiskLimitExceeded(decision.reason)

        available = await self._providers.wallet.balance_of(order.token_in)
        if available < order.amount_in:
            msg = f"{order.token_in}: need {order.amount_in}, have {available}"
            raise InsufficientBalance(msg)

    async def _fill(
        self,
        order: TradeOrder,
        quote: MarketQuote,
        gas: GasEstimate,
        result: TradeResult,
        started: float,
    ) -> TradeResult:
        self._advance(order, OrderState.FILLED)
        latency_ms = (time.perf_counter() - started) * 1000
        gas_used = result.gas_used or 0
        expected = order.amount_in * quote.price
        pnl = result.amount - expected
        return_pct = pnl / expected * 100 if expected > 0 else Decimal("0")
        self._risk.record_pnl(pnl)

        log_order_event(
            "fill", order.id,
            price=str(result.price), amount=str(result.amount),
            gas_used=gas_used, tx_hash=result.tx_hash, latency_ms=round(latency_ms, 2),
        )
        self._events.emit(
            EventKind.FILL,
            order_id=order.id,
            price=str(result.price),
            amount=str(result.amount),
            gas=gas_used,
            gas_cost_gwei=str(Decimal(gas_used) * gas.gas_price_gwei),
            tx_hash=result.tx_hash,
            timestamp=self._clock(),
            latency_ms=latency_ms,
            return_pct=str(return_pct),
        )
        await self._publish_balances(order)
        return result

    async def _publish_balances(self, order: TradeOrder) -> None:
        tokens = list(dict.fromkeys([order.token_in, order.token_out, *self._equity_tokens]))
        try:
            balances: dict[str, Decimal] = {}
            for token in tokens:
                balances[token] = await self._providers.wallet.balance_of(token)
        except Exception as exc:
            logger.warning("engine.balance_update_failed", order_id=order.id, error=str(exc)[:200])
            return
        equity = sum((balances[t] for t in self._equity_tokens), Decimal("0"))
        self._events.emit(
            EventKind.BALANCE_UPDATE,
            order_id=order.id,
            balances={token: str(value) for token, value in balances.items()},
            equity=str(equity),
        )

    def _advance(self, order: TradeOrder, state: OrderState) -> None:
        self._states[order.id] = state
        logger.debug("engine.state", order_id=order.id, state=state.value)

    def _terminal_payload(self, order: TradeOrder, code: str, message: str, started: float) -> dict[str, Any]:
        return {
            "error": code,
            "message": message,
            "stage": self._states[order.id].value,
            "timestamp": self._clock(),
            "latency_ms": (time.perf_counter() - started) * 1000,
        }

    def _reject(
        self,
        order: TradeOrder,
        code: str,
        message: str,
        started: float,
        result: TradeResult | None = None,
    ) -> TradeResult:
        payload = self._terminal_payload(order, code, message, started)
        self._advance(order, OrderState.REJECTED)
        log_order_event("reject", order.id, error=code, reason=message, stage=payload["stage"])
        self._events.emit(EventKind.REJECT, order_id=order.id, **payload)
        return result if result is not None else TradeResult.failure(code, message)

    def _error(self, order: TradeOrder, code: str, message: str, started: float) -> TradeResult:
        payload = self._terminal_payload(order, code, message, started)
        self._advance(order, OrderState.ERRORED)
        log_order_event("error", order.id, error=code, reason=message, stage=payload["stage"])
        self._events.emit(EventKind.ERROR, order_id=order.id, **payload)
        return TradeResult.failure(code, message)
