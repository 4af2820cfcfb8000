"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from decimal import Decimal
from pathlib import Path  # noqa: TCH003
from typing import Any

import httpx
import pytest

from arbcore.chain.rpc import ChainClient
from arbcore.chain.signer import LocalAccountSigner
from arbcore.config.loader import ConfigLoader
from arbcore.config.settings import CoreConfig, TokenConfig, TradingMode
from arbcore.engine.trading_engine import TradingEngine
from arbcore.events.channel import EventChannel
from arbcore.models.events import Event
from arbcore.models.order import TradeOrder
from arbcore.providers import ProviderSet
from arbcore.providers.market import SyntheticPriceSource
from arbcore.providers.simulated import SimulatedExecutor, SimulatedGasEstimator, SimulatedWallet
from arbcore.risk.circuit_breaker import PriceCircuitBreaker
from arbcore.risk.risk_manager import RiskManager

T0 = 1_700_000_000.0

# Anvil's well-known development keys.
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
RELAYER_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"

USDC = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
USDT = "0xc2132D05D31c914a87C6611C10748AEb04B58e8F"
ROUTER = "0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff"


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = T0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def tokens() -> dict[str, TokenConfig]:
    return {
        "USDC": TokenConfig(address=USDC, decimals=6),
        "USDT": TokenConfig(address=USDT, decimals=6),
    }


@pytest.fixture()
def config_dir(tmp_path: Path) -> Path:
    """Create a temp config directory with default.toml."""
    config = tmp_path / "config"
    config.mkdir()

    default_toml = config / "default.toml"
    default_toml.write_text(
        """\
[engine]
mode = "simulation"
chain_id = 137
rpc_url = "http://localhost:8545"
router_address = "0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff"

[tokens.USDC]
address = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
decimals = 6

[tokens.USDT]
address = "0xc2132D05D31c914a87C6611C10748AEb04B58e8F"
decimals = 6

[risk]
max_position_size = 10000
max_daily_loss = 500
max_slippage_pct = 1.0

[gas]
max_gas_price_gwei = 100
default_gas_limit = 300000

[circuit_breaker]
threshold_pct = 2.0
window_seconds = 60
history_seconds = 120
cooldown_seconds = 300

[reserve]
interval_seconds = 3600
halt_on_breach = false

[metrics]
enabled = false
port = 9090
"""
    )
    return config


@pytest.fixture()
def config_loader(config_dir: Path) -> ConfigLoader:
    """ConfigLoader with test config."""
    loader = ConfigLoader(config_dir=config_dir, env="test")
    loader.load()
    return loader


@pytest.fixture()
def sim_config() -> CoreConfig:
    return CoreConfig(mode=TradingMode.SIMULATION)


@pytest.fixture()
def make_order(clock: FakeClock) -> Callable[..., TradeOrder]:
    """Order factory with a deadline relative to the fake clock."""

    def factory(
        amount: str = "100",
        token_in: str = "USDC",
        token_out: str = "USDT",
        ttl: int = 300,
        **kwargs: object,
    ) -> TradeOrder:
        return TradeOrder(
            token_in=token_in,
            token_out=token_out,
            amount_in=Decimal(amount),
            deadline=int(clock()) + ttl,
            **kwargs,  # type: ignore[arg-type]
        )

    return factory


@pytest.fixture()
def sim_engine_factory(
    clock: FakeClock,
) -> Callable[..., tuple[TradingEngine, list[Event]]]:
    """Build a simulation engine on the fake clock; returns it with its event log."""

    def factory(
        balances: dict[str, Decimal] | None = None,
        prices: dict[str, Decimal] | None = None,
        **engine_kwargs: object,
    ) -> tuple[TradingEngine, list[Event]]:
        events = EventChannel()
        log: list[Event] = []
        events.subscribe_all(log.append)
        wallet = SimulatedWallet(initial_balances=balances)
        providers = ProviderSet(
            mode=TradingMode.SIMULATION,
            market=SyntheticPriceSource(prices, clock=clock),
            wallet=wallet,
            gas=SimulatedGasEstimator(),
            executor=SimulatedExecutor(wallet, clock=clock),
        )
        engine = TradingEngine(
            providers,
            events=events,
            breaker=PriceCircuitBreaker(events=events, clock=clock),
            risk=RiskManager(),
            clock=clock,
            **engine_kwargs,  # type: ignore[arg-type]
        )
        return engine, log

    return factory


class RecordingSigner(LocalAccountSigner):
    """Local signer that keeps every payload it signed."""

    def __init__(self, private_key: str) -> None:
        super().__init__(private_key)
        self.transactions: list[dict[str, Any]] = []
        self.typed_messages: list[dict[str, Any]] = []

    def sign_transaction(self, transaction: dict[str, Any]) -> bytes:
        self.transactions.append(dict(transaction))
        return super().sign_transaction(transaction)

    def sign_typed_data(
        self,
        domain: dict[str, Any],
        types: dict[str, Any],
        message: dict[str, Any],
    ) -> Any:
        self.typed_messages.append(dict(message))
        return super().sign_typed_data(domain, types, message)


@pytest.fixture()
def signer() -> RecordingSigner:
    return RecordingSigner(TEST_PRIVATE_KEY)


@pytest.fixture()
def relayer_signer() -> RecordingSigner:
    return RecordingSigner(RELAYER_PRIVATE_KEY)


@pytest.fixture()
def rpc_chain() -> Callable[..., tuple[ChainClient, list[dict[str, Any]]]]:
    """ChainClient over an in-memory JSON-RPC node.

    ``results`` maps a method name to its result, or to a callable taking the
    params list. Missing methods answer with a JSON-RPC error.
    """

    def factory(
        results: dict[str, Any],
    ) -> tuple[ChainClient, list[dict[str, Any]]]:
        calls: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            calls.append(body)
            method = body["method"]
            if method not in results:
                return httpx.Response(
                    200,
                    json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": method}},
                )
            result = results[method]
            if callable(result):
                result = result(body["params"])
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

        chain = ChainClient("http://node.test", transport=httpx.MockTransport(handler))
        return chain, calls

    return factory
