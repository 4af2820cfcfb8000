"""arbcore service runner: wires the engine and its background tasks together.

Owns the long-lived pieces: trading engine, reserve monitor, metrics server,
kill switch and (in live mode) the chain client, private relay and
delegated-execution manager. Runs until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis

from arbcore.approvals import ApprovalCache, MemoryApprovalStore, RedisApprovalStore
from arbcore.chain.rpc import ChainClient
from arbcore.chain.signer import load_signer
from arbcore.config.loader import ConfigLoader
from arbcore.config.settings import CoreConfig, TradingMode
from arbcore.core.logging import get_logger
from arbcore.engine.trading_engine import TradingEngine
from arbcore.events.channel import EventChannel
from arbcore.execution.delegated import DelegatedExecutionManager
from arbcore.execution.private_relay import PrivateRelay
from arbcore.metrics.exporter import MetricsExporter
from arbcore.reserve.monitor import ReserveMonitor, StaticCustody, VaultCustody
from arbcore.risk.kill_switch import KillSwitch
from arbcore.risk.risk_manager import RiskManager

if TYPE_CHECKING:
    from arbcore.interfaces import CustodyReader, Signer

logger = get_logger(__name__)


class ArbService:
    """Long-running control plane: engine + reserve monitor + metrics."""

    def __init__(
        self,
        config: CoreConfig,
        signer: Signer | None = None,
        relay_auth_signer: Signer | None = None,
        relayer: Signer | None = None,
        custody: CustodyReader | None = None,
        redis_client: Any | None = None,
    ) -> None:
        self._config = config
        self._shutdown_event = asyncio.Event()
        self._redis = redis_client
        self._owns_redis = False
        if self._redis is None and config.approvals.redis_url:
            self._redis = redis.from_url(config.approvals.redis_url, decode_responses=True)
            self._owns_redis = True

        self.events = EventChannel()
        self.kill_switch = KillSwitch(self._redis)
        self.metrics = MetricsExporter()
        self.metrics.bind(self.events)

        self.chain: ChainClient | None = None
        self.relay: PrivateRelay | None = None
        self.delegated: DelegatedExecutionManager | None = None

        if config.mode is TradingMode.LIVE:
            self.chain = ChainClient(config.rpc_url)
            if config.relay.enabled and signer is not None:
                self.relay = PrivateRelay(
                    self.chain,
                    signer,
                    relay_auth_signer or signer,
                    relay_url=config.relay.url,
                    default_gas=config.gas.default_gas_limit,
                )

        self.approvals = ApprovalCache(
            RedisApprovalStore(config.approvals.redis_url)
            if config.approvals.redis_url
            else MemoryApprovalStore(),
            max_ttl_seconds=config.approvals.max_ttl_seconds,
        )

        if (
            self.chain is not None
            and signer is not None
            and relayer is not None
            and config.delegated.forwarder_address
        ):
            self.delegated = DelegatedExecutionManager.from_settings(
                config.delegated,
                signer=signer,
                chain=self.chain,
                relayer=relayer,
                approvals=self.approvals,
                chain_id=config.chain_id,
            )

        self.engine = TradingEngine.create(
            config,
            signer,
            chain=self.chain,
            relay=self.relay,
            events=self.events,
            risk=RiskManager.from_limits(config.risk, kill_switch=self.kill_switch),
        )

        if custody is None:
            if self.chain is not None and config.reserve.vault_address:
                custody = VaultCustody(
                    self.chain,
                    config.reserve.vault_address,
                    decimals=config.reserve.decimals,
                    operator=signer,
                )
            else:
                custody = StaticCustody()
        self.reserve = ReserveMonitor(
            custody,
            events=self.events,
            interval=config.reserve.interval_seconds,
            halt_on_breach=config.reserve.halt_on_breach,
            kill_switch=self.kill_switch,
            report_path=config.reserve.report_path,
        )

    @property
    def config(self) -> CoreConfig:
        return self._config

    async def start(self) -> int:
        """Start background tasks and block until shutdown is requested."""
        await self.kill_switch.load_state()
        if self._config.metrics.enabled:
            self.metrics.start_server(self._config.metrics.port)
        await self.reserve.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_shutdown, sig)

        logger.info(
            "service_ready",
            mode=self._config.mode.value,
            relay=self.relay is not None,
            delegated=self.delegated is not None,
        )
        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            logger.info("service_cancelled")
        finally:
            await self.stop()
        return 0

    def request_shutdown(self, sig: signal.Signals | None = None) -> None:
        logger.info("shutdown_requested", signal=sig.name if sig else None)
        self._shutdown_event.set()

    async def stop(self) -> None:
        """Stop the monitor and release network and Redis clients. Safe to call twice."""
        await self.reserve.stop()
        await self.events.drain()
        closers = [
            getattr(self.engine.providers.market, "close", None),
            self.relay.close if self.relay is not None else None,
            self.chain.close if self.chain is not None else None,
            getattr(self.approvals.store, "close", None),
            self._redis.aclose if self._owns_redis else None,
        ]
        for closer in closers:
            if closer is not None:
                await closer()
        logger.info("service_shutdown", mode=self._config.mode.value)


def load_config(
    config_dir: str = "config",
    env: str | None = None,
    mode: str | None = None,
) -> CoreConfig:
    """Load TOML config and build typed settings; ``mode`` overrides engine.mode."""
    loader = ConfigLoader(config_dir=config_dir, env=env)
    loader.load()
    config = CoreConfig.from_loader(loader)
    if mode is not None:
        config = config.model_copy(update={"mode": TradingMode(mode)})
    return config


def run_service(
    mode: str | None = None,
    config_dir: str = "config",
    env: str | None = None,
) -> int:
    """Run the service until interrupted.

    Returns:
        Exit code (0 = success).
    """
    config = load_config(config_dir, env, mode)
    if config.mode is TradingMode.LIVE:
        service = ArbService(
            config,
            signer=load_signer(),
            relay_auth_signer=load_signer("ARBCORE_RELAY_AUTH"),
            relayer=load_signer("ARBCORE_RELAYER"),
        )
    else:
        service = ArbService(config)
    return asyncio.run(service.start())
