"""Proof-of-reserve monitor.

Periodically compares collateral locked in the custody contract with the
claims outstanding against it and publishes the result on the event channel.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING

from arbcore.chain.rpc import selector
from arbcore.config.loader import ConfigError
from arbcore.core.logging import get_logger
from arbcore.models.events import EventKind
from arbcore.models.reserve import ReserveStatus

if TYPE_CHECKING:
    from arbcore.chain.rpc import ChainClient
    from arbcore.events.channel import EventChannel
    from arbcore.interfaces import CustodyReader, Signer
    from arbcore.risk.kill_switch import KillSwitch

logger = get_logger(__name__)

TOTAL_ASSETS = "totalAssets()"
TOTAL_SUPPLY = "totalSupply()"
PAUSE = "pause()"
UNPAUSE = "unpause()"


class VaultCustody:
    """ERC-4626 style vault: ``totalAssets`` is locked, ``totalSupply`` is claims.

    ``pause``/``unpause`` need an operator signer.
    """

    def __init__(
        self,
        chain: ChainClient,
        vault_address: str,
        decimals: int = 6,
        operator: Signer | None = None,
    ) -> None:
        self._chain = chain
        self._vault = vault_address
        self._scale = Decimal(10) ** decimals
        self._operator = operator

    @property
    def address(self) -> str:
        return self._vault

    async def locked_value(self) -> Decimal:
        raw = await self._chain.call_uint(self._vault, selector(TOTAL_ASSETS))
        return Decimal(raw) / self._scale

    async def outstanding_claims(self) -> Decimal:
        raw = await self._chain.call_uint(self._vault, selector(TOTAL_SUPPLY))
        return Decimal(raw) / self._scale

    async def pause(self) -> str:
        return await self._send(PAUSE)

    async def unpause(self) -> str:
        return await self._send(UNPAUSE)

    async def _send(self, signature: str) -> str:
        if self._operator is None:
            msg = f"{signature} requires an operator signer"
            raise ConfigError(msg)
        tx = await self._chain.fill_transaction(
            {"to": self._vault, "data": selector(signature)},
            self._operator.address,
            default_gas=100_000,
        )
        tx_hash = await self._chain.send_raw_transaction(self._operator.sign_transaction(tx))
        logger.warning("reserve.vault_write", call=signature, vault=self._vault[:10], tx_hash=tx_hash)
        return tx_hash


class StaticCustody:
    """Fixed custody figures, used in simulation mode."""

    def __init__(self, locked: Decimal = Decimal("0"), claims: Decimal = Decimal("0")) -> None:
        self.locked = locked
        self.claims = claims

    async def locked_value(self) -> Decimal:
        return self.locked

    async def outstanding_claims(self) -> Decimal:
        return self.claims


class ReserveMonitor:
    """Checks reserves once on start, then every ``interval`` seconds.

    A breach publishes ``ReserveBreach``; it halts new orders only when
    ``halt_on_breach`` is set and a kill switch is supplied.
    """

    def __init__(
        self,
        custody: CustodyReader,
        events: EventChannel | None = None,
        interval: float = 3600.0,
        halt_on_breach: bool = False,
        kill_switch: KillSwitch | None = None,
        report_path: str | Path | None = None,
    ) -> None:
        self._custody = custody
        self._events = events
        self._interval = interval
        self._halt_on_breach = halt_on_breach
        self._kill_switch = kill_switch
        self._report_path = Path(report_path) if report_path else None
        self._task: asyncio.Task[None] | None = None
        self._latest: ReserveStatus | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def latest(self) -> ReserveStatus | None:
        return self._latest

    async def start(self) -> ReserveStatus | None:
        """Run the first check now and schedule the rest. No-op if already running."""
        if self.running:
            logger.warning("reserve.already_running")
            return self._latest
        logger.info("reserve.monitor_started", interval=self._interval)
        first: asyncio.Future[ReserveStatus | None] = asyncio.get_running_loop().create_future()
        # Claim the slot before the first await so a concurrent start sees it.
        self._task = asyncio.create_task(self._loop(first), name="reserve-monitor")

        def release_start(_task: asyncio.Task[None]) -> None:
            if not first.done():
                first.set_result(None)

        self._task.add_done_callback(release_start)
        return await asyncio.shield(first)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("reserve.monitor_stopped")

    async def check(self) -> ReserveStatus:
        locked, claims = await asyncio.gather(
            self._custody.locked_value(),
            self._custody.outstanding_claims(),
        )
        status = ReserveStatus.compute(locked, claims)
        self._latest = status

        payload = {
            "locked": str(status.locked),
            "claims": str(status.claims),
            "ratio": str(status.ratio),
            "is_healthy": status.is_healthy,
        }
        if status.is_healthy:
            logger.info("reserve.check_ok", **payload)
            if self._events is not None:
                self._events.emit(EventKind.RESERVE_CHECK, **payload)
        else:
            logger.error("reserve.breach", deficit=str(status.deficit), **payload)
            if self._events is not None:
                self._events.emit(EventKind.RESERVE_BREACH, deficit=str(status.deficit), **payload)
            if self._halt_on_breach and self._kill_switch is not None and not self._kill_switch.is_active:
                await self._kill_switch.trigger(f"reserve breach: ratio {status.ratio}")

        self._write_report(status)
        return status

    async def _safe_check(self) -> ReserveStatus | None:
        try:
            return await self.check()
        except Exception:
            logger.exception("reserve.check_failed")
            return None

    async def _loop(self, first: asyncio.Future[ReserveStatus | None]) -> None:
        status = await self._safe_check()
        if not first.done():
            first.set_result(status)
        while True:
            await asyncio.sleep(self._interval)
            await self._safe_check()

    def _write_report(self, status: ReserveStatus) -> None:
        if self._report_path is None:
            return
        report = {
            "timestamp": status.timestamp.isoformat(),
            "locked": str(status.locked),
            "claims": str(status.claims),
            "ratio": str(status.ratio),
            "is_healthy": status.is_healthy,
            "deficit": str(status.deficit),
        }
        try:
            self._report_path.parent.mkdir(parents=True, exist_ok=True)
            self._report_path.write_text(json.dumps(report, indent=2))
        except OSError as exc:
            logger.warning("reserve.report_write_failed", path=str(self._report_path), error=str(exc))
