"""Operator-level halt on new order admission."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from arbcore.core.logging import get_logger

log = get_logger(__name__)


class KillSwitch:
    """Halts admission of new orders until explicitly reset.

    State lives in memory and is mirrored to an async Redis client when one
    is supplied, so a restarted process comes back halted. Call
    ``await ks.load_state()`` after construction to pick up persisted state.
    """

    REDIS_KEY = "arbcore:kill_switch"

    def __init__(self, redis_client: Any | None = None) -> None:
        self._redis = redis_client
        self._state: dict[str, Any] = {
            "active": False,
            "reason": "",
            "triggered_at": None,
        }

    @property
    def is_active(self) -> bool:
        return bool(self._state["active"])

    @property
    def reason(self) -> str:
        return str(self._state["reason"])

    async def load_state(self) -> None:
        if self._redis is None:
            return
        try:
            data = await self._redis.get(self.REDIS_KEY)
            if data is not None:
                raw = data if isinstance(data, str) else data.decode()
                self._state = json.loads(raw)
                log.info("kill_switch_state_loaded", active=self._state["active"])
        except Exception:
            log.warning("kill_switch_redis_load_failed", fallback="in-memory")

    async def _save_state(self) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(self.REDIS_KEY, json.dumps(self._state))
        except Exception:
            log.warning("kill_switch_redis_save_failed")

    async def trigger(self, reason: str) -> None:
        """Halt new admissions.

        Args:
            reason: Human-readable reason for triggering.
        """
        self._state = {
            "active": True,
            "reason": reason,
            "triggered_at": datetime.now(tz=UTC).isoformat(),
        }
        log.critical(
            "kill_switch_triggered",
            reason=reason,
            triggered_at=self._state["triggered_at"],
        )
        await self._save_state()

    async def reset(self) -> None:
        """Re-open admission. Never automatic."""
        previous_reason = self._state.get("reason", "")
        self._state = {
            "active": False,
            "reason": "",
            "triggered_at": None,
        }
        log.warning("kill_switch_reset", previous_reason=previous_reason)
        await self._save_state()
