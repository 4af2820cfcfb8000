"""Time-bounded cache of signed authorizations.

Entries are keyed by (holder, token, spender) and live for the lesser of
the configured ceiling and the time left until the signature's deadline.
An entry whose deadline has passed is never returned; it is evicted on
the read that finds it.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from arbcore.core.logging import get_logger

if TYPE_CHECKING:
    from arbcore.interfaces import ApprovalStore
    from arbcore.models.approval import CachedApproval

log = get_logger(__name__)

MAX_TTL_SECONDS = 3600


def approval_key(holder: str, token: str, spender: str) -> str:
    return f"approve:{holder.lower()}:{token.lower()}:{spender.lower()}"


class ApprovalCache:
    def __init__(
        self,
        store: ApprovalStore,
        max_ttl_seconds: int = MAX_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._max_ttl = max_ttl_seconds
        self._clock = clock

    @property
    def store(self) -> ApprovalStore:
        return self._store

    def ttl_for(self, approval: CachedApproval) -> int:
        # At least one second so an already-expired entry is still stored
        # and later evicted by get().
        remaining = int(approval.deadline - self._clock())
        return max(1, min(self._max_ttl, remaining))

    async def put(self, holder: str, token: str, spender: str, approval: CachedApproval) -> None:
        ttl = self.ttl_for(approval)
        await self._store.set(approval_key(holder, token, spender), approval, ttl)
        log.debug(
            "approval_cache.put",
            holder=holder[:10],
            token=token[:10],
            spender=spender[:10],
            ttl=ttl,
        )

    async def get(self, holder: str, token: str, spender: str) -> CachedApproval | None:
        key = approval_key(holder, token, spender)
        approval = await self._store.get(key)
        if approval is None:
            return None
        if approval.is_expired(self._clock()):
            await self._store.delete(key)
            log.debug("approval_cache.evicted_expired", holder=holder[:10], token=token[:10])
            return None
        return approval

    async def invalidate(self, holder: str, token: str, spender: str) -> None:
        await self._store.delete(approval_key(holder, token, spender))

    async def clear(self, holder: str) -> int:
        """Remove every entry for ``holder``. Returns the number removed."""
        removed = await self._store.delete_prefix(f"approve:{holder.lower()}:")
        log.info("approval_cache.cleared", holder=holder[:10], removed=removed)
        return removed
