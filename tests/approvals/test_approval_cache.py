"""Tests for the approval cache."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from arbcore.approvals.cache import ApprovalCache, approval_key
from arbcore.approvals.stores import MemoryApprovalStore
from arbcore.models.approval import CachedApproval

HOLDER = "0xF39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TOKEN = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
SPENDER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _approval(deadline: float, nonce: int = 0) -> CachedApproval:
    return CachedApproval(
        token=TOKEN,
        spender=SPENDER,
        signature="0x" + "ab" * 65,
        deadline=int(deadline),
        nonce=nonce,
        value=Decimal("1000000"),
    )


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def cache(clock: Clock) -> ApprovalCache:
    return ApprovalCache(MemoryApprovalStore(clock=clock), clock=clock)


class TestApprovalKey:
    def test_lowercases_all_parts(self) -> None:
        assert approval_key(HOLDER, TOKEN, SPENDER) == (
            f"approve:{HOLDER.lower()}:{TOKEN.lower()}:{SPENDER.lower()}"
        )


class TestApprovalCache:
    @pytest.mark.asyncio()
    async def test_put_then_get(self, cache: ApprovalCache, clock: Clock) -> None:
        approval = _approval(clock.now + 600)
        await cache.put(HOLDER, TOKEN, SPENDER, approval)
        assert await cache.get(HOLDER, TOKEN, SPENDER) == approval

    @pytest.mark.asyncio()
    async def test_lookup_is_case_insensitive(self, cache: ApprovalCache, clock: Clock) -> None:
        await cache.put(HOLDER, TOKEN, SPENDER, _approval(clock.now + 600))
        assert await cache.get(HOLDER.lower(), TOKEN.upper(), SPENDER) is not None

    @pytest.mark.asyncio()
    async def test_expired_approval_evicted_and_stays_gone(self, clock: Clock) -> None:
        store = MemoryApprovalStore(clock=clock)
        cache = ApprovalCache(store, clock=clock)
        await cache.put(HOLDER, TOKEN, SPENDER, _approval(clock.now - 1))
        assert len(store) == 1
        assert await cache.get(HOLDER, TOKEN, SPENDER) is None
        assert len(store) == 0
        assert await cache.get(HOLDER, TOKEN, SPENDER) is None

    @pytest.mark.asyncio()
    async def test_deadline_passing_while_cached(self, cache: ApprovalCache, clock: Clock) -> None:
        await cache.put(HOLDER, TOKEN, SPENDER, _approval(clock.now + 60))
        clock.now += 61
        assert await cache.get(HOLDER, TOKEN, SPENDER) is None

    def test_ttl_capped_at_one_hour(self, cache: ApprovalCache, clock: Clock) -> None:
        assert cache.ttl_for(_approval(clock.now + 86_400)) == 3600

    def test_ttl_follows_deadline(self, cache: ApprovalCache, clock: Clock) -> None:
        assert cache.ttl_for(_approval(clock.now + 120)) == 120

    def test_ttl_at_least_one_second(self, cache: ApprovalCache, clock: Clock) -> None:
        assert cache.ttl_for(_approval(clock.now - 500)) == 1

    @pytest.mark.asyncio()
    async def test_store_ttl_expiry(self, cache: ApprovalCache, clock: Clock) -> None:
        # Deadline beyond the ceiling; the store entry lapses after an hour.
        await cache.put(HOLDER, TOKEN, SPENDER, _approval(clock.now + 7200))
        clock.now += 3600
        assert await cache.get(HOLDER, TOKEN, SPENDER) is None

    @pytest.mark.asyncio()
    async def test_invalidate(self, cache: ApprovalCache, clock: Clock) -> None:
        await cache.put(HOLDER, TOKEN, SPENDER, _approval(clock.now + 600))
        await cache.invalidate(HOLDER, TOKEN, SPENDER)
        assert await cache.get(HOLDER, TOKEN, SPENDER) is None

    @pytest.mark.asyncio()
    async def test_clear_only_touches_holder(self, cache: ApprovalCache, clock: Clock) -> None:
        other = "0x" + "99" * 20
        await cache.put(HOLDER, TOKEN, SPENDER, _approval(clock.now + 600))
        await cache.put(HOLDER, SPENDER, TOKEN, _approval(clock.now + 600))
        await cache.put(other, TOKEN, SPENDER, _approval(clock.now + 600))
        assert await cache.clear(HOLDER) == 2
        assert await cache.get(HOLDER, TOKEN, SPENDER) is None
        assert await cache.get(other, TOKEN, SPENDER) is not None

    @pytest.mark.asyncio()
    async def test_put_passes_ttl_to_store(self, clock: Clock) -> None:
        store = AsyncMock()
        cache = ApprovalCache(store, max_ttl_seconds=900, clock=clock)
        approval = _approval(clock.now + 3000)
        await cache.put(HOLDER, TOKEN, SPENDER, approval)
        store.set.assert_awaited_once_with(approval_key(HOLDER, TOKEN, SPENDER), approval, 900)
