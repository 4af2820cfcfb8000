"""Tests for cached approvals."""

from __future__ import annotations

from decimal import Decimal

from arbcore.models.approval import CachedApproval


def _approval(deadline: int = 1000, signature: str | None = None) -> CachedApproval:
    r = "11" * 32
    s = "22" * 32
    return CachedApproval(
        token="0xtoken",
        spender="0xspender",
        signature=signature or "0x" + r + s + "1b",
        deadline=deadline,
        nonce=3,
        value=Decimal("1000000"),
    )


class TestCachedApproval:
    def test_is_expired(self) -> None:
        approval = _approval(deadline=1000)
        assert approval.is_expired(999) is False
        assert approval.is_expired(1000) is False
        assert approval.is_expired(1001) is True

    def test_to_authorization_splits_signature(self) -> None:
        auth = _approval().to_authorization()
        assert auth.r == "0x" + "11" * 32
        assert auth.s == "0x" + "22" * 32
        assert auth.v == 27
        assert auth.deadline == 1000
        assert auth.nonce == 3
