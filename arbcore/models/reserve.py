"""Proof-of-reserve snapshot model."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import ROUND_DOWN, Decimal, localcontext

from pydantic import BaseModel, Field

_RATIO_QUANTUM = Decimal("0.0001")


class ReserveStatus(BaseModel):
    """Locked collateral versus outstanding claims at one point in time."""

    locked: Decimal
    claims: Decimal
    is_healthy: bool
    ratio: Decimal
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def deficit(self) -> Decimal:
        return max(self.claims - self.locked, Decimal("0"))

    @classmethod
    def compute(cls, locked: Decimal, claims: Decimal) -> ReserveStatus:
        """Build a snapshot; ratio is 0 when there are no claims."""
        if claims > 0:
            with localcontext() as ctx:
                # Room for every integer digit of the ratio plus the four decimals.
                ctx.prec = max(ctx.prec, locked.adjusted() - claims.adjusted() + 8)
                ctx.rounding = ROUND_DOWN
                ratio = (locked / claims).quantize(_RATIO_QUANTUM)
        else:
            ratio = Decimal("0")
        return cls(
            locked=locked,
            claims=claims,
            is_healthy=locked >= claims,
            ratio=ratio,
        )

    model_config = {"frozen": True}
