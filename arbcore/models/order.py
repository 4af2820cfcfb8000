"""Trade order and result models."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


class OrderState(str, Enum):
    CREATED = "CREATED"
    QUOTED = "QUOTED"
    RISK_CHECKED = "RISK_CHECKED"
    COST_ESTIMATED = "COST_ESTIMATED"
    SUBMITTED = "SUBMITTED"
    FILLED = "FILLED"
    REJECTED = "REJECTED"
    ERRORED = "ERRORED"

    @property
    def is_terminal(self) -> bool:
        return self in (
            OrderState.FILLED,
            OrderState.REJECTED,
            OrderState.ERRORED,
        )


class TradeOrder(BaseModel):
    """A candidate swap handed to the engine by the order-origination path.

    ``deadline`` is a unix timestamp in seconds and ``slippage`` a percentage.
    Expiry is enforced at admission, not here, so an already-expired order
    can still be built and rejected by the engine.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    token_in: str
    token_out: str
    amount_in: Decimal
    min_amount_out: Decimal = Decimal("0")
    deadline: int
    slippage: Decimal = Decimal("0.5")

    @field_validator("amount_in", "min_amount_out", "slippage")
    @classmethod
    def non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            msg = "amounts must be non-negative"
            raise ValueError(msg)
        return value

    @property
    def pair(self) -> str:
        return f"{self.token_in}/{self.token_out}"

    def is_expired(self, now: float) -> bool:
        return self.deadline <= now

    model_config = {"frozen": True}


class TradeResult(BaseModel):
    """Terminal outcome of one order.

    ``error`` holds a taxonomy code (e.g. ``"InsufficientBalance"``) and is
    present exactly when ``success`` is false; ``message`` carries detail.
    """

    success: bool
    price: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    gas_used: int | None = None
    tx_hash: str | None = None
    error: str | None = None
    message: str | None = None

    @model_validator(mode="after")
    def error_iff_failure(self) -> TradeResult:
        if self.success and self.error is not None:
            msg = "successful result cannot carry an error"
            raise ValueError(msg)
        if not self.success and not self.error:
            msg = "failed result requires an error"
            raise ValueError(msg)
        return self

    @classmethod
    def failure(cls, error: str, message: str | None = None) -> TradeResult:
        return cls(success=False, error=error, message=message)

    model_config = {"frozen": True}
