"""Event stream model published on the in-process event channel."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    FILL = "Fill"
    REJECT = "Reject"
    ERROR = "Error"
    QUOTE = "Quote"
    BALANCE_UPDATE = "BalanceUpdate"
    CIRCUIT_TRIPPED = "CircuitTripped"
    CIRCUIT_RESET = "CircuitReset"
    RESERVE_CHECK = "ReserveCheck"
    RESERVE_BREACH = "ReserveBreach"

    @property
    def is_terminal(self) -> bool:
        return self in (EventKind.FILL, EventKind.REJECT, EventKind.ERROR)


class Event(BaseModel):
    kind: EventKind
    order_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
