"""Market data models: quotes, price samples, breaker state, gas costs."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, field_validator

_GWEI = Decimal("1000000000")


class MarketQuote(BaseModel):
    """Price of ``pair`` (``"IN/OUT"``) as observed by one source."""

    pair: str
    price: Decimal
    source: str
    timestamp: float

    @field_validator("price")
    @classmethod
    def positive_price(cls, value: Decimal) -> Decimal:
        if value <= 0:
            msg = "price must be positive"
            raise ValueError(msg)
        return value

    @property
    def base(self) -> str:
        return self.pair.split("/")[0]

    @property
    def quote(self) -> str:
        return self.pair.split("/")[-1]

    model_config = {"frozen": True}


class PriceSample(BaseModel):
    asset: str
    price: Decimal
    timestamp: float

    model_config = {"frozen": True}


class CircuitState(BaseModel):
    """Snapshot of one asset's breaker flag."""

    asset: str
    is_open: bool = False
    tripped_at: float | None = None
    price_change: Decimal | None = None


class GasEstimate(BaseModel):
    gas_limit: int
    gas_price_gwei: Decimal

    @property
    def cost_native(self) -> Decimal:
        """Total cost in native currency units (gas * gwei / 1e9)."""
        return Decimal(self.gas_limit) * self.gas_price_gwei / _GWEI

    @property
    def cost_gwei(self) -> Decimal:
        return Decimal(self.gas_limit) * self.gas_price_gwei

    model_config = {"frozen": True}
