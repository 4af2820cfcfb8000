"""Typed runtime settings built from the merged TOML/env config."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

from arbcore.config.loader import ConfigError

if TYPE_CHECKING:
    from arbcore.config.loader import ConfigLoader


class TradingMode(str, Enum):
    SIMULATION = "simulation"
    LIVE = "live"


class TokenConfig(BaseModel):
    address: str
    decimals: int = 18

    model_config = {"frozen": True}


class RiskLimits(BaseModel):
    max_position_size: Decimal = Decimal("10000")
    max_daily_loss: Decimal = Decimal("500")
    max_slippage_pct: Decimal = Decimal("1.0")


class GasLimits(BaseModel):
    max_gas_price_gwei: Decimal = Decimal("100")
    priority_fee_gwei: Decimal = Decimal("2")
    default_gas_limit: int = 300_000


class BreakerSettings(BaseModel):
    threshold_pct: Decimal = Decimal("2.0")
    window_seconds: float = 60.0
    history_seconds: float = 120.0
    cooldown_seconds: float = 300.0
    funding_rate_floor_pct: Decimal = Decimal("-0.05")


class ApprovalSettings(BaseModel):
    redis_url: str | None = None
    max_ttl_seconds: int = 3600


class ReserveSettings(BaseModel):
    vault_address: str | None = None
    decimals: int = 6
    interval_seconds: float = 3600.0
    halt_on_breach: bool = False
    report_path: str | None = None


class RelaySettings(BaseModel):
    enabled: bool = False
    url: str = "https://relay.flashbots.net"


class DelegatedSettings(BaseModel):
    forwarder_address: str | None = None
    permit_name: str = "USD Coin"
    permit_version: str = "2"
    gas_budget: int = 500_000
    authorization_ttl_seconds: int = 3600


class MarketSettings(BaseModel):
    quote_timeout_seconds: float = 5.0
    binance_url: str = "https://api.binance.com"
    oneinch_url: str = "https://api.1inch.dev"
    reference_prices: dict[str, Decimal] = Field(default_factory=dict)


class SimulationSettings(BaseModel):
    external_prices: bool = False
    balances_file: str | None = None
    initial_balances: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "USDC": Decimal("10000"),
            "USDT": Decimal("10000"),
            "DAI": Decimal("10000"),
        },
    )


class MetricsSettings(BaseModel):
    enabled: bool = True
    port: int = 9090
    equity_tokens: list[str] = Field(default_factory=lambda: ["USDC", "USDT", "DAI"])


class CoreConfig(BaseModel):
    """Everything the engine and its collaborators need at construction."""

    mode: TradingMode = TradingMode.SIMULATION
    chain_id: int = 137
    rpc_url: str = "https://polygon-rpc.com"
    router_address: str | None = None
    tokens: dict[str, TokenConfig] = Field(default_factory=dict)
    risk: RiskLimits = Field(default_factory=RiskLimits)
    gas: GasLimits = Field(default_factory=GasLimits)
    circuit_breaker: BreakerSettings = Field(default_factory=BreakerSettings)
    approvals: ApprovalSettings = Field(default_factory=ApprovalSettings)
    reserve: ReserveSettings = Field(default_factory=ReserveSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    delegated: DelegatedSettings = Field(default_factory=DelegatedSettings)
    market: MarketSettings = Field(default_factory=MarketSettings)
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    def token(self, symbol: str) -> TokenConfig:
        """Look up a configured token, raising ConfigError when unknown."""
        try:
            return self.tokens[symbol]
        except KeyError:
            msg = f"Token {symbol} not found in config"
            raise ConfigError(msg) from None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CoreConfig:
        engine = data.get("engine", {})
        payload: dict[str, Any] = {
            key: data[key]
            for key in (
                "tokens", "risk", "gas", "circuit_breaker", "approvals", "reserve",
                "relay", "delegated", "market", "simulation", "metrics",
            )
            if key in data
        }
        for key in ("mode", "chain_id", "rpc_url", "router_address"):
            if key in engine:
                payload[key] = engine[key]
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            msg = f"Invalid configuration: {exc}"
            raise ConfigError(msg) from exc

    @classmethod
    def from_loader(cls, loader: ConfigLoader) -> CoreConfig:
        loader.validate_ranges()
        return cls.from_dict(loader.config)
