"""Tests for typed settings."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from arbcore.config.loader import ConfigError, ConfigLoader
from arbcore.config.settings import CoreConfig, TradingMode


class TestCoreConfig:
    def test_from_loader(self, config_loader: ConfigLoader) -> None:
        config = CoreConfig.from_loader(config_loader)
        assert config.mode is TradingMode.SIMULATION
        assert config.chain_id == 137
        assert config.rpc_url == "http://localhost:8545"
        assert config.risk.max_daily_loss == Decimal("500")
        assert config.circuit_breaker.cooldown_seconds == 300.0
        assert config.metrics.enabled is False

    def test_defaults(self) -> None:
        config = CoreConfig()
        assert config.mode is TradingMode.SIMULATION
        assert config.approvals.max_ttl_seconds == 3600
        assert config.delegated.gas_budget == 500_000
        assert config.reserve.halt_on_breach is False
        assert config.simulation.initial_balances["USDC"] == Decimal("10000")

    def test_token_lookup(self, config_loader: ConfigLoader) -> None:
        config = CoreConfig.from_loader(config_loader)
        assert config.token("USDT").decimals == 6

    def test_unknown_token_raises(self) -> None:
        with pytest.raises(ConfigError, match="WBTC"):
            CoreConfig().token("WBTC")

    def test_invalid_payload_raises_config_error(self) -> None:
        with pytest.raises(ConfigError, match="Invalid configuration"):
            CoreConfig.from_dict({"engine": {"mode": "paper"}})

    def test_engine_keys_lifted(self) -> None:
        config = CoreConfig.from_dict({
            "engine": {"mode": "live", "chain_id": 1, "router_address": "0xabc"},
        })
        assert config.mode is TradingMode.LIVE
        assert config.chain_id == 1
        assert config.router_address == "0xabc"

    def test_shipped_default_config_is_valid(self) -> None:
        config_dir = Path(__file__).resolve().parents[2] / "config"
        loader = ConfigLoader(config_dir=config_dir, env="test")
        config = CoreConfig.from_loader(loader)
        assert set(config.tokens) >= {"USDC", "USDT", "DAI"}
