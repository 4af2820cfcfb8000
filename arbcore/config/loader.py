"""TOML config loader with environment variable overrides."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any


class ConfigError(Exception):
    """Raised when config loading or validation fails."""


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base, returning a new dict."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict[str, Any], prefix: str = "ARBCORE") -> dict[str, Any]:
    """Apply environment variable overrides.

    Env var naming: ARBCORE__section__key=value (double underscore separator).
    Nested keys: ARBCORE__risk__max_slippage_pct=0.5
    """
    result = dict(config)
    env_prefix = f"{prefix}__"

    for env_key, env_value in os.environ.items():
        if not env_key.startswith(env_prefix):
            continue

        parts = env_key[len(env_prefix) :].lower().split("__")
        target = result
        for part in parts[:-1]:
            if part not in target:
                target[part] = {}
            if isinstance(target[part], dict):
                target[part] = dict(target[part])
                target = target[part]
            else:
                break
        else:
            target[parts[-1]] = _coerce_value(env_value)

    return result


def _coerce_value(value: str) -> Any:
    """Coerce string env var value to appropriate Python type.

    Numeric conversion is attempted BEFORE boolean so "0"/"1" stay integers.
    """
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    return value


class ConfigLoader:
    """Load and merge TOML config files with env var overrides."""

    def __init__(
        self,
        config_dir: str | Path = "config",
        env: str | None = None,
    ) -> None:
        self._config_dir = Path(config_dir)
        self._env = env or os.environ.get("ARBCORE_ENV", "development")
        self._config: dict[str, Any] = {}

    @property
    def env(self) -> str:
        return self._env

    def load(self) -> dict[str, Any]:
        """Load config: default.toml -> {env}.toml -> env vars."""
        default_path = self._config_dir / "default.toml"
        if not default_path.exists():
            msg = f"Default config not found: {default_path}"
            raise ConfigError(msg)

        self._config = self._load_toml(default_path)

        env_path = self._config_dir / f"{self._env}.toml"
        if env_path.exists():
            self._config = _deep_merge(self._config, self._load_toml(env_path))

        self._config = _apply_env_overrides(self._config)
        return self._config

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Get a config value using dotted notation: 'risk.max_slippage_pct'."""
        if not self._config:
            self.load()

        current: Any = self._config
        for part in dotted_key.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def require(self, dotted_key: str) -> Any:
        """Get a config value, raising ConfigError if missing."""
        value = self.get(dotted_key)
        if value is None:
            msg = f"Required config key missing: {dotted_key}"
            raise ConfigError(msg)
        return value

    def validate_keys(self, required_keys: list[str]) -> None:
        """Validate that all required keys exist."""
        missing = [k for k in required_keys if self.get(k) is None]
        if missing:
            msg = f"Missing required config keys: {', '.join(missing)}"
            raise ConfigError(msg)

    def validate_ranges(self) -> None:
        """Validate config value ranges for safety-critical parameters.

        Raises:
            ConfigError: If any risk/breaker/gas parameter is out of range.
        """
        if not self._config:
            self.load()

        errors: list[str] = []

        mode = self.get("engine.mode")
        if mode is not None and mode not in ("simulation", "live"):
            errors.append(f"engine.mode must be 'simulation' or 'live', got {mode}")

        max_slippage = self.get("risk.max_slippage_pct")
        if max_slippage is not None and not (0 < max_slippage <= 100):
            errors.append(f"risk.max_slippage_pct must be in (0, 100], got {max_slippage}")

        for key in ("risk.max_position_size", "risk.max_daily_loss", "gas.max_gas_price_gwei"):
            value = self.get(key)
            if value is not None and value <= 0:
                errors.append(f"{key} must be > 0, got {value}")

        threshold = self.get("circuit_breaker.threshold_pct")
        if threshold is not None and threshold <= 0:
            errors.append(f"circuit_breaker.threshold_pct must be > 0, got {threshold}")

        cooldown = self.get("circuit_breaker.cooldown_seconds")
        if cooldown is not None and cooldown <= 0:
            errors.append(f"circuit_breaker.cooldown_seconds must be > 0, got {cooldown}")

        interval = self.get("reserve.interval_seconds")
        if interval is not None and interval <= 0:
            errors.append(f"reserve.interval_seconds must be > 0, got {interval}")

        if errors:
            msg = "Config validation failed:\n  " + "\n  ".join(errors)
            raise ConfigError(msg)

    @property
    def config(self) -> dict[str, Any]:
        if not self._config:
            self.load()
        return self._config

    @staticmethod
    def _load_toml(path: Path) -> dict[str, Any]:
        with open(path, "rb") as f:
            return tomllib.load(f)
