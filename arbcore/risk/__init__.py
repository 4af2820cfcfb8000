"""Risk containment: price circuit breaker, risk limits, kill switch."""

from arbcore.risk.circuit_breaker import PriceCircuitBreaker
from arbcore.risk.kill_switch import KillSwitch
from arbcore.risk.risk_manager import RiskManager

__all__ = ["KillSwitch", "PriceCircuitBreaker", "RiskManager"]
