"""Error taxonomy shared by every arbcore component.

Each error carries a stable ``code`` that ends up in ``TradeResult.error``
and in published events, so callers never need to match on message text.
"""

from __future__ import annotations


class TradingError(Exception):
    """Base class for all domain errors raised inside arbcore."""

    code = "Error"
    retryable = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class InsufficientBalance(TradingError):
    code = "InsufficientBalance"


class RiskLimitExceeded(TradingError):
    """Slippage, position size, daily loss, funding or gas price limit hit."""

    code = "RiskLimitExceeded"


class CircuitOpen(TradingError):
    code = "CircuitOpen"


class QuoteUnavailable(TradingError):
    """Every configured price source failed or timed out."""

    code = "QuoteUnavailable"
    retryable = True


class SimulationRejected(TradingError):
    """Pre-submission bundle simulation reported an error."""

    code = "SimulationRejected"


class SignatureExpired(TradingError):
    code = "SignatureExpired"


class ReserveBreach(TradingError):
    code = "ReserveBreach"


class InvalidOrder(TradingError):
    """Order failed admission (zero amount, elapsed deadline)."""

    code = "InvalidOrder"


class DuplicateOrder(TradingError):
    code = "DuplicateOrder"


class ChainError(TradingError):
    """JSON-RPC node returned an error or an unusable response."""

    code = "ChainError"
    retryable = True
