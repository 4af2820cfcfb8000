from arbcore.models.approval import AuthorizationSignature, CachedApproval
from arbcore.models.events import Event, EventKind
from arbcore.models.market import CircuitState, GasEstimate, MarketQuote, PriceSample
from arbcore.models.order import OrderState, TradeOrder, TradeResult
from arbcore.models.reserve import ReserveStatus

__all__ = [
    "AuthorizationSignature",
    "CachedApproval",
    "CircuitState",
    "Event",
    "EventKind",
    "GasEstimate",
    "MarketQuote",
    "OrderState",
    "PriceSample",
    "ReserveStatus",
    "TradeOrder",
    "TradeResult",
]
