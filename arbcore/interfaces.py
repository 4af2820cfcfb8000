"""Protocol interfaces for arbcore components.

The engine codes against these contracts only; each capability has a
simulated and a live implementation under ``arbcore.providers``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from arbcore.models.approval import CachedApproval
    from arbcore.models.market import GasEstimate, MarketQuote
    from arbcore.models.order import TradeOrder, TradeResult


@runtime_checkable
class MarketSource(Protocol):
    """Protocol for price quotes on an ``"IN/OUT"`` pair."""

    async def get_quote(self, pair: str) -> MarketQuote: ...


@runtime_checkable
class WalletAccessor(Protocol):
    """Protocol for balances and the trading identity."""

    async def balance_of(self, token: str) -> Decimal: ...

    @property
    def address(self) -> str: ...


@runtime_checkable
class GasEstimator(Protocol):
    async def estimate(self, order: TradeOrder) -> GasEstimate: ...

    async def gas_price_gwei(self) -> Decimal: ...


@runtime_checkable
class OrderExecutor(Protocol):
    """Protocol for swap execution (simulated or on-chain)."""

    async def swap(
        self,
        order: TradeOrder,
        quote: MarketQuote,
        gas: GasEstimate,
    ) -> TradeResult: ...

    @property
    def mode(self) -> str: ...


@runtime_checkable
class FundingRateSource(Protocol):
    """Hourly funding rate (percent) for an asset."""

    async def funding_rate(self, asset: str) -> Decimal: ...


@runtime_checkable
class SignedPayload(Protocol):
    v: int
    r: int
    s: int
    signature: bytes


@runtime_checkable
class Signer(Protocol):
    """Opaque signing capability: raw key, keystore or hardware device."""

    @property
    def address(self) -> str: ...

    def sign_transaction(self, transaction: dict[str, Any]) -> bytes: ...

    def sign_typed_data(
        self,
        domain: dict[str, Any],
        types: dict[str, Any],
        message: dict[str, Any],
    ) -> SignedPayload: ...

    def sign_message(self, payload: bytes) -> SignedPayload: ...


@runtime_checkable
class CustodyReader(Protocol):
    """Read surface of the custody contract used by the reserve monitor."""

    async def locked_value(self) -> Decimal: ...

    async def outstanding_claims(self) -> Decimal: ...


@runtime_checkable
class ApprovalStore(Protocol):
    """Backing store for cached authorizations."""

    async def get(self, key: str) -> CachedApproval | None: ...

    async def set(self, key: str, approval: CachedApproval, ttl: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_prefix(self, prefix: str) -> int: ...


class RiskDecision:
    """Result of a risk check."""

    def __init__(self, approved: bool, reason: str = "", max_size: Decimal = Decimal("0")) -> None:
        self.approved = approved
        self.reason = reason
        self.max_size = max_size
