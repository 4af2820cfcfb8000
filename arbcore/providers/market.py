"""Price sources for ``"IN/OUT"`` pairs.

Every source returns a ``MarketQuote`` or raises. ``FallbackMarketSource``
walks its sources in order and only gives up with ``QuoteUnavailable``
once all of them have failed.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Sequence
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

import httpx

from arbcore.core.errors import QuoteUnavailable
from arbcore.core.logging import get_logger, mask_secret
from arbcore.models.market import MarketQuote

if TYPE_CHECKING:
    from arbcore.config.settings import TokenConfig
    from arbcore.interfaces import MarketSource

log = get_logger(__name__)


def split_pair(pair: str) -> tuple[str, str]:
    base, sep, quote = pair.partition("/")
    if not sep or not base or not quote:
        msg = f"Malformed pair {pair!r}, expected 'IN/OUT'"
        raise QuoteUnavailable(msg)
    return base, quote


class BinancePriceSource:
    """Public spot ticker (no auth)."""

    name = "Binance"

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._clock = clock
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def get_quote(self, pair: str) -> MarketQuote:
        base, quote = split_pair(pair)
        client = await self._get_client()
        resp = await client.get("/api/v3/ticker/price", params={"symbol": f"{base}{quote}"})
        resp.raise_for_status()
        data: dict[str, Any] = resp.json()
        return MarketQuote(
            pair=pair,
            price=Decimal(str(data["price"])),
            source=self.name,
            timestamp=self._clock(),
        )

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class OneInchQuoteSource:
    """Aggregator quote for one whole unit of the input token.

    Reads the API key from ONEINCH_API_KEY when none is given.
    """

    name = "1inch"

    def __init__(
        self,
        tokens: dict[str, TokenConfig],
        chain_id: int = 137,
        base_url: str = "https://api.1inch.dev",
        api_key: str | None = None,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = tokens
        self._chain_id = chain_id
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key if api_key is not None else os.environ.get("ONEINCH_API_KEY", "")
        self._timeout = timeout
        self._clock = clock
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if self._api_key:
            log.info("oneinch.init", api_key=mask_secret(self._api_key))

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers(),
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def get_quote(self, pair: str) -> MarketQuote:
        base, quote = split_pair(pair)
        token_in = self._tokens.get(base)
        token_out = self._tokens.get(quote)
        if token_in is None or token_out is None:
            msg = f"No token addresses configured for {pair}"
            raise QuoteUnavailable(msg)

        client = await self._get_client()
        resp = await client.get(
            f"/swap/v6.0/{self._chain_id}/quote",
            params={
                "src": token_in.address,
                "dst": token_out.address,
                "amount": str(10**token_in.decimals),
            },
        )
        resp.raise_for_status()
        data: dict[str, Any] = resp.json()
        raw_out = data.get("toAmount") or data.get("toTokenAmount")
        if raw_out is None:
            msg = "1inch quote missing toAmount"
            raise QuoteUnavailable(msg)
        return MarketQuote(
            pair=pair,
            price=Decimal(str(raw_out)) / Decimal(10**token_out.decimals),
            source=self.name,
            timestamp=self._clock(),
        )

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class SyntheticPriceSource:
    """Configured reference prices; pairs without one quote at parity."""

    name = "Synthetic"

    def __init__(
        self,
        reference_prices: dict[str, Decimal] | None = None,
        default_price: Decimal = Decimal("1"),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._prices = dict(reference_prices or {})
        self._default = default_price
        self._clock = clock

    def set_price(self, pair: str, price: Decimal) -> None:
        self._prices[pair] = price

    async def get_quote(self, pair: str) -> MarketQuote:
        split_pair(pair)
        return MarketQuote(
            pair=pair,
            price=self._prices.get(pair, self._default),
            source=self.name,
            timestamp=self._clock(),
        )


class FallbackMarketSource:
    """Tries each source in order; the first successful quote wins."""

    def __init__(self, sources: Sequence[MarketSource]) -> None:
        if not sources:
            msg = "FallbackMarketSource needs at least one source"
            raise ValueError(msg)
        self._sources = list(sources)

    @property
    def sources(self) -> list[MarketSource]:
        return list(self._sources)

    async def get_quote(self, pair: str) -> MarketQuote:
        errors: list[str] = []
        for source in self._sources:
            name = getattr(source, "name", type(source).__name__)
            try:
                return await source.get_quote(pair)
            except (httpx.HTTPError, QuoteUnavailable, KeyError, ValueError, InvalidOperation) as exc:
                log.warning("market.source_failed", source=name, pair=pair, error=str(exc)[:200])
                errors.append(f"{name}: {exc}")
        msg = f"No quote for {pair} ({'; '.join(errors)})"
        raise QuoteUnavailable(msg)

    async def close(self) -> None:
        for source in self._sources:
            closer = getattr(source, "close", None)
            if closer is not None:
                await closer()
