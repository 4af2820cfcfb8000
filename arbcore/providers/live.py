"""Live providers: real balances, node gas prices, signed router swaps."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from arbcore.chain.rpc import encode_call, hex_to_int, to_checksum
from arbcore.core.errors import ChainError
from arbcore.core.logging import get_logger, log_order_event
from arbcore.models.market import GasEstimate
from arbcore.models.order import TradeOrder, TradeResult

if TYPE_CHECKING:
    from arbcore.chain.rpc import ChainClient
    from arbcore.config.settings import TokenConfig
    from arbcore.execution.private_relay import PrivateRelay
    from arbcore.interfaces import Signer
    from arbcore.models.market import MarketQuote

logger = get_logger(__name__)

_GWEI = Decimal("1000000000")

SWAP_EXACT_TOKENS = "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)"
_SWAP_TYPES = ["uint256", "uint256", "address[]", "address", "uint256"]


def to_base_units(amount: Decimal, decimals: int) -> int:
    return int(amount * (Decimal(10) ** decimals))


def from_base_units(raw: int, decimals: int) -> Decimal:
    return Decimal(raw) / (Decimal(10) ** decimals)


def _lookup(tokens: dict[str, TokenConfig], symbol: str) -> TokenConfig:
    try:
        return tokens[symbol]
    except KeyError:
        msg = f"Token {symbol} not found in config"
        raise ChainError(msg) from None


def encode_swap(
    order: TradeOrder,
    tokens: dict[str, TokenConfig],
    recipient: str,
) -> bytes:
    """Router calldata swapping exactly ``amount_in`` for at least ``min_amount_out``."""
    token_in = _lookup(tokens, order.token_in)
    token_out = _lookup(tokens, order.token_out)
    return encode_call(
        SWAP_EXACT_TOKENS,
        _SWAP_TYPES,
        [
            to_base_units(order.amount_in, token_in.decimals),
            to_base_units(order.min_amount_out, token_out.decimals),
            [to_checksum(token_in.address), to_checksum(token_out.address)],
            to_checksum(recipient),
            order.deadline,
        ],
    )


class LiveWallet:
    """ERC-20 balances of the signer's address."""

    def __init__(
        self,
        chain: ChainClient,
        signer: Signer,
        tokens: dict[str, TokenConfig],
    ) -> None:
        self._chain = chain
        self._signer = signer
        self._tokens = tokens

    @property
    def address(self) -> str:
        return self._signer.address

    async def balance_of(self, token: str) -> Decimal:
        config = _lookup(self._tokens, token)
        raw = await self._chain.erc20_balance(config.address, self._signer.address)
        return from_base_units(raw, config.decimals)


class LiveGasEstimator:
    """Node gas price plus an ``eth_estimateGas`` of the router swap."""

    def __init__(
        self,
        chain: ChainClient,
        signer: Signer,
        router: str,
        tokens: dict[str, TokenConfig],
        default_gas_limit: int = 300_000,
    ) -> None:
        self._chain = chain
        self._signer = signer
        self._router = router
        self._tokens = tokens
        self._default_gas_limit = default_gas_limit

    async def gas_price_gwei(self) -> Decimal:
        return Decimal(await self._chain.gas_price()) / _GWEI

    async def estimate(self, order: TradeOrder) -> GasEstimate:
        price = await self.gas_price_gwei()
        try:
            gas_limit = await self._chain.estimate_gas({
                "from": self._signer.address,
                "to": to_checksum(self._router),
                "data": encode_swap(order, self._tokens, self._signer.address),
            })
        except ChainError as exc:
            logger.warning(
                "gas.estimate_failed",
                order_id=order.id,
                fallback=self._default_gas_limit,
                error=str(exc)[:200],
            )
            gas_limit = self._default_gas_limit
        return GasEstimate(gas_limit=gas_limit, gas_price_gwei=price)


class LiveExecutor:
    """Signs router swaps and submits them privately or to the public mempool."""

    def __init__(
        self,
        chain: ChainClient,
        signer: Signer,
        router: str,
        tokens: dict[str, TokenConfig],
        relay: PrivateRelay | None = None,
        receipt_timeout: float = 120.0,
    ) -> None:
        self._chain = chain
        self._signer = signer
        self._router = router
        self._tokens = tokens
        self._relay = relay
        self._receipt_timeout = receipt_timeout

    @property
    def mode(self) -> str:
        return "live"

    async def swap(
        self,
        order: TradeOrder,
        quote: MarketQuote,
        gas: GasEstimate,
    ) -> TradeResult:
        tx: dict[str, Any] = {
            "to": to_checksum(self._router),
            "data": encode_swap(order, self._tokens, self._signer.address),
            "gas": gas.gas_limit,
            "gasPrice": int(gas.gas_price_gwei * _GWEI),
        }

        if self._relay is not None:
            submission = await self._relay.submit(tx)
            tx_hash = submission.tx_hashes[0]
            log_order_event(
                "live_submit", order.id,
                route="private", tx_hash=tx_hash, target_block=submission.target_block,
            )
        else:
            filled = await self._chain.fill_transaction(tx, self._signer.address)
            raw = self._signer.sign_transaction(filled)
            tx_hash = await self._chain.send_raw_transaction(raw)
            log_order_event("live_submit", order.id, route="public", tx_hash=tx_hash)

        receipt = await self._chain.wait_for_receipt(tx_hash, timeout=self._receipt_timeout)
        if receipt is None:
            msg = f"no receipt for {tx_hash} after {self._receipt_timeout}s"
            raise ChainError(msg)

        gas_used = hex_to_int(receipt.get("gasUsed"))
        if hex_to_int(receipt.get("status")) != 1:
            log_order_event("live_reverted", order.id, tx_hash=tx_hash, gas_used=gas_used)
            return TradeResult(
                success=False,
                gas_used=gas_used,
                tx_hash=tx_hash,
                error=ChainError.code,
                message=f"transaction {tx_hash} reverted",
            )

        # Router output is not decoded from logs; report the quoted fill.
        amount_out = order.amount_in * quote.price
        log_order_event(
            "live_fill", order.id,
            tx_hash=tx_hash, gas_used=gas_used, price=str(quote.price),
        )
        return TradeResult(
            success=True,
            price=quote.price,
            amount=amount_out,
            gas_used=gas_used,
            tx_hash=tx_hash,
        )
