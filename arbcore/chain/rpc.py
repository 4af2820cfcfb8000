"""Minimal async JSON-RPC client for an EVM node.

Uses httpx + eth_abi + eth_utils directly so web3 is not a dependency.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import httpx
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from arbcore.core.errors import ChainError
from arbcore.core.logging import get_logger

logger = get_logger(__name__)

_BALANCE_OF = "balanceOf(address)"


def selector(signature: str) -> bytes:
    """First 4 bytes of keccak256 of a function signature."""
    return function_signature_to_4byte_selector(signature)


def encode_call(signature: str, types: list[str], args: list[Any]) -> bytes:
    """ABI-encode a call: selector followed by the encoded arguments."""
    return selector(signature) + encode(types, args)


def hex_to_int(hex_str: str | None) -> int:
    """Convert hex string (with or without 0x) to int."""
    return int(hex_str, 16) if hex_str and hex_str != "0x" else 0


def to_checksum(addr: str) -> str:
    return to_checksum_address(addr)


class ChainClient:
    """Async JSON-RPC client bound to one node URL."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def rpc(self, method: str, params: list[Any]) -> Any:
        """Make a JSON-RPC call and return its ``result``."""
        client = await self._get_client()
        try:
            resp = await client.post(
                self._rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "method": method,
                    "params": params,
                    "id": next(self._ids),
                },
            )
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"{method} failed: {exc}"
            raise ChainError(msg) from exc
        if "error" in data:
            msg = f"RPC error from {method}: {data['error']}"
            raise ChainError(msg)
        return data.get("result")

    async def call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        """Execute eth_call and return raw bytes result."""
        hex_result = await self.rpc("eth_call", [
            {"to": to_checksum(to), "data": "0x" + data.hex()},
            block,
        ])
        return bytes.fromhex(hex_result.removeprefix("0x")) if hex_result else b""

    async def call_uint(self, to: str, data: bytes) -> int:
        result = await self.call(to, data)
        if len(result) < 32:
            msg = f"short eth_call result from {to}"
            raise ChainError(msg)
        return int(decode(["uint256"], result[:32])[0])

    async def chain_id(self) -> int:
        return hex_to_int(await self.rpc("eth_chainId", []))

    async def block_number(self) -> int:
        return hex_to_int(await self.rpc("eth_blockNumber", []))

    async def gas_price(self) -> int:
        """Current gas price in wei."""
        return hex_to_int(await self.rpc("eth_gasPrice", []))

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        params = {k: ("0x" + v.hex() if isinstance(v, bytes) else v) for k, v in tx.items()}
        return hex_to_int(await self.rpc("eth_estimateGas", [params]))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return hex_to_int(
            await self.rpc("eth_getTransactionCount", [to_checksum(address), block]),
        )

    async def fill_transaction(
        self,
        tx: dict[str, Any],
        sender: str,
        default_gas: int = 300_000,
        gas_price_multiplier: float = 1.0,
    ) -> dict[str, Any]:
        """Fill in nonce, gas, gasPrice, chainId and value where missing."""
        filled = dict(tx)
        filled.pop("from", None)
        if "to" in filled:
            filled["to"] = to_checksum(filled["to"])
        if "nonce" not in filled:
            filled["nonce"] = await self.get_transaction_count(sender)
        if "gasPrice" not in filled and "maxFeePerGas" not in filled:
            filled["gasPrice"] = int(await self.gas_price() * gas_price_multiplier)
        if "chainId" not in filled:
            filled["chainId"] = await self.chain_id()
        filled.setdefault("gas", default_gas)
        filled.setdefault("value", 0)
        return filled

    async def send_raw_transaction(self, raw: bytes) -> str:
        """Broadcast a signed transaction, return its hash."""
        return str(await self.rpc("eth_sendRawTransaction", ["0x" + raw.hex()]))

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
    ) -> dict[str, Any] | None:
        """Poll for a transaction receipt; None if it never shows up."""
        attempts = max(1, int(timeout / poll_interval))
        for attempt in range(attempts):
            result = await self.rpc("eth_getTransactionReceipt", [tx_hash])
            if result is not None:
                return dict(result)
            if attempt < attempts - 1:
                await asyncio.sleep(poll_interval)
        logger.warning("chain.receipt_timeout", tx_hash=tx_hash, timeout=timeout)
        return None

    async def erc20_balance(self, token: str, holder: str) -> int:
        """Raw ERC-20 balance (smallest units)."""
        return await self.call_uint(
            token, encode_call(_BALANCE_OF, ["address"], [to_checksum(holder)]),
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
