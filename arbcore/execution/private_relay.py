"""Private bundle relay. Submits transactions outside the public mempool.

Every bundle is simulated with ``eth_callBundle`` against its target block
before ``eth_sendBundle``; a simulation error aborts the submission. A
missed target block is not retried.
"""

from __future__ import annotations

import itertools
import json
from typing import TYPE_CHECKING, Any

import httpx
from eth_utils import keccak
from pydantic import BaseModel

from arbcore.core.errors import ChainError, SimulationRejected
from arbcore.core.logging import get_logger

if TYPE_CHECKING:
    from arbcore.chain.rpc import ChainClient
    from arbcore.interfaces import Signer

logger = get_logger(__name__)

DEFAULT_RELAY_URL = "https://relay.flashbots.net"


class BundleSubmission(BaseModel):
    """Handle returned for an accepted bundle."""

    bundle_hash: str
    target_block: int
    tx_hashes: list[str]

    model_config = {"frozen": True}


class PrivateRelay:
    def __init__(
        self,
        chain: ChainClient,
        signer: Signer,
        auth_signer: Signer,
        relay_url: str = DEFAULT_RELAY_URL,
        timeout: float = 10.0,
        default_gas: int = 300_000,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._chain = chain
        self._signer = signer
        self._auth_signer = auth_signer
        self._relay_url = relay_url
        self._timeout = timeout
        self._default_gas = default_gas
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    @property
    def relay_url(self) -> str:
        return self._relay_url

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    def _auth_header(self, body: str) -> str:
        digest = "0x" + keccak(text=body).hex()
        signed = self._auth_signer.sign_message(digest.encode())
        return f"{self._auth_signer.address}:0x{bytes(signed.signature).hex()}"

    async def _relay_call(self, method: str, params: list[Any]) -> dict[str, Any]:
        """POST a JSON-RPC request to the relay; returns the whole response body."""
        body = json.dumps({
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        })
        client = await self._get_client()
        try:
            resp = await client.post(
                self._relay_url,
                content=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Flashbots-Signature": self._auth_header(body),
                },
            )
            data: dict[str, Any] = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"relay {method} failed: {exc}"
            raise ChainError(msg) from exc
        return data

    async def sign_bundle(self, transactions: list[dict[str, Any]]) -> list[bytes]:
        """Fill and sign each transaction with consecutive nonces."""
        signed: list[bytes] = []
        nonce: int | None = None
        for tx in transactions:
            if nonce is not None and "nonce" not in tx:
                tx = {**tx, "nonce": nonce}
            filled = await self._chain.fill_transaction(
                tx, self._signer.address, default_gas=self._default_gas,
            )
            nonce = int(filled["nonce"]) + 1
            signed.append(self._signer.sign_transaction(filled))
        return signed

    async def simulate(self, signed: list[bytes], target_block: int) -> dict[str, Any]:
        data = await self._relay_call("eth_callBundle", [{
            "txs": ["0x" + raw.hex() for raw in signed],
            "blockNumber": hex(target_block),
            "stateBlockNumber": "latest",
        }])
        if "error" in data:
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise SimulationRejected(f"Simulation failed: {message}")

        result: dict[str, Any] = data.get("result") or {}
        for tx_result in result.get("results", []):
            if tx_result.get("error") or tx_result.get("revert"):
                reason = tx_result.get("revert") or tx_result.get("error")
                raise SimulationRejected(f"Simulation failed: {reason}")
        logger.debug(
            "relay.simulated",
            target_block=target_block,
            gas_used=result.get("totalGasUsed"),
        )
        return result

    async def submit(
        self,
        transaction: dict[str, Any],
        target_block: int | None = None,
    ) -> BundleSubmission:
        """Sign, simulate and send a single-transaction bundle."""
        if target_block is None:
            target_block = await self._chain.block_number() + 1

        signed = await self.sign_bundle([transaction])
        await self.simulate(signed, target_block)

        data = await self._relay_call("eth_sendBundle", [{
            "txs": ["0x" + raw.hex() for raw in signed],
            "blockNumber": hex(target_block),
        }])
        if "error" in data:
            msg = f"eth_sendBundle rejected: {data['error']}"
            raise ChainError(msg)

        result = data.get("result") or {}
        submission = BundleSubmission(
            bundle_hash=str(result.get("bundleHash", "")),
            target_block=target_block,
            tx_hashes=["0x" + keccak(raw).hex() for raw in signed],
        )
        logger.info(
            "relay.bundle_sent",
            target_block=target_block,
            bundle_hash=submission.bundle_hash,
            tx_hash=submission.tx_hashes[0],
        )
        return submission

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
