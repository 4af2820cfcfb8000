"""Chain access: JSON-RPC client and signer implementations."""

from __future__ import annotations

from arbcore.chain.rpc import ChainClient, encode_call, selector
from arbcore.chain.signer import LocalAccountSigner, load_signer

__all__ = [
    "ChainClient",
    "LocalAccountSigner",
    "encode_call",
    "load_signer",
    "selector",
]
