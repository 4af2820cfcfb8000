"""Signer implementations behind the ``Signer`` protocol.

Supports a raw private key or an encrypted keystore + passphrase. Both end
up as an eth_account ``LocalAccount``; hardware signers plug into the same
protocol from outside this package. Credentials come from environment
variables and are never logged unmasked.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct

from arbcore.config.loader import ConfigError
from arbcore.core.logging import get_logger, mask_secret

logger = get_logger(__name__)


class LocalAccountSigner:
    """Signs with an in-process eth_account key."""

    def __init__(self, private_key: str | bytes) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return str(self._account.address)

    def sign_transaction(self, transaction: dict[str, Any]) -> bytes:
        signed = self._account.sign_transaction(transaction)
        raw = signed.raw_transaction if hasattr(signed, "raw_transaction") else signed.rawTransaction
        return bytes(raw)

    def sign_typed_data(
        self,
        domain: dict[str, Any],
        types: dict[str, Any],
        message: dict[str, Any],
    ) -> Any:
        return self._account.sign_typed_data(
            domain_data=domain,
            message_types=types,
            message_data=message,
        )

    def sign_message(self, payload: bytes) -> Any:
        return self._account.sign_message(encode_defunct(primitive=payload))

    @classmethod
    def from_keystore(cls, path: str | Path, password: str) -> LocalAccountSigner:
        keystore = json.loads(Path(path).read_text())
        return cls(Account.decrypt(keystore, password))


def load_signer(
    env_prefix: str = "ARBCORE",
) -> LocalAccountSigner | None:
    """Build a signer from the environment, or None when nothing is set.

    Env vars:
        {prefix}_PRIVATE_KEY        -- raw hex private key
        {prefix}_KEYSTORE_PATH      -- encrypted JSON keystore
        {prefix}_KEYSTORE_PASSWORD  -- keystore passphrase
    """
    private_key = os.environ.get(f"{env_prefix}_PRIVATE_KEY", "")
    keystore_path = os.environ.get(f"{env_prefix}_KEYSTORE_PATH", "")

    if private_key:
        signer = LocalAccountSigner(private_key)
        logger.info("signer.loaded", source="private_key", key=mask_secret(private_key))
        return signer

    if keystore_path:
        password = os.environ.get(f"{env_prefix}_KEYSTORE_PASSWORD", "")
        if not password:
            msg = f"{env_prefix}_KEYSTORE_PASSWORD is required with {env_prefix}_KEYSTORE_PATH"
            raise ConfigError(msg)
        try:
            signer = LocalAccountSigner.from_keystore(keystore_path, password)
        except (OSError, ValueError) as exc:
            msg = f"Failed to unlock keystore {keystore_path}: {exc}"
            raise ConfigError(msg) from exc
        logger.info("signer.loaded", source="keystore", address=signer.address[:10] + "...")
        return signer

    return None
