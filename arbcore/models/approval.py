"""Off-chain authorization (permit) models."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel


class AuthorizationSignature(BaseModel):
    """Split EIP-2612 permit signature plus the values it was bound to."""

    v: int
    r: str
    s: str
    deadline: int
    nonce: int
    signature: str

    model_config = {"frozen": True}


class CachedApproval(BaseModel):
    token: str
    spender: str
    signature: str
    deadline: int
    nonce: int
    value: Decimal = Decimal("0")

    def is_expired(self, now: float) -> bool:
        return self.deadline < now

    def to_authorization(self) -> AuthorizationSignature:
        raw = bytes.fromhex(self.signature.removeprefix("0x"))
        return AuthorizationSignature(
            r="0x" + raw[:32].hex(),
            s="0x" + raw[32:64].hex(),
            v=raw[64],
            deadline=self.deadline,
            nonce=self.nonce,
            signature=self.signature,
        )

    model_config = {"frozen": True}
