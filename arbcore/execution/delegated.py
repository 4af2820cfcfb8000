"""Delegated execution: EIP-2612 permits forwarded through a trusted relay.

The trader signs an off-chain permit; a separate relayer account wraps the
target call in the forwarder's ``execute`` and pays the gas, so the trader
never needs native currency.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from arbcore.chain.rpc import encode_call, to_checksum
from arbcore.config.loader import ConfigError
from arbcore.core.errors import SignatureExpired
from arbcore.core.logging import get_logger
from arbcore.models.approval import AuthorizationSignature, CachedApproval

if TYPE_CHECKING:
    from arbcore.approvals.cache import ApprovalCache
    from arbcore.chain.rpc import ChainClient
    from arbcore.config.settings import DelegatedSettings
    from arbcore.interfaces import Signer

logger = get_logger(__name__)

NONCES = "nonces(address)"
FORWARDER_EXECUTE = "execute(address,bytes,uint256)"
EXECUTE_WITH_PERMIT = (
    "executeArbitrageWithPermit("
    "address,uint256,((address,bytes),(address,bytes),uint256),uint256,uint8,bytes32,bytes32)"
)
_EXECUTE_WITH_PERMIT_TYPES = [
    "address",
    "uint256",
    "((address,bytes),(address,bytes),uint256)",
    "uint256",
    "uint8",
    "bytes32",
    "bytes32",
]

PERMIT_TYPES: dict[str, Any] = {
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}

# Gas the forwarder itself burns on top of the inner call's budget.
FORWARDER_OVERHEAD = 50_000


class SwapLeg(BaseModel):
    router: str
    data: bytes

    model_config = {"frozen": True}


class ArbitrageParams(BaseModel):
    """Buy and sell legs plus the minimum profit (token units) the contract enforces."""

    buy_swap: SwapLeg
    sell_swap: SwapLeg
    min_profit: int = 0

    def as_abi(self) -> tuple[Any, ...]:
        return (
            (to_checksum(self.buy_swap.router), self.buy_swap.data),
            (to_checksum(self.sell_swap.router), self.sell_swap.data),
            self.min_profit,
        )

    model_config = {"frozen": True}


def _word(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


class DelegatedExecutionManager:
    def __init__(
        self,
        signer: Signer,
        chain: ChainClient,
        forwarder: str,
        relayer: Signer,
        approvals: ApprovalCache | None = None,
        chain_id: int | None = None,
        permit_name: str = "USD Coin",
        permit_version: str = "2",
        gas_budget: int = 500_000,
        authorization_ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._signer = signer
        self._chain = chain
        self._forwarder = to_checksum(forwarder)
        self._relayer = relayer
        self._approvals = approvals
        self._chain_id = chain_id
        self._permit_name = permit_name
        self._permit_version = permit_version
        self._gas_budget = gas_budget
        self._authorization_ttl = authorization_ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: DelegatedSettings,
        signer: Signer,
        chain: ChainClient,
        relayer: Signer,
        approvals: ApprovalCache | None = None,
        chain_id: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> DelegatedExecutionManager:
        if not settings.forwarder_address:
            msg = "delegated.forwarder_address is required for delegated execution"
            raise ConfigError(msg)
        return cls(
            signer=signer,
            chain=chain,
            forwarder=settings.forwarder_address,
            relayer=relayer,
            approvals=approvals,
            chain_id=chain_id,
            permit_name=settings.permit_name,
            permit_version=settings.permit_version,
            gas_budget=settings.gas_budget,
            authorization_ttl_seconds=settings.authorization_ttl_seconds,
            clock=clock,
        )

    @property
    def forwarder(self) -> str:
        return self._forwarder

    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self._chain.chain_id()
        return self._chain_id

    async def token_nonce(self, token: str) -> int:
        """Current permit nonce of the signer on ``token``."""
        return await self._chain.call_uint(
            token, encode_call(NONCES, ["address"], [self._signer.address]),
        )

    async def generate_authorization(
        self,
        token: str,
        spender: str,
        value: int,
        deadline: int,
        nonce: int | None = None,
    ) -> AuthorizationSignature:
        """Sign an EIP-2612 permit for ``value`` raw token units.

        ``nonce=None`` reads the signer's current nonce from the token.
        """
        if nonce is None:
            nonce = await self.token_nonce(token)
        domain = {
            "name": self._permit_name,
            "version": self._permit_version,
            "chainId": await self._get_chain_id(),
            "verifyingContract": to_checksum(token),
        }
        message = {
            "owner": to_checksum(self._signer.address),
            "spender": to_checksum(spender),
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        }
        signed = self._signer.sign_typed_data(domain, PERMIT_TYPES, message)
        authorization = AuthorizationSignature(
            v=signed.v,
            r=_word(signed.r),
            s=_word(signed.s),
            deadline=deadline,
            nonce=nonce,
            signature="0x" + bytes(signed.signature).hex(),
        )
        logger.info(
            "delegated.authorization_signed",
            token=token[:10],
            spender=spender[:10],
            nonce=nonce,
            deadline=deadline,
        )
        return authorization

    def encode_permit_call(
        self,
        token: str,
        amount: int,
        params: ArbitrageParams,
        authorization: AuthorizationSignature,
    ) -> bytes:
        return encode_call(
            EXECUTE_WITH_PERMIT,
            _EXECUTE_WITH_PERMIT_TYPES,
            [
                to_checksum(token),
                amount,
                params.as_abi(),
                authorization.deadline,
                authorization.v,
                bytes.fromhex(authorization.r.removeprefix("0x")),
                bytes.fromhex(authorization.s.removeprefix("0x")),
            ],
        )

    def encode_forward_call(self, target: str, encoded_call: bytes, gas_budget: int) -> bytes:
        return encode_call(
            FORWARDER_EXECUTE,
            ["address", "bytes", "uint256"],
            [to_checksum(target), encoded_call, gas_budget],
        )

    async def forward(
        self,
        target: str,
        encoded_call: bytes,
        gas_budget: int | None = None,
        deadline: int | None = None,
    ) -> str:
        """Relay ``encoded_call`` to ``target`` through the forwarder.

        Raises:
            SignatureExpired: ``deadline`` has already passed.
        """
        now = self._clock()
        if deadline is not None and deadline < now:
            msg = f"authorization deadline {deadline} elapsed at {int(now)}"
            raise SignatureExpired(msg)

        budget = self._gas_budget if gas_budget is None else gas_budget
        tx = await self._chain.fill_transaction(
            {
                "to": self._forwarder,
                "data": self.encode_forward_call(target, encoded_call, budget),
            },
            self._relayer.address,
            default_gas=budget + FORWARDER_OVERHEAD,
        )
        raw = self._relayer.sign_transaction(tx)
        tx_hash = await self._chain.send_raw_transaction(raw)
        logger.info(
            "delegated.forwarded",
            target=target[:10],
            relayer=self._relayer.address[:10] + "...",
            gas_budget=budget,
            tx_hash=tx_hash,
        )
        return tx_hash

    async def _authorization_for(
        self,
        token: str,
        spender: str,
        amount: int,
    ) -> AuthorizationSignature:
        owner = self._signer.address
        nonce = await self.token_nonce(token)

        if self._approvals is not None:
            cached = await self._approvals.get(owner, token, spender)
            if cached is not None and cached.nonce == nonce and cached.value == Decimal(amount):
                logger.debug("delegated.authorization_reused", token=token[:10], nonce=nonce)
                return cached.to_authorization()

        deadline = int(self._clock()) + self._authorization_ttl
        authorization = await self.generate_authorization(token, spender, amount, deadline, nonce)
        if self._approvals is not None:
            await self._approvals.put(
                owner,
                token,
                spender,
                CachedApproval(
                    token=token,
                    spender=spender,
                    signature=authorization.signature,
                    deadline=authorization.deadline,
                    nonce=authorization.nonce,
                    value=Decimal(amount),
                ),
            )
        return authorization

    async def execute_delegated(
        self,
        contract: str,
        token: str,
        amount: int,
        params: ArbitrageParams,
    ) -> str:
        """Permit ``contract`` to pull ``amount`` of ``token`` and run the arbitrage.

        Returns the forwarder transaction hash.
        """
        authorization = await self._authorization_for(token, contract, amount)
        data = self.encode_permit_call(token, amount, params, authorization)
        return await self.forward(
            contract, data, self._gas_budget, deadline=authorization.deadline,
        )
