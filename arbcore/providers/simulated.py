"""Simulated providers: in-memory ledger, fixed gas, local fills.

Nothing here signs or touches the network.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from decimal import Decimal
from pathlib import Path

from arbcore.core.errors import InsufficientBalance, RiskLimitExceeded
from arbcore.core.logging import get_logger, log_order_event
from arbcore.models.market import GasEstimate, MarketQuote
from arbcore.models.order import TradeOrder, TradeResult

logger = get_logger(__name__)

SIMULATED_ADDRESS = "0x" + "0" * 39 + "1"
DEFAULT_BALANCES: dict[str, Decimal] = {
    "USDC": Decimal("10000"),
    "USDT": Decimal("10000"),
    "DAI": Decimal("10000"),
}


class SimulatedWallet:
    """Balance ledger, optionally persisted to a JSON file.

    When ``balances_file`` exists its contents win over ``initial_balances``;
    otherwise the initial balances are written to it.
    """

    def __init__(
        self,
        initial_balances: dict[str, Decimal] | None = None,
        balances_file: str | Path | None = None,
        address: str = SIMULATED_ADDRESS,
    ) -> None:
        self._address = address
        self._file = Path(balances_file) if balances_file else None
        self._balances: dict[str, Decimal] = dict(
            DEFAULT_BALANCES if initial_balances is None else initial_balances,
        )
        if self._file is not None:
            if self._file.exists():
                self._load()
            else:
                self._save()

    @property
    def address(self) -> str:
        return self._address

    async def balance_of(self, token: str) -> Decimal:
        return self.balance(token)

    def balance(self, token: str) -> Decimal:
        return self._balances.get(token, Decimal("0"))

    def balances(self) -> dict[str, Decimal]:
        return dict(self._balances)

    def credit(self, token: str, amount: Decimal) -> Decimal:
        self._balances[token] = self.balance(token) + amount
        self._save()
        return self._balances[token]

    def debit(self, token: str, amount: Decimal) -> Decimal:
        available = self.balance(token)
        if amount > available:
            msg = f"{token}: need {amount}, have {available}"
            raise InsufficientBalance(msg)
        self._balances[token] = available - amount
        self._save()
        return self._balances[token]

    def _load(self) -> None:
        assert self._file is not None
        try:
            data = json.loads(self._file.read_text())
            self._balances = {token: Decimal(str(value)) for token, value in data.items()}
            logger.info("sim_wallet.loaded", path=str(self._file), tokens=len(self._balances))
        except (OSError, ValueError) as exc:
            logger.error("sim_wallet.load_failed", path=str(self._file), error=str(exc))

    def _save(self) -> None:
        if self._file is None:
            return
        try:
            self._file.parent.mkdir(parents=True, exist_ok=True)
            payload = {token: str(value) for token, value in self._balances.items()}
            self._file.write_text(json.dumps(payload, indent=2))
        except OSError as exc:
            logger.error("sim_wallet.save_failed", path=str(self._file), error=str(exc))


class SimulatedGasEstimator:
    """Fixed 150k gas at 30 gwei."""

    def __init__(
        self,
        gas_limit: int = 150_000,
        gas_price_gwei: Decimal = Decimal("30"),
    ) -> None:
        self._gas_limit = gas_limit
        self._gas_price_gwei = gas_price_gwei

    async def estimate(self, order: TradeOrder) -> GasEstimate:
        return GasEstimate(gas_limit=self._gas_limit, gas_price_gwei=self._gas_price_gwei)

    async def gas_price_gwei(self) -> Decimal:
        return self._gas_price_gwei


class SimulatedExecutor:
    """Fills swaps against a ``SimulatedWallet`` at the quoted price minus a fee."""

    def __init__(
        self,
        wallet: SimulatedWallet,
        fee_rate: Decimal = Decimal("0.001"),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._wallet = wallet
        self._fee_rate = fee_rate
        self._clock = clock

    @property
    def mode(self) -> str:
        return "simulation"

    @property
    def wallet(self) -> SimulatedWallet:
        return self._wallet

    async def swap(
        self,
        order: TradeOrder,
        quote: MarketQuote,
        gas: GasEstimate,
    ) -> TradeResult:
        available = self._wallet.balance(order.token_in)
        if order.amount_in > available:
            log_order_event(
                "sim_rejected", order.id,
                reason="insufficient_balance",
                available=str(available), required=str(order.amount_in),
            )
            return TradeResult.failure(
                InsufficientBalance.code,
                f"{order.token_in}: need {order.amount_in}, have {available}",
            )

        amount_out = order.amount_in * quote.price * (1 - self._fee_rate)
        if amount_out < order.min_amount_out:
            log_order_event(
                "sim_rejected", order.id,
                reason="below_min_out",
                amount_out=str(amount_out), min_amount_out=str(order.min_amount_out),
            )
            return TradeResult.failure(
                RiskLimitExceeded.code,
                f"output {amount_out} below minimum {order.min_amount_out}",
            )

        self._wallet.debit(order.token_in, order.amount_in)
        self._wallet.credit(order.token_out, amount_out)
        tx_hash = f"0xsim{int(self._clock() * 1000)}"

        log_order_event(
            "sim_fill", order.id,
            price=str(quote.price), amount_out=str(amount_out), tx_hash=tx_hash,
        )
        return TradeResult(
            success=True,
            price=quote.price,
            amount=amount_out,
            gas_used=0,
            tx_hash=tx_hash,
        )
