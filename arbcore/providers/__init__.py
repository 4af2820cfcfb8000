"""Execution-mode providers.

``build_providers`` picks the simulated or live variant of every capability
once, from the configured mode.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from arbcore.config.loader import ConfigError
from arbcore.config.settings import TradingMode
from arbcore.core.logging import get_logger
from arbcore.providers.live import LiveExecutor, LiveGasEstimator, LiveWallet
from arbcore.providers.market import (
    BinancePriceSource,
    FallbackMarketSource,
    OneInchQuoteSource,
    SyntheticPriceSource,
)
from arbcore.providers.simulated import SimulatedExecutor, SimulatedGasEstimator, SimulatedWallet

if TYPE_CHECKING:
    from arbcore.chain.rpc import ChainClient
    from arbcore.config.settings import CoreConfig
    from arbcore.execution.private_relay import PrivateRelay
    from arbcore.interfaces import (
        GasEstimator,
        MarketSource,
        OrderExecutor,
        Signer,
        WalletAccessor,
    )

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProviderSet:
    mode: TradingMode
    market: MarketSource
    wallet: WalletAccessor
    gas: GasEstimator
    executor: OrderExecutor


def build_providers(
    config: CoreConfig,
    signer: Signer | None = None,
    chain: ChainClient | None = None,
    relay: PrivateRelay | None = None,
) -> ProviderSet:
    """Construct the provider variant for ``config.mode``.

    Raises:
        ConfigError: live mode without a signer, chain client or router.
    """
    match config.mode:
        case TradingMode.SIMULATION:
            sources: list[MarketSource] = []
            if config.simulation.external_prices:
                sources.append(BinancePriceSource(
                    base_url=config.market.binance_url,
                    timeout=config.market.quote_timeout_seconds,
                ))
            sources.append(SyntheticPriceSource(config.market.reference_prices))
            wallet = SimulatedWallet(
                initial_balances=config.simulation.initial_balances,
                balances_file=config.simulation.balances_file,
            )
            providers = ProviderSet(
                mode=config.mode,
                market=FallbackMarketSource(sources),
                wallet=wallet,
                gas=SimulatedGasEstimator(),
                executor=SimulatedExecutor(wallet),
            )
        case TradingMode.LIVE:
            if signer is None:
                msg = "Live mode requires a signer (set ARBCORE_PRIVATE_KEY or ARBCORE_KEYSTORE_PATH)"
                raise ConfigError(msg)
            if chain is None:
                msg = "Live mode requires a chain client"
                raise ConfigError(msg)
            if not config.router_address:
                msg = "Live mode requires engine.router_address"
                raise ConfigError(msg)
            providers = ProviderSet(
                mode=config.mode,
                market=FallbackMarketSource([
                    OneInchQuoteSource(
                        config.tokens,
                        chain_id=config.chain_id,
                        base_url=config.market.oneinch_url,
                    ),
                    BinancePriceSource(
                        base_url=config.market.binance_url,
                        timeout=config.market.quote_timeout_seconds,
                    ),
                ]),
                wallet=LiveWallet(chain, signer, config.tokens),
                gas=LiveGasEstimator(
                    chain,
                    signer,
                    config.router_address,
                    config.tokens,
                    default_gas_limit=config.gas.default_gas_limit,
                ),
                executor=LiveExecutor(
                    chain,
                    signer,
                    config.router_address,
                    config.tokens,
                    relay=relay,
                ),
            )

    logger.info("providers.built", mode=providers.mode.value, executor=providers.executor.mode)
    return providers


__all__ = [
    "BinancePriceSource",
    "FallbackMarketSource",
    "LiveExecutor",
    "LiveGasEstimator",
    "LiveWallet",
    "OneInchQuoteSource",
    "ProviderSet",
    "SimulatedExecutor",
    "SimulatedGasEstimator",
    "SimulatedWallet",
    "SyntheticPriceSource",
    "build_providers",
]
