"""Transaction routing: delegated (gasless) execution and private bundles."""

from arbcore.execution.delegated import ArbitrageParams, DelegatedExecutionManager, SwapLeg
from arbcore.execution.private_relay import BundleSubmission, PrivateRelay

__all__ = [
    "ArbitrageParams",
    "BundleSubmission",
    "DelegatedExecutionManager",
    "PrivateRelay",
    "SwapLeg",
]
