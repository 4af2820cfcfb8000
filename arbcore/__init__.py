"""arbcore: trade-execution control plane for cross-venue arbitrage."""

__version__ = "0.1.0"
