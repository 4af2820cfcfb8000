from arbcore.reserve.monitor import ReserveMonitor, StaticCustody, VaultCustody

__all__ = ["ReserveMonitor", "StaticCustody", "VaultCustody"]
