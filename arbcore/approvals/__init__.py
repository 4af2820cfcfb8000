from arbcore.approvals.cache import ApprovalCache, approval_key
from arbcore.approvals.stores import MemoryApprovalStore, RedisApprovalStore

__all__ = [
    "ApprovalCache",
    "MemoryApprovalStore",
    "RedisApprovalStore",
    "approval_key",
]
