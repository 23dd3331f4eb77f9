"""Services package initialization."""
from tierscan.services.endpoint_pool import EndpointPool
from tierscan.services.pacer import AdaptivePacer, PacerConfig
from tierscan.services.retry import RetryController, RetryConfig
from tierscan.services.snapshot_store import SnapshotStore, TierThreshold
from tierscan.services.scan_progress import ScanProgress, ScanProgressStore, ScanStatus
from tierscan.services.scan_lock import ScanLock
from tierscan.services.threshold_cache import ThresholdCache
from tierscan.services.tier_classifier import classify_balance
from tierscan.services.distribution import get_distribution_data, get_distribution_stats
from tierscan.services.balance_lookup import BalanceLookup, InvalidAddressError

__all__ = [
    "EndpointPool",
    "AdaptivePacer",
    "PacerConfig",
    "RetryController",
    "RetryConfig",
    "SnapshotStore",
    "TierThreshold",
    "ScanProgress",
    "ScanProgressStore",
    "ScanStatus",
    "ScanLock",
    "ThresholdCache",
    "classify_balance",
    "get_distribution_data",
    "get_distribution_stats",
    "BalanceLookup",
    "InvalidAddressError"
]
