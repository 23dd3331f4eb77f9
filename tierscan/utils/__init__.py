"""Utilities package initialization."""
from tierscan.utils.time import is_optimal_scan_time, next_optimal_scan_time

__all__ = [
    "is_optimal_scan_time",
    "next_optimal_scan_time"
]
