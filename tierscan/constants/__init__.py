"""Static configuration constants."""
from tierscan.constants.tiers import (
    Tier,
    TIERS,
    CATCH_ALL_TIER,
    DEFAULT_MINIMUM_BALANCES,
    DEFAULT_TOTAL_ACCOUNTS,
    get_tier_by_id,
)

__all__ = [
    "Tier",
    "TIERS",
    "CATCH_ALL_TIER",
    "DEFAULT_MINIMUM_BALANCES",
    "DEFAULT_TOTAL_ACCOUNTS",
    "get_tier_by_id",
]
