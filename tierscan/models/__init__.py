"""Models package initialization."""
from tierscan.models.account import Account
from tierscan.models.threshold import Threshold

__all__ = [
    "Account",
    "Threshold"
]
