"""Fixed wealth tiers ordered from rarest to most common."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Tier:
    """A wealth bracket: holders in the top ``percentile`` percent."""
    id: str
    name: str
    emoji: str
    percentile: float
    color: str
    description: str


TIERS: List[Tier] = [
    Tier("whale", "Whale", "🐋", 0.01, "#3B82F6", "Top 0.01% of XRP holders"),
    Tier("shark", "Shark", "🦈", 0.1, "#64748B", "Top 0.1% of XRP holders"),
    Tier("dolphin", "Dolphin", "🐬", 1, "#06B6D4", "Top 1% of XRP holders"),
    Tier("tuna", "Tuna", "🐟", 5, "#0D9488", "Top 5% of XRP holders"),
    Tier("squid", "Squid", "🦑", 10, "#8B5CF6", "Top 10% of XRP holders"),
    Tier("shrimp", "Shrimp", "🦐", 25, "#F472B6", "Top 25% of XRP holders"),
    Tier("crab", "Crab", "🦀", 50, "#F97316", "Top 50% of XRP holders"),
    Tier("plankton", "Plankton", "🦠", 100, "#22C55E", "XRP holder"),
]

# Catch-all tier: percentile 100, minimum balance always 0
CATCH_ALL_TIER = TIERS[-1]

# Estimates from historical distribution (~4.8M accounts), used when no scan data exists
DEFAULT_MINIMUM_BALANCES: Dict[str, Decimal] = {
    "whale": Decimal("10000000"),
    "shark": Decimal("1000000"),
    "dolphin": Decimal("100000"),
    "tuna": Decimal("25000"),
    "squid": Decimal("10000"),
    "shrimp": Decimal("2500"),
    "crab": Decimal("500"),
    "plankton": Decimal("0"),
}

DEFAULT_TOTAL_ACCOUNTS = 4_800_000


def get_tier_by_id(tier_id: str) -> Optional[Tier]:
    """Look up a tier by id or name (case-insensitive)."""
    key = tier_id.lower()
    for tier in TIERS:
        if tier.id == key or tier.name.lower() == key:
            return tier
    return None
