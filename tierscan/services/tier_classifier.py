"""Tier classification and percentile interpolation for a single balance."""
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Union
from tierscan.constants.tiers import Tier, CATCH_ALL_TIER, get_tier_by_id
from tierscan.services.snapshot_store import TierThreshold


# Floor for the extrapolated percentile above the richest threshold
MIN_EXACT_PERCENTILE = 0.001

Number = Union[int, float, Decimal]


@dataclass
class TierClassification:
    """Where a balance sits in the distribution."""
    tier: Tier
    percentile: float
    exact_percentile: float
    next_tier: Optional[Tier]
    progress_percent: Optional[int]  # None at the top tier
    amount_to_next_tier: float
    current_threshold: float
    next_threshold: Optional[float]

    def to_dict(self) -> dict:
        return {
            "tier": self.tier.name,
            "tier_emoji": self.tier.emoji,
            "tier_color": self.tier.color,
            "percentile": self.percentile,
            "exact_percentile": round(self.exact_percentile, 2),
            "next_tier": self.next_tier.name if self.next_tier else None,
            "next_tier_emoji": self.next_tier.emoji if self.next_tier else None,
            "progress_percent": self.progress_percent,
            "amount_to_next_tier": self.amount_to_next_tier,
            "current_threshold": self.current_threshold,
            "next_threshold": self.next_threshold,
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _tier_for(threshold: TierThreshold) -> Tier:
    tier = get_tier_by_id(threshold.tier_id)
    if tier is not None:
        return tier
    # Threshold for a tier not in the static table: describe it from the row itself
    return Tier(
        threshold.tier_id,
        threshold.name,
        threshold.emoji,
        threshold.percentile,
        CATCH_ALL_TIER.color,
        f"Top {threshold.percentile}% of XRP holders",
    )


def _richest_first(thresholds: Sequence[TierThreshold]):
    # Ties on minimum go to the rarer tier so classification is stable
    return sorted(thresholds, key=lambda t: (-float(t.minimum_balance), t.percentile))


def calculate_exact_percentile(balance: float, thresholds: Sequence[TierThreshold]) -> float:
    """
    Interpolate the balance's percentile between the bracketing thresholds.

    Above the richest threshold the richest tier's percentile is scaled by
    ``minimum / balance`` (floored at 0.001). Below every threshold the
    result is 100.
    """
    by_balance = list(reversed(_richest_first(thresholds)))

    for i in range(len(by_balance) - 1, -1, -1):
        lower = by_balance[i]
        lower_min = float(lower.minimum_balance)
        if balance < lower_min:
            continue

        if i == len(by_balance) - 1:
            if balance <= 0:
                return lower.percentile
            return max(MIN_EXACT_PERCENTILE, lower.percentile * (lower_min / balance))

        upper = by_balance[i + 1]
        upper_min = float(upper.minimum_balance)
        balance_range = upper_min - lower_min
        percentile_range = lower.percentile - upper.percentile
        progress = (balance - lower_min) / balance_range
        return max(upper.percentile, lower.percentile - percentile_range * progress)

    return 100.0


def calculate_progress_percent(balance: float, current_min: float, next_min: float) -> int:
    """Progress from the current tier's minimum toward the next tier's, 0-100."""
    if balance >= next_min:
        return 100
    if balance <= current_min:
        return 0
    progress = 100 * (balance - current_min) / (next_min - current_min)
    return min(100, max(0, _round_half_up(progress)))


def classify_balance(balance: Number, thresholds: Sequence[TierThreshold]) -> TierClassification:
    """
    Classify a balance (XRP) against a threshold table.

    The first threshold, richest to poorest, whose minimum is at or below the
    balance decides the tier; the threshold immediately richer is the next
    tier. Balances below every threshold get the poorest tier.
    """
    if not thresholds:
        raise ValueError("Cannot classify a balance without thresholds")

    amount = float(balance)
    ordered = _richest_first(thresholds)

    matched_index = None
    for i, threshold in enumerate(ordered):
        if amount >= float(threshold.minimum_balance):
            matched_index = i
            break

    if matched_index is None:
        matched_index = len(ordered) - 1

    current = ordered[matched_index]
    richer = ordered[matched_index - 1] if matched_index > 0 else None

    current_min = float(current.minimum_balance)
    if richer is not None:
        next_min = float(richer.minimum_balance)
        progress_percent = calculate_progress_percent(amount, current_min, next_min)
        amount_to_next = max(0.0, next_min - amount)
    else:
        next_min = None
        progress_percent = None
        amount_to_next = 0.0

    tier = _tier_for(current)
    return TierClassification(
        tier=tier,
        percentile=tier.percentile,
        exact_percentile=calculate_exact_percentile(amount, thresholds),
        next_tier=_tier_for(richer) if richer is not None else None,
        progress_percent=progress_percent,
        amount_to_next_tier=amount_to_next,
        current_threshold=current_min,
        next_threshold=next_min,
    )

