"""Distribution read API: thresholds, stats and balance classification."""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
import logging

from tierscan.api.dependencies import (
    get_balance_lookup,
    get_snapshot_store,
    get_store_max_age,
    get_threshold_cache,
)
from tierscan.providers import AccountNotFoundError, LedgerError
from tierscan.services.balance_lookup import BalanceLookup, InvalidAddressError
from tierscan.services.distribution import get_distribution_data, get_distribution_stats
from tierscan.services.snapshot_store import SnapshotStore
from tierscan.services.threshold_cache import ThresholdCache
from tierscan.services.tier_classifier import classify_balance

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["distribution"])


class ThresholdResponse(BaseModel):
    """One tier's minimum balance."""
    tier_id: str
    name: str
    emoji: str
    percentile: float
    minimum_balance: Decimal


class ThresholdsResponse(BaseModel):
    thresholds: List[ThresholdResponse]
    total_accounts: int
    last_updated: datetime
    source: str


class StatsResponse(BaseModel):
    total_accounts: int
    median_balance: Decimal
    last_updated: datetime
    source: str


class ClassificationResponse(BaseModel):
    """Tier placement of a balance."""
    address: Optional[str] = None
    balance: Decimal
    tier: str
    tier_emoji: str
    tier_color: str
    percentile: float
    exact_percentile: float
    next_tier: Optional[str]
    next_tier_emoji: Optional[str]
    progress_percent: Optional[int]
    amount_to_next_tier: float
    current_threshold: float
    next_threshold: Optional[float]
    total_accounts: int
    last_updated: datetime


def _error(status_code: int, message: str, code: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": message, "code": code})


@router.get("/thresholds", response_model=ThresholdsResponse)
async def get_thresholds(
    store: SnapshotStore = Depends(get_snapshot_store),
    cache: ThresholdCache = Depends(get_threshold_cache),
    store_max_age: timedelta = Depends(get_store_max_age)
):
    """Current tier thresholds, from the freshest available source."""
    data = await get_distribution_data(store, cache, store_max_age)
    return {
        "thresholds": [
            {
                "tier_id": t.tier_id,
                "name": t.name,
                "emoji": t.emoji,
                "percentile": t.percentile,
                "minimum_balance": t.minimum_balance,
            }
            for t in data.thresholds
        ],
        "total_accounts": data.total_accounts,
        "last_updated": data.timestamp,
        "source": data.source.value,
    }


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    store: SnapshotStore = Depends(get_snapshot_store),
    cache: ThresholdCache = Depends(get_threshold_cache),
    store_max_age: timedelta = Depends(get_store_max_age)
):
    """Total funded accounts and median balance."""
    stats = await get_distribution_stats(store, cache, store_max_age)
    return {**stats, "source": stats["source"].value}


@router.get("/classify", response_model=ClassificationResponse)
async def classify(
    balance: Optional[Decimal] = Query(None, ge=0, description="Balance in XRP"),
    address: Optional[str] = Query(None, description="Classic or X-address; balance is read live from the ledger"),
    store: SnapshotStore = Depends(get_snapshot_store),
    cache: ThresholdCache = Depends(get_threshold_cache),
    store_max_age: timedelta = Depends(get_store_max_age),
    lookup: BalanceLookup = Depends(get_balance_lookup)
):
    """
    Classify an XRP balance against the current thresholds.

    Pass either ``balance`` directly or an ``address`` whose current balance
    is fetched from the ledger. Returns the tier, interpolated percentile
    and progress to the next tier.
    """
    if balance is None and not address:
        raise _error(status.HTTP_400_BAD_REQUEST, "balance or address is required", "MISSING_PARAMETER")

    if address:
        try:
            address, balance = await lookup.get_balance(address)
        except InvalidAddressError:
            raise _error(status.HTTP_400_BAD_REQUEST, "Invalid XRP address format", "INVALID_ADDRESS")
        except AccountNotFoundError:
            raise _error(
                status.HTTP_404_NOT_FOUND,
                "Account not found or not activated",
                "ACCOUNT_NOT_FOUND",
            )
        except LedgerError as e:
            logger.error(f"Balance lookup failed for {address}: {e}")
            raise _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Ledger temporarily unavailable", "LEDGER_UNAVAILABLE")

    data = await get_distribution_data(store, cache, store_max_age)
    result = classify_balance(balance, data.thresholds)
    logger.debug(f"Classified {balance} XRP as {result.tier.name}")

    return {
        "address": address,
        "balance": balance,
        **result.to_dict(),
        "total_accounts": data.total_accounts,
        "last_updated": data.timestamp,
    }
