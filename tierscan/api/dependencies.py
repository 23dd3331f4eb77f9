"""FastAPI dependencies: resources, services and bearer-token checks."""
import logging
import secrets
from datetime import timedelta
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from tierscan.core.config import settings
from tierscan.core.resources import Resources
from tierscan.services.balance_lookup import BalanceLookup
from tierscan.services.scan_service import ScanService
from tierscan.services.snapshot_store import SnapshotStore
from tierscan.services.threshold_cache import ThresholdCache


logger = logging.getLogger(__name__)

# Bearer token extraction; missing headers are reported as 401 below
bearer_scheme = HTTPBearer(auto_error=False)


def get_resources(request: Request) -> Resources:
    """Resources opened by the application lifespan."""
    return request.app.state.resources


def get_snapshot_store(resources: Resources = Depends(get_resources)) -> SnapshotStore:
    return SnapshotStore(resources.session_factory)


def get_threshold_cache(resources: Resources = Depends(get_resources)) -> ThresholdCache:
    return ThresholdCache(resources.redis, ttl_seconds=resources.settings.thresholds_cache_ttl_seconds)


def get_store_max_age(resources: Resources = Depends(get_resources)) -> timedelta:
    """How old published store thresholds may be before lookups fall back to the cache."""
    return timedelta(hours=resources.settings.store_max_age_hours)


def get_balance_lookup(request: Request) -> BalanceLookup:
    """Balance lookup created by the application lifespan."""
    return request.app.state.balance_lookup


def get_scan_service(resources: Resources = Depends(get_resources)) -> ScanService:
    return ScanService(resources.session_factory, resources.redis, resources.settings)


def _verify_bearer(credentials: Optional[HTTPAuthorizationCredentials], secret: Optional[str], name: str) -> None:
    """
    Compare a bearer token against a configured secret.

    Raises:
        HTTPException: 500 if the secret is not configured, 401 if the
            token is missing or wrong
    """
    if not secret:
        logger.error(f"{name} is not configured; rejecting request")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"{name} not configured"
        )

    if credentials is None or not secrets.compare_digest(credentials.credentials, secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_scan_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> None:
    """Guard for manual scan triggers (SCAN_API_KEY)."""
    _verify_bearer(credentials, settings.scan_api_key, "SCAN_API_KEY")


async def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> None:
    """Guard for the scheduled scan endpoint (CRON_SECRET)."""
    _verify_bearer(credentials, settings.cron_secret, "CRON_SECRET")
