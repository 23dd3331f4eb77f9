"""Shared pytest fixtures for scan engine tests."""
import pytest
from decimal import Decimal
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock
import fakeredis.aioredis

from tierscan.core.database import create_engine, create_session_factory, init_db
from tierscan.constants.tiers import TIERS, DEFAULT_MINIMUM_BALANCES
from tierscan.providers import LedgerClient, LedgerError, ErrorKind
from tierscan.providers.models import AccountEntry, LedgerPage
from tierscan.services.snapshot_store import SnapshotStore, TierThreshold


@pytest.fixture
async def fake_redis():
    """Create a FakeRedis instance for testing."""
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture
async def session_factory():
    """In-memory SQLite database with the snapshot schema."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def snapshot_store(session_factory):
    return SnapshotStore(session_factory)


@pytest.fixture
def default_thresholds() -> List[TierThreshold]:
    """The static threshold table (Whale 10M XRP ... Plankton 0)."""
    return [TierThreshold.for_tier(tier, DEFAULT_MINIMUM_BALANCES[tier.id]) for tier in TIERS]


@pytest.fixture
def fake_sleep():
    """Records requested sleeps without waiting."""
    return AsyncMock(return_value=None)


def xrp(amount) -> int:
    """XRP to drops."""
    return int(Decimal(str(amount)) * 1_000_000)


def create_entry(index: int, balance_xrp=100) -> AccountEntry:
    """Factory for AccountEntry instances with unique addresses."""
    return AccountEntry(address=f"rTestAccount{index:08d}", balance_drops=xrp(balance_xrp))


def create_pages(balances: List[List[Any]], ledger_index: int = 1000) -> Dict[Optional[str], LedgerPage]:
    """
    Build a chain of ledger pages keyed by the marker that requests them.

    The first page is requested with marker None, the next with "m1", and so
    on; the last page has no marker.
    """
    pages = {}
    index = 0
    for page_number, page_balances in enumerate(balances):
        entries = []
        for balance in page_balances:
            entries.append(create_entry(index, balance))
            index += 1
        request_marker = None if page_number == 0 else f"m{page_number}"
        next_marker = f"m{page_number + 1}" if page_number < len(balances) - 1 else None
        pages[request_marker] = LedgerPage(ledger_index=ledger_index, entries=entries, marker=next_marker)
    return pages


def transient_error(message: str = "slowDown: You are placing too much load on the server.") -> LedgerError:
    return LedgerError(ErrorKind.TRANSIENT, message, code="slowDown")


class FakeLedgerClient(LedgerClient):
    """
    Scripted ledger client.

    ``failures`` maps a marker to a list of exceptions raised (in order) by
    requests for that marker before the page is served.
    """

    def __init__(
        self,
        pages: Dict[Optional[str], LedgerPage],
        ledger_index: int = 1000,
        failures: Optional[Dict[Optional[str], List[Exception]]] = None,
        unreachable: Optional[List[str]] = None,
        disconnect_after: Optional[List[Optional[str]]] = None
    ):
        self.pages = pages
        self.ledger_index = ledger_index
        self.failures = {key: list(value) for key, value in (failures or {}).items()}
        self.unreachable = set(unreachable or [])
        self.disconnect_after = set(disconnect_after or [])
        self.requests: List[tuple] = []
        self.connects: List[str] = []
        self.ledger_index_calls = 0
        self._url = None
        self._connected = False

    @property
    def url(self) -> Optional[str]:
        return self._url

    async def connect(self, url: str) -> None:
        self.connects.append(url)
        if url in self.unreachable:
            raise LedgerError(ErrorKind.TRANSIENT, f"Failed to connect to {url}")
        self._url = url
        self._connected = True

    def is_connected(self) -> bool:
        return self._connected

    async def close(self) -> None:
        self._connected = False

    async def get_validated_ledger_index(self) -> int:
        self.ledger_index_calls += 1
        return self.ledger_index

    async def fetch_account_page(self, ledger_index: int, marker: Optional[Any], limit: int) -> LedgerPage:
        self.requests.append((self._url, ledger_index, marker, limit))
        pending = self.failures.get(marker)
        if pending:
            raise pending.pop(0)
        if marker in self.disconnect_after:
            self.disconnect_after.discard(marker)
            self._connected = False
        return self.pages[marker]
