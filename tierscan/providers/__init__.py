"""Abstract interface for remote ledger clients."""
from abc import ABC, abstractmethod
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from tierscan.providers.models import LedgerPage


class ErrorKind(str, Enum):
    """How a remote failure should be handled."""
    TRANSIENT = "transient"  # Throttling/overload: retry, then rotate endpoint
    FATAL = "fatal"  # Anything else: abort the scan attempt


# Server error codes that mean "back off and try again"
TRANSIENT_ERROR_CODES = frozenset({
    "slowDown",
    "tooBusy",
    "noNetwork",
    "noCurrent",
    "noClosed",
    "notReady",
})

# Message fragments that indicate rate limiting when no code is available
TRANSIENT_MESSAGE_TERMS = ("rate", "slow down", "slowdown", "too busy", "toobusy", "exceeded")


def classify_error(code: Optional[str], message: str) -> ErrorKind:
    """Classify a remote failure from its error code, falling back to its message."""
    if code and code in TRANSIENT_ERROR_CODES:
        return ErrorKind.TRANSIENT
    lowered = (message or "").lower()
    if any(term in lowered for term in TRANSIENT_MESSAGE_TERMS):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


class LedgerError(Exception):
    """Exception raised when a remote ledger call fails."""

    def __init__(self, kind: ErrorKind, detail: str, code: Optional[str] = None):
        super().__init__(detail)
        self.kind = kind
        self.detail = detail
        self.code = code

    @property
    def is_transient(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    @classmethod
    def from_response(cls, code: Optional[str], message: str) -> "LedgerError":
        """Build an error whose kind is decided by ``classify_error``."""
        detail = f"{code}: {message}" if code and message else (code or message or "Unknown ledger error")
        return cls(classify_error(code, detail), detail, code=code)


class LedgerConnectionError(LedgerError):
    """No configured endpoint could be reached."""

    def __init__(self, detail: str):
        super().__init__(ErrorKind.FATAL, detail)


class AccountNotFoundError(LedgerError):
    """The address has never been funded (or was deleted)."""

    def __init__(self, address: str):
        super().__init__(ErrorKind.FATAL, f"Account not found: {address}", code="actNotFound")
        self.address = address


class LedgerClient(ABC):
    """Abstract base class for a connection to one ledger endpoint at a time."""

    @property
    @abstractmethod
    def url(self) -> Optional[str]:
        """Endpoint of the current connection, if any."""

    @abstractmethod
    async def connect(self, url: str) -> None:
        """
        Open a connection to ``url``, closing any previous connection.

        Raises:
            LedgerError: If the endpoint cannot be reached
        """

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the current connection is live."""

    @abstractmethod
    async def close(self) -> None:
        """Close the current connection. Never raises."""

    @abstractmethod
    async def get_validated_ledger_index(self) -> int:
        """Return the sequence of the latest validated ledger."""

    @abstractmethod
    async def fetch_account_page(
        self,
        ledger_index: int,
        marker: Optional[Any],
        limit: int
    ) -> LedgerPage:
        """
        Fetch one page of account entries at a fixed ledger.

        Args:
            ledger_index: Ledger sequence the scan is pinned to
            marker: Continuation token from the previous page (None for the first page)
            limit: Maximum entries per page

        Returns:
            LedgerPage with entries and the next marker (None on the last page)

        Raises:
            LedgerError: With ``kind`` set to TRANSIENT or FATAL
        """

    async def get_account_balance(self, address: str) -> Decimal:
        """
        Return the XRP balance of ``address`` in the latest validated ledger.

        Raises:
            AccountNotFoundError: If the account does not exist
            LedgerError: For any other remote failure
        """
        raise NotImplementedError


__all__ = [
    "ErrorKind",
    "LedgerError",
    "LedgerConnectionError",
    "AccountNotFoundError",
    "LedgerClient",
    "LedgerPage",
    "classify_error",
]
