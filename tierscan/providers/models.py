"""Data models for ledger snapshot pages."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional
from xrpl.utils import drops_to_xrp


@dataclass
class AccountEntry:
    """One AccountRoot entry from a ledger_data page."""
    address: str
    balance_drops: int

    @property
    def balance(self) -> Decimal:
        """Balance in XRP."""
        return drops_to_xrp(str(self.balance_drops))

    @property
    def is_funded(self) -> bool:
        return self.balance_drops > 0


@dataclass
class LedgerPage:
    """One page of a paginated ledger_data read."""
    ledger_index: int
    entries: List[AccountEntry] = field(default_factory=list)
    marker: Optional[Any] = None  # Opaque continuation token

    @property
    def is_last(self) -> bool:
        return self.marker is None

    def funded_entries(self) -> List[AccountEntry]:
        """Entries with a strictly positive balance."""
        return [entry for entry in self.entries if entry.is_funded]
