"""Tier threshold model derived from the latest completed scan."""
from decimal import Decimal
from sqlalchemy import Column, String, Float, BigInteger, DateTime
from datetime import datetime, timezone
from xrpl.utils import drops_to_xrp
from tierscan.core.database import Base


class Threshold(Base):
    """Minimum balance required for one tier."""

    __tablename__ = "thresholds"

    tier_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    emoji = Column(String, nullable=False)
    percentile = Column(Float, nullable=False)
    minimum_balance_drops = Column(BigInteger, nullable=False)
    # Funded accounts in the scan these thresholds came from; same on every row
    total_accounts = Column(BigInteger, nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    @property
    def minimum_balance(self) -> Decimal:
        """Minimum balance in XRP."""
        return drops_to_xrp(str(self.minimum_balance_drops))
