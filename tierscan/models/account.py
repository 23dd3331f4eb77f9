"""Account snapshot model holding one funded account per row."""
from decimal import Decimal
from sqlalchemy import Column, String, BigInteger, Index
from xrpl.utils import drops_to_xrp
from tierscan.core.database import Base


class Account(Base):
    """Balance of one funded account as of the scan's ledger index."""

    __tablename__ = "accounts"

    address = Column(String, primary_key=True)
    # Stored in drops so ranking and equality are exact
    balance_drops = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_accounts_balance_desc", balance_drops.desc()),
    )

    @property
    def balance(self) -> Decimal:
        """Balance in XRP."""
        return drops_to_xrp(str(self.balance_drops))
