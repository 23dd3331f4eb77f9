"""Durable account snapshot store with percentile queries."""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence
from sqlalchemy import select, delete, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from xrpl.utils import drops_to_xrp, xrp_to_drops
from tierscan.constants.tiers import TIERS, Tier
from tierscan.models import Account, Threshold
from tierscan.providers.models import AccountEntry


logger = logging.getLogger(__name__)


@dataclass
class TierThreshold:
    """Minimum balance (XRP) required for one tier."""
    tier_id: str
    name: str
    emoji: str
    percentile: float
    minimum_balance: Decimal
    updated_at: Optional[datetime] = None

    @classmethod
    def for_tier(cls, tier: Tier, minimum_balance: Decimal, updated_at: Optional[datetime] = None) -> "TierThreshold":
        return cls(
            tier_id=tier.id,
            name=tier.name,
            emoji=tier.emoji,
            percentile=tier.percentile,
            minimum_balance=minimum_balance,
            updated_at=updated_at,
        )

    def to_dict(self) -> dict:
        return {
            "tier_id": self.tier_id,
            "name": self.name,
            "emoji": self.emoji,
            "percentile": self.percentile,
            "minimum_balance": str(self.minimum_balance),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TierThreshold":
        return cls(
            tier_id=data["tier_id"],
            name=data["name"],
            emoji=data["emoji"],
            percentile=float(data["percentile"]),
            minimum_balance=Decimal(str(data["minimum_balance"])),
        )


def percentile_rank(count: int, percentile: float) -> int:
    """1-based rank (balance descending) of the threshold account for ``percentile``."""
    if count <= 0:
        return 0
    rank = int(count * percentile / 100) + 1
    return min(rank, count)


def enforce_monotonic(thresholds: List[TierThreshold]) -> List[TierThreshold]:
    """Ensure rarer tiers never have a lower minimum than more common ones.

    Input must be ordered by ascending percentile.
    """
    for i in range(len(thresholds) - 2, -1, -1):
        if thresholds[i].minimum_balance < thresholds[i + 1].minimum_balance:
            thresholds[i].minimum_balance = thresholds[i + 1].minimum_balance
    return thresholds


class SnapshotStore:
    """
    Account balances from the latest scan plus the derived tier thresholds.

    Every public method runs in its own short transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    def _insert(self, session: AsyncSession, table):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise NotImplementedError(f"Upsert not supported for dialect {dialect}")

    async def clear(self) -> None:
        """Delete every account row."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(delete(Account))
        logger.info(f"Cleared {result.rowcount or 0} account rows")

    async def insert_batch(self, rows: Sequence[AccountEntry]) -> int:
        """
        Upsert a batch of accounts keyed by address in one transaction.

        Duplicate addresses within the batch keep the last balance.

        Returns:
            Number of distinct rows written
        """
        if not rows:
            return 0

        deduped = {row.address: row.balance_drops for row in rows}
        values = [{"address": address, "balance_drops": drops} for address, drops in deduped.items()]

        async with self._session_factory() as session:
            async with session.begin():
                stmt = self._insert(session, Account.__table__)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Account.address],
                    set_={"balance_drops": stmt.excluded.balance_drops},
                )
                await session.execute(stmt, values)

        logger.debug(f"Inserted batch of {len(values)} accounts")
        return len(values)

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(Account))
            return int(result.scalar_one())

    async def percentile_threshold(self, percentile: float) -> Decimal:
        """
        Balance such that roughly the top ``percentile`` percent hold at least it.

        Ranks accounts by balance descending and returns the balance at rank
        ``floor(count * percentile / 100) + 1`` (capped at ``count``). Uses
        the descending balance index with a single OFFSET scan.
        """
        if not 0 < percentile <= 100:
            raise ValueError(f"percentile must be in (0, 100], got {percentile}")

        async with self._session_factory() as session:
            count = int((await session.execute(select(func.count()).select_from(Account))).scalar_one())
            rank = percentile_rank(count, percentile)
            if rank == 0:
                return Decimal(0)

            result = await session.execute(
                select(Account.balance_drops)
                .order_by(Account.balance_drops.desc())
                .offset(rank - 1)
                .limit(1)
            )
            drops = result.scalar_one_or_none()

        return drops_to_xrp(str(drops)) if drops is not None else Decimal(0)

    async def compute_thresholds(self, tiers: Iterable[Tier] = TIERS) -> List[TierThreshold]:
        """Derive one threshold per tier from the current snapshot."""
        thresholds = []
        for tier in sorted(tiers, key=lambda t: t.percentile):
            if tier.percentile >= 100:
                # Catch-all tier admits every holder
                minimum = Decimal(0)
            else:
                minimum = await self.percentile_threshold(tier.percentile)
            thresholds.append(TierThreshold.for_tier(tier, minimum))
            logger.info(f"{tier.name} (top {tier.percentile}%): {minimum:,} XRP")
        return enforce_monotonic(thresholds)

    async def save_thresholds(self, thresholds: Sequence[TierThreshold], total_accounts: int) -> datetime:
        """
        Publish a threshold table in one transaction, replacing the previous one.

        ``total_accounts`` is stored alongside so readers never need to count
        the accounts table while a scan is rebuilding it.
        """
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(delete(Threshold))
                session.add_all([
                    Threshold(
                        tier_id=t.tier_id,
                        name=t.name,
                        emoji=t.emoji,
                        percentile=t.percentile,
                        minimum_balance_drops=int(xrp_to_drops(t.minimum_balance)),
                        total_accounts=total_accounts,
                        updated_at=now,
                    )
                    for t in thresholds
                ])
        for t in thresholds:
            t.updated_at = now
        return now

    async def get_thresholds(self) -> List[TierThreshold]:
        """Stored thresholds ordered by ascending percentile."""
        async with self._session_factory() as session:
            result = await session.execute(select(Threshold).order_by(Threshold.percentile.asc()))
            rows = result.scalars().all()

        return [
            TierThreshold(
                tier_id=row.tier_id,
                name=row.name,
                emoji=row.emoji,
                percentile=row.percentile,
                minimum_balance=row.minimum_balance,
                updated_at=_as_utc(row.updated_at),
            )
            for row in rows
        ]

    async def get_published_total(self) -> int:
        """Account total saved with the current thresholds, 0 if none are published."""
        async with self._session_factory() as session:
            result = await session.execute(select(func.max(Threshold.total_accounts)))
            total = result.scalar_one_or_none()
        return int(total or 0)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on read; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
