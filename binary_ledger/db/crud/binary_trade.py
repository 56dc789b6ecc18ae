"""
CRUD operations for BinaryTrade model.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update, func, case, desc
from sqlalchemy.ext.asyncio import AsyncSession

from binary_ledger.models.binary_trade import BinaryTrade, TradeStatus, TradeOutcome


class BinaryTradeCRUD:
    """CRUD operations for binary trade ledger entries."""

    @staticmethod
    async def create(db: AsyncSession, **fields: Any) -> BinaryTrade:
        """Inserts a new active trade. Flushes, does not commit."""
        trade = BinaryTrade(id=uuid.uuid4(), status=TradeStatus.ACTIVE.value, **fields)
        db.add(trade)
        await db.flush()
        return trade

    @staticmethod
    async def get_by_id(db: AsyncSession, trade_id: uuid.UUID) -> BinaryTrade | None:
        result = await db.execute(
            select(BinaryTrade)
            .where(BinaryTrade.id == trade_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def count_active(db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(BinaryTrade)
            .where(
                BinaryTrade.user_id == user_id,
                BinaryTrade.status == TradeStatus.ACTIVE.value
            )
        )
        return result.scalar_one()

    @staticmethod
    async def get_active_by_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        now: datetime
    ) -> list[BinaryTrade]:
        """Active, unexpired trades for one user, newest first."""
        result = await db.execute(
            select(BinaryTrade)
            .where(
                BinaryTrade.user_id == user_id,
                BinaryTrade.status == TradeStatus.ACTIVE.value,
                BinaryTrade.settlement_due_at > now
            )
            .order_by(desc(BinaryTrade.started_at))
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_history(
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 100,
        offset: int = 0
    ) -> list[BinaryTrade]:
        """All trades for one user, newest first."""
        result = await db.execute(
            select(BinaryTrade)
            .where(BinaryTrade.user_id == user_id)
            .order_by(desc(BinaryTrade.started_at))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_unseen_results(db: AsyncSession, user_id: uuid.UUID) -> list[BinaryTrade]:
        """Settled trades whose result the owner has not acknowledged."""
        result = await db.execute(
            select(BinaryTrade)
            .where(
                BinaryTrade.user_id == user_id,
                BinaryTrade.status == TradeStatus.SETTLED.value,
                BinaryTrade.result_seen.is_(False)
            )
            .order_by(desc(BinaryTrade.settled_at))
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_all_active(db: AsyncSession) -> list[BinaryTrade]:
        """Every unsettled trade, soonest due first."""
        result = await db.execute(
            select(BinaryTrade)
            .where(BinaryTrade.status == TradeStatus.ACTIVE.value)
            .order_by(BinaryTrade.settlement_due_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_overdue(db: AsyncSession, now: datetime) -> list[BinaryTrade]:
        """Active trades whose settlement time has passed."""
        result = await db.execute(
            select(BinaryTrade)
            .where(
                BinaryTrade.status == TradeStatus.ACTIVE.value,
                BinaryTrade.settlement_due_at <= now
            )
            .order_by(BinaryTrade.settlement_due_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def mark_settled(
        db: AsyncSession,
        trade_id: uuid.UUID,
        outcome: TradeOutcome,
        exit_price: Decimal,
        commission: Decimal,
        payout: Decimal,
        net_profit: Decimal,
        settled_at: datetime
    ) -> bool:
        """
        Performs the active -> settled transition.

        The WHERE clause on status makes the transition happen at most once;
        a False return means another settlement got there first.
        """
        result = await db.execute(
            update(BinaryTrade)
            .where(
                BinaryTrade.id == trade_id,
                BinaryTrade.status == TradeStatus.ACTIVE.value
            )
            .values(
                status=TradeStatus.SETTLED.value,
                outcome=outcome.value,
                exit_price=exit_price,
                commission=commission,
                payout=payout,
                net_profit=net_profit,
                settled_at=settled_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def mark_seen(db: AsyncSession, trade_id: uuid.UUID) -> None:
        """Flags a settled trade's result as acknowledged."""
        await db.execute(
            update(BinaryTrade)
            .where(
                BinaryTrade.id == trade_id,
                BinaryTrade.status == TradeStatus.SETTLED.value
            )
            .values(result_seen=True)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def get_performance(db: AsyncSession, user_id: uuid.UUID) -> dict[str, Any]:
        """Aggregates over the user's settled trades."""
        result = await db.execute(
            select(
                func.count(BinaryTrade.id),
                func.coalesce(
                    func.sum(case((BinaryTrade.outcome == TradeOutcome.WIN.value, 1), else_=0)), 0
                ),
                func.coalesce(func.sum(BinaryTrade.stake), 0),
                func.coalesce(func.sum(BinaryTrade.net_profit), 0),
                func.coalesce(func.sum(BinaryTrade.commission), 0),
            )
            .where(
                BinaryTrade.user_id == user_id,
                BinaryTrade.status == TradeStatus.SETTLED.value
            )
        )
        total, wins, staked, net_profit, commission = result.one()
        return {
            "total_trades": int(total),
            "wins": int(wins),
            "losses": int(total) - int(wins),
            "total_staked": Decimal(str(staked)),
            "net_profit": Decimal(str(net_profit)),
            "total_commission": Decimal(str(commission)),
        }
