"""
CRUD operations for Transaction model.
"""

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from binary_ledger.models.transaction import Transaction, TransactionType, TransactionStatus


class TransactionCRUD:
    """Append-only wallet movement history."""

    @staticmethod
    async def create(
        db: AsyncSession,
        user_id: uuid.UUID,
        type: TransactionType,
        amount: Decimal,
        details: dict[str, Any] | None = None,
        trade_id: uuid.UUID | None = None,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        asset: str = "USDT"
    ) -> Transaction:
        """Records one movement. Flushes, does not commit."""
        tx = Transaction(
            id=uuid.uuid4(),
            user_id=user_id,
            trade_id=trade_id,
            type=type.value,
            amount=amount,
            asset=asset,
            status=status.value,
            details=details,
        )
        db.add(tx)
        await db.flush()
        return tx

    @staticmethod
    async def get_by_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        type: TransactionType | None = None,
        limit: int = 100,
        offset: int = 0
    ) -> list[Transaction]:
        """Movements for one user, newest first, optionally filtered by type."""
        query = select(Transaction).where(Transaction.user_id == user_id)
        if type is not None:
            query = query.where(Transaction.type == type.value)
        query = query.order_by(desc(Transaction.created_at)).limit(limit).offset(offset)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_by_trade(db: AsyncSession, trade_id: uuid.UUID) -> list[Transaction]:
        result = await db.execute(
            select(Transaction).where(Transaction.trade_id == trade_id)
        )
        return list(result.scalars().all())
