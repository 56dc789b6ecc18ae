"""
Wallet transaction model.
Append-only history of every balance movement.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import String, DateTime, Numeric, ForeignKey, Index, JSON, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from binary_ledger.db.database import Base


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BUY = "buy"
    SELL = "sell"
    CONTRACT = "contract"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Transaction(Base):
    """
    One wallet movement. `details` carries the type-specific payload
    (network/address for transfers, pair/price for spot, the settled
    trade summary for contracts).
    """

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_user_created", "user_id", "created_at"),
        Index("idx_transactions_user_type", "user_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    trade_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("binary_trades.id", ondelete="SET NULL"),
        nullable=True
    )

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False
    )
    asset: Mapped[str] = mapped_column(
        String(10),
        default="USDT"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=TransactionStatus.COMPLETED.value
    )
    details: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Transaction(type={self.type}, amount={self.amount} {self.asset})>"
