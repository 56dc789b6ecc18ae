"""
Binary trade model.

A binary trade is a fixed-duration up/down bet: the stake is escrowed at
placement together with the entry price and payout terms, and the outcome
is decided once by comparing the exit price against the entry price.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import String, Integer, Boolean, DateTime, Numeric, ForeignKey, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from binary_ledger.db.database import Base


class TradeDirection(str, Enum):
    """Buy bets the price rises, Sell bets it falls."""
    BUY = "buy"
    SELL = "sell"


class TradeStatus(str, Enum):
    ACTIVE = "active"
    SETTLED = "settled"


class TradeOutcome(str, Enum):
    WIN = "win"
    LOSE = "lose"


class BinaryTrade(Base):
    """
    Ledger entry for one binary trade.

    entry_price, profit_rate, commission_rate and started_at are fixed at
    creation. The settlement fields stay NULL until the single
    active -> settled transition; afterwards only result_seen changes.
    """

    __tablename__ = "binary_trades"
    __table_args__ = (
        Index("idx_binary_trades_user_status", "user_id", "status"),
        Index("idx_binary_trades_user_created", "user_id", "created_at"),
        Index("idx_binary_trades_status_due", "status", "settlement_due_at"),
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

    symbol: Mapped[str] = mapped_column(
        String(20),
        nullable=False
    )
    direction: Mapped[str] = mapped_column(
        String(10),
        nullable=False
    )
    stake: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False
    )
    duration_seconds: Mapped[int] = mapped_column(
        Integer,
        nullable=False
    )

    entry_price: Mapped[Decimal] = mapped_column(
        Numeric(24, 8),
        nullable=False
    )
    profit_rate: Mapped[Decimal] = mapped_column(
        Numeric(8, 4),
        nullable=False
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(8, 4),
        nullable=False
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False
    )
    settlement_due_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=TradeStatus.ACTIVE.value,
        nullable=False
    )
    outcome: Mapped[str | None] = mapped_column(
        String(10),
        nullable=True
    )
    exit_price: Mapped[Decimal | None] = mapped_column(
        Numeric(24, 8),
        nullable=True
    )
    commission: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 6),
        nullable=True
    )
    payout: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 6),
        nullable=True
    )
    net_profit: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 6),
        nullable=True
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    result_seen: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="binary_trades"
    )

    @property
    def pair(self) -> str:
        """Display pair, e.g. BTC-USDT."""
        return f"{self.symbol}-USDT"

    @property
    def is_active(self) -> bool:
        return self.status == TradeStatus.ACTIVE.value

    def __repr__(self) -> str:
        return (
            f"<BinaryTrade(id={self.id}, {self.direction} {self.symbol} "
            f"stake={self.stake}, status={self.status})>"
        )
