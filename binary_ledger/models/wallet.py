"""
Wallet model holding a user's spendable USDT balance.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, DateTime, Numeric, ForeignKey, CheckConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from binary_ledger.db.database import Base


class Wallet(Base):
    """
    One row per user. Stakes are debited here at placement and
    winning settlements are credited back. The balance never goes negative.
    """

    __tablename__ = "wallets"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallets_balance_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    asset: Mapped[str] = mapped_column(
        String(10),
        default="USDT"
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        default=Decimal("0")
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
        back_populates="wallet"
    )

    def __repr__(self) -> str:
        return f"<Wallet(user_id={self.user_id}, balance={self.balance} {self.asset})>"
