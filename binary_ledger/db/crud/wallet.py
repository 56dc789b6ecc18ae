"""
CRUD operations for Wallet model.

debit() and credit() are single conditional UPDATE statements, so two
writers can never both spend the same balance. Neither commits; they
join the caller's transaction.
"""

import uuid
from decimal import Decimal
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from binary_ledger.models.wallet import Wallet
from binary_ledger.core.exceptions import InsufficientBalanceError, NotFoundError


class WalletCRUD:
    """Balance store operations."""

    @staticmethod
    async def get_by_user(db: AsyncSession, user_id: uuid.UUID) -> Wallet | None:
        result = await db.execute(
            select(Wallet)
            .where(Wallet.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create(db: AsyncSession, user_id: uuid.UUID) -> Wallet:
        """Returns the user's wallet, opening an empty one on first use."""
        wallet = await WalletCRUD.get_by_user(db, user_id)
        if wallet is None:
            wallet = Wallet(user_id=user_id, asset="USDT", balance=Decimal("0"))
            db.add(wallet)
            await db.flush()
        return wallet

    @staticmethod
    async def get_balance(db: AsyncSession, user_id: uuid.UUID) -> Decimal:
        """Current balance straight from storage; zero when no wallet exists."""
        result = await db.execute(select(Wallet.balance).where(Wallet.user_id == user_id))
        balance = result.scalar_one_or_none()
        return balance if balance is not None else Decimal("0")

    @staticmethod
    async def debit(db: AsyncSession, user_id: uuid.UUID, amount: Decimal) -> Decimal:
        """
        Removes amount from the balance.

        Returns:
            The balance after the debit

        Raises:
            InsufficientBalanceError: If the balance is lower than amount
            NotFoundError: If the user has no wallet
        """
        result = await db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id, Wallet.balance >= amount)
            .values(balance=Wallet.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            balance = await db.execute(select(Wallet.balance).where(Wallet.user_id == user_id))
            available = balance.scalar_one_or_none()
            if available is None:
                raise NotFoundError("Wallet not found", details={"user_id": str(user_id)})
            raise InsufficientBalanceError(
                details={"required": str(amount), "available": str(available)}
            )
        return await WalletCRUD.get_balance(db, user_id)

    @staticmethod
    async def credit(db: AsyncSession, user_id: uuid.UUID, amount: Decimal) -> Decimal:
        """
        Adds amount to the balance, opening the wallet if needed.

        Returns:
            The balance after the credit
        """
        await WalletCRUD.get_or_create(db, user_id)
        await db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id)
            .values(balance=Wallet.balance + amount)
            .execution_options(synchronize_session=False)
        )
        return await WalletCRUD.get_balance(db, user_id)
