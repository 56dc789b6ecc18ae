"""
Trade ledger: creation and lookup of binary trades.

Creation validates the request, looks up the entry price, and then, in
one database transaction under the user's lock, enforces the active
trade limit, escrows the stake and inserts the trade. Any failure leaves
the wallet and the ledger untouched.
"""

import uuid
import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binary_ledger.core.clock import Clock, utc_now
from binary_ledger.core.exceptions import (
    ActiveTradeExistsError,
    AuthorizationError,
    InvalidStakeError,
    NotFoundError,
)
from binary_ledger.core.logging_service import log_security_event, log_trade_event
from binary_ledger.db.crud.activity_log import ActivityLogCRUD
from binary_ledger.db.crud.binary_trade import BinaryTradeCRUD
from binary_ledger.db.crud.wallet import WalletCRUD
from binary_ledger.models.binary_trade import BinaryTrade, TradeDirection
from binary_ledger.services.payout_schedule import PayoutSchedule
from binary_ledger.services.price_source import PriceSource, normalize_symbol
from binary_ledger.services.user_locks import UserLocks


logger = logging.getLogger(__name__)

STAKE_PLACES = Decimal("0.000001")


def validate_stake(stake: Any) -> Decimal:
    """
    Converts a stake to Decimal and checks it.

    Raises:
        InvalidStakeError: If the stake is not a finite positive amount
            with at most six decimal places
    """
    if isinstance(stake, bool):
        raise InvalidStakeError(details={"stake": str(stake)})
    try:
        amount = Decimal(str(stake))
    except (InvalidOperation, ValueError):
        raise InvalidStakeError(details={"stake": str(stake)})

    if not amount.is_finite() or amount <= 0:
        raise InvalidStakeError(details={"stake": str(stake)})
    if amount != amount.quantize(STAKE_PLACES):
        raise InvalidStakeError(
            "Stake supports at most 6 decimal places",
            details={"stake": str(stake)},
        )
    return amount


class TradeLedger:
    """
    Owns the BinaryTrade records.

    Args:
        session_factory: Async session factory
        price_source: Feed used for the entry price
        payout_schedule: Rate table resolved at creation
        user_locks: Per-user locks shared with the settlement engine
        max_active_trades: Unsettled trades allowed per user, 0 for no limit
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        price_source: PriceSource,
        payout_schedule: PayoutSchedule,
        user_locks: UserLocks,
        max_active_trades: int = 1,
        clock: Clock = utc_now,
    ):
        self.session_factory = session_factory
        self.price_source = price_source
        self.payout_schedule = payout_schedule
        self.user_locks = user_locks
        self.max_active_trades = max_active_trades
        self._clock = clock

    async def create_trade(
        self,
        user_id: uuid.UUID,
        pair: str,
        direction: TradeDirection | str,
        stake: Any,
        duration_seconds: int,
    ) -> BinaryTrade:
        """
        Opens a binary trade and escrows its stake.

        Raises:
            InvalidStakeError, InvalidDurationError, ValidationError,
            UnknownInstrumentError, PriceUnavailableError,
            ActiveTradeExistsError, InsufficientBalanceError
        """
        amount = validate_stake(stake)
        terms = self.payout_schedule.resolve(direction, duration_seconds)
        symbol = normalize_symbol(pair)
        quote = await self.price_source.get_quote(symbol)

        async with self.user_locks.lock(user_id):
            async with self.session_factory() as session:
                async with session.begin():
                    if self.max_active_trades:
                        active = await BinaryTradeCRUD.count_active(session, user_id)
                        if active >= self.max_active_trades:
                            raise ActiveTradeExistsError(
                                details={"active_trades": active, "limit": self.max_active_trades}
                            )

                    balance = await WalletCRUD.debit(session, user_id, amount)

                    started_at = self._clock()
                    trade = await BinaryTradeCRUD.create(
                        session,
                        user_id=user_id,
                        symbol=quote.symbol,
                        direction=terms.direction.value,
                        stake=amount,
                        duration_seconds=terms.duration_seconds,
                        entry_price=quote.price,
                        profit_rate=terms.profit_rate,
                        commission_rate=terms.commission_rate,
                        started_at=started_at,
                        settlement_due_at=started_at + timedelta(seconds=terms.duration_seconds),
                        result_seen=False,
                    )

                    await ActivityLogCRUD.info(
                        session,
                        user_id,
                        "TRADE",
                        f"{terms.direction.value.capitalize()} {trade.pair} placed: "
                        f"{amount} USDT for {terms.duration_seconds}s",
                        details={
                            "trade_id": str(trade.id),
                            "entry_price": str(quote.price),
                            "profit_rate": str(terms.profit_rate),
                            "balance_after": str(balance),
                        },
                    )

        log_trade_event(
            "trade_placed",
            str(trade.id),
            user_id=str(user_id),
            symbol=trade.symbol,
            direction=trade.direction,
            stake=str(amount),
            duration_seconds=trade.duration_seconds,
            entry_price=str(trade.entry_price),
        )
        return trade

    async def get_active_trades(self, user_id: uuid.UUID) -> list[BinaryTrade]:
        """Trades still counting down; expired ones awaiting settlement are left out."""
        async with self.session_factory() as session:
            return await BinaryTradeCRUD.get_active_by_user(session, user_id, self._clock())

    async def get_history(
        self,
        user_id: uuid.UUID,
        limit: int = 100,
        offset: int = 0,
    ) -> list[BinaryTrade]:
        async with self.session_factory() as session:
            return await BinaryTradeCRUD.get_history(session, user_id, limit=limit, offset=offset)

    async def get_unseen_results(self, user_id: uuid.UUID) -> list[BinaryTrade]:
        async with self.session_factory() as session:
            return await BinaryTradeCRUD.get_unseen_results(session, user_id)

    async def _get_owned(
        self,
        session: AsyncSession,
        trade_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> BinaryTrade:
        trade = await BinaryTradeCRUD.get_by_id(session, trade_id)
        if trade is None:
            raise NotFoundError("Trade not found", details={"trade_id": str(trade_id)})
        if trade.user_id != user_id:
            log_security_event("foreign_trade_access", user_id=str(user_id), trade_id=str(trade_id))
            raise AuthorizationError("Trade belongs to another user")
        return trade

    async def get_trade(self, trade_id: uuid.UUID, user_id: uuid.UUID) -> BinaryTrade:
        """
        Raises:
            NotFoundError: If the trade does not exist
            AuthorizationError: If the trade belongs to someone else
        """
        async with self.session_factory() as session:
            return await self._get_owned(session, trade_id, user_id)

    async def mark_result_seen(self, trade_id: uuid.UUID, user_id: uuid.UUID) -> BinaryTrade:
        """Acknowledges a settled result. Repeat calls change nothing."""
        async with self.session_factory() as session:
            async with session.begin():
                trade = await self._get_owned(session, trade_id, user_id)
                if not trade.result_seen:
                    await BinaryTradeCRUD.mark_seen(session, trade_id)
            return await BinaryTradeCRUD.get_by_id(session, trade_id)

    async def get_performance(self, user_id: uuid.UUID) -> dict[str, Any]:
        """Win/loss summary across settled trades."""
        async with self.session_factory() as session:
            stats = await BinaryTradeCRUD.get_performance(session, user_id)

        total = stats["total_trades"]
        stats["win_rate"] = (
            (Decimal(stats["wins"]) / Decimal(total) * 100).quantize(Decimal("0.01"))
            if total else Decimal("0")
        )
        return stats
