"""
Settlement engine for binary trades.

Each active trade gets one asyncio task that sleeps until the trade's
settlement time, samples a fresh exit price and applies the outcome:

    Buy wins iff exit > entry, Sell wins iff exit < entry, equal loses.
    commission = stake * commission_rate (raised to the minimum,
                 capped at the gross profit on a win)
    win:  net_profit = stake * profit_rate - commission
          payout     = stake + stake * profit_rate
          wallet    += stake + net_profit
    lose: net_profit = -stake, payout = 0, wallet unchanged

The active -> settled transition is a conditional UPDATE, so a trade is
settled at most once even if two tasks (or two processes) race for it.
On startup every active trade is rescheduled and a periodic sweep picks
up anything overdue without a live task.
"""

import asyncio
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binary_ledger.core.clock import Clock, as_utc, utc_now
from binary_ledger.core.exceptions import DoubleSettlementError, NotFoundError, PriceUnavailableError
from binary_ledger.core.logging_service import log_system_event, log_trade_event
from binary_ledger.core.retry import calculate_backoff
from binary_ledger.core.websocket import ConnectionManager, WebSocketEventType
from binary_ledger.db.crud.activity_log import ActivityLogCRUD
from binary_ledger.db.crud.binary_trade import BinaryTradeCRUD
from binary_ledger.db.crud.transaction import TransactionCRUD
from binary_ledger.db.crud.wallet import WalletCRUD
from binary_ledger.models.binary_trade import BinaryTrade, TradeDirection, TradeOutcome, TradeStatus
from binary_ledger.models.transaction import TransactionType
from binary_ledger.services.price_source import PriceSource
from binary_ledger.services.user_locks import UserLocks


logger = logging.getLogger(__name__)

MONEY_PLACES = Decimal("0.000001")


@dataclass(frozen=True)
class SettlementFigures:
    """Money side of a settlement."""
    commission: Decimal
    payout: Decimal
    net_profit: Decimal

    @property
    def credit(self) -> Decimal:
        """Amount returned to the wallet; the stake was escrowed at placement."""
        if self.payout == 0:
            return Decimal("0")
        return self.payout - self.commission


@dataclass(frozen=True)
class SettlementResult:
    trade_id: uuid.UUID
    user_id: uuid.UUID
    outcome: TradeOutcome
    entry_price: Decimal
    exit_price: Decimal
    figures: SettlementFigures
    settled_at: datetime
    balance: Decimal


def evaluate_outcome(direction: TradeDirection | str, entry_price: Decimal, exit_price: Decimal) -> TradeOutcome:
    """An unchanged price loses for both directions."""
    direction = TradeDirection(direction)
    delta = exit_price - entry_price
    if direction == TradeDirection.BUY:
        return TradeOutcome.WIN if delta > 0 else TradeOutcome.LOSE
    return TradeOutcome.WIN if delta < 0 else TradeOutcome.LOSE


def compute_settlement(
    stake: Decimal,
    profit_rate: Decimal,
    commission_rate: Decimal,
    outcome: TradeOutcome,
    min_commission: Decimal = Decimal("0"),
) -> SettlementFigures:
    """
    On a win the commission never exceeds the gross profit, so the wallet
    moves by exactly net_profit for both outcomes.
    """
    commission = max(stake * commission_rate, min_commission).quantize(MONEY_PLACES)

    if outcome == TradeOutcome.WIN:
        gross = (stake * profit_rate).quantize(MONEY_PLACES)
        commission = min(commission, gross)
        return SettlementFigures(
            commission=commission,
            payout=stake + gross,
            net_profit=gross - commission,
        )

    return SettlementFigures(
        commission=commission,
        payout=Decimal("0"),
        net_profit=-stake,
    )


class SettlementEngine:
    """
    Schedules and applies trade settlements.

    Args:
        session_factory: Async session factory
        price_source: Feed used for exit prices
        notifier: Sink receiving one trade_settled event per settlement
        user_locks: Per-user locks shared with the trade ledger
        min_commission: Floor applied to the computed commission
        retry_base_delay: First backoff delay after a price feed failure
        retry_max_delay: Backoff cap
        sweep_interval_seconds: How often overdue trades are swept
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        price_source: PriceSource,
        notifier: ConnectionManager,
        user_locks: UserLocks,
        min_commission: Decimal = Decimal("0"),
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
        sweep_interval_seconds: float = 15,
        clock: Clock = utc_now,
    ):
        self.session_factory = session_factory
        self.price_source = price_source
        self.notifier = notifier
        self.user_locks = user_locks
        self.min_commission = min_commission
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._tasks: dict[uuid.UUID, asyncio.Task] = {}
        self._sweeper: asyncio.Task | None = None
        self._running = False

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    def is_scheduled(self, trade_id: uuid.UUID) -> bool:
        task = self._tasks.get(trade_id)
        return task is not None and not task.done()

    def schedule(self, trade_id: uuid.UUID, due_at: datetime) -> asyncio.Task:
        """Starts the settlement task for a trade; one task per trade."""
        existing = self._tasks.get(trade_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.create_task(
            self._settle_when_due(trade_id, as_utc(due_at)),
            name=f"settle-{trade_id}",
        )
        self._tasks[trade_id] = task
        task.add_done_callback(lambda t: self._forget(trade_id, t))
        return task

    def _forget(self, trade_id: uuid.UUID, task: asyncio.Task) -> None:
        if self._tasks.get(trade_id) is task:
            del self._tasks[trade_id]

    async def _settle_when_due(self, trade_id: uuid.UUID, due_at: datetime) -> SettlementResult | None:
        # Loop rather than sleep once: the event loop clock and wall clock can drift
        while (remaining := (due_at - self._clock()).total_seconds()) > 0:
            await asyncio.sleep(remaining)
        return await self.settle_with_retry(trade_id)

    async def settle_with_retry(self, trade_id: uuid.UUID) -> SettlementResult | None:
        """
        Settles a due trade, retrying price feed outages with backoff.
        No synthetic price is ever used; the loop runs until the feed answers.
        """
        attempt = 0
        while True:
            try:
                return await self.settle_trade(trade_id)
            except PriceUnavailableError as e:
                delay = calculate_backoff(attempt, self.retry_base_delay, self.retry_max_delay)
                logger.warning(
                    f"Exit price unavailable for trade {trade_id} "
                    f"(attempt {attempt + 1}): {e.message}. Retrying in {delay:.2f}s"
                )
                attempt += 1
                await asyncio.sleep(delay)
            except Exception:
                # The sweep retries trades whose task died
                logger.exception(f"Settlement of trade {trade_id} failed")
                return None

    async def settle_trade(self, trade_id: uuid.UUID) -> SettlementResult | None:
        """
        Settles one trade if it is due.

        Returns:
            The applied settlement, or None when the call was premature
            or the trade was already settled

        Raises:
            NotFoundError: If the trade does not exist
            PriceUnavailableError: If no exit price could be obtained
        """
        async with self.session_factory() as session:
            trade = await BinaryTradeCRUD.get_by_id(session, trade_id)

        if trade is None:
            raise NotFoundError("Trade not found", details={"trade_id": str(trade_id)})

        if trade.status == TradeStatus.SETTLED.value:
            await self._record_double_settlement(trade)
            return None

        due_at = as_utc(trade.settlement_due_at)
        if self._clock() < due_at:
            logger.debug(f"Trade {trade_id} not due until {due_at.isoformat()}")
            return None

        quote = await self.price_source.get_quote(trade.symbol, use_cache=False)

        outcome = evaluate_outcome(trade.direction, trade.entry_price, quote.price)
        figures = compute_settlement(
            trade.stake,
            trade.profit_rate,
            trade.commission_rate,
            outcome,
            self.min_commission,
        )

        try:
            result = await self._apply(trade, outcome, quote.price, figures)
        except DoubleSettlementError:
            await self._record_double_settlement(trade)
            return None

        log_trade_event(
            "trade_settled",
            str(trade.id),
            user_id=str(trade.user_id),
            outcome=outcome.value,
            entry_price=str(trade.entry_price),
            exit_price=str(quote.price),
            net_profit=str(figures.net_profit),
            lag_seconds=round((result.settled_at - due_at).total_seconds(), 3),
        )
        await self._notify(trade, result)
        return result

    async def _apply(
        self,
        trade: BinaryTrade,
        outcome: TradeOutcome,
        exit_price: Decimal,
        figures: SettlementFigures,
    ) -> SettlementResult:
        async with self.user_locks.lock(trade.user_id):
            async with self.session_factory() as session:
                async with session.begin():
                    settled_at = self._clock()
                    applied = await BinaryTradeCRUD.mark_settled(
                        session,
                        trade.id,
                        outcome=outcome,
                        exit_price=exit_price,
                        commission=figures.commission,
                        payout=figures.payout,
                        net_profit=figures.net_profit,
                        settled_at=settled_at,
                    )
                    if not applied:
                        raise DoubleSettlementError(details={"trade_id": str(trade.id)})

                    if figures.credit > 0:
                        balance = await WalletCRUD.credit(session, trade.user_id, figures.credit)
                    else:
                        balance = await WalletCRUD.get_balance(session, trade.user_id)

                    profit_percentage = (figures.net_profit / trade.stake * 100).quantize(Decimal("0.01"))
                    await TransactionCRUD.create(
                        session,
                        trade.user_id,
                        TransactionType.CONTRACT,
                        amount=figures.net_profit,
                        trade_id=trade.id,
                        details={
                            "pair": trade.pair,
                            "direction": trade.direction,
                            "duration": trade.duration_seconds,
                            "stake": str(trade.stake),
                            "outcome": outcome.value,
                            "profit": str(figures.net_profit),
                            "profit_percentage": str(profit_percentage),
                            "entry_price": str(trade.entry_price),
                            "exit_price": str(exit_price),
                            "settlement_time": as_utc(trade.settlement_due_at).isoformat(),
                            "actual_settlement_time": settled_at.isoformat(),
                        },
                    )
                    await ActivityLogCRUD.info(
                        session,
                        trade.user_id,
                        "SETTLEMENT",
                        f"{trade.direction.capitalize()} {trade.pair} settled: "
                        f"{outcome.value} {figures.net_profit} USDT",
                        details={
                            "trade_id": str(trade.id),
                            "exit_price": str(exit_price),
                            "balance_after": str(balance),
                        },
                    )

        return SettlementResult(
            trade_id=trade.id,
            user_id=trade.user_id,
            outcome=outcome,
            entry_price=trade.entry_price,
            exit_price=exit_price,
            figures=figures,
            settled_at=settled_at,
            balance=balance,
        )

    async def _record_double_settlement(self, trade: BinaryTrade) -> None:
        logger.warning(f"Ignoring repeated settlement of trade {trade.id}")
        log_trade_event("double_settlement", str(trade.id), user_id=str(trade.user_id))
        async with self.session_factory() as session:
            async with session.begin():
                await ActivityLogCRUD.warning(
                    session,
                    trade.user_id,
                    "SETTLEMENT",
                    f"Repeated settlement of trade {trade.id} ignored",
                    details={"trade_id": str(trade.id), "error": DoubleSettlementError.error_code},
                )

    async def _notify(self, trade: BinaryTrade, result: SettlementResult) -> None:
        user_id = str(trade.user_id)
        await self.notifier.emit(
            user_id,
            WebSocketEventType.TRADE_SETTLED,
            {
                "trade_id": str(trade.id),
                "pair": trade.pair,
                "direction": trade.direction,
                "stake": str(trade.stake),
                "outcome": result.outcome.value,
                "entry_price": str(result.entry_price),
                "exit_price": str(result.exit_price),
                "payout": str(result.figures.payout),
                "net_profit": str(result.figures.net_profit),
                "settled_at": result.settled_at.isoformat(),
            },
        )
        await self.notifier.emit(
            user_id,
            WebSocketEventType.BALANCE_UPDATED,
            {"asset": "USDT", "balance": str(result.balance)},
        )

    async def recover(self) -> int:
        """Reschedules every active trade; returns how many were scheduled."""
        async with self.session_factory() as session:
            trades = await BinaryTradeCRUD.get_all_active(session)

        for trade in trades:
            self.schedule(trade.id, trade.settlement_due_at)

        log_system_event("settlement_recovery", "settlement_engine", rescheduled=len(trades))
        return len(trades)

    async def sweep(self) -> int:
        """Schedules overdue trades that have no live task."""
        async with self.session_factory() as session:
            overdue = await BinaryTradeCRUD.get_overdue(session, self._clock())

        scheduled = 0
        for trade in overdue:
            if not self.is_scheduled(trade.id):
                self.schedule(trade.id, trade.settlement_due_at)
                scheduled += 1

        if scheduled:
            logger.info(f"Sweep picked up {scheduled} overdue trade(s)")
        return scheduled

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Settlement sweep failed")

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        await self.recover()
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="settlement-sweeper")
        log_system_event("startup", "settlement_engine")

    async def stop(self) -> None:
        """Cancels the sweeper and every pending settlement task."""
        self._running = False
        tasks = list(self._tasks.values())
        if self._sweeper is not None:
            tasks.append(self._sweeper)
            self._sweeper = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._tasks.clear()
        log_system_event("shutdown", "settlement_engine", cancelled=len(tasks))
