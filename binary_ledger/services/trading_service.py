"""
Trading service wiring the price source, trade ledger and settlement engine.

The API layer talks only to this object. Placing a trade writes the ledger
entry first and then hands the trade to the settlement engine, so a trade
that exists always has (or will get, via recovery) a settlement task.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from binary_ledger.config import Settings
from binary_ledger.core.clock import Clock, as_utc, utc_now
from binary_ledger.core.websocket import ConnectionManager, WebSocketEventType
from binary_ledger.models.binary_trade import BinaryTrade, TradeDirection
from binary_ledger.services.payout_schedule import PayoutSchedule, PayoutTerms
from binary_ledger.services.price_source import MarketInfo, PriceQuote, PriceSource, sort_markets
from binary_ledger.services.settlement_engine import SettlementEngine
from binary_ledger.services.trade_ledger import TradeLedger
from binary_ledger.services.user_locks import UserLocks


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Countdown:
    """Display-only view of an active trade's remaining time."""
    trade_id: uuid.UUID
    seconds_remaining: int
    progress: float


def time_remaining(trade: BinaryTrade, now: datetime) -> int:
    """Whole seconds until settlement, never negative."""
    remaining = (as_utc(trade.settlement_due_at) - now).total_seconds()
    return max(0, int(remaining + 0.999))


def format_countdown(seconds: int) -> str:
    """MM:SS as shown on the active trade screen."""
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


class TradingService:
    """
    Facade over the trading components.

    Args:
        ledger: Trade ledger
        engine: Settlement engine
        price_source: Price feed shared by ledger and engine
        payout_schedule: Rate table
        notifier: Notification sink
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        ledger: TradeLedger,
        engine: SettlementEngine,
        price_source: PriceSource,
        payout_schedule: PayoutSchedule,
        notifier: ConnectionManager,
        clock: Clock = utc_now,
    ):
        self.ledger = ledger
        self.engine = engine
        self.price_source = price_source
        self.payout_schedule = payout_schedule
        self.notifier = notifier
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        price_source: PriceSource,
        notifier: ConnectionManager,
        clock: Clock = utc_now,
    ) -> "TradingService":
        """Builds the full component graph from configuration."""
        payout_schedule = PayoutSchedule.from_settings(settings)
        user_locks = UserLocks()
        ledger = TradeLedger(
            session_factory,
            price_source,
            payout_schedule,
            user_locks,
            max_active_trades=settings.max_active_trades_per_user,
            clock=clock,
        )
        engine = SettlementEngine(
            session_factory,
            price_source,
            notifier,
            user_locks,
            min_commission=settings.min_commission_usdt,
            retry_base_delay=settings.settlement_retry_base_delay,
            retry_max_delay=settings.settlement_retry_max_delay,
            sweep_interval_seconds=settings.settlement_sweep_interval_seconds,
            clock=clock,
        )
        return cls(ledger, engine, price_source, payout_schedule, notifier, clock=clock)

    async def start(self) -> None:
        await self.engine.start()

    async def stop(self) -> None:
        await self.engine.stop()
        await self.price_source.close()

    async def place_trade(
        self,
        user_id: uuid.UUID,
        pair: str,
        direction: TradeDirection | str,
        stake: Any,
        duration_seconds: int,
    ) -> BinaryTrade:
        """Creates the trade, schedules its settlement and notifies the owner."""
        trade = await self.ledger.create_trade(user_id, pair, direction, stake, duration_seconds)
        self.engine.schedule(trade.id, trade.settlement_due_at)

        await self.notifier.emit(
            str(user_id),
            WebSocketEventType.TRADE_PLACED,
            {
                "trade_id": str(trade.id),
                "pair": trade.pair,
                "direction": trade.direction,
                "stake": str(trade.stake),
                "entry_price": str(trade.entry_price),
                "duration_seconds": trade.duration_seconds,
                "settlement_due_at": as_utc(trade.settlement_due_at).isoformat(),
            },
        )
        return trade

    def payout_options(self, direction: TradeDirection | str) -> list[PayoutTerms]:
        return self.payout_schedule.options(direction)

    async def get_quote(self, symbol: str) -> PriceQuote:
        return await self.price_source.get_quote(symbol)

    async def get_current_price(self, symbol: str) -> Decimal:
        return await self.price_source.get_current_price(symbol)

    async def list_markets(
        self,
        sort_by: str = "market_cap_rank",
        descending: bool = False,
    ) -> list[MarketInfo]:
        """Tradable markets with price, rank and 24h change."""
        markets = await self.price_source.list_markets()
        return sort_markets(markets, sort_by, descending)

    def countdown(self, trade: BinaryTrade) -> Countdown:
        """Remaining time for an active trade. Has no effect on settlement."""
        remaining = time_remaining(trade, self._clock())
        total = trade.duration_seconds or 1
        return Countdown(
            trade_id=trade.id,
            seconds_remaining=remaining,
            progress=round(1 - remaining / total, 4),
        )
