"""
Tests for the settlement engine: outcomes applied to the wallet,
at-most-once settlement, retry on feed outages and task lifecycle.
"""

import asyncio
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from binary_ledger.core.exceptions import NotFoundError, PriceUnavailableError
from binary_ledger.core.websocket import WebSocketEventType
from binary_ledger.db.crud.activity_log import ActivityLogCRUD
from binary_ledger.db.crud.binary_trade import BinaryTradeCRUD
from binary_ledger.db.crud.transaction import TransactionCRUD
from binary_ledger.models.binary_trade import TradeOutcome, TradeStatus
from binary_ledger.models.transaction import TransactionType
from binary_ledger.services.price_source import PriceQuote
from binary_ledger.services.settlement_engine import SettlementEngine
from tests.factories import balance_of


async def load_trade(session_factory, trade_id):
    async with session_factory() as session:
        return await BinaryTradeCRUD.get_by_id(session, trade_id)


async def drain(engine: SettlementEngine):
    """Waits for every scheduled settlement task."""
    tasks = list(engine._tasks.values())
    return await asyncio.gather(*tasks)


class TestSettleTrade:
    """Outcome application against the wallet and history."""

    @pytest.mark.asyncio
    async def test_buy_win_credits_stake_plus_net_profit(
        self, ledger, settlement_engine, price_source, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        assert await balance_of(session_factory, user.id) == Decimal("900")

        clock.advance(300)
        price_source.set_price("BTC", Decimal("51000"))
        result = await settlement_engine.settle_trade(trade.id)

        assert result.outcome == TradeOutcome.WIN
        assert result.figures.commission == Decimal("1")
        assert result.figures.payout == Decimal("185")
        assert result.figures.net_profit == Decimal("84")
        assert result.balance == Decimal("1084")
        assert await balance_of(session_factory, user.id) == Decimal("1084")

        stored = await load_trade(session_factory, trade.id)
        assert stored.status == TradeStatus.SETTLED.value
        assert stored.outcome == TradeOutcome.WIN.value
        assert stored.exit_price == Decimal("51000")
        assert stored.net_profit == Decimal("84")
        assert stored.result_seen is False

    @pytest.mark.asyncio
    async def test_contract_transaction_recorded(
        self, ledger, settlement_engine, price_source, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        price_source.set_price("BTC", Decimal("51000"))
        await settlement_engine.settle_trade(trade.id)

        async with session_factory() as session:
            txs = await TransactionCRUD.get_by_trade(session, trade.id)

        assert len(txs) == 1
        tx = txs[0]
        assert tx.type == TransactionType.CONTRACT.value
        assert tx.amount == Decimal("84")
        assert tx.details["pair"] == "BTC-USDT"
        assert tx.details["direction"] == "buy"
        assert tx.details["duration"] == 300
        assert tx.details["outcome"] == "win"
        assert Decimal(tx.details["profit_percentage"]) == Decimal("84.00")
        assert Decimal(tx.details["entry_price"]) == Decimal("50000")
        assert Decimal(tx.details["exit_price"]) == Decimal("51000")

    @pytest.mark.asyncio
    async def test_sell_lose_keeps_stake(
        self, ledger, settlement_engine, price_source, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "ETH-USDT", "sell", Decimal("50"), 100)
        clock.advance(100)
        price_source.set_price("ETH", Decimal("2600"))
        result = await settlement_engine.settle_trade(trade.id)

        assert result.outcome == TradeOutcome.LOSE
        assert result.figures.payout == Decimal("0")
        assert result.figures.net_profit == Decimal("-50")
        assert await balance_of(session_factory, user.id) == Decimal("950")

        async with session_factory() as session:
            txs = await TransactionCRUD.get_by_trade(session, trade.id)
        assert txs[0].amount == Decimal("-50")
        assert txs[0].details["outcome"] == "lose"

    @pytest.mark.asyncio
    async def test_short_sell_win_uses_short_tier(
        self, ledger, settlement_engine, price_source, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "sell", Decimal("100"), 60)
        clock.advance(60)
        price_source.set_price("BTC", Decimal("49000"))
        result = await settlement_engine.settle_trade(trade.id)

        assert result.outcome == TradeOutcome.WIN
        assert result.figures.net_profit == Decimal("7")
        assert await balance_of(session_factory, user.id) == Decimal("1007")

    @pytest.mark.asyncio
    async def test_unchanged_price_loses(
        self, ledger, settlement_engine, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        result = await settlement_engine.settle_trade(trade.id)

        assert result.outcome == TradeOutcome.LOSE
        assert await balance_of(session_factory, user.id) == Decimal("900")

    @pytest.mark.asyncio
    async def test_min_commission_applied(
        self, ledger, session_factory, price_source, notifier, user_locks, user, clock
    ):
        engine = SettlementEngine(
            session_factory, price_source, notifier, user_locks,
            min_commission=Decimal("2"), retry_base_delay=0.0, retry_max_delay=0.0,
            clock=clock,
        )
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        price_source.set_price("BTC", Decimal("51000"))
        result = await engine.settle_trade(trade.id)

        assert result.figures.commission == Decimal("2")
        assert result.figures.net_profit == Decimal("83")
        assert await balance_of(session_factory, user.id) == Decimal("1083")

    @pytest.mark.asyncio
    async def test_large_min_commission_keeps_balance_equal_to_net(
        self, ledger, session_factory, price_source, notifier, user_locks, user, clock
    ):
        engine = SettlementEngine(
            session_factory, price_source, notifier, user_locks,
            min_commission=Decimal("50"), retry_base_delay=0.0, retry_max_delay=0.0,
            clock=clock,
        )
        trade = await ledger.create_trade(user.id, "ETH-USDT", "sell", Decimal("10"), 100)
        clock.advance(100)
        price_source.set_price("ETH", Decimal("2400"))
        result = await engine.settle_trade(trade.id)

        assert result.outcome == TradeOutcome.WIN
        assert result.figures.commission == Decimal("2")
        assert result.figures.net_profit == Decimal("0")
        assert await balance_of(session_factory, user.id) == Decimal("1000") + result.figures.net_profit

    @pytest.mark.asyncio
    async def test_premature_call_is_noop(
        self, ledger, settlement_engine, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(299)

        assert await settlement_engine.settle_trade(trade.id) is None
        stored = await load_trade(session_factory, trade.id)
        assert stored.status == TradeStatus.ACTIVE.value
        assert await balance_of(session_factory, user.id) == Decimal("900")

    @pytest.mark.asyncio
    async def test_unknown_trade(self, settlement_engine):
        with pytest.raises(NotFoundError):
            await settlement_engine.settle_trade(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_price_outage_leaves_trade_active(
        self, ledger, settlement_engine, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        settlement_engine.price_source = AsyncMock()
        settlement_engine.price_source.get_quote.side_effect = PriceUnavailableError()

        with pytest.raises(PriceUnavailableError):
            await settlement_engine.settle_trade(trade.id)

        stored = await load_trade(session_factory, trade.id)
        assert stored.status == TradeStatus.ACTIVE.value
        assert await balance_of(session_factory, user.id) == Decimal("900")


class TestAtMostOnce:
    """A trade settles exactly once."""

    @pytest.mark.asyncio
    async def test_second_settlement_ignored(
        self, ledger, settlement_engine, price_source, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        price_source.set_price("BTC", Decimal("51000"))
        await settlement_engine.settle_trade(trade.id)

        price_source.set_price("BTC", Decimal("40000"))
        assert await settlement_engine.settle_trade(trade.id) is None

        stored = await load_trade(session_factory, trade.id)
        assert stored.outcome == TradeOutcome.WIN.value
        assert stored.exit_price == Decimal("51000")
        assert await balance_of(session_factory, user.id) == Decimal("1084")

        async with session_factory() as session:
            txs = await TransactionCRUD.get_by_trade(session, trade.id)
            warnings = await ActivityLogCRUD.get_recent(
                session, user.id, level="WARNING", category="SETTLEMENT"
            )
        assert len(txs) == 1
        assert len(warnings) == 1
        assert warnings[0].details["trade_id"] == str(trade.id)

    @pytest.mark.asyncio
    async def test_concurrent_settlements_apply_once(
        self, ledger, settlement_engine, price_source, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        price_source.set_price("BTC", Decimal("51000"))

        results = await asyncio.gather(
            settlement_engine.settle_trade(trade.id),
            settlement_engine.settle_trade(trade.id),
        )

        assert sum(1 for r in results if r is not None) == 1
        assert await balance_of(session_factory, user.id) == Decimal("1084")


class TestRetry:
    """Feed outages at settlement time."""

    @pytest.mark.asyncio
    async def test_retries_until_price_available(
        self, ledger, settlement_engine, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        settlement_engine.price_source = AsyncMock()
        settlement_engine.price_source.get_quote.side_effect = [
            PriceUnavailableError(),
            PriceUnavailableError(),
            PriceQuote(symbol="BTC", price=Decimal("51000"), as_of=clock.now),
        ]

        result = await settlement_engine.settle_with_retry(trade.id)

        assert result.outcome == TradeOutcome.WIN
        assert settlement_engine.price_source.get_quote.await_count == 3
        for call in settlement_engine.price_source.get_quote.await_args_list:
            assert call.kwargs["use_cache"] is False
        assert await balance_of(session_factory, user.id) == Decimal("1084")

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_none(self, settlement_engine):
        assert await settlement_engine.settle_with_retry(uuid.uuid4()) is None


class TestNotifications:
    """Settlement events pushed to the owner."""

    @pytest.mark.asyncio
    async def test_settled_and_balance_events(
        self, ledger, settlement_engine, price_source, notifier, user, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        price_source.set_price("BTC", Decimal("51000"))
        await settlement_engine.settle_trade(trade.id)

        events = [call.args[1] for call in notifier.emit.await_args_list]
        assert events == [WebSocketEventType.TRADE_SETTLED, WebSocketEventType.BALANCE_UPDATED]

        user_id, _, payload = notifier.emit.await_args_list[0].args
        assert user_id == str(user.id)
        assert payload["trade_id"] == str(trade.id)
        assert payload["outcome"] == "win"
        assert Decimal(payload["net_profit"]) == Decimal("84")

        _, _, balance_payload = notifier.emit.await_args_list[1].args
        assert Decimal(balance_payload["balance"]) == Decimal("1084")

    @pytest.mark.asyncio
    async def test_no_event_for_repeat(
        self, ledger, settlement_engine, notifier, user, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        await settlement_engine.settle_trade(trade.id)
        notifier.emit.reset_mock()

        await settlement_engine.settle_trade(trade.id)
        notifier.emit.assert_not_awaited()


class TestScheduling:
    """Task lifecycle, recovery and sweep."""

    @pytest.mark.asyncio
    async def test_scheduled_task_settles_due_trade(
        self, ledger, settlement_engine, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(301)

        task = settlement_engine.schedule(trade.id, trade.settlement_due_at)
        assert settlement_engine.schedule(trade.id, trade.settlement_due_at) is task

        result = await task
        assert result.trade_id == trade.id
        assert not settlement_engine.is_scheduled(trade.id)
        assert settlement_engine.pending_count == 0

    @pytest.mark.asyncio
    async def test_recover_reschedules_active_trades(
        self, ledger, settlement_engine, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(600)

        assert await settlement_engine.recover() == 1
        assert settlement_engine.is_scheduled(trade.id)

        await drain(settlement_engine)
        stored = await load_trade(session_factory, trade.id)
        assert stored.status == TradeStatus.SETTLED.value

    @pytest.mark.asyncio
    async def test_sweep_picks_up_overdue(
        self, ledger, settlement_engine, user, session_factory, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)

        assert await settlement_engine.sweep() == 0

        clock.advance(300)
        assert await settlement_engine.sweep() == 1
        assert settlement_engine.is_scheduled(trade.id)

        await drain(settlement_engine)
        assert await settlement_engine.sweep() == 0
        stored = await load_trade(session_factory, trade.id)
        assert stored.status == TradeStatus.SETTLED.value

    @pytest.mark.asyncio
    async def test_stop_cancels_pending(self, ledger, settlement_engine, user, session_factory):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        settlement_engine.schedule(trade.id, trade.settlement_due_at)
        assert settlement_engine.pending_count == 1

        await settlement_engine.stop()

        assert settlement_engine.pending_count == 0
        stored = await load_trade(session_factory, trade.id)
        assert stored.status == TradeStatus.ACTIVE.value

    @pytest.mark.asyncio
    async def test_start_recovers_and_runs_sweeper(self, ledger, settlement_engine, user):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)

        await settlement_engine.start()

        assert settlement_engine.is_scheduled(trade.id)
        assert settlement_engine._sweeper is not None
        await settlement_engine.stop()
        assert settlement_engine._sweeper is None


class TestResultsAfterSettlement:
    """Unseen results and performance once trades settle."""

    @pytest.mark.asyncio
    async def test_unseen_until_acknowledged(
        self, ledger, settlement_engine, user, clock
    ):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        assert await ledger.get_unseen_results(user.id) == []

        clock.advance(300)
        await settlement_engine.settle_trade(trade.id)
        assert [t.id for t in await ledger.get_unseen_results(user.id)] == [trade.id]

        seen = await ledger.mark_result_seen(trade.id, user.id)
        assert seen.result_seen is True
        assert await ledger.get_unseen_results(user.id) == []

        again = await ledger.mark_result_seen(trade.id, user.id)
        assert again.result_seen is True

    @pytest.mark.asyncio
    async def test_active_trade_cannot_be_marked_seen(self, ledger, user):
        trade = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)

        result = await ledger.mark_result_seen(trade.id, user.id)
        assert result.result_seen is False

    @pytest.mark.asyncio
    async def test_performance(
        self, ledger, settlement_engine, price_source, user, clock
    ):
        first = await ledger.create_trade(user.id, "BTC-USDT", "buy", Decimal("100"), 300)
        clock.advance(300)
        price_source.set_price("BTC", Decimal("51000"))
        await settlement_engine.settle_trade(first.id)

        second = await ledger.create_trade(user.id, "ETH-USDT", "sell", Decimal("50"), 100)
        clock.advance(100)
        price_source.set_price("ETH", Decimal("2600"))
        await settlement_engine.settle_trade(second.id)

        stats = await ledger.get_performance(user.id)
        assert stats["total_trades"] == 2
        assert stats["wins"] == 1
        assert stats["losses"] == 1
        assert stats["total_staked"] == Decimal("150")
        assert stats["net_profit"] == Decimal("34")
        assert stats["win_rate"] == Decimal("50.00")
