"""
Tests for the outcome rule and settlement arithmetic.
"""

from decimal import Decimal

import pytest

from binary_ledger.models.binary_trade import TradeDirection, TradeOutcome
from binary_ledger.services.settlement_engine import compute_settlement, evaluate_outcome


class TestEvaluateOutcome:
    """Strict price comparisons per direction."""

    @pytest.mark.parametrize("entry,exit_price,expected", [
        (Decimal("100"), Decimal("101"), TradeOutcome.WIN),
        (Decimal("100"), Decimal("99"), TradeOutcome.LOSE),
        (Decimal("100"), Decimal("100"), TradeOutcome.LOSE),
    ])
    def test_buy(self, entry, exit_price, expected):
        assert evaluate_outcome(TradeDirection.BUY, entry, exit_price) == expected

    @pytest.mark.parametrize("entry,exit_price,expected", [
        (Decimal("100"), Decimal("99"), TradeOutcome.WIN),
        (Decimal("100"), Decimal("101"), TradeOutcome.LOSE),
        (Decimal("100"), Decimal("100"), TradeOutcome.LOSE),
    ])
    def test_sell(self, entry, exit_price, expected):
        assert evaluate_outcome(TradeDirection.SELL, entry, exit_price) == expected

    def test_accepts_stored_string_direction(self):
        assert evaluate_outcome("sell", Decimal("2"), Decimal("1")) == TradeOutcome.WIN


class TestComputeSettlement:
    """Commission, payout and net profit."""

    def test_buy_win(self):
        # Buy 100 for 300s, 50000 -> 50100
        outcome = evaluate_outcome("buy", Decimal("50000"), Decimal("50100"))
        figures = compute_settlement(Decimal("100"), Decimal("0.85"), Decimal("0.01"), outcome)

        assert outcome == TradeOutcome.WIN
        assert figures.commission == Decimal("1")
        assert figures.net_profit == Decimal("84")
        assert figures.payout == Decimal("185")
        assert figures.credit == Decimal("184")

    def test_sell_loses_when_price_rises(self):
        outcome = evaluate_outcome("sell", Decimal("2500"), Decimal("2550"))
        figures = compute_settlement(Decimal("50"), Decimal("0.20"), Decimal("0.01"), outcome)

        assert outcome == TradeOutcome.LOSE
        assert figures.net_profit == Decimal("-50")
        assert figures.payout == Decimal("0")
        assert figures.credit == Decimal("0")

    def test_long_sell_win(self):
        outcome = evaluate_outcome("sell", Decimal("300"), Decimal("290"))
        figures = compute_settlement(Decimal("20"), Decimal("0.40"), Decimal("0.01"), outcome)

        assert outcome == TradeOutcome.WIN
        assert figures.commission == Decimal("0.2")
        assert figures.net_profit == Decimal("20") * Decimal("0.40") - figures.commission
        assert figures.net_profit == Decimal("7.8")

    def test_minimum_commission_applies(self):
        figures = compute_settlement(
            Decimal("10"), Decimal("0.85"), Decimal("0.01"), TradeOutcome.WIN,
            min_commission=Decimal("0.5"),
        )
        assert figures.commission == Decimal("0.5")
        assert figures.net_profit == Decimal("8.0")

    @pytest.mark.parametrize("stake,profit_rate", [
        (Decimal("1"), Decimal("0.85")),
        (Decimal("37.5"), Decimal("0.20")),
        (Decimal("999.99"), Decimal("0.40")),
        (Decimal("0.01"), Decimal("0.08")),
    ])
    def test_net_profit_identities(self, stake, profit_rate):
        rate = Decimal("0.01")
        win = compute_settlement(stake, profit_rate, rate, TradeOutcome.WIN)
        lose = compute_settlement(stake, profit_rate, rate, TradeOutcome.LOSE)

        assert win.net_profit == (stake * profit_rate).quantize(Decimal("0.000001")) - (stake * rate).quantize(Decimal("0.000001"))
        assert win.credit == stake + win.net_profit
        assert lose.net_profit == -stake
        assert lose.payout == 0

    def test_minimum_commission_capped_at_gross_profit(self):
        figures = compute_settlement(
            Decimal("10"), Decimal("0.20"), Decimal("0.01"), TradeOutcome.WIN,
            min_commission=Decimal("50"),
        )

        assert figures.commission == Decimal("2")
        assert figures.net_profit == Decimal("0")
        assert figures.credit == Decimal("10")
