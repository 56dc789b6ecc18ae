"""
Tests for structured logging and correlation ids.
"""

import json
import logging
import uuid
from decimal import Decimal

from binary_ledger.core.logging_service import (
    JSONFormatter,
    get_correlation_id,
    get_logger,
    log_trade_event,
    set_correlation_id,
)


def make_record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("trading.events", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_core_fields(self):
        output = json.loads(JSONFormatter().format(make_record()))

        assert output["level"] == "INFO"
        assert output["logger"] == "trading.events"
        assert output["message"] == "hello"
        assert output["source"]["line"] == 10

    def test_non_json_extras_stringified(self):
        trade_id = uuid.uuid4()
        record = make_record(trade_id=trade_id, stake=Decimal("12.5"), outcome="win")

        extra = json.loads(JSONFormatter(include_source=False).format(record))["extra"]

        assert extra["trade_id"] == str(trade_id)
        assert extra["stake"] == "12.5"
        assert extra["outcome"] == "win"

    def test_correlation_id_included(self):
        cid = set_correlation_id("abc123")
        output = json.loads(JSONFormatter().format(make_record()))
        assert output["correlation_id"] == cid


class TestCorrelationId:

    def test_generated_when_missing(self):
        cid = set_correlation_id()
        assert len(cid) == 8
        assert get_correlation_id() == cid

    def test_explicit_value_kept(self):
        assert set_correlation_id("req-1") == "req-1"


class TestTradeEvents:

    def test_trade_event_fields(self, caplog):
        with caplog.at_level(logging.INFO, logger="trading.events"):
            log_trade_event("trade_settled", "t-1", outcome="lose", net_profit="-50")

        record = caplog.records[-1]
        assert record.event_type == "trade_settled"
        assert record.trade_id == "t-1"
        assert record.outcome == "lose"

    def test_context_logger_moves_kwargs_to_extra(self, caplog):
        logger = get_logger("settlement.test")
        with caplog.at_level(logging.WARNING, logger="settlement.test"):
            logger.warning("retrying", attempt=2)

        assert caplog.records[-1].attempt == 2
