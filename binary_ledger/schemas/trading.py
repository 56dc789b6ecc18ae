"""
Trading schemas for binary trades, payout menus and prices.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator

from binary_ledger.core.clock import as_utc


class TradeCreate(BaseModel):
    """
    Order form submission.
    Direction, stake and duration are only shape-checked here; the ledger
    parses them so the client gets the typed validation_error /
    invalid_stake / invalid_duration errors.
    """
    pair: str = Field(..., min_length=1, max_length=20, examples=["BTC-USDT"])
    direction: str = Field(..., examples=["Buy"])
    stake: str | int | float = Field(..., examples=["100"])
    duration_seconds: int | float | str = Field(..., alias="duration", examples=[300])

    model_config = {"populate_by_name": True}

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v):
        """The order form sends 'Buy' / 'Sell'."""
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def coerce_duration(cls, v):
        if isinstance(v, str) and v.strip().isdigit():
            return int(v)
        if isinstance(v, float) and v.is_integer():
            return int(v)
        return v


class BinaryTradeResponse(BaseModel):
    """
    Schema for binary trade records in API responses.
    Settlement fields are null while the trade is active.
    """
    id: uuid.UUID
    pair: str
    symbol: str
    direction: str
    stake: Decimal
    duration_seconds: int
    entry_price: Decimal
    profit_rate: Decimal
    commission_rate: Decimal
    started_at: datetime
    settlement_due_at: datetime
    status: str
    outcome: str | None
    exit_price: Decimal | None
    commission: Decimal | None
    payout: Decimal | None
    net_profit: Decimal | None
    settled_at: datetime | None
    result_seen: bool
    seconds_remaining: int | None = None

    model_config = {"from_attributes": True}

    @field_validator("started_at", "settlement_due_at", "settled_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class PayoutOptionResponse(BaseModel):
    """One row of the order form's duration menu."""
    direction: str
    duration_seconds: int
    profit_rate: Decimal
    commission_rate: Decimal
    profit_percentage: Decimal
    commission_percentage: Decimal


class PriceResponse(BaseModel):
    symbol: str
    pair: str
    price: Decimal
    as_of: datetime


class MarketResponse(BaseModel):
    """One row of the markets page."""
    symbol: str
    pair: str
    name: str
    current_price: Decimal
    market_cap: Decimal | None
    market_cap_rank: int | None
    price_change_percentage_24h: Decimal | None
    as_of: datetime


class PerformanceResponse(BaseModel):
    """
    Summary shown on the trade history page.
    """
    total_trades: int
    wins: int
    losses: int
    win_rate: Decimal
    total_staked: Decimal
    net_profit: Decimal
    total_commission: Decimal
