"""
Trading reference routes: payout menu, markets listing and current prices.
"""

from typing import Literal

from fastapi import APIRouter, Query

from binary_ledger.api.deps import Trading
from binary_ledger.models.binary_trade import TradeDirection
from binary_ledger.schemas.trading import MarketResponse, PayoutOptionResponse, PriceResponse


router = APIRouter(prefix="/trading", tags=["Trading"])


@router.get("/payouts", response_model=list[PayoutOptionResponse])
async def get_payout_options(
    service: Trading,
    direction: TradeDirection = Query(TradeDirection.BUY)
) -> list[PayoutOptionResponse]:
    """
    Duration menu with the profit and commission rates a new trade would lock in.
    """
    return [
        PayoutOptionResponse(
            direction=terms.direction.value,
            duration_seconds=terms.duration_seconds,
            profit_rate=terms.profit_rate,
            commission_rate=terms.commission_rate,
            profit_percentage=terms.profit_percentage,
            commission_percentage=terms.commission_percentage,
        )
        for terms in service.payout_options(direction)
    ]


@router.get("/prices/{symbol}", response_model=PriceResponse)
async def get_price(symbol: str, service: Trading) -> PriceResponse:
    quote = await service.get_quote(symbol)
    return PriceResponse(
        symbol=quote.symbol,
        pair=f"{quote.symbol}-USDT",
        price=quote.price,
        as_of=quote.as_of,
    )


@router.get("/markets", response_model=list[MarketResponse])
async def get_markets(
    service: Trading,
    sort: Literal[
        "market_cap_rank",
        "current_price",
        "price_change_percentage_24h",
        "market_cap",
        "name",
    ] = Query("market_cap_rank"),
    order: Literal["asc", "desc"] = Query("asc")
) -> list[MarketResponse]:
    """
    Markets page listing. Coins missing the sort field are listed last.
    """
    markets = await service.list_markets(sort, descending=order == "desc")
    return [
        MarketResponse(
            symbol=m.symbol,
            pair=m.pair,
            name=m.name,
            current_price=m.current_price,
            market_cap=m.market_cap,
            market_cap_rank=m.market_cap_rank,
            price_change_percentage_24h=m.price_change_percentage_24h,
            as_of=m.as_of,
        )
        for m in markets
    ]
