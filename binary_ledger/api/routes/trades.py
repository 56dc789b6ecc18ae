"""
Binary trade routes: placement, active trades, history and results.
"""

import uuid

from fastapi import APIRouter, Query, status

from binary_ledger.api.deps import CurrentUser, Trading
from binary_ledger.models.binary_trade import BinaryTrade
from binary_ledger.schemas.common import ErrorResponse
from binary_ledger.schemas.trading import (
    BinaryTradeResponse,
    PerformanceResponse,
    TradeCreate,
)
from binary_ledger.services.trading_service import TradingService


router = APIRouter(prefix="/trades", tags=["Trades"])


def _to_response(trade: BinaryTrade, service: TradingService) -> BinaryTradeResponse:
    response = BinaryTradeResponse.model_validate(trade)
    if trade.is_active:
        response.seconds_remaining = service.countdown(trade).seconds_remaining
    return response


@router.post(
    "",
    response_model=BinaryTradeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def place_trade(
    body: TradeCreate,
    current_user: CurrentUser,
    service: Trading
) -> BinaryTradeResponse:
    """
    Opens a binary trade. The stake is debited immediately and the
    trade settles automatically after its duration.
    """
    trade = await service.place_trade(
        current_user.id,
        body.pair,
        body.direction,
        body.stake,
        body.duration_seconds,
    )
    return _to_response(trade, service)


@router.get("/active", response_model=list[BinaryTradeResponse])
async def get_active_trades(
    current_user: CurrentUser,
    service: Trading
) -> list[BinaryTradeResponse]:
    trades = await service.ledger.get_active_trades(current_user.id)
    return [_to_response(t, service) for t in trades]


@router.get("/history", response_model=list[BinaryTradeResponse])
async def get_trade_history(
    current_user: CurrentUser,
    service: Trading,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0)
) -> list[BinaryTradeResponse]:
    """
    Returns the user's trades newest first, active and settled together.
    """
    trades = await service.ledger.get_history(current_user.id, limit=limit, offset=offset)
    return [_to_response(t, service) for t in trades]


@router.get("/results/unseen", response_model=list[BinaryTradeResponse])
async def get_unseen_results(
    current_user: CurrentUser,
    service: Trading
) -> list[BinaryTradeResponse]:
    """
    Settled trades whose result has not been acknowledged yet.
    """
    trades = await service.ledger.get_unseen_results(current_user.id)
    return [_to_response(t, service) for t in trades]


@router.get("/performance", response_model=PerformanceResponse)
async def get_performance(
    current_user: CurrentUser,
    service: Trading
) -> PerformanceResponse:
    stats = await service.ledger.get_performance(current_user.id)
    return PerformanceResponse(**stats)


@router.get("/{trade_id}", response_model=BinaryTradeResponse)
async def get_trade(
    trade_id: uuid.UUID,
    current_user: CurrentUser,
    service: Trading
) -> BinaryTradeResponse:
    trade = await service.ledger.get_trade(trade_id, current_user.id)
    return _to_response(trade, service)


@router.post("/{trade_id}/seen", response_model=BinaryTradeResponse)
async def mark_result_seen(
    trade_id: uuid.UUID,
    current_user: CurrentUser,
    service: Trading
) -> BinaryTradeResponse:
    """
    Acknowledges a settled result so it is no longer reported as unseen.
    """
    trade = await service.ledger.mark_result_seen(trade_id, current_user.id)
    return _to_response(trade, service)
