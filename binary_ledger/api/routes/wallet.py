"""
Wallet routes: balance and transaction history.
"""

from fastapi import APIRouter, Query

from binary_ledger.api.deps import CurrentUser, DbSession
from binary_ledger.db.crud.transaction import TransactionCRUD
from binary_ledger.db.crud.wallet import WalletCRUD
from binary_ledger.models.transaction import TransactionType
from binary_ledger.schemas.wallet import TransactionView, WalletResponse, transaction_view


router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("", response_model=WalletResponse)
async def get_wallet(db: DbSession, current_user: CurrentUser) -> WalletResponse:
    """
    Returns the user's USDT balance, opening an empty wallet on first access.
    """
    wallet = await WalletCRUD.get_or_create(db, current_user.id)
    return WalletResponse.model_validate(wallet)


@router.get("/transactions", response_model=list[TransactionView])
async def get_transactions(
    db: DbSession,
    current_user: CurrentUser,
    type_filter: TransactionType | None = Query(None, alias="type"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0)
) -> list[TransactionView]:
    """
    Wallet movements newest first, optionally filtered by type.
    """
    transactions = await TransactionCRUD.get_by_user(
        db,
        current_user.id,
        type=type_filter,
        limit=limit,
        offset=offset,
    )
    return [transaction_view(tx) for tx in transactions]
