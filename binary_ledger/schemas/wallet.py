"""
Wallet and transaction history schemas.

Transactions are exposed as a tagged union on `type`; each variant
carries only the fields that make sense for it.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from binary_ledger.core.clock import as_utc
from binary_ledger.models.transaction import Transaction


class WalletResponse(BaseModel):
    asset: str
    balance: Decimal

    model_config = {"from_attributes": True}


class TransactionBase(BaseModel):
    id: uuid.UUID
    amount: Decimal
    asset: str
    status: Literal["pending", "completed", "failed"]
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class DepositTransaction(TransactionBase):
    type: Literal["deposit"]
    network: str | None = None
    address: str | None = None
    tx_hash: str | None = None


class WithdrawalTransaction(TransactionBase):
    type: Literal["withdrawal"]
    network: str | None = None
    address: str | None = None
    fee: Decimal | None = None


class SpotTransaction(TransactionBase):
    type: Literal["buy", "sell"]
    pair: str | None = None
    price: Decimal | None = None
    quantity: Decimal | None = None


class ContractDetails(BaseModel):
    """Summary of the settled binary trade."""
    pair: str
    direction: str
    duration: int
    stake: Decimal | None = None
    outcome: Literal["win", "lose"]
    profit: Decimal
    profit_percentage: Decimal
    entry_price: Decimal
    exit_price: Decimal
    settlement_time: datetime | None = None
    actual_settlement_time: datetime | None = None


class ContractTransaction(TransactionBase):
    type: Literal["contract"]
    trade_id: uuid.UUID | None = None
    contract: ContractDetails


TransactionView = Annotated[
    Union[DepositTransaction, WithdrawalTransaction, SpotTransaction, ContractTransaction],
    Field(discriminator="type"),
]

_transaction_adapter: TypeAdapter[TransactionView] = TypeAdapter(TransactionView)


def transaction_view(tx: Transaction) -> TransactionView:
    """Builds the matching union variant from a stored Transaction row."""
    data = {
        "id": tx.id,
        "type": tx.type,
        "amount": tx.amount,
        "asset": tx.asset,
        "status": tx.status,
        "created_at": tx.created_at,
    }
    details = dict(tx.details or {})
    if tx.type == "contract":
        data["trade_id"] = tx.trade_id
        data["contract"] = details
    else:
        data.update(details)
    return _transaction_adapter.validate_python(data)
