"""
CRUD module exports.
"""

from binary_ledger.db.crud.user import UserCRUD
from binary_ledger.db.crud.wallet import WalletCRUD
from binary_ledger.db.crud.binary_trade import BinaryTradeCRUD
from binary_ledger.db.crud.transaction import TransactionCRUD
from binary_ledger.db.crud.activity_log import ActivityLogCRUD

__all__ = [
    "UserCRUD",
    "WalletCRUD",
    "BinaryTradeCRUD",
    "TransactionCRUD",
    "ActivityLogCRUD",
]
