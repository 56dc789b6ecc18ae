# Models module
from binary_ledger.models.user import User
from binary_ledger.models.wallet import Wallet
from binary_ledger.models.binary_trade import BinaryTrade, TradeDirection, TradeStatus, TradeOutcome
from binary_ledger.models.transaction import Transaction, TransactionType, TransactionStatus
from binary_ledger.models.activity_log import ActivityLog

__all__ = [
    "User",
    "Wallet",
    "BinaryTrade",
    "TradeDirection",
    "TradeStatus",
    "TradeOutcome",
    "Transaction",
    "TransactionType",
    "TransactionStatus",
    "ActivityLog",
]
