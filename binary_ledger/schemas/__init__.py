"""
Pydantic schema exports.
"""

from binary_ledger.schemas.common import (
    ErrorResponse,
)
from binary_ledger.schemas.trading import (
    TradeCreate,
    BinaryTradeResponse,
    PayoutOptionResponse,
    PriceResponse,
    PerformanceResponse,
)
from binary_ledger.schemas.wallet import (
    WalletResponse,
    TransactionView,
    transaction_view,
)

__all__ = [
    "ErrorResponse",
    "TradeCreate",
    "BinaryTradeResponse",
    "PayoutOptionResponse",
    "PriceResponse",
    "PerformanceResponse",
    "WalletResponse",
    "TransactionView",
    "transaction_view",
]
