"""
API route module exports.
"""

from binary_ledger.api.routes.trades import router as trades_router
from binary_ledger.api.routes.trading import router as trading_router
from binary_ledger.api.routes.wallet import router as wallet_router
from binary_ledger.api.routes.websocket import router as websocket_router

__all__ = [
    "trades_router",
    "trading_router",
    "wallet_router",
    "websocket_router",
]
