"""
Service module exports.
Import individual modules directly to avoid circular imports.

Example:
    from binary_ledger.services.trading_service import TradingService
    from binary_ledger.services.settlement_engine import SettlementEngine
"""

__all__ = [
    "PayoutSchedule",
    "PayoutTerms",
    "PriceSource",
    "PriceQuote",
    "TradeLedger",
    "SettlementEngine",
    "TradingService",
    "UserLocks",
]


def __getattr__(name: str):
    """
    Lazy imports so importing one service does not load the others.
    """
    if name in ("PayoutSchedule", "PayoutTerms"):
        from binary_ledger.services import payout_schedule
        return getattr(payout_schedule, name)
    elif name in ("PriceSource", "PriceQuote"):
        from binary_ledger.services import price_source
        return getattr(price_source, name)
    elif name == "TradeLedger":
        from binary_ledger.services.trade_ledger import TradeLedger
        return TradeLedger
    elif name == "SettlementEngine":
        from binary_ledger.services.settlement_engine import SettlementEngine
        return SettlementEngine
    elif name == "TradingService":
        from binary_ledger.services.trading_service import TradingService
        return TradingService
    elif name == "UserLocks":
        from binary_ledger.services.user_locks import UserLocks
        return UserLocks

    raise AttributeError(f"module 'binary_ledger.services' has no attribute '{name}'")
