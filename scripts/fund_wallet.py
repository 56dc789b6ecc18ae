"""
Credit a user's wallet and record the deposit in the transaction history.

Usage:
    python scripts/fund_wallet.py alice 1000 [--network TRC20]
"""

import argparse
import asyncio
from decimal import Decimal

from binary_ledger.db.database import async_session_factory, engine
from binary_ledger.db.crud.transaction import TransactionCRUD
from binary_ledger.db.crud.user import UserCRUD
from binary_ledger.db.crud.wallet import WalletCRUD
from binary_ledger.models.transaction import TransactionType


async def main(username: str, amount: Decimal, network: str) -> None:
    try:
        async with async_session_factory() as session:
            async with session.begin():
                user = await UserCRUD.get_by_username(session, username)
                if user is None:
                    print(f"Error: no user named {username}")
                    return
                balance = await WalletCRUD.credit(session, user.id, amount)
                await TransactionCRUD.create(
                    session,
                    user.id,
                    TransactionType.DEPOSIT,
                    amount=amount,
                    details={"network": network, "source": "operator"},
                )
        print(f"Credited {amount} USDT to {username}; balance is now {balance}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("username")
    parser.add_argument("amount", type=Decimal)
    parser.add_argument("--network", default="TRC20")
    args = parser.parse_args()
    if args.amount <= 0:
        parser.error("amount must be positive")
    asyncio.run(main(args.username, args.amount, args.network))
