"""
Create a user mirrored from the identity provider and print a dev token.

Usage:
    python scripts/create_user.py alice alice@example.com [--id <uuid>]
"""

import argparse
import asyncio
import uuid

from binary_ledger.core.security import create_access_token
from binary_ledger.core.exceptions import ValidationError
from binary_ledger.db.database import async_session_factory, engine, init_db
from binary_ledger.db.crud.user import UserCRUD
from binary_ledger.db.crud.wallet import WalletCRUD


async def main(username: str, email: str, user_id: uuid.UUID | None) -> None:
    await init_db()
    try:
        async with async_session_factory() as session:
            async with session.begin():
                user = await UserCRUD.create(session, username, email, user_id=user_id)
                await WalletCRUD.get_or_create(session, user.id)
        print(f"Created user {user.username} ({user.id})")
        print(f"Access token: {create_access_token({'sub': str(user.id)})}")
    except ValidationError as e:
        print(f"Error: {e.message}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("--id", type=uuid.UUID, default=None, help="identity provider subject id")
    args = parser.parse_args()
    asyncio.run(main(args.username, args.email, args.id))
