"""
FastAPI dependency injection functions.
Provides reusable dependencies for database sessions, authentication
and the trading service.
"""

import uuid
from typing import Annotated, TypeAlias

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from binary_ledger.db.database import get_db
from binary_ledger.core.security import verify_token
from binary_ledger.core.exceptions import AuthenticationError, AuthorizationError
from binary_ledger.core.logging_service import log_security_event
from binary_ledger.models.user import User
from binary_ledger.db.crud.user import UserCRUD
from binary_ledger.services.trading_service import TradingService


# auto_error=False so a missing header is reported as our 401 error body
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Validates the Bearer JWT and returns the authenticated user.

    Raises:
        AuthenticationError: Missing/invalid token or unknown user
        AuthorizationError: Deactivated account
    """
    if credentials is None:
        raise AuthenticationError("Missing bearer token")

    payload = verify_token(credentials.credentials)
    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Invalid token payload")

    try:
        user_id = uuid.UUID(str(subject))
    except ValueError:
        raise AuthenticationError("Invalid token subject")

    user = await UserCRUD.get_by_id(db, user_id)
    if not user:
        log_security_event("unknown_subject", user_id=str(user_id))
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthorizationError("User account is deactivated")

    return user


def get_trading_service(request: Request) -> TradingService:
    """Trading service built during application startup."""
    return request.app.state.trading_service


# Type aliases for dependency injection
DbSession: TypeAlias = Annotated[AsyncSession, Depends(get_db)]
CurrentUser: TypeAlias = Annotated[User, Depends(get_current_user)]
Trading: TypeAlias = Annotated[TradingService, Depends(get_trading_service)]


__all__ = [
    "get_db",
    "get_current_user",
    "get_trading_service",
    "DbSession",
    "CurrentUser",
    "Trading",
]
