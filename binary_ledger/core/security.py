"""
JWT utilities.

User identity is issued by an external provider that signs tokens with
the shared SECRET_KEY. This service verifies those tokens; the encoder
is used by the operator scripts and the test suite.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from binary_ledger.config import get_settings
from binary_ledger.core.exceptions import AuthenticationError


__all__ = [
    "create_access_token",
    "verify_token",
]


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """
    Creates a JWT access token with the given payload.

    Args:
        data: Dictionary of claims to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    to_encode = data.copy()

    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire, "iat": now, "type": "access"})

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, token_type: str = "access") -> dict[str, Any]:
    """
    Verifies and decodes a JWT token.

    Raises:
        AuthenticationError: If token is invalid or expired
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthenticationError(f"Invalid or expired token: {str(e)}")

    if "type" in payload and payload["type"] != token_type:
        raise AuthenticationError(f"Invalid token type: expected {token_type}")

    return payload
