"""
Common schemas used across multiple endpoints.
"""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """
    Standard error response format.
    """
    error: str
    message: str
    details: dict | None = None
