"""
Core module exports.
Avoid importing from this file to prevent circular imports.
Import directly from specific modules instead.
"""

__all__ = [
    "clock",
    "exceptions",
    "logging_service",
    "retry",
    "security",
    "websocket",
]
