"""
CRUD operations for ActivityLog model.
"""

import uuid
from typing import Any
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from binary_ledger.models.activity_log import ActivityLog


class ActivityLogCRUD:
    """
    Database operations for ActivityLog model.
    Entries are flushed into the caller's transaction so an audit row
    exists exactly when the change it describes was committed.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        user_id: uuid.UUID,
        level: str,
        category: str,
        message: str,
        details: dict[str, Any] | None = None
    ) -> ActivityLog:
        """
        Creates a new activity log entry.

        Args:
            db: Database session
            user_id: Associated user ID
            level: Log level (INFO, WARNING, ERROR)
            category: Event category (TRADE, SETTLEMENT)
            message: Human-readable message
            details: Optional JSON data with additional context
        """
        log = ActivityLog(
            user_id=user_id,
            level=level,
            category=category,
            message=message,
            details=details
        )
        db.add(log)
        await db.flush()
        return log

    @staticmethod
    async def info(
        db: AsyncSession,
        user_id: uuid.UUID,
        category: str,
        message: str,
        details: dict[str, Any] | None = None
    ) -> ActivityLog:
        return await ActivityLogCRUD.create(db, user_id, "INFO", category, message, details)

    @staticmethod
    async def warning(
        db: AsyncSession,
        user_id: uuid.UUID,
        category: str,
        message: str,
        details: dict[str, Any] | None = None
    ) -> ActivityLog:
        return await ActivityLogCRUD.create(db, user_id, "WARNING", category, message, details)

    @staticmethod
    async def get_recent(
        db: AsyncSession,
        user_id: uuid.UUID,
        limit: int = 50,
        level: str | None = None,
        category: str | None = None
    ) -> list[ActivityLog]:
        """
        Retrieves recent activity logs with optional filtering.
        """
        query = select(ActivityLog).where(ActivityLog.user_id == user_id)

        if level:
            query = query.where(ActivityLog.level == level)
        if category:
            query = query.where(ActivityLog.category == category)

        query = query.order_by(ActivityLog.created_at.desc()).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())
