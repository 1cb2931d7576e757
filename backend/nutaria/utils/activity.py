"""Helper for recording activity log entries.

Usage:
    await log_activity(
        db, user, action="completed", entity_type="lot_run",
        entity_id=lot_run.id, entity_code=batch.batch_code,
        summary="Completed lot run for LOT-0042",
    )

The row joins the current session and is committed with the enclosing
request; nothing is flushed here.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from nutaria.models.activity_log import ActivityLog
from nutaria.models.user import UserProfile


async def log_activity(
    db: AsyncSession,
    user: UserProfile | None,
    *,
    action: str,
    entity_type: str,
    entity_id: int | str | None = None,
    entity_code: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    db.add(ActivityLog(
        user_id=user.id if user else "system",
        user_name=(user.full_name if user else "system"),
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_code=entity_code,
        summary=summary,
        details=details,
    ))
