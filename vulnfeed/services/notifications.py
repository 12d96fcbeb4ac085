"""Administrator notifications.

Delivery failures are logged and swallowed: a notification is a side effect
of the sync, never a reason for it to fail.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vulnfeed.core.logging import get_logger
from vulnfeed.models.notification import Notification
from vulnfeed.models.user import User

logger = get_logger(__name__)


async def create_notification(
    session: AsyncSession,
    *,
    user_id: uuid.UUID,
    type: str,
    severity: str,
    title: str,
    body: str,
    link: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> uuid.UUID | None:
    """Insert one notification. Returns its id, or None if the insert failed."""
    notification = Notification(
        user_id=user_id,
        type=type,
        severity=severity,
        title=title,
        body=body,
        link=link,
        metadata_json=metadata or {},
    )
    try:
        session.add(notification)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("Failed to create notification", user_id=str(user_id), error=str(exc))
        return None
    return notification.id


async def platform_admin_ids(session: AsyncSession) -> list[uuid.UUID]:
    result = await session.execute(
        select(User.id).where(User.role == "admin", User.is_active.is_(True))
    )
    return list(result.scalars().all())


async def notify_platform_admins(
    session: AsyncSession,
    *,
    type: str,
    severity: str,
    title: str,
    body: str,
    link: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> int:
    """Send the same notification to every active administrator.

    Returns the number delivered.
    """
    try:
        admins = await platform_admin_ids(session)
    except SQLAlchemyError as exc:
        logger.error("Could not load platform administrators", error=str(exc))
        return 0

    delivered = 0
    for admin_id in admins:
        created = await create_notification(
            session,
            user_id=admin_id,
            type=type,
            severity=severity,
            title=title,
            body=body,
            link=link,
            metadata=metadata,
        )
        if created is not None:
            delivered += 1
    logger.info("Administrators notified", type=type, delivered=delivered, admins=len(admins))
    return delivered
