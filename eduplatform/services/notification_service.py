"""
Notification inbox.

Notifications are queued after the operation that triggers them has
committed, in a session of their own. Delivery is fire-and-forget: a failure
is logged and never propagates to the caller.
"""

import logging
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from eduplatform.errors import Forbidden, NotFound
from eduplatform.models import Notification, NotificationType

logger = logging.getLogger(__name__)


def queue_notification(
    bind: Engine,
    user_id: int,
    title: str,
    message: str,
    type: NotificationType = NotificationType.GENERAL,
) -> Optional[Notification]:
    """Persist a notification for ``user_id``. Returns None if that fails."""
    try:
        with Session(bind) as session:
            notification = Notification(
                user_id=user_id, title=title, message=message, type=type
            )
            session.add(notification)
            session.commit()
            session.refresh(notification)
            return notification
    except Exception as e:
        logger.error(
            f"Failed to queue '{type.value}' notification for user {user_id}: {e}",
            exc_info=True,
        )
        return None


def list_notifications(session: Session, user_id: int) -> List[Notification]:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(col(Notification.created_at).desc(), col(Notification.id).desc())
    )
    return session.exec(stmt).all()


def mark_read(session: Session, notification_id: int, user_id: int) -> Notification:
    notification = session.get(Notification, notification_id)
    if not notification:
        raise NotFound(f"Notification {notification_id} not found")
    if notification.user_id != user_id:
        raise Forbidden("Notification belongs to another user")

    notification.is_read = True
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return notification
