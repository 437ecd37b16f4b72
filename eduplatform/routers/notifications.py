"""Notification inbox routes."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from eduplatform.database import get_session
from eduplatform.deps import require_login
from eduplatform.models import Notification, User
from eduplatform.services import notification_service

router = APIRouter()


def notification_payload(n: Notification) -> dict:
    return {
        "id": n.id,
        "title": n.title,
        "message": n.message,
        "type": n.type.value,
        "is_read": n.is_read,
        "created_at": n.created_at,
    }


@router.get("")
def api_list_notifications(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return [
        notification_payload(n)
        for n in notification_service.list_notifications(session, current_user.id)
    ]


@router.patch("/{notification_id}/read")
def api_mark_read(
    notification_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    notification_service.mark_read(session, notification_id, current_user.id)
    return {"success": True}
