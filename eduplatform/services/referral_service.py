"""
Referral invitations.

Registering a newly created account under a referral code records the
referral and credits the referrer a fixed bonus in the same transaction.
Accounts older than the referral window, or that already have activity, do
not qualify.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from eduplatform import config
from eduplatform.errors import InvalidState, NotFound
from eduplatform.models import (
    ExamAttempt,
    NotificationType,
    PointsTransaction,
    Referral,
    TransactionType,
    User,
)
from eduplatform.services import ledger_service
from eduplatform.services.notification_service import queue_notification
from eduplatform.utils import as_utc, utcnow

logger = logging.getLogger(__name__)


def _is_new_registration(session: Session, user: User) -> bool:
    """A user counts as new until the window passes or they use the platform."""
    window = timedelta(minutes=config.REFERRAL_WINDOW_MINUTES)
    if as_utc(user.created_at) < utcnow() - window:
        return False
    has_activity = session.exec(
        select(PointsTransaction.id).where(PointsTransaction.user_id == user.id)
    ).first() or session.exec(
        select(ExamAttempt.id).where(ExamAttempt.student_id == user.id)
    ).first()
    return has_activity is None


def register_referral(
    session: Session,
    referral_code: str,
    new_user_id: int,
    bonus: Optional[int] = None,
) -> Referral:
    """Record that ``new_user_id`` signed up with ``referral_code``.

    Raises:
        NotFound: If the code or the new user does not exist
        InvalidState: If the user refers themselves, was already referred, or
            is not a new registration (too old, or already has activity)
    """
    bonus = config.REFERRAL_BONUS_POINTS if bonus is None else bonus

    referrer = session.exec(
        select(User).where(User.referral_code == referral_code.strip().upper())
    ).first()
    if not referrer:
        raise NotFound("Invalid referral code")
    new_user = session.get(User, new_user_id)
    if not new_user:
        raise NotFound(f"User {new_user_id} not found")
    if new_user.id == referrer.id:
        raise InvalidState("Users cannot refer themselves")

    already = session.exec(
        select(Referral).where(Referral.referred_id == new_user.id)
    ).first()
    if already or new_user.referred_by is not None:
        raise InvalidState(f"User {new_user.id} was already referred")
    if not _is_new_registration(session, new_user):
        raise InvalidState(f"User {new_user.id} is not a new registration")

    try:
        referral = Referral(
            referrer_id=referrer.id, referred_id=new_user.id, points_earned=bonus
        )
        session.add(referral)
        session.flush()

        new_user.referred_by = referrer.id
        session.add(new_user)
        ledger_service.record_entry(
            session,
            referrer.id,
            bonus,
            TransactionType.EARNED,
            "Referral bonus",
            reference_id=str(referral.id),
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(referral)
    logger.info(
        f"Referral {referral.id}: user {new_user.id} joined via {referrer.id}, bonus={bonus}"
    )
    queue_notification(
        session.get_bind(),
        referral.referrer_id,
        "Invitation accepted",
        f"A friend joined with your invite code. You earned {bonus} points",
        NotificationType.INVITE,
    )
    return referral


def referral_stats(session: Session, user_id: int) -> dict:
    count, points = session.exec(
        select(
            func.count(Referral.id), func.coalesce(func.sum(Referral.points_earned), 0)
        ).where(Referral.referrer_id == user_id)
    ).one()
    return {
        "total_invites": count,
        "successful_invites": count,
        "points_earned": points,
    }
