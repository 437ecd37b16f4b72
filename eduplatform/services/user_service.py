"""User records as provisioned by the external identity provider."""

import logging
import uuid
from typing import Optional

from sqlmodel import Session, select

from eduplatform.errors import NotFound
from eduplatform.models import Role, User
from eduplatform.utils import utcnow

logger = logging.getLogger(__name__)


def generate_referral_code() -> str:
    return f"REF_{uuid.uuid4().hex[:8].upper()}"


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")
    return user


def upsert_user(
    session: Session,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: Optional[Role] = None,
) -> User:
    """Create the user for ``email`` or update its profile fields.

    New users get a referral code. The points balance is never touched here.
    """
    email_clean = email.strip().lower()
    user = session.exec(select(User).where(User.email == email_clean)).first()

    if user is None:
        user = User(
            email=email_clean,
            first_name=first_name,
            last_name=last_name,
            role=role or Role.STUDENT,
            referral_code=generate_referral_code(),
        )
        logger.info(f"Provisioning user {email_clean}")
    else:
        if first_name is not None:
            user.first_name = first_name
        if last_name is not None:
            user.last_name = last_name
        if role is not None:
            user.role = role
        if not user.referral_code:
            user.referral_code = generate_referral_code()
        user.updated_at = utcnow()

    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def set_role(session: Session, user_id: int, role: Role) -> User:
    user = get_user(session, user_id)
    user.role = role
    user.updated_at = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(f"User {user_id} role set to {role.value}")
    return user
