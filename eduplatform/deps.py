"""Shared FastAPI dependencies for database access and caller identity."""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlmodel import Session

from eduplatform import config
from eduplatform.database import get_session
from eduplatform.models import Role, User


def get_current_user(
    request: Request, session: Session = Depends(get_session)
) -> Optional[User]:
    """Return the caller identified by the signed session cookie, if any.

    The identity provider stores ``user_id`` in the session; this service
    only reads it.
    """
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    user = session.get(User, user_id)
    if not user:
        # Clear any stale session
        request.session.clear()
        return None
    return user


def require_login(current_user: Optional[User] = Depends(get_current_user)) -> User:
    """Ensure that a caller is identified; otherwise 401."""
    if current_user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return current_user


def require_role(*required_roles: Role):
    """Dependency factory that enforces one of the given roles."""

    allowed = frozenset(required_roles)

    def wrapper(current_user: User = Depends(require_login)) -> User:
        if Role(current_user.role) not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden")
        return current_user

    return wrapper


def require_identity_provider(
    x_provisioning_token: Optional[str] = Header(None),
) -> None:
    """Allow only the identity provider's server-to-server calls."""
    if not x_provisioning_token or not secrets.compare_digest(
        x_provisioning_token, config.PROVISIONING_TOKEN
    ):
        raise HTTPException(status_code=401, detail="Invalid provisioning token")
