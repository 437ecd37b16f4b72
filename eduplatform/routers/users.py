"""User provisioning and administration routes."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from eduplatform.database import get_session
from eduplatform.deps import require_identity_provider, require_role
from eduplatform.models import Role, User
from eduplatform.services import ledger_service, user_service

router = APIRouter()


class UpsertUserIn(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class RoleIn(BaseModel):
    role: Role


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": Role(user.role).value,
        "points_balance": user.points_balance,
        "referral_code": user.referral_code,
        "referred_by": user.referred_by,
    }


@router.put("/users", dependencies=[Depends(require_identity_provider)])
def api_upsert_user(
    payload: UpsertUserIn = Body(...),
    session: Session = Depends(get_session),
):
    """Provisioning hook for the identity provider."""
    user = user_service.upsert_user(
        session,
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return user_payload(user)


@router.patch("/admin/users/{user_id}/role")
def api_set_role(
    user_id: int,
    payload: RoleIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    return user_payload(user_service.set_role(session, user_id, payload.role))


@router.get("/admin/wallet/summary")
def api_wallet_summary(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(Role.ADMIN)),
):
    return ledger_service.wallet_summary(session)
