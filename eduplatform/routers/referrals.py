"""Referral routes."""

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlmodel import Session

from eduplatform.database import get_session
from eduplatform.deps import require_identity_provider, require_login
from eduplatform.models import User
from eduplatform.services import referral_service

router = APIRouter()


class RegisterReferralIn(BaseModel):
    new_user_id: int


@router.get("/stats")
def api_referral_stats(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    stats = referral_service.referral_stats(session, current_user.id)
    stats["referral_code"] = current_user.referral_code
    return stats


@router.post(
    "/register/{referral_code}", dependencies=[Depends(require_identity_provider)]
)
def api_register_referral(
    referral_code: str,
    payload: RegisterReferralIn = Body(...),
    session: Session = Depends(get_session),
):
    """Called by the registration flow once the new account exists."""
    referral = referral_service.register_referral(
        session, referral_code, payload.new_user_id
    )
    return {
        "success": True,
        "referral_id": referral.id,
        "referrer_id": referral.referrer_id,
        "points_earned": referral.points_earned,
    }
