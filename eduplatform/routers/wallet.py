"""Points wallet routes."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlmodel import Session

from eduplatform.config import DEFAULT_PURCHASE_POINTS
from eduplatform.database import get_session
from eduplatform.deps import require_login
from eduplatform.models import PointsTransaction, User
from eduplatform.services import ledger_service

router = APIRouter()


class PurchaseIn(BaseModel):
    amount: int = DEFAULT_PURCHASE_POINTS


class SpendIn(BaseModel):
    amount: int
    description: Optional[str] = None
    reference_id: Optional[str] = None


class TransferIn(BaseModel):
    to_user_id: int
    amount: int
    description: Optional[str] = None


def transaction_payload(tx: PointsTransaction) -> dict:
    return {
        "id": tx.id,
        "user_id": tx.user_id,
        "amount": tx.amount,
        "type": tx.type.value,
        "description": tx.description,
        "reference_id": tx.reference_id,
        "created_at": tx.created_at,
    }


@router.get("/balance")
def api_balance(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return {"balance": ledger_service.get_balance(session, current_user.id)}


@router.get("/transactions")
def api_transactions(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return [
        transaction_payload(tx)
        for tx in ledger_service.list_transactions(session, current_user.id)
    ]


@router.post("/purchase")
def api_purchase(
    payload: Optional[PurchaseIn] = Body(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    amount = payload.amount if payload else DEFAULT_PURCHASE_POINTS
    tx = ledger_service.purchase(session, current_user.id, amount)
    return transaction_payload(tx)


@router.post("/spend")
def api_spend(
    payload: SpendIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    tx = ledger_service.spend(
        session,
        current_user.id,
        payload.amount,
        description=payload.description,
        reference_id=payload.reference_id,
    )
    return transaction_payload(tx)


@router.post("/transfer")
def api_transfer(
    payload: TransferIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    debit, credit = ledger_service.transfer(
        session,
        current_user.id,
        payload.to_user_id,
        payload.amount,
        description=payload.description,
    )
    return {
        "success": True,
        "sent": transaction_payload(debit),
        "received": transaction_payload(credit),
    }
