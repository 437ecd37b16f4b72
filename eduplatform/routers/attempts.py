"""Exam attempt routes: answering, submission and time-expiry auto-submit."""

from typing import Dict, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlmodel import Session

from eduplatform.database import get_session
from eduplatform.deps import require_login
from eduplatform.models import User
from eduplatform.routers.exams import attempt_payload
from eduplatform.services import exam_service

router = APIRouter()


class AnswersIn(BaseModel):
    # question id -> chosen option
    answers: Dict[int, str]


class SubmitIn(BaseModel):
    answers: Optional[Dict[int, str]] = None


@router.get("/{attempt_id}")
def api_get_attempt(
    attempt_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    attempt = exam_service.get_attempt(session, attempt_id, current_user.id)
    exam = exam_service.get_exam(session, attempt.exam_id)
    answers = exam_service.get_answers(session, attempt_id)
    return attempt_payload(attempt, exam, answers)


@router.patch("/{attempt_id}/answers")
def api_record_answers(
    attempt_id: int,
    payload: AnswersIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    answers = exam_service.record_answers(
        session, attempt_id, current_user.id, payload.answers
    )
    return {
        "attempt_id": attempt_id,
        "answers": {str(qid): text for qid, text in answers.items()},
    }


def _submit(session: Session, attempt_id: int, user: User, payload, auto: bool) -> dict:
    final_answers = payload.answers if payload else None
    attempt = exam_service.submit_attempt(
        session, attempt_id, user.id, final_answers=final_answers, auto=auto
    )
    return {
        "attempt_id": attempt.id,
        "score": attempt.score,
        "total_points": attempt.total_points,
        "completed_at": attempt.completed_at,
        "auto_submitted": attempt.auto_submitted,
    }


@router.post("/{attempt_id}/submit")
def api_submit(
    attempt_id: int,
    payload: Optional[SubmitIn] = Body(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return _submit(session, attempt_id, current_user, payload, auto=False)


@router.post("/{attempt_id}/timeout")
def api_timeout(
    attempt_id: int,
    payload: Optional[SubmitIn] = Body(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    """Auto-submit sent by the client countdown when time runs out.

    Rejected with ``already_completed`` if a normal submission landed first.
    """
    return _submit(session, attempt_id, current_user, payload, auto=True)
