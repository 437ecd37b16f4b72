"""Exam catalog routes and starting an attempt."""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from eduplatform.database import get_session
from eduplatform.deps import require_login, require_role
from eduplatform.errors import Forbidden
from eduplatform.models import Exam, ExamAttempt, Question, Role, User
from eduplatform.services import exam_service

router = APIRouter()


# --- Request schemas ---


class CreateExamIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    duration_minutes: int = Field(gt=0)
    course_id: Optional[str] = None


class CreateQuestionIn(BaseModel):
    prompt: str = Field(min_length=1, max_length=5000)
    options: List[str] = Field(default_factory=list)
    correct_answer: str
    points: int = Field(default=1, ge=0)
    order: Optional[int] = None


class StartAttemptIn(BaseModel):
    # When given, must match the caller
    student_id: Optional[int] = None


def exam_payload(exam: Exam) -> dict:
    return {
        "exam_id": exam.id,
        "title": exam.title,
        "course_id": exam.course_id,
        "duration_minutes": exam.duration_minutes,
    }


def question_payload(q: Question, include_answer: bool = False) -> dict:
    data = {
        "question_id": q.id,
        "exam_id": q.exam_id,
        "prompt": q.prompt,
        "options": q.options,
        "points": q.points,
        "order": q.order,
    }
    if include_answer:
        data["correct_answer"] = q.correct_answer
    return data


def attempt_payload(attempt: ExamAttempt, exam: Exam, answers: dict) -> dict:
    return {
        "attempt_id": attempt.id,
        "exam_id": attempt.exam_id,
        "student_id": attempt.student_id,
        "answers": {str(qid): text for qid, text in answers.items()},
        "score": attempt.score,
        "total_points": attempt.total_points,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "auto_submitted": attempt.auto_submitted,
        "deadline": exam_service.attempt_deadline(attempt, exam),
        "remaining_seconds": exam_service.remaining_seconds(attempt, exam),
    }


@router.post("")
def api_create_exam(
    payload: CreateExamIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(Role.TEACHER, Role.ADMIN)),
):
    try:
        exam = exam_service.create_exam(
            session,
            title=payload.title,
            duration_minutes=payload.duration_minutes,
            course_id=payload.course_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return exam_payload(exam)


@router.get("/{exam_id}")
def api_get_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return exam_payload(exam_service.get_exam(session, exam_id))


@router.post("/{exam_id}/questions")
def api_add_question(
    exam_id: int,
    payload: CreateQuestionIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(Role.TEACHER, Role.ADMIN)),
):
    try:
        q = exam_service.add_question(
            session,
            exam_id=exam_id,
            prompt=payload.prompt,
            options=payload.options,
            correct_answer=payload.correct_answer,
            points=payload.points,
            order=payload.order,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return question_payload(q, include_answer=True)


@router.get("/{exam_id}/questions")
def api_list_questions(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    """Questions in display order. Correct answers are shown to staff only."""
    exam_service.get_exam(session, exam_id)
    staff = Role(current_user.role) in (Role.TEACHER, Role.ADMIN)
    return [
        question_payload(q, include_answer=staff)
        for q in exam_service.list_questions(session, exam_id)
    ]


@router.post("/{exam_id}/attempts")
def api_start_attempt(
    exam_id: int,
    payload: Optional[StartAttemptIn] = Body(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(Role.STUDENT)),
):
    if payload and payload.student_id is not None and payload.student_id != current_user.id:
        raise Forbidden("Students can only start their own attempts")

    attempt = exam_service.start_attempt(session, current_user.id, exam_id)
    exam = exam_service.get_exam(session, exam_id)
    return attempt_payload(attempt, exam, {})
