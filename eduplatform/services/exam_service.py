"""
Exam catalog and exam attempt lifecycle.

An attempt is created when a student starts an exam, collects answers while
open, and is finalized exactly once by ``submit_attempt`` (manual submission
or time-expiry auto-submission). Finalization claims the row with a
conditional UPDATE on ``completed_at IS NULL``; answer writes take the same
guard, so no answer can land after the attempt is completed.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import update
from sqlmodel import Session, col, select

from eduplatform import config
from eduplatform.errors import AlreadyCompleted, Forbidden, InvalidState, NotFound
from eduplatform.models import (
    AttemptAnswer,
    Exam,
    ExamAttempt,
    NotificationType,
    Question,
    User,
)
from eduplatform.services import ledger_service
from eduplatform.services.notification_service import queue_notification
from eduplatform.utils import as_utc, sanitize_text, utcnow

logger = logging.getLogger(__name__)


# ===================== CATALOG =====================


def create_exam(
    session: Session,
    title: str,
    duration_minutes: int,
    course_id: Optional[str] = None,
) -> Exam:
    clean_title = sanitize_text(title)
    if not clean_title:
        raise ValueError("Exam title cannot be empty")
    if duration_minutes < 1:
        raise ValueError("duration_minutes must be at least 1")

    exam = Exam(title=clean_title, duration_minutes=duration_minutes, course_id=course_id)
    session.add(exam)
    session.commit()
    session.refresh(exam)
    return exam


def get_exam(session: Session, exam_id: int) -> Exam:
    exam = session.get(Exam, exam_id)
    if not exam:
        raise NotFound(f"Exam {exam_id} not found")
    return exam


def add_question(
    session: Session,
    exam_id: int,
    prompt: str,
    options: List[str],
    correct_answer: str,
    points: int = 1,
    order: Optional[int] = None,
) -> Question:
    """Add a multiple-choice question to an exam.

    Raises:
        NotFound: If the exam does not exist
        ValueError: If the prompt is empty, points is negative, or
            correct_answer is not one of the options
    """
    get_exam(session, exam_id)

    clean_prompt = sanitize_text(prompt)
    if not clean_prompt:
        raise ValueError("Question prompt cannot be empty")
    if points < 0:
        raise ValueError("points cannot be negative")
    if len(set(options)) != len(options):
        raise ValueError("All options must be unique")
    if options and correct_answer not in options:
        raise ValueError("correct_answer must be one of the options")

    if order is None:
        order = len(list_questions(session, exam_id)) + 1

    q = Question(
        exam_id=exam_id,
        prompt=clean_prompt,
        options=list(options),
        correct_answer=correct_answer,
        points=points,
        order=order,
    )
    session.add(q)
    session.commit()
    session.refresh(q)
    return q


def list_questions(session: Session, exam_id: int) -> List[Question]:
    """Questions of an exam in presentation order."""
    stmt = (
        select(Question)
        .where(Question.exam_id == exam_id)
        .order_by(col(Question.order), col(Question.id))
    )
    return session.exec(stmt).all()


# ===================== SCORING & TIMER =====================


def score_answers(
    questions: Iterable[Question], answers: Mapping[int, str]
) -> Tuple[int, int]:
    """Return (score, total_points) for a set of answers.

    An answer scores the question's points only when it equals the correct
    answer exactly. Missing answers score nothing.
    """
    score = 0
    total_points = 0
    for question in questions:
        total_points += question.points
        if answers.get(question.id) == question.correct_answer:
            score += question.points
    return score, total_points


def attempt_deadline(attempt: ExamAttempt, exam: Exam) -> datetime:
    return as_utc(attempt.started_at) + timedelta(minutes=exam.duration_minutes)


def remaining_seconds(
    attempt: ExamAttempt, exam: Exam, now: Optional[datetime] = None
) -> int:
    """Seconds left before the deadline, 0 once it has passed.

    Informational only: submissions after the deadline are still accepted.
    """
    if attempt.completed_at is not None:
        return 0
    now = as_utc(now) if now else utcnow()
    return max(0, int((attempt_deadline(attempt, exam) - now).total_seconds()))


# ===================== ATTEMPTS =====================


def _find_open_attempt(
    session: Session, exam_id: int, student_id: int
) -> Optional[ExamAttempt]:
    stmt = select(ExamAttempt).where(
        (ExamAttempt.exam_id == exam_id)
        & (ExamAttempt.student_id == student_id)
        & (col(ExamAttempt.completed_at).is_(None))
    )
    return session.exec(stmt).first()


def start_attempt(
    session: Session,
    student_id: int,
    exam_id: int,
    allow_concurrent: Optional[bool] = None,
) -> ExamAttempt:
    """Create a new attempt with no answers and a server-assigned start time.

    Raises:
        NotFound: If the exam or student does not exist
        InvalidState: If concurrent attempts are disabled and the student
            already has an open attempt at this exam
    """
    get_exam(session, exam_id)
    if not session.get(User, student_id):
        raise NotFound(f"User {student_id} not found")

    if allow_concurrent is None:
        allow_concurrent = config.ALLOW_CONCURRENT_ATTEMPTS

    now = utcnow()
    try:
        if not allow_concurrent:
            # Lock the student row so two starts cannot both pass the check
            session.exec(
                update(User).where(col(User.id) == student_id).values(updated_at=now)
            )
            existing = _find_open_attempt(session, exam_id, student_id)
            if existing:
                raise InvalidState(
                    f"Attempt {existing.id} at exam {exam_id} is still in progress"
                )

        attempt = ExamAttempt(
            student_id=student_id,
            exam_id=exam_id,
            score=0,
            total_points=0,
            started_at=now,
            updated_at=now,
        )
        session.add(attempt)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(attempt)
    logger.info(f"Attempt {attempt.id} started: student={student_id} exam={exam_id}")
    return attempt


def get_attempt(session: Session, attempt_id: int, student_id: int) -> ExamAttempt:
    """Load an attempt on behalf of its owner."""
    attempt = session.get(ExamAttempt, attempt_id)
    if not attempt:
        raise NotFound(f"Attempt {attempt_id} not found")
    if attempt.student_id != student_id:
        raise Forbidden("Attempt belongs to another student")
    return attempt


def get_answers(session: Session, attempt_id: int) -> Dict[int, str]:
    stmt = select(AttemptAnswer).where(AttemptAnswer.attempt_id == attempt_id)
    return {a.question_id: a.answer for a in session.exec(stmt).all()}


def _check_questions(session: Session, exam_id: int, question_ids: Iterable[int]) -> None:
    known = {q.id for q in list_questions(session, exam_id)}
    unknown = sorted(set(question_ids) - known)
    if unknown:
        raise NotFound(f"Questions {unknown} are not part of exam {exam_id}")


def _upsert_answers(session: Session, attempt_id: int, answers: Mapping[int, str]) -> None:
    now = utcnow()
    for qid, text in answers.items():
        stmt = select(AttemptAnswer).where(
            (AttemptAnswer.attempt_id == attempt_id) & (AttemptAnswer.question_id == qid)
        )
        existing = session.exec(stmt).first()
        if existing:
            existing.answer = text
            existing.saved_at = now
            session.add(existing)
        else:
            session.add(
                AttemptAnswer(attempt_id=attempt_id, question_id=qid, answer=text, saved_at=now)
            )


def _guard_open(session: Session, attempt_id: int, **values) -> bool:
    """Conditionally update an attempt that is not yet completed.

    Returns False when the attempt was already completed. The UPDATE locks
    the row until the surrounding transaction ends.
    """
    values.setdefault("updated_at", utcnow())
    stmt = (
        update(ExamAttempt)
        .where(col(ExamAttempt.id) == attempt_id, col(ExamAttempt.completed_at).is_(None))
        .values(**values)
    )
    return session.exec(stmt).rowcount > 0


def record_answers(
    session: Session,
    attempt_id: int,
    student_id: int,
    answers: Mapping[int, str],
) -> Dict[int, str]:
    """Save or overwrite answers of an open attempt, all or nothing.

    Returns:
        The attempt's full answer map after the update

    Raises:
        NotFound: If the attempt or a question does not exist in the exam
        Forbidden: If the caller does not own the attempt
        AlreadyCompleted: If the attempt has been submitted
    """
    attempt = get_attempt(session, attempt_id, student_id)
    if attempt.completed_at is not None:
        raise AlreadyCompleted(f"Attempt {attempt_id} is already completed")
    _check_questions(session, attempt.exam_id, answers.keys())

    try:
        if not _guard_open(session, attempt_id):
            raise AlreadyCompleted(f"Attempt {attempt_id} is already completed")
        _upsert_answers(session, attempt_id, answers)
        session.commit()
    except Exception:
        session.rollback()
        raise

    return get_answers(session, attempt_id)


def record_answer(
    session: Session,
    attempt_id: int,
    student_id: int,
    question_id: int,
    answer: str,
) -> Dict[int, str]:
    return record_answers(session, attempt_id, student_id, {question_id: answer})


def submit_attempt(
    session: Session,
    attempt_id: int,
    student_id: int,
    final_answers: Optional[Mapping[int, str]] = None,
    auto: bool = False,
) -> ExamAttempt:
    """Finalize an attempt: score it, stamp completion, award points.

    ``final_answers`` (if any) are recorded in the same transaction as the
    finalization. Submitting after the deadline behaves like an on-time
    submission. Once the attempt is durably finalized, the score is credited
    to the student's wallet and a grade notification is queued; failures of
    either are logged and do not affect the result.

    Raises:
        NotFound: If the attempt or a question does not exist in the exam
        Forbidden: If the caller does not own the attempt
        AlreadyCompleted: If the attempt was submitted before
    """
    attempt = get_attempt(session, attempt_id, student_id)
    if attempt.completed_at is not None:
        raise AlreadyCompleted(f"Attempt {attempt_id} is already completed")
    exam = get_exam(session, attempt.exam_id)
    if final_answers:
        _check_questions(session, exam.id, final_answers.keys())

    try:
        now = utcnow()
        if not _guard_open(session, attempt_id, completed_at=now, updated_at=now, auto_submitted=auto):
            raise AlreadyCompleted(f"Attempt {attempt_id} is already completed")
        if final_answers:
            _upsert_answers(session, attempt_id, final_answers)

        # Scored after the claim so answers committed before it are included
        score, total_points = score_answers(
            list_questions(session, exam.id), get_answers(session, attempt_id)
        )
        session.exec(
            update(ExamAttempt)
            .where(col(ExamAttempt.id) == attempt_id)
            .values(score=score, total_points=total_points)
        )
        session.commit()
    except AlreadyCompleted:
        session.rollback()
        logger.warning(f"Duplicate submission rejected for attempt {attempt_id}")
        raise
    except Exception:
        session.rollback()
        raise

    session.refresh(attempt)
    logger.info(
        f"Attempt {attempt_id} completed{' (auto)' if auto else ''}: "
        f"score={attempt.score}/{attempt.total_points}"
    )

    _award_points(session, attempt, exam)
    queue_notification(
        session.get_bind(),
        student_id,
        "Exam completed",
        f"You scored {attempt.score} out of {attempt.total_points} in {exam.title}",
        NotificationType.GRADE,
    )
    return attempt


def _award_points(session: Session, attempt: ExamAttempt, exam: Exam) -> None:
    if attempt.score <= 0:
        return
    try:
        ledger_service.earn(
            session,
            attempt.student_id,
            attempt.score,
            description=f"Exam completion bonus: {exam.title}",
            reference_id=str(exam.id),
        )
    except Exception as e:
        logger.error(
            f"Could not credit {attempt.score} points for attempt {attempt.id}: {e}",
            exc_info=True,
        )
