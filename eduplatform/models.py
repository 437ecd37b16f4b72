"""SQLModel models for exam attempts, the points wallet and notifications."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from eduplatform.utils import utcnow


class Role(str, Enum):
    """Closed set of account roles."""

    STUDENT = "student"
    TEACHER = "teacher"
    INSTITUTION = "institution"
    PARENT = "parent"
    ADMIN = "admin"


class TransactionType(str, Enum):
    EARNED = "earned"
    SPENT = "spent"
    PURCHASED = "purchased"
    TRANSFERRED_IN = "transferred_in"
    TRANSFERRED_OUT = "transferred_out"

    @property
    def sign(self) -> int:
        """+1 for credits, -1 for debits. Amounts are always stored positive."""
        if self in (TransactionType.SPENT, TransactionType.TRANSFERRED_OUT):
            return -1
        return 1


class NotificationType(str, Enum):
    GRADE = "grade"
    ACTIVITY = "activity"
    POINTS = "points"
    INVITE = "invite"
    GENERAL = "general"


class User(SQLModel, table=True):
    """Platform account. ``points_balance`` is maintained by the ledger only."""

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        UniqueConstraint("referral_code", name="uq_user_referral_code"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Role = Field(default=Role.STUDENT)
    points_balance: int = Field(default=0)
    referral_code: Optional[str] = None
    referred_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# ===================== EXAM CATALOG =====================


class Exam(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    # Courses live in the external catalog; kept as an opaque reference
    course_id: Optional[str] = None
    duration_minutes: int
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Question(SQLModel, table=True):
    """A multiple-choice question belonging to an exam."""

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    prompt: str
    options: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    correct_answer: str
    points: int = Field(default=1)
    order: int = Field(default=0)


# ===================== EXAM ATTEMPTS =====================


class ExamAttempt(SQLModel, table=True):
    """Tracks one attempt by a student at an exam.

    ``completed_at`` is written once; after that the attempt and its answers
    are read-only.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    score: int = Field(default=0)
    total_points: int = Field(default=0)
    started_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    completed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    auto_submitted: bool = Field(default=False)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class AttemptAnswer(SQLModel, table=True):
    """The answer recorded for one question within an attempt."""

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_attempt_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    attempt_id: int = Field(foreign_key="examattempt.id", index=True)
    question_id: int = Field(foreign_key="question.id")
    answer: str
    saved_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# ===================== POINTS WALLET =====================


class PointsTransaction(SQLModel, table=True):
    """Append-only ledger entry. Never updated or deleted."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    amount: int
    type: TransactionType
    description: Optional[str] = None
    # exam, course or referral id the entry originated from
    reference_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Referral(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("referred_id", name="uq_referral_referred"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    referrer_id: int = Field(foreign_key="user.id", index=True)
    referred_id: int = Field(foreign_key="user.id")
    points_earned: int = Field(default=50)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# ===================== NOTIFICATIONS =====================


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title: str
    message: str
    type: NotificationType = Field(default=NotificationType.GENERAL)
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
