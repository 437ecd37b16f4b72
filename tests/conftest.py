import sys
from pathlib import Path

import pytest
from sqlmodel import Session, SQLModel, create_engine, text


def _ensure_app_on_path():
    repo_root = Path(__file__).resolve().parent.parent
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    return repo_root


_ensure_app_on_path()

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from eduplatform import config
from eduplatform.models import Exam, Role, User
from eduplatform.services import exam_service, ledger_service, user_service

# StaticPool: every connection shares the same in-memory database
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield

    # Clean up in FK-safe order
    with Session(test_engine) as session:
        session.exec(text("DELETE FROM notification"))
        session.exec(text("DELETE FROM pointstransaction"))
        session.exec(text("DELETE FROM referral"))
        session.exec(text("DELETE FROM attemptanswer"))
        session.exec(text("DELETE FROM examattempt"))
        session.exec(text("DELETE FROM question"))
        session.exec(text("DELETE FROM exam"))
        session.exec(text("DELETE FROM user"))
        session.commit()


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

from eduplatform.database import get_session
from eduplatform.deps import get_current_user
from eduplatform.main import app


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def client():
    """TestClient bound to the in-memory database."""

    def override_get_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(client):
    """Act as the given user on subsequent requests.

    Stands in for the identity provider's session cookie.
    """

    def _login(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return client

    return _login


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


@pytest.fixture
def make_user():
    """Factory that provisions a user, optionally with an earned balance."""

    def _make(email: str, role: Role = Role.STUDENT, balance: int = 0) -> User:
        with Session(test_engine) as session:
            user = user_service.upsert_user(session, email=email, role=role)
            user_id = user.id
            if balance:
                ledger_service.earn(session, user_id, balance, description="Opening balance")

        with Session(test_engine) as session:
            return session.get(User, user_id)

    return _make


@pytest.fixture
def student(make_user):
    return make_user("alice@example.com")


@pytest.fixture
def other_student(make_user):
    return make_user("bob@example.com")


@pytest.fixture
def teacher(make_user):
    return make_user("teacher@example.com", role=Role.TEACHER)


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", role=Role.ADMIN)


@pytest.fixture
def exam():
    """Two-question exam: Q1 correct "A" worth 1, Q2 correct "B" worth 2."""
    with Session(test_engine) as session:
        e = exam_service.create_exam(session, title="Algebra Quiz", duration_minutes=30)
        exam_service.add_question(
            session, e.id, "Q1: 1 + 1 = ?", ["A", "B", "C", "D"], "A", points=1
        )
        exam_service.add_question(
            session, e.id, "Q2: 2 * 3 = ?", ["A", "B", "C", "D"], "B", points=2
        )
        exam_id = e.id

    with Session(test_engine) as session:
        return session.get(Exam, exam_id)


@pytest.fixture
def questions(exam):
    with Session(test_engine) as session:
        return exam_service.list_questions(session, exam.id)


@pytest.fixture
def provisioning_headers():
    """Headers the identity provider sends on server-to-server calls."""
    return {"X-Provisioning-Token": config.PROVISIONING_TOKEN}
