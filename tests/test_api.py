"""
HTTP tests for the exam, wallet, referral, notification and admin routes.

The identity provider is replaced by ``login_as``, which pins the caller
returned by ``get_current_user``.
"""

import pytest
from sqlmodel import select

from eduplatform.models import Role, User


class TestExamRoutes:
    def test_unauthenticated_caller_is_rejected(self, client, exam):
        resp = client.post(f"/exams/{exam.id}/attempts")
        assert resp.status_code == 401

    def test_teacher_creates_exam_and_questions(self, login_as, teacher):
        client = login_as(teacher)

        resp = client.post("/exams", json={"title": "Physics", "duration_minutes": 45})
        assert resp.status_code == 200
        exam_id = resp.json()["exam_id"]

        resp = client.post(
            f"/exams/{exam_id}/questions",
            json={"prompt": "g?", "options": ["9.8", "3.1"], "correct_answer": "9.8", "points": 2},
        )
        assert resp.status_code == 200
        assert resp.json()["order"] == 1

        resp = client.post(
            f"/exams/{exam_id}/questions",
            json={"prompt": "c?", "options": ["3e8"], "correct_answer": "nope"},
        )
        assert resp.status_code == 400

    def test_student_cannot_create_exam(self, login_as, student):
        resp = login_as(student).post("/exams", json={"title": "X", "duration_minutes": 5})
        assert resp.status_code == 403

    def test_students_do_not_see_correct_answers(self, login_as, student, exam):
        resp = login_as(student).get(f"/exams/{exam.id}/questions")

        assert resp.status_code == 200
        body = resp.json()
        assert [q["prompt"] for q in body] == ["Q1: 1 + 1 = ?", "Q2: 2 * 3 = ?"]
        assert all("correct_answer" not in q for q in body)

    def test_start_attempt_for_someone_else_is_forbidden(
        self, login_as, student, other_student, exam
    ):
        resp = login_as(student).post(
            f"/exams/{exam.id}/attempts", json={"student_id": other_student.id}
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"

    def test_teacher_cannot_start_attempt(self, login_as, teacher, exam):
        resp = login_as(teacher).post(f"/exams/{exam.id}/attempts")
        assert resp.status_code == 403

    def test_start_attempt_unknown_exam(self, login_as, student):
        resp = login_as(student).post("/exams/999999/attempts")
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"


class TestAttemptFlow:
    def test_full_attempt_lifecycle(self, login_as, student, exam, questions):
        client = login_as(student)
        q1, q2 = questions

        resp = client.post(f"/exams/{exam.id}/attempts", json={"student_id": student.id})
        assert resp.status_code == 200
        attempt = resp.json()
        assert attempt["answers"] == {}
        assert attempt["completed_at"] is None
        assert 0 < attempt["remaining_seconds"] <= 30 * 60
        attempt_id = attempt["attempt_id"]

        resp = client.patch(
            f"/attempts/{attempt_id}/answers", json={"answers": {str(q1.id): "A"}}
        )
        assert resp.status_code == 200
        assert resp.json()["answers"] == {str(q1.id): "A"}

        resp = client.post(
            f"/attempts/{attempt_id}/submit", json={"answers": {str(q2.id): "C"}}
        )
        assert resp.status_code == 200
        assert resp.json()["score"] == 1
        assert resp.json()["total_points"] == 3

        resp = client.post(f"/attempts/{attempt_id}/submit")
        assert resp.status_code == 409
        assert resp.json()["code"] == "already_completed"

        resp = client.post(f"/attempts/{attempt_id}/timeout")
        assert resp.status_code == 409

        resp = client.patch(
            f"/attempts/{attempt_id}/answers", json={"answers": {str(q2.id): "B"}}
        )
        assert resp.status_code == 409

        resp = client.get(f"/attempts/{attempt_id}")
        assert resp.json()["answers"] == {str(q1.id): "A", str(q2.id): "C"}
        assert resp.json()["remaining_seconds"] == 0

        assert client.get("/wallet/balance").json() == {"balance": 1}

    def test_timeout_marks_auto_submission(self, login_as, student, exam, questions):
        client = login_as(student)
        attempt_id = client.post(f"/exams/{exam.id}/attempts").json()["attempt_id"]

        resp = client.post(
            f"/attempts/{attempt_id}/timeout",
            json={"answers": {str(questions[1].id): "B"}},
        )

        assert resp.status_code == 200
        assert resp.json()["auto_submitted"] is True
        assert resp.json()["score"] == 2

    def test_other_student_cannot_touch_attempt(
        self, login_as, student, other_student, exam, questions
    ):
        attempt_id = login_as(student).post(f"/exams/{exam.id}/attempts").json()["attempt_id"]
        client = login_as(other_student)

        assert client.get(f"/attempts/{attempt_id}").status_code == 403
        resp = client.patch(
            f"/attempts/{attempt_id}/answers",
            json={"answers": {str(questions[0].id): "A"}},
        )
        assert resp.status_code == 403
        assert client.post(f"/attempts/{attempt_id}/submit").status_code == 403


class TestWalletRoutes:
    def test_purchase_defaults_to_1000_points(self, login_as, student):
        client = login_as(student)

        resp = client.post("/wallet/purchase")

        assert resp.status_code == 200
        assert resp.json()["amount"] == 1000
        assert resp.json()["type"] == "purchased"
        assert client.get("/wallet/balance").json()["balance"] == 1000

    def test_spend_more_than_balance(self, login_as, make_user):
        client = login_as(make_user("rich@example.com", balance=600))

        resp = client.post("/wallet/spend", json={"amount": 700})

        assert resp.status_code == 409
        assert resp.json()["code"] == "insufficient_balance"
        assert client.get("/wallet/balance").json()["balance"] == 600

    @pytest.mark.parametrize("amount", [0, -10])
    def test_non_positive_amount(self, login_as, student, amount):
        resp = login_as(student).post("/wallet/purchase", json={"amount": amount})
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_amount"

    def test_transfer_to_self(self, login_as, make_user):
        user = make_user("me@example.com", balance=600)

        resp = login_as(user).post(
            "/wallet/transfer", json={"to_user_id": user.id, "amount": 600}
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_transfer"

    def test_transfer_between_users(self, login_as, make_user, other_student):
        sender = make_user("sender@example.com", balance=300)
        client = login_as(sender)

        resp = client.post(
            "/wallet/transfer",
            json={"to_user_id": other_student.id, "amount": 100, "description": "Thanks"},
        )

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert client.get("/wallet/balance").json()["balance"] == 200
        history = client.get("/wallet/transactions").json()
        assert [tx["type"] for tx in history] == ["transferred_out", "earned"]
        assert history[0]["description"] == "Thanks"

        assert login_as(other_student).get("/wallet/balance").json()["balance"] == 100


class TestReferralAndNotificationRoutes:
    def test_register_referral_and_stats(
        self, client, login_as, student, make_user, provisioning_headers
    ):
        newcomer = make_user("fresh@example.com")

        resp = client.post(
            f"/referrals/register/{student.referral_code}",
            json={"new_user_id": newcomer.id},
            headers=provisioning_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["points_earned"] == 50

        stats = login_as(student).get("/referrals/stats").json()
        assert stats["total_invites"] == 1
        assert stats["points_earned"] == 50
        assert stats["referral_code"] == student.referral_code

    def test_invalid_referral_code(self, client, student, provisioning_headers):
        resp = client.post(
            "/referrals/register/REF_00000000",
            json={"new_user_id": student.id},
            headers=provisioning_headers,
        )
        assert resp.status_code == 404

    @pytest.mark.parametrize("headers", [{}, {"X-Provisioning-Token": "guess"}])
    def test_register_referral_requires_identity_provider(
        self, login_as, student, make_user, headers
    ):
        newcomer = make_user("fresh@example.com")
        client = login_as(student)

        resp = client.post(
            f"/referrals/register/{student.referral_code}",
            json={"new_user_id": newcomer.id},
            headers=headers,
        )

        assert resp.status_code == 401
        assert client.get("/wallet/balance").json()["balance"] == 0

    def test_existing_accounts_cannot_be_claimed_as_referrals(
        self, client, login_as, student, other_student, provisioning_headers
    ):
        # other_student already used the platform
        login_as(other_student).post("/wallet/purchase", json={"amount": 10})

        resp = client.post(
            f"/referrals/register/{student.referral_code}",
            json={"new_user_id": other_student.id},
            headers=provisioning_headers,
        )

        assert resp.status_code == 409
        assert resp.json()["code"] == "invalid_state"
        assert login_as(student).get("/wallet/balance").json()["balance"] == 0

    def test_notifications_inbox(self, login_as, student, other_student):
        client = login_as(student)
        client.post("/wallet/purchase", json={"amount": 50})

        inbox = client.get("/notifications").json()
        assert len(inbox) == 1
        assert inbox[0]["type"] == "points"
        assert inbox[0]["is_read"] is False

        note_id = inbox[0]["id"]
        assert login_as(other_student).patch(f"/notifications/{note_id}/read").status_code == 403

        client = login_as(student)
        assert client.patch(f"/notifications/{note_id}/read").status_code == 200
        assert client.get("/notifications").json()[0]["is_read"] is True


class TestUserAndAdminRoutes:
    def test_identity_provider_upsert(self, client, provisioning_headers):
        resp = client.put(
            "/users",
            json={"email": "idp@example.com", "first_name": "Ida"},
            headers=provisioning_headers,
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["role"] == "student"
        assert body["points_balance"] == 0
        assert body["referral_code"].startswith("REF_")

    def test_upsert_without_token_is_rejected(self, client, session):
        resp = client.put("/users", json={"email": "anon@example.com"})

        assert resp.status_code == 401
        assert session.exec(select(User).where(User.email == "anon@example.com")).first() is None

    def test_admin_changes_role(self, login_as, admin, student):
        resp = login_as(admin).patch(
            f"/admin/users/{student.id}/role", json={"role": "teacher"}
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == Role.TEACHER.value

    def test_unknown_role_rejected(self, login_as, admin, student):
        resp = login_as(admin).patch(
            f"/admin/users/{student.id}/role", json={"role": "superuser"}
        )
        assert resp.status_code == 422

    def test_non_admin_cannot_view_summary(self, login_as, teacher):
        assert login_as(teacher).get("/admin/wallet/summary").status_code == 403

    def test_admin_wallet_summary(self, login_as, admin, make_user):
        make_user("buyer@example.com")
        client = login_as(admin)
        client.post("/wallet/purchase", json={"amount": 1000})

        summary = client.get("/admin/wallet/summary").json()

        assert summary["total_points_purchased"] == 1000
        assert summary["total_revenue"] == 99
        assert summary["total_users"] == 2
