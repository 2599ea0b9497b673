"""
Student roster, sessions, dashboard and admin trainer management,
run against both backends.
"""
from datetime import datetime, timedelta, timezone

import pytest

import models
from core.container import AUTH_SERVICE, LOCAL_STORAGE, PAYMENT_SERVICE, TRAINER_SERVICE
from core.database import session_scope
from core.exceptions import NotFoundError, PlanLimitExceededError, UserAlreadyExistsError
from schemas import NewStudent, NewTrainingSession, SignUpData, SystemSetting, TrainerSummary
from services.demo_data import DEMO_TRAINER_ID, empty_data
from services.local_store import now_iso
from services.trainer_service import (
    as_utc,
    matches_trainer_filters,
    merge_settings,
    month_revenue,
    payment_fee,
    session_counts,
)

PASSWORD = "Str0ng!Pass"
NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["local", "remote"])
def backend_name(request):
    return request.param


@pytest.fixture
def backend(request, backend_name):
    return request.getfixturevalue(f"{backend_name}_container")


@pytest.fixture
def trainer_id(backend):
    return backend.resolve(AUTH_SERVICE).sign_up(
        "coach@example.com", PASSWORD, SignUpData(first_name="Rita", last_name="Lima", role="trainer"),
    ).user.id


@pytest.fixture
def trainers(backend):
    return backend.resolve(TRAINER_SERVICE)


def _new_student(n):
    return NewStudent(email=f"student{n}@example.com", first_name="Student", last_name=str(n))


class TestHelpers:

    def test_as_utc(self):
        assert as_utc(None) is None
        assert as_utc("2026-03-15T12:00:00Z") == NOW
        assert as_utc(datetime(2026, 3, 15, 12, 0)) == NOW

    def test_session_counts(self):
        sessions = [
            (NOW - timedelta(hours=2), "completed"),
            (NOW + timedelta(hours=2), "scheduled"),
            (NOW + timedelta(days=2), "scheduled"),
            (NOW + timedelta(days=3), "cancelled"),
        ]
        assert session_counts(sessions, NOW) == (2, 2, 4)

    def test_month_revenue_counts_succeeded_this_month(self):
        payments = [
            (2900, "succeeded", NOW - timedelta(days=2)),
            (4900, "succeeded", "2026-03-01T00:00:00+00:00"),
            (9900, "failed", NOW),
            (2900, "succeeded", NOW - timedelta(days=40)),
        ]
        assert month_revenue(payments, NOW) == 7800

    def test_trainer_filters(self):
        summary = TrainerSummary(id="t", first_name="Rita", last_name="Lima", plan="pro",
                                 max_students=15, ai_credits=100, active_students=2)
        assert matches_trainer_filters(summary)
        assert matches_trainer_filters(summary, search="rita li")
        assert matches_trainer_filters(summary, plan="pro")
        assert not matches_trainer_filters(summary, plan="elite")
        assert not matches_trainer_filters(summary, search="otto")

    def test_trainer_search_matches_email(self):
        summary = TrainerSummary(id="t", first_name="Rita", last_name="Lima", email="coach.rl@studio.com",
                                 plan="free", max_students=3, ai_credits=10, active_students=0)
        assert matches_trainer_filters(summary, search="STUDIO.COM")
        assert matches_trainer_filters(summary, search="coach.rl@")
        assert not matches_trainer_filters(summary, search="gym.com")
        assert matches_trainer_filters(summary.model_copy(update={"email": None}), search="rita")

    def test_payment_fee_prefers_recorded_split(self):
        assert payment_fee(10000, {"platform_fee": "99"}, "free") == 99
        assert payment_fee(10000, {}, "free") == 150
        assert payment_fee(10000, None, "elite") == 50
        assert payment_fee(10000, None, None) == 0

    def test_stored_settings_override_defaults(self):
        merged = merge_settings([
            SystemSetting(key="maintenance_mode", value="true"),
            SystemSetting(key="retired_key", value="x"),
        ])
        assert [s.key for s in merged] == ["email_notifications", "maintenance_mode", "support_email"]
        assert {s.key: s.value for s in merged}["maintenance_mode"] == "true"


class TestStudents:

    def test_add_student_within_limit(self, trainers, trainer_id):
        student = trainers.add_student(trainer_id, _new_student(1))
        assert student.trainer_id == trainer_id
        assert student.status == "active"
        assert student.email == "student1@example.com"
        assert [s.id for s in trainers.get_students(trainer_id)] == [student.id]

    def test_free_plan_stops_at_three(self, trainers, trainer_id):
        for n in range(3):
            trainers.add_student(trainer_id, _new_student(n))
        with pytest.raises(PlanLimitExceededError) as exc:
            trainers.add_student(trainer_id, _new_student(99))
        assert exc.value.status_code == 403
        assert len(trainers.get_students(trainer_id)) == 3

    def test_upgrade_raises_limit(self, backend, trainers, trainer_id):
        for n in range(3):
            trainers.add_student(trainer_id, _new_student(n))
        backend.resolve(PAYMENT_SERVICE).update_trainer_plan(trainer_id, "pro")
        trainers.add_student(trainer_id, _new_student(3))
        assert len(trainers.get_students(trainer_id)) == 4

    def test_paused_students_still_count(self, trainers, trainer_id):
        students = [trainers.add_student(trainer_id, _new_student(n)) for n in range(3)]
        trainers.update_student_status(students[0].id, "paused")
        with pytest.raises(PlanLimitExceededError):
            trainers.add_student(trainer_id, _new_student(3))

    def test_duplicate_email(self, trainers, trainer_id):
        with pytest.raises(UserAlreadyExistsError):
            trainers.add_student(trainer_id, NewStudent(email="Coach@Example.com",
                                                        first_name="Dup", last_name="Licate"))

    def test_update_status(self, trainers, trainer_id):
        student = trainers.add_student(trainer_id, _new_student(1))
        assert trainers.update_student_status(student.id, "cancelled").status == "cancelled"
        with pytest.raises(NotFoundError):
            trainers.update_student_status("nobody", "active")


class TestSessions:

    def test_upcoming_window(self, trainers, trainer_id):
        student = trainers.add_student(trainer_id, _new_student(1))
        now = datetime.now(timezone.utc)
        soon = trainers.create_session(trainer_id, NewTrainingSession(
            student_id=student.id, scheduled_at=now + timedelta(hours=1)))
        trainers.create_session(trainer_id, NewTrainingSession(
            student_id=student.id, scheduled_at=now + timedelta(days=10)))
        past = trainers.create_session(trainer_id, NewTrainingSession(
            student_id=student.id, scheduled_at=now - timedelta(days=1)))

        sessions = trainers.get_sessions(trainer_id)
        assert len(sessions) == 3
        assert sessions[0].id == past.id
        assert sessions[0].student_name == "Student 1"
        assert [s.id for s in trainers.get_upcoming_sessions(trainer_id)] == [soon.id]

    def test_cancelled_session_is_not_upcoming(self, trainers, trainer_id):
        student = trainers.add_student(trainer_id, _new_student(1))
        session = trainers.create_session(trainer_id, NewTrainingSession(
            student_id=student.id, scheduled_at=datetime.now(timezone.utc) + timedelta(hours=3)))
        assert trainers.update_session_status(session.id, "cancelled").status == "cancelled"
        assert trainers.get_upcoming_sessions(trainer_id) == []

    def test_session_for_unknown_student(self, trainers, trainer_id):
        with pytest.raises(NotFoundError):
            trainers.create_session(trainer_id, NewTrainingSession(
                student_id="nobody", scheduled_at=datetime.now(timezone.utc)))

    def test_update_unknown_session(self, trainers):
        with pytest.raises(NotFoundError):
            trainers.update_session_status("missing", "completed")


class TestDashboardAndAdmin:

    def test_dashboard_counts(self, trainers, trainer_id):
        students = [trainers.add_student(trainer_id, _new_student(n)) for n in range(2)]
        trainers.update_student_status(students[1].id, "paused")
        trainers.create_session(trainer_id, NewTrainingSession(
            student_id=students[0].id, scheduled_at=datetime.now(timezone.utc) + timedelta(days=2)))

        stats = trainers.get_dashboard_stats(trainer_id)
        assert stats.total_students == 2
        assert stats.active_students == 1
        assert stats.max_students == 3
        assert stats.upcoming_sessions == 1
        assert stats.total_sessions == 1
        assert stats.ai_credits == 10
        assert stats.plan == "free"
        assert stats.monthly_revenue == 0

    def test_dashboard_for_unknown_trainer(self, trainers):
        assert trainers.get_dashboard_stats("nobody") is None

    def test_list_trainers_counts_active_students(self, trainers, trainer_id):
        students = [trainers.add_student(trainer_id, _new_student(n)) for n in range(2)]
        trainers.update_student_status(students[0].id, "paused")
        summary = next(t for t in trainers.list_trainers() if t.id == trainer_id)
        assert summary.active_students == 1
        assert summary.email == "coach@example.com"
        assert summary.plan == "free"

    def test_delete_trainer(self, trainers, trainer_id):
        trainers.add_student(trainer_id, _new_student(1))
        trainers.delete_trainer(trainer_id)
        assert trainer_id not in {t.id for t in trainers.list_trainers()}
        assert trainers.get_students(trainer_id) == []
        with pytest.raises(NotFoundError):
            trainers.delete_trainer(trainer_id)


class TestAdminConsole:

    @pytest.fixture(autouse=True)
    def blank(self, backend_name, backend):
        if backend_name == "local":
            backend.resolve(LOCAL_STORAGE).set_data(empty_data(now_iso()))

    @pytest.fixture
    def record_payment(self, request, backend_name, backend):
        def record(payment_id, trainer_id, amount, status, created_at, metadata=None):
            if backend_name == "local":
                with backend.resolve(LOCAL_STORAGE).transaction() as data:
                    data["payment_intents"].append({
                        "id": payment_id, "trainer_id": trainer_id, "amount": amount, "currency": "brl",
                        "status": status, "client_secret": f"{payment_id}_secret",
                        "metadata": metadata or {}, "created_at": created_at.isoformat(),
                    })
            else:
                with session_scope(request.getfixturevalue("session_factory")) as db:
                    db.add(models.PaymentIntentRecord(
                        id=payment_id, trainer_id=trainer_id, amount=amount, currency="brl", status=status,
                        client_secret=f"{payment_id}_secret", metadata_json=metadata or {}, created_at=created_at,
                    ))
        return record

    def test_payments_newest_first_with_fees(self, trainers, trainer_id, record_payment):
        record_payment("pi_old", trainer_id, 10000, "succeeded", NOW - timedelta(days=40))
        record_payment("pi_new", trainer_id, 20000, "pending", NOW, {"platform_fee": "99"})
        record_payment("pi_orphan", None, 5000, "failed", NOW - timedelta(days=1))

        payments = trainers.list_payments()
        assert [p.id for p in payments] == ["pi_new", "pi_orphan", "pi_old"]
        assert payments[0].trainer_name == "Rita Lima"
        assert payments[0].platform_fee == 99
        assert payments[1].trainer_name is None
        assert payments[1].platform_fee == 0
        assert payments[2].platform_fee == 150  # free plan, 1.5%
        assert [p.id for p in trainers.list_payments("succeeded")] == ["pi_old"]

    def test_payment_stats(self, trainers, trainer_id, record_payment):
        record_payment("pi_1", trainer_id, 10000, "succeeded", NOW - timedelta(days=2))
        record_payment("pi_2", trainer_id, 10000, "succeeded", NOW - timedelta(days=1))
        record_payment("pi_3", trainer_id, 7000, "pending", NOW)
        record_payment("pi_4", trainer_id, 3000, "failed", NOW)

        stats = trainers.get_payment_stats()
        assert stats.total_payments == 4
        assert stats.total_amount == 30000
        assert stats.succeeded_amount == 20000
        assert (stats.successful_payments, stats.pending_payments, stats.failed_payments) == (2, 1, 1)
        assert stats.platform_fees == 300

    def test_settings_default_then_persist(self, trainers):
        defaults = {s.key: s.value for s in trainers.get_system_settings()}
        assert defaults == {
            "email_notifications": "enabled",
            "maintenance_mode": "false",
            "support_email": "support@fitcoach.com",
        }

        saved = trainers.update_system_setting("maintenance_mode", "true")
        assert saved.value == "true"
        assert saved.updated_at is not None
        trainers.update_system_setting("maintenance_mode", "false")
        trainers.update_system_setting("support_email", "help@studio.com")

        settings = {s.key: s.value for s in trainers.get_system_settings()}
        assert settings["maintenance_mode"] == "false"
        assert settings["support_email"] == "help@studio.com"
        assert len(settings) == 3

    def test_unknown_setting_is_rejected(self, trainers):
        with pytest.raises(NotFoundError):
            trainers.update_system_setting("platform_commission", "50")
        assert "platform_commission" not in {s.key for s in trainers.get_system_settings()}

    def test_platform_report(self, backend, trainers, trainer_id, record_payment):
        students = [trainers.add_student(trainer_id, _new_student(n)) for n in range(2)]
        trainers.update_student_status(students[1].id, "paused")
        session = trainers.create_session(trainer_id, NewTrainingSession(
            student_id=students[0].id, scheduled_at=NOW + timedelta(days=1)))
        trainers.update_session_status(session.id, "completed")
        trainers.create_session(trainer_id, NewTrainingSession(
            student_id=students[0].id, scheduled_at=NOW + timedelta(days=2)))
        backend.resolve(PAYMENT_SERVICE).update_trainer_plan(trainer_id, "pro")
        record_payment("pi_feb", trainer_id, 10000, "succeeded", datetime(2026, 2, 10, tzinfo=timezone.utc))
        record_payment("pi_mar", trainer_id, 4000, "succeeded", datetime(2026, 3, 2, tzinfo=timezone.utc))
        record_payment("pi_mar2", trainer_id, 6000, "succeeded", datetime(2026, 3, 20, tzinfo=timezone.utc))
        record_payment("pi_fail", trainer_id, 9000, "failed", datetime(2026, 3, 21, tzinfo=timezone.utc))

        report = trainers.get_platform_report()
        assert report.total_trainers == 1
        assert report.plan_distribution == {"pro": 1}
        assert report.total_students == 2
        assert report.student_status == {"active": 1, "paused": 1}
        assert report.total_sessions == 2
        assert report.session_status == {"completed": 1, "scheduled": 1}
        assert report.total_revenue == 20000
        assert [(m.month, m.revenue) for m in report.monthly_revenue] == [("2026-02", 10000), ("2026-03", 10000)]


def test_demo_roster(local_container):
    trainers = local_container.resolve(TRAINER_SERVICE)
    students = trainers.get_students(DEMO_TRAINER_ID)
    assert len(students) == 4
    assert sum(1 for s in students if s.status == "paused") == 1
    upcoming = trainers.get_upcoming_sessions(DEMO_TRAINER_ID)
    assert len(upcoming) == 3
