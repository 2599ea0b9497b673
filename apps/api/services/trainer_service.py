"""
Trainer operations: student roster, training sessions, dashboard figures
and the admin view over trainer accounts.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import models
from core.database import SessionFactory, SessionLocal, session_scope
from core.exceptions import NotFoundError, UserAlreadyExistsError
from core.security import get_password_hash
from schemas import (
    DashboardStats,
    MonthlyRevenue,
    NewStudent,
    NewTrainingSession,
    PaymentRecord,
    PaymentStats,
    PlatformReport,
    SessionStatus,
    Student,
    StudentStatus,
    SystemSetting,
    TrainerSummary,
    TrainingSession,
)
from services.auth_service import ensure_student_capacity, generate_temporary_password
from services.plan_limits import get_plan_limits, platform_fee

logger = logging.getLogger(__name__)

UPCOMING_WINDOW = timedelta(days=7)

# Admin-editable settings: key -> (default value, description)
SYSTEM_SETTINGS = {
    "maintenance_mode": ("false", "Maintenance mode"),
    "email_notifications": ("enabled", "Email notifications"),
    "support_email": ("support@fitcoach.com", "Support contact shown to trainers and students"),
}


def as_utc(value) -> Optional[datetime]:
    """Parse ISO strings and treat naive datetimes as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def session_counts(sessions: Iterable[Tuple[datetime, str]], now: datetime) -> Tuple[int, int, int]:
    """(sessions today, upcoming scheduled sessions, total) from (scheduled_at, status) pairs."""
    today = now.date()
    sessions = [(as_utc(at), status) for at, status in sessions]
    sessions_today = sum(1 for at, _ in sessions if at.date() == today)
    upcoming = sum(1 for at, status in sessions if status == "scheduled" and at >= now)
    return sessions_today, upcoming, len(sessions)


def month_revenue(payments: Iterable[Tuple[int, str, datetime]], now: datetime) -> int:
    """Sum of succeeded payment amounts created in ``now``'s calendar month."""
    total = 0
    for amount, status, created_at in payments:
        created = as_utc(created_at)
        if status == "succeeded" and created and (created.year, created.month) == (now.year, now.month):
            total += int(amount)
    return total


def payment_fee(amount: int, metadata: Optional[dict], plan: Optional[str]) -> int:
    """Platform fee recorded on the payment, else the fee of the trainer's current plan."""
    recorded = (metadata or {}).get("platform_fee")
    if recorded is not None:
        return int(recorded)
    if plan is None:
        return 0
    return platform_fee(amount, get_plan_limits(plan).fee_percentage)


def payment_stats(payments: Iterable[PaymentRecord]) -> PaymentStats:
    payments = list(payments)
    succeeded = [p for p in payments if p.status == "succeeded"]
    return PaymentStats(
        total_payments=len(payments),
        total_amount=sum(p.amount for p in payments),
        succeeded_amount=sum(p.amount for p in succeeded),
        successful_payments=len(succeeded),
        pending_payments=sum(1 for p in payments if p.status == "pending"),
        failed_payments=sum(1 for p in payments if p.status == "failed"),
        platform_fees=sum(p.platform_fee for p in succeeded),
    )


def platform_report(trainer_plans: Iterable[str], student_statuses: Iterable[str],
                    session_statuses: Iterable[str], payments: Iterable[PaymentRecord]) -> PlatformReport:
    trainer_plans = list(trainer_plans)
    student_statuses = list(student_statuses)
    session_statuses = list(session_statuses)
    monthly: Dict[str, int] = {}
    for payment in payments:
        created = as_utc(payment.created_at)
        if payment.status == "succeeded" and created:
            month = created.strftime("%Y-%m")
            monthly[month] = monthly.get(month, 0) + payment.amount
    return PlatformReport(
        total_trainers=len(trainer_plans),
        total_students=len(student_statuses),
        total_sessions=len(session_statuses),
        total_revenue=sum(monthly.values()),
        plan_distribution=dict(Counter(trainer_plans)),
        student_status=dict(Counter(student_statuses)),
        session_status=dict(Counter(session_statuses)),
        monthly_revenue=[MonthlyRevenue(month=m, revenue=monthly[m]) for m in sorted(monthly)],
    )


def merge_settings(stored: Iterable[SystemSetting]) -> List[SystemSetting]:
    """Every known setting, stored values over defaults, ordered by key."""
    merged = {key: SystemSetting(key=key, value=value, description=description)
              for key, (value, description) in SYSTEM_SETTINGS.items()}
    for setting in stored:
        if setting.key in merged:
            merged[setting.key] = setting
    return [merged[key] for key in sorted(merged)]


def require_setting_key(key: str) -> str:
    if key not in SYSTEM_SETTINGS:
        raise NotFoundError("System setting", key)
    return SYSTEM_SETTINGS[key][1]


def matches_trainer_filters(trainer: TrainerSummary, search: str = "", plan: str = "all") -> bool:
    """Admin list filter: case-insensitive name or email search plus an optional plan."""
    haystack = f"{trainer.first_name} {trainer.last_name} {trainer.email or ''}".lower()
    return search.lower() in haystack and (plan == "all" or trainer.plan == plan)


class ITrainerService(ABC):
    @abstractmethod
    def get_students(self, trainer_id: str) -> List[Student]: ...

    @abstractmethod
    def add_student(self, trainer_id: str, data: NewStudent) -> Student:
        """Create a student account under the trainer, enforcing the plan's student limit."""

    @abstractmethod
    def update_student_status(self, student_id: str, status: StudentStatus) -> Student: ...

    @abstractmethod
    def get_sessions(self, trainer_id: str) -> List[TrainingSession]: ...

    @abstractmethod
    def get_upcoming_sessions(self, trainer_id: str) -> List[TrainingSession]: ...

    @abstractmethod
    def create_session(self, trainer_id: str, data: NewTrainingSession) -> TrainingSession: ...

    @abstractmethod
    def update_session_status(self, session_id: str, status: SessionStatus) -> TrainingSession: ...

    @abstractmethod
    def list_trainers(self) -> List[TrainerSummary]: ...

    @abstractmethod
    def delete_trainer(self, trainer_id: str) -> None: ...

    @abstractmethod
    def get_dashboard_stats(self, trainer_id: str) -> Optional[DashboardStats]: ...

    @abstractmethod
    def list_payments(self, status: Optional[str] = None) -> List[PaymentRecord]:
        """Every student payment, newest first, optionally filtered by status."""

    @abstractmethod
    def get_payment_stats(self) -> PaymentStats: ...

    @abstractmethod
    def get_system_settings(self) -> List[SystemSetting]: ...

    @abstractmethod
    def update_system_setting(self, key: str, value: str) -> SystemSetting: ...

    @abstractmethod
    def get_platform_report(self) -> PlatformReport: ...


def _student_from_rows(student: models.StudentProfile) -> Student:
    profile = student.profile
    return Student(
        id=student.id,
        trainer_id=student.trainer_id,
        first_name=profile.first_name if profile else "",
        last_name=profile.last_name if profile else "",
        email=profile.user.email if profile and profile.user else None,
        phone=profile.phone if profile else None,
        gender=student.gender,
        goals=student.goals,
        fitness_level=student.fitness_level,
        status=student.status,
        start_date=student.start_date,
        created_at=student.created_at,
    )


def _session_from_row(row: models.TrainingSession) -> TrainingSession:
    session = TrainingSession.model_validate(row)
    profile = row.student.profile if row.student else None
    if profile:
        session.student_name = f"{profile.first_name} {profile.last_name}"
    return session


class SqlTrainerService(ITrainerService):
    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def get_students(self, trainer_id: str) -> List[Student]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.StudentProfile)
                .filter(models.StudentProfile.trainer_id == trainer_id)
                .order_by(models.StudentProfile.created_at.desc())
                .all()
            )
            return [_student_from_rows(row) for row in rows]

    def add_student(self, trainer_id: str, data: NewStudent) -> Student:
        email = data.email.lower()
        now = datetime.now(timezone.utc)
        with session_scope(self._session_factory) as db:
            ensure_student_capacity(db, trainer_id)
            if db.query(models.User.id).filter(models.User.email == email).first():
                raise UserAlreadyExistsError(email)

            user = models.User(
                email=email,
                password_hash=get_password_hash(generate_temporary_password()),
                created_at=now,
            )
            db.add(user)
            db.flush()
            db.add(models.Profile(
                id=user.id,
                first_name=data.first_name,
                last_name=data.last_name,
                phone=data.phone,
                role="student",
            ))
            db.flush()
            student = models.StudentProfile(
                id=user.id,
                trainer_id=trainer_id,
                gender=data.gender,
                goals=data.goals,
                fitness_level=data.fitness_level,
                start_date=now,
                status="active",
                created_at=now,
            )
            db.add(student)
            db.flush()
            db.refresh(student)
            result = _student_from_rows(student)
        logger.info(f"Student {result.id} added to trainer {trainer_id}")
        return result

    def update_student_status(self, student_id: str, status: StudentStatus) -> Student:
        with session_scope(self._session_factory) as db:
            row = db.get(models.StudentProfile, student_id)
            if row is None:
                raise NotFoundError("Student", student_id)
            row.status = status
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            return _student_from_rows(row)

    def get_sessions(self, trainer_id: str) -> List[TrainingSession]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.TrainingSession)
                .filter(models.TrainingSession.trainer_id == trainer_id)
                .order_by(models.TrainingSession.scheduled_at)
                .all()
            )
            return [_session_from_row(row) for row in rows]

    def get_upcoming_sessions(self, trainer_id: str) -> List[TrainingSession]:
        now = datetime.now(timezone.utc)
        return [
            s for s in self.get_sessions(trainer_id)
            if s.status == "scheduled" and now <= as_utc(s.scheduled_at) <= now + UPCOMING_WINDOW
        ]

    def create_session(self, trainer_id: str, data: NewTrainingSession) -> TrainingSession:
        with session_scope(self._session_factory) as db:
            if db.get(models.StudentProfile, data.student_id) is None:
                raise NotFoundError("Student", data.student_id)
            row = models.TrainingSession(
                trainer_id=trainer_id,
                student_id=data.student_id,
                scheduled_at=data.scheduled_at,
                duration_minutes=data.duration_minutes,
                notes=data.notes,
                status="scheduled",
            )
            db.add(row)
            db.flush()
            db.refresh(row)
            return _session_from_row(row)

    def update_session_status(self, session_id: str, status: SessionStatus) -> TrainingSession:
        with session_scope(self._session_factory) as db:
            row = db.get(models.TrainingSession, session_id)
            if row is None:
                raise NotFoundError("Session", session_id)
            row.status = status
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            return _session_from_row(row)

    def list_trainers(self) -> List[TrainerSummary]:
        with session_scope(self._session_factory) as db:
            trainers = db.query(models.TrainerProfile).order_by(models.TrainerProfile.created_at).all()
            summaries = []
            for trainer in trainers:
                active = (
                    db.query(models.StudentProfile)
                    .filter(models.StudentProfile.trainer_id == trainer.id)
                    .filter(models.StudentProfile.status == "active")
                    .count()
                )
                profile = trainer.profile
                summaries.append(TrainerSummary(
                    id=trainer.id,
                    first_name=profile.first_name if profile else "",
                    last_name=profile.last_name if profile else "",
                    email=profile.user.email if profile and profile.user else None,
                    plan=trainer.plan,
                    max_students=trainer.max_students,
                    ai_credits=trainer.ai_credits,
                    active_students=active,
                    created_at=trainer.created_at,
                ))
            return summaries

    def delete_trainer(self, trainer_id: str) -> None:
        with session_scope(self._session_factory) as db:
            user = db.get(models.User, trainer_id)
            if user is None:
                raise NotFoundError("Trainer", trainer_id)
            # Profile rows and trainer-owned data go with the user via ON DELETE CASCADE
            db.delete(user)
        logger.info(f"Trainer deleted: {trainer_id}")

    def get_dashboard_stats(self, trainer_id: str) -> Optional[DashboardStats]:
        now = datetime.now(timezone.utc)
        with session_scope(self._session_factory) as db:
            trainer = db.get(models.TrainerProfile, trainer_id)
            if trainer is None:
                return None
            statuses = [
                s for (s,) in db.query(models.StudentProfile.status)
                .filter(models.StudentProfile.trainer_id == trainer_id)
                .all()
            ]
            sessions = (
                db.query(models.TrainingSession.scheduled_at, models.TrainingSession.status)
                .filter(models.TrainingSession.trainer_id == trainer_id)
                .all()
            )
            payments = (
                db.query(
                    models.PaymentIntentRecord.amount,
                    models.PaymentIntentRecord.status,
                    models.PaymentIntentRecord.created_at,
                )
                .filter(models.PaymentIntentRecord.trainer_id == trainer_id)
                .all()
            )
            diet_plans = db.query(models.DietPlan).filter(models.DietPlan.trainer_id == trainer_id).count()
            workout_plans = db.query(models.WorkoutPlan).filter(models.WorkoutPlan.trainer_id == trainer_id).count()
            today, upcoming, total = session_counts(sessions, now)
            return DashboardStats(
                total_students=len(statuses),
                active_students=statuses.count("active"),
                max_students=trainer.max_students,
                sessions_today=today,
                upcoming_sessions=upcoming,
                total_sessions=total,
                monthly_revenue=month_revenue(payments, now),
                diet_plans=diet_plans,
                workout_plans=workout_plans,
                ai_credits=trainer.ai_credits,
                plan=trainer.plan,
            )

    # Admin reporting

    def _payment_records(self, db, status: Optional[str] = None) -> List[PaymentRecord]:
        query = db.query(models.PaymentIntentRecord)
        if status:
            query = query.filter(models.PaymentIntentRecord.status == status)
        rows = query.order_by(models.PaymentIntentRecord.created_at.desc()).all()
        trainers = {t.id: t for t in db.query(models.TrainerProfile).all()}
        records = []
        for row in rows:
            trainer = trainers.get(row.trainer_id)
            profile = trainer.profile if trainer else None
            records.append(PaymentRecord(
                id=row.id,
                trainer_id=row.trainer_id,
                trainer_name=f"{profile.first_name} {profile.last_name}" if profile else None,
                amount=row.amount,
                currency=row.currency,
                status=row.status,
                platform_fee=payment_fee(row.amount, row.metadata_json, trainer.plan if trainer else None),
                created_at=row.created_at,
            ))
        return records

    def list_payments(self, status: Optional[str] = None) -> List[PaymentRecord]:
        with session_scope(self._session_factory) as db:
            return self._payment_records(db, status)

    def get_payment_stats(self) -> PaymentStats:
        with session_scope(self._session_factory) as db:
            return payment_stats(self._payment_records(db))

    def get_system_settings(self) -> List[SystemSetting]:
        with session_scope(self._session_factory) as db:
            rows = db.query(models.SystemSetting).all()
            return merge_settings(SystemSetting.model_validate(row) for row in rows)

    def update_system_setting(self, key: str, value: str) -> SystemSetting:
        description = require_setting_key(key)
        with session_scope(self._session_factory) as db:
            row = db.query(models.SystemSetting).filter(models.SystemSetting.key == key).first()
            if row is None:
                row = models.SystemSetting(key=key, description=description)
                db.add(row)
            row.value = value
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            result = SystemSetting.model_validate(row)
        logger.info(f"System setting updated: {key}")
        return result

    def get_platform_report(self) -> PlatformReport:
        with session_scope(self._session_factory) as db:
            return platform_report(
                [plan for (plan,) in db.query(models.TrainerProfile.plan).all()],
                [status for (status,) in db.query(models.StudentProfile.status).all()],
                [status for (status,) in db.query(models.TrainingSession.status).all()],
                self._payment_records(db),
            )
