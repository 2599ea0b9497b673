"""
Trainer service over the local JSON blob.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from core.exceptions import NotFoundError, UserAlreadyExistsError
from core.security import get_password_hash
from schemas import (
    DashboardStats,
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
from services.auth_service import generate_temporary_password
from services.local_auth_service import ensure_student_capacity
from services.local_store import LocalStorageService, new_id, now_iso
from services.trainer_service import (
    UPCOMING_WINDOW,
    ITrainerService,
    as_utc,
    merge_settings,
    month_revenue,
    payment_fee,
    payment_stats,
    platform_report,
    require_setting_key,
    session_counts,
)

logger = logging.getLogger(__name__)

# Trainer-owned collections removed together with the trainer
OWNED_COLLECTIONS = (
    "sessions",
    "exercises",
    "workout_plans",
    "workout_sessions",
    "diet_plans",
    "workout_suggestions",
    "ai_requests",
    "credit_transactions",
    "subscriptions",
)


def _student(data: dict, student: dict) -> Student:
    profile = LocalStorageService.find(data, "profiles", student["id"]) or {}
    user = LocalStorageService.find(data, "users", student["id"]) or {}
    return Student.model_validate({
        **student,
        "first_name": profile.get("first_name", ""),
        "last_name": profile.get("last_name", ""),
        "phone": profile.get("phone"),
        "email": user.get("email"),
    })


def _session(data: dict, record: dict) -> TrainingSession:
    profile = LocalStorageService.find(data, "profiles", record["student_id"])
    name = f"{profile['first_name']} {profile['last_name']}" if profile else None
    return TrainingSession.model_validate({**record, "student_name": name})


class LocalStorageTrainerService(ITrainerService):
    def __init__(self, store: LocalStorageService):
        self.store = store

    def get_students(self, trainer_id: str) -> List[Student]:
        data = self.store.snapshot()
        students = self.store.where(data, "student_profiles", trainer_id=trainer_id)
        students.sort(key=lambda s: s.get("created_at") or "", reverse=True)
        return [_student(data, s) for s in students]

    def add_student(self, trainer_id: str, new: NewStudent) -> Student:
        email = new.email.lower()
        password_hash = get_password_hash(generate_temporary_password())
        now = now_iso()
        with self.store.transaction() as data:
            ensure_student_capacity(self.store, data, trainer_id)
            if any(u["email"].lower() == email for u in data["users"]):
                raise UserAlreadyExistsError(email)

            user_id = new_id()
            data["users"].append({
                "id": user_id,
                "email": email,
                "password_hash": password_hash,
                "created_at": now,
                "email_confirmed_at": None,
                "last_sign_in_at": None,
            })
            data["profiles"].append({
                "id": user_id,
                "first_name": new.first_name,
                "last_name": new.last_name,
                "phone": new.phone,
                "role": "student",
                "created_at": now,
                "updated_at": now,
            })
            student = {
                "id": user_id,
                "trainer_id": trainer_id,
                "gender": new.gender,
                "goals": new.goals,
                "fitness_level": new.fitness_level,
                "menstrual_cycle_tracking": False,
                "start_date": now,
                "status": "active",
                "created_at": now,
                "updated_at": now,
            }
            data["student_profiles"].append(student)
            result = _student(data, student)
        logger.info(f"Student {result.id} added to trainer {trainer_id}")
        return result

    def update_student_status(self, student_id: str, status: StudentStatus) -> Student:
        with self.store.transaction() as data:
            student = self.store.require(data, "student_profiles", student_id, "Student")
            student["status"] = status
            student["updated_at"] = now_iso()
            return _student(data, student)

    def get_sessions(self, trainer_id: str) -> List[TrainingSession]:
        data = self.store.snapshot()
        sessions = self.store.where(data, "sessions", trainer_id=trainer_id)
        sessions.sort(key=lambda s: as_utc(s["scheduled_at"]))
        return [_session(data, s) for s in sessions]

    def get_upcoming_sessions(self, trainer_id: str) -> List[TrainingSession]:
        now = datetime.now(timezone.utc)
        return [
            s for s in self.get_sessions(trainer_id)
            if s.status == "scheduled" and now <= as_utc(s.scheduled_at) <= now + UPCOMING_WINDOW
        ]

    def create_session(self, trainer_id: str, new: NewTrainingSession) -> TrainingSession:
        now = now_iso()
        record = {
            "id": new_id(),
            "trainer_id": trainer_id,
            "student_id": new.student_id,
            "scheduled_at": as_utc(new.scheduled_at).isoformat(),
            "duration_minutes": new.duration_minutes,
            "status": "scheduled",
            "notes": new.notes,
            "created_at": now,
            "updated_at": now,
        }
        with self.store.transaction() as data:
            self.store.require(data, "student_profiles", new.student_id, "Student")
            data["sessions"].append(record)
            return _session(data, record)

    def update_session_status(self, session_id: str, status: SessionStatus) -> TrainingSession:
        with self.store.transaction() as data:
            record = self.store.require(data, "sessions", session_id, "Session")
            record["status"] = status
            record["updated_at"] = now_iso()
            return _session(data, record)

    def list_trainers(self) -> List[TrainerSummary]:
        data = self.store.snapshot()
        summaries = []
        for trainer in data["trainer_profiles"]:
            profile = self.store.find(data, "profiles", trainer["id"]) or {}
            user = self.store.find(data, "users", trainer["id"]) or {}
            active = self.store.where(data, "student_profiles", trainer_id=trainer["id"], status="active")
            summaries.append(TrainerSummary(
                id=trainer["id"],
                first_name=profile.get("first_name", ""),
                last_name=profile.get("last_name", ""),
                email=user.get("email"),
                plan=trainer["plan"],
                max_students=trainer["max_students"],
                ai_credits=trainer["ai_credits"],
                active_students=len(active),
                created_at=trainer.get("created_at"),
            ))
        return summaries

    def delete_trainer(self, trainer_id: str) -> None:
        with self.store.transaction() as data:
            if self.store.find(data, "trainer_profiles", trainer_id) is None:
                raise NotFoundError("Trainer", trainer_id)
            for name in ("users", "profiles", "trainer_profiles"):
                data[name] = [r for r in data[name] if r["id"] != trainer_id]
            plan_ids = {p["id"] for p in data["workout_plans"] if p["trainer_id"] == trainer_id}
            data["workout_plan_exercises"] = [
                e for e in data["workout_plan_exercises"] if e["workout_plan_id"] not in plan_ids
            ]
            for name in OWNED_COLLECTIONS:
                data[name] = [r for r in data[name] if r.get("trainer_id") != trainer_id]
            for name in ("student_profiles", "payment_intents"):
                for record in data[name]:
                    if record.get("trainer_id") == trainer_id:
                        record["trainer_id"] = None
        logger.info(f"Trainer deleted: {trainer_id}")

    def get_dashboard_stats(self, trainer_id: str) -> Optional[DashboardStats]:
        now = datetime.now(timezone.utc)
        data = self.store.snapshot()
        trainer = self.store.find(data, "trainer_profiles", trainer_id)
        if trainer is None:
            return None
        students = self.store.where(data, "student_profiles", trainer_id=trainer_id)
        sessions = self.store.where(data, "sessions", trainer_id=trainer_id)
        payments = self.store.where(data, "payment_intents", trainer_id=trainer_id)
        today, upcoming, total = session_counts(((s["scheduled_at"], s["status"]) for s in sessions), now)
        return DashboardStats(
            total_students=len(students),
            active_students=sum(1 for s in students if s["status"] == "active"),
            max_students=trainer["max_students"],
            sessions_today=today,
            upcoming_sessions=upcoming,
            total_sessions=total,
            monthly_revenue=month_revenue(
                ((p["amount"], p["status"], p.get("created_at")) for p in payments), now
            ),
            diet_plans=len(self.store.where(data, "diet_plans", trainer_id=trainer_id)),
            workout_plans=len(self.store.where(data, "workout_plans", trainer_id=trainer_id)),
            ai_credits=trainer["ai_credits"],
            plan=trainer["plan"],
        )

    # Admin reporting

    def _payment_records(self, data: dict, status: Optional[str] = None) -> List[PaymentRecord]:
        records = []
        for payment in data["payment_intents"]:
            if status and payment["status"] != status:
                continue
            trainer = self.store.find(data, "trainer_profiles", payment.get("trainer_id"))
            profile = self.store.find(data, "profiles", payment.get("trainer_id"))
            records.append(PaymentRecord(
                id=payment["id"],
                trainer_id=payment.get("trainer_id"),
                trainer_name=f"{profile['first_name']} {profile['last_name']}" if profile else None,
                amount=payment["amount"],
                currency=payment.get("currency", "brl"),
                status=payment["status"],
                platform_fee=payment_fee(payment["amount"], payment.get("metadata"),
                                         trainer["plan"] if trainer else None),
                created_at=payment.get("created_at"),
            ))
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        records.sort(key=lambda r: as_utc(r.created_at) or epoch, reverse=True)
        return records

    def list_payments(self, status: Optional[str] = None) -> List[PaymentRecord]:
        return self._payment_records(self.store.snapshot(), status)

    def get_payment_stats(self) -> PaymentStats:
        return payment_stats(self.list_payments())

    def get_system_settings(self) -> List[SystemSetting]:
        data = self.store.snapshot()
        return merge_settings(SystemSetting.model_validate(s) for s in data["system_settings"])

    def update_system_setting(self, key: str, value: str) -> SystemSetting:
        description = require_setting_key(key)
        with self.store.transaction() as data:
            record = next((s for s in data["system_settings"] if s["key"] == key), None)
            if record is None:
                record = {"id": new_id(), "key": key, "description": description, "created_at": now_iso()}
                data["system_settings"].append(record)
            record["value"] = value
            record["updated_at"] = now_iso()
            result = SystemSetting.model_validate(record)
        logger.info(f"System setting updated: {key}")
        return result

    def get_platform_report(self) -> PlatformReport:
        data = self.store.snapshot()
        return platform_report(
            [t["plan"] for t in data["trainer_profiles"]],
            [s["status"] for s in data["student_profiles"]],
            [s["status"] for s in data["sessions"]],
            self._payment_records(data),
        )
