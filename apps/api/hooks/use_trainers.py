"""
Trainer-side hooks (students, sessions, dashboard) and the admin console views.
"""
from typing import List, Optional

from core.container import PAYMENT_SERVICE, TRAINER_SERVICE, container
from hooks.query_client import Mutation, QueryResult, get_query_client
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
    TrainerPlan,
    TrainerProfile,
    TrainerSummary,
    TrainingSession,
)
from hooks.use_payments import PLAN_KEYS
from services.trainer_service import ITrainerService, matches_trainer_filters

STUDENT_KEYS = (("students",), ("plan-limits",), ("dashboard",), ("admin-trainers",), ("admin-report",))
SESSION_KEYS = (("sessions",), ("upcoming-sessions",), ("dashboard",), ("admin-report",))
# Removing a trainer cascades to their students, sessions and generated plans
TRAINER_REMOVAL_KEYS = (*PLAN_KEYS, *STUDENT_KEYS, *SESSION_KEYS, ("profile",), ("student-profile",),
                        ("workout-plans",), ("diet-plans",), ("workout-suggestions",),
                        ("credit-transactions",), ("ai-requests",))


def _trainers() -> ITrainerService:
    return container.resolve(TRAINER_SERVICE)


def use_students(trainer_id: Optional[str]) -> QueryResult[List[Student]]:
    return get_query_client().use_query(
        ("students", trainer_id),
        lambda: _trainers().get_students(trainer_id),
        enabled=bool(trainer_id),
    )


def use_add_student(trainer_id: str) -> Mutation[Student]:
    def add(student: NewStudent) -> Student:
        return _trainers().add_student(trainer_id, student)

    return get_query_client().use_mutation(
        add,
        invalidates=STUDENT_KEYS,
        success_toast="Student added",
        error_toast="Could not add student",
    )


def use_update_student_status() -> Mutation[Student]:
    def update(student_id: str, status: StudentStatus) -> Student:
        return _trainers().update_student_status(student_id, status)

    return get_query_client().use_mutation(
        update,
        invalidates=STUDENT_KEYS,
        success_toast="Student status updated",
        error_toast="Could not update student status",
    )


def use_sessions(trainer_id: Optional[str]) -> QueryResult[List[TrainingSession]]:
    return get_query_client().use_query(
        ("sessions", trainer_id),
        lambda: _trainers().get_sessions(trainer_id),
        enabled=bool(trainer_id),
    )


def use_upcoming_sessions(trainer_id: Optional[str]) -> QueryResult[List[TrainingSession]]:
    return get_query_client().use_query(
        ("upcoming-sessions", trainer_id),
        lambda: _trainers().get_upcoming_sessions(trainer_id),
        enabled=bool(trainer_id),
    )


def use_create_session(trainer_id: str) -> Mutation[TrainingSession]:
    def create(session: NewTrainingSession) -> TrainingSession:
        return _trainers().create_session(trainer_id, session)

    return get_query_client().use_mutation(
        create,
        invalidates=SESSION_KEYS,
        success_toast="Session scheduled",
        error_toast="Could not schedule session",
    )


def use_update_session_status() -> Mutation[TrainingSession]:
    def update(session_id: str, status: SessionStatus) -> TrainingSession:
        return _trainers().update_session_status(session_id, status)

    return get_query_client().use_mutation(
        update,
        invalidates=SESSION_KEYS,
        success_toast="Session updated",
        error_toast="Could not update session",
    )


def use_dashboard_stats(trainer_id: Optional[str]) -> QueryResult[Optional[DashboardStats]]:
    return get_query_client().use_query(
        ("dashboard", trainer_id),
        lambda: _trainers().get_dashboard_stats(trainer_id),
        enabled=bool(trainer_id),
    )


# Admin


def use_trainers_management(search: str = "", plan: str = "all") -> QueryResult[List[TrainerSummary]]:
    """All trainers with active-student counts, filtered by name and plan."""
    result = get_query_client().use_query(("admin-trainers",), lambda: _trainers().list_trainers())
    if result.is_success:
        result = QueryResult(
            data=[t for t in result.data if matches_trainer_filters(t, search, plan)],
            status=result.status,
        )
    return result


def use_admin_update_trainer_plan() -> Mutation[TrainerProfile]:
    def update(trainer_id: str, plan: TrainerPlan) -> TrainerProfile:
        return container.resolve(PAYMENT_SERVICE).update_trainer_plan(trainer_id, plan)

    return get_query_client().use_mutation(
        update,
        invalidates=PLAN_KEYS,
        success_toast="Trainer plan updated",
        error_toast="Could not update trainer plan",
    )


def use_delete_trainer() -> Mutation[None]:
    return get_query_client().use_mutation(
        lambda trainer_id: _trainers().delete_trainer(trainer_id),
        invalidates=TRAINER_REMOVAL_KEYS,
        success_toast="Trainer removed",
        error_toast="Could not remove trainer",
    )


def use_admin_payments(status: Optional[str] = None) -> QueryResult[List[PaymentRecord]]:
    return get_query_client().use_query(
        ("admin-payments", status or "all"),
        lambda: _trainers().list_payments(status),
    )


def use_payment_stats() -> QueryResult[PaymentStats]:
    return get_query_client().use_query(("admin-payments", "stats"), lambda: _trainers().get_payment_stats())


def use_system_settings() -> QueryResult[List[SystemSetting]]:
    return get_query_client().use_query(("system-settings",), lambda: _trainers().get_system_settings())


def use_update_system_setting() -> Mutation[SystemSetting]:
    return get_query_client().use_mutation(
        lambda key, value: _trainers().update_system_setting(key, value),
        invalidates=(("system-settings",),),
        success_toast="Setting saved",
        error_toast="Could not save setting",
    )


def use_platform_report() -> QueryResult[PlatformReport]:
    """Platform totals, plan mix and revenue by month for the admin reports page."""
    return get_query_client().use_query(("admin-report",), lambda: _trainers().get_platform_report())
