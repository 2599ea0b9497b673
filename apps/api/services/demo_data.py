"""
Demo dataset for local-storage mode.

Three demo accounts (admin, trainer, student) plus a small roster of
students, sessions, exercises, plans and settings so every dashboard has
something to show on first start.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from core.security import get_password_hash
from services.plan_limits import PLAN_LIMITS

DEMO_ADMIN_ID = "admin_123"
DEMO_TRAINER_ID = "trainer_123"
DEMO_STUDENT_ID = "student_123"

DEMO_CREDENTIALS = {
    "admin": {"email": "admin@fitcoach.com", "password": "admin123"},
    "trainer": {"email": "trainer@fitcoach.com", "password": "trainer123"},
    "student": {"email": "student@fitcoach.com", "password": "student123"},
}

DATA_VERSION = "2.0.0"

# Every entity array the blob carries, in export order
ENTITY_COLLECTIONS = (
    "users",
    "profiles",
    "trainer_profiles",
    "student_profiles",
    "sessions",
    "exercises",
    "workout_plans",
    "workout_plan_exercises",
    "workout_sessions",
    "diet_plans",
    "workout_suggestions",
    "ai_requests",
    "credit_transactions",
    "subscriptions",
    "payment_intents",
    "lgpd_consents",
    "privacy_settings",
    "data_export_requests",
    "data_deletion_requests",
    "security_logs",
    "security_alerts",
    "audit_logs",
    "system_settings",
)


def empty_data(now: str) -> Dict[str, Any]:
    data: Dict[str, Any] = {name: [] for name in ENTITY_COLLECTIONS}
    data["lastUpdated"] = now
    data["dataVersion"] = DATA_VERSION
    return data


def _iso(dt: datetime) -> str:
    return dt.isoformat()


def _student(student_id: str, first: str, last: str, email: str, gender: str, days_ago: int,
             now: datetime, status: str = "active", goals: str = None) -> Dict[str, List[dict]]:
    joined = _iso(now - timedelta(days=days_ago))
    return {
        "users": [{
            "id": student_id,
            "email": email,
            "password_hash": None,
            "created_at": joined,
            "email_confirmed_at": joined,
            "last_sign_in_at": None,
        }],
        "profiles": [{
            "id": student_id,
            "first_name": first,
            "last_name": last,
            "phone": None,
            "role": "student",
            "created_at": joined,
            "updated_at": _iso(now),
        }],
        "student_profiles": [{
            "id": student_id,
            "trainer_id": DEMO_TRAINER_ID,
            "gender": gender,
            "goals": goals,
            "fitness_level": "beginner",
            "menstrual_cycle_tracking": gender == "female",
            "start_date": joined,
            "status": status,
            "created_at": joined,
            "updated_at": _iso(now),
        }],
    }


def create_mock_data(now: datetime = None) -> Dict[str, Any]:
    """Build the full demo blob. Passwords are hashed on every call."""
    now = now or datetime.now(timezone.utc)
    now_s = _iso(now)
    last_month = _iso(now - timedelta(days=30))
    data = empty_data(now_s)

    for role, user_id, first, last, phone in (
        ("admin", DEMO_ADMIN_ID, "Admin", "FitCoach", "+55 11 99999-9999"),
        ("trainer", DEMO_TRAINER_ID, "Personal", "Trainer", "+55 11 98888-8888"),
        ("student", DEMO_STUDENT_ID, "Ana", "Silva", "+55 11 97777-7777"),
    ):
        creds = DEMO_CREDENTIALS[role]
        data["users"].append({
            "id": user_id,
            "email": creds["email"],
            "password_hash": get_password_hash(creds["password"]),
            "created_at": last_month,
            "email_confirmed_at": last_month,
            "last_sign_in_at": now_s,
        })
        data["profiles"].append({
            "id": user_id,
            "first_name": first,
            "last_name": last,
            "phone": phone,
            "role": role,
            "created_at": last_month,
            "updated_at": now_s,
        })

    pro = PLAN_LIMITS["pro"]
    data["trainer_profiles"].append({
        "id": DEMO_TRAINER_ID,
        "plan": "pro",
        "max_students": pro.max_students,
        "ai_credits": 25,
        "active_until": _iso(now + timedelta(days=30)),
        "avatar_url": None,
        "bio": "Personal trainer focused on weight loss and hypertrophy",
        "whatsapp_number": "+5511988888888",
        "created_at": last_month,
        "updated_at": now_s,
    })
    data["student_profiles"].append({
        "id": DEMO_STUDENT_ID,
        "trainer_id": DEMO_TRAINER_ID,
        "gender": "female",
        "goals": "Lose 5kg and improve conditioning",
        "fitness_level": "intermediate",
        "menstrual_cycle_tracking": True,
        "start_date": last_month,
        "status": "active",
        "created_at": last_month,
        "updated_at": now_s,
    })

    roster = (
        ("student_1", "Carlos", "Santos", "carlos@example.com", "male", 5, "active", "Gain muscle mass"),
        ("student_2", "Maria", "Oliveira", "maria@example.com", "female", 10, "active", "Marathon prep"),
        ("student_3", "João", "Pereira", "joao@example.com", "male", 20, "paused", None),
    )
    for student_id, first, last, email, gender, days_ago, status, goals in roster:
        for name, rows in _student(student_id, first, last, email, gender, days_ago, now, status, goals).items():
            data[name].extend(rows)

    for idx, (student_id, offset_h, status) in enumerate((
        (DEMO_STUDENT_ID, -24, "completed"),
        ("student_1", 2, "scheduled"),
        ("student_2", 26, "scheduled"),
        (DEMO_STUDENT_ID, 24 * 7, "scheduled"),
    ), start=1):
        data["sessions"].append({
            "id": f"session_{idx}",
            "trainer_id": DEMO_TRAINER_ID,
            "student_id": student_id,
            "scheduled_at": _iso(now + timedelta(hours=offset_h)),
            "duration_minutes": 60,
            "status": status,
            "notes": None,
            "created_at": last_month,
            "updated_at": now_s,
        })

    library = (
        ("exercise_1", "Push-up", ["chest", "arms"], "Bodyweight", 1),
        ("exercise_2", "Dumbbell Row", ["back"], "Dumbbells", 2),
        ("exercise_3", "Squat", ["legs"], "Bodyweight", 1),
        ("exercise_4", "Biceps Curl", ["arms"], "Dumbbells", 1),
        ("exercise_5", "Plank", ["core"], "Bodyweight", 1),
        ("exercise_6", "Deadlift", ["legs", "back"], "Barbell", 4),
    )
    for ex_id, name, groups, equipment, difficulty in library:
        data["exercises"].append({
            "id": ex_id,
            "name": name,
            "description": f"{name} for {', '.join(groups)}",
            "muscle_groups": groups,
            "equipment": equipment,
            "difficulty_level": difficulty,
            "instructions": "Keep a controlled tempo and a neutral spine.",
            "video_url": None,
            "is_public": True,
            "trainer_id": None,
            "created_at": last_month,
        })

    for plan_id, name, student_id, is_template, exercise_ids in (
        ("workout_plan_1", "Full Body Beginner", None, True, ("exercise_3", "exercise_1", "exercise_5")),
        ("workout_plan_2", "Upper Body - Ana", DEMO_STUDENT_ID, False, ("exercise_1", "exercise_2", "exercise_4")),
    ):
        data["workout_plans"].append({
            "id": plan_id,
            "trainer_id": DEMO_TRAINER_ID,
            "student_id": student_id,
            "name": name,
            "description": f"{name} routine",
            "difficulty_level": 1,
            "estimated_duration_minutes": 45,
            "muscle_groups": [],
            "is_template": is_template,
            "created_at": last_month,
            "updated_at": now_s,
        })
        for order, ex_id in enumerate(exercise_ids, start=1):
            data["workout_plan_exercises"].append({
                "id": f"{plan_id}_ex_{order}",
                "workout_plan_id": plan_id,
                "exercise_id": ex_id,
                "order_in_workout": order,
                "target_sets": 3,
                "target_reps": "10-12",
                "target_weight_kg": None,
                "rest_seconds": 60,
                "notes": None,
            })

    data["diet_plans"].append({
        "id": "diet_plan_1",
        "trainer_id": DEMO_TRAINER_ID,
        "student_id": DEMO_STUDENT_ID,
        "title": "Cutting 1800 kcal",
        "description": "Moderate deficit with high protein",
        "target_calories": 1800,
        "target_protein": 113,
        "target_carbs": 203,
        "target_fat": 60,
        "meals": [],
        "duration_days": 30,
        "is_ai_generated": False,
        "created_at": last_month,
    })

    for idx, (amount, status) in enumerate(((15000, "succeeded"), (15000, "succeeded"), (15000, "pending")), start=1):
        data["payment_intents"].append({
            "id": f"payment_{idx}",
            "trainer_id": DEMO_TRAINER_ID,
            "amount": amount,
            "currency": "brl",
            "status": status,
            "client_secret": f"payment_{idx}_secret_demo",
            "metadata": {"student_id": DEMO_STUDENT_ID},
            "created_at": _iso(now - timedelta(days=idx * 7)),
        })

    data["system_settings"].append({
        "id": "setting_1",
        "key": "support_email",
        "value": "suporte@fitcoach.com.br",
        "description": "Support contact shown to trainers and students",
        "created_at": last_month,
        "updated_at": now_s,
    })

    return data
