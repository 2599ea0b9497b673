"""
Auth and profile services over the local JSON blob.
"""
from __future__ import annotations

import logging
from typing import Optional

from core.exceptions import (
    InvalidCredentialsError,
    NotFoundError,
    PlanLimitExceededError,
    UserAlreadyExistsError,
)
from core.security import decode_access_token, get_password_hash, verify_password
from schemas import (
    AuthSession,
    Profile,
    ProfileUpdate,
    SignUpData,
    StudentProfile,
    StudentProfileUpdate,
    TrainerProfile,
    User,
)
from services.auth_service import IAuthService, IProfileService, check_password_policy, issue_session
from services.demo_data import DEMO_ADMIN_ID, DEMO_STUDENT_ID, DEMO_TRAINER_ID
from services.local_store import LocalStorageService, new_id, now_iso
from services.plan_limits import can_add_student, get_plan_limits

logger = logging.getLogger(__name__)

QUICK_LOGIN_IDS = {
    "admin": DEMO_ADMIN_ID,
    "trainer": DEMO_TRAINER_ID,
    "student": DEMO_STUDENT_ID,
}


def _public_user(record: dict) -> User:
    return User.model_validate({k: v for k, v in record.items() if k != "password_hash"})


def ensure_student_capacity(store: LocalStorageService, data: dict, trainer_id: str) -> dict:
    """Raise unless ``trainer_id`` names a trainer with room for one more student."""
    trainer = store.require(data, "trainer_profiles", trainer_id, "Trainer profile")
    count = len(store.where(data, "student_profiles", trainer_id=trainer_id))
    if not can_add_student(count, trainer["max_students"]):
        raise PlanLimitExceededError(trainer["plan"], trainer["max_students"])
    return trainer


def _profile_with_email(data: dict, profile: dict) -> Profile:
    user = LocalStorageService.find(data, "users", profile["id"])
    return Profile.model_validate({**profile, "email": user["email"] if user else None})


class LocalStorageAuthService(IAuthService):
    def __init__(self, store: LocalStorageService):
        self.store = store

    def _start_session(self, user_record: dict, role: str) -> AuthSession:
        session = issue_session(_public_user(user_record), role)
        self.store.set_auth_session(session.model_dump(mode="json"))
        return session

    def sign_in(self, email: str, password: str) -> AuthSession:
        email = email.lower()
        with self.store.transaction() as data:
            user = next((u for u in data["users"] if u["email"].lower() == email), None)
            if user is None or not verify_password(password, user.get("password_hash")):
                logger.info(f"Failed sign-in for {email}")
                raise InvalidCredentialsError()
            user["last_sign_in_at"] = now_iso()
            profile = self.store.find(data, "profiles", user["id"])
            role = profile["role"] if profile else "student"
        logger.info(f"User signed in: {user['id']}")
        return self._start_session(user, role)

    def sign_up(self, email: str, password: str, user_data: SignUpData) -> AuthSession:
        check_password_policy(password)
        email = email.lower()
        password_hash = get_password_hash(password)
        now = now_iso()

        # User, profile and role profile land in one write
        with self.store.transaction() as data:
            if any(u["email"].lower() == email for u in data["users"]):
                raise UserAlreadyExistsError(email)
            if user_data.role == "student" and user_data.trainer_id:
                ensure_student_capacity(self.store, data, user_data.trainer_id)

            user_id = new_id()
            user = {
                "id": user_id,
                "email": email,
                "password_hash": password_hash,
                "created_at": now,
                "email_confirmed_at": now,
                "last_sign_in_at": now,
            }
            data["users"].append(user)
            data["profiles"].append({
                "id": user_id,
                "first_name": user_data.first_name,
                "last_name": user_data.last_name,
                "phone": user_data.phone,
                "role": user_data.role,
                "created_at": now,
                "updated_at": now,
            })
            if user_data.role == "trainer":
                limits = get_plan_limits("free")
                data["trainer_profiles"].append({
                    "id": user_id,
                    "plan": "free",
                    "max_students": limits.max_students,
                    "ai_credits": limits.ai_credits,
                    "active_until": None,
                    "avatar_url": None,
                    "bio": None,
                    "whatsapp_number": None,
                    "created_at": now,
                    "updated_at": now,
                })
            elif user_data.role == "student":
                data["student_profiles"].append({
                    "id": user_id,
                    "trainer_id": user_data.trainer_id,
                    "gender": None,
                    "goals": None,
                    "fitness_level": None,
                    "menstrual_cycle_tracking": False,
                    "start_date": now,
                    "status": "active",
                    "created_at": now,
                    "updated_at": now,
                })

        logger.info(f"User signed up: {user_id} role={user_data.role}")
        return self._start_session(user, user_data.role)

    def sign_out(self, user_id: Optional[str] = None) -> None:
        self.store.clear_auth_session()
        logger.info(f"User signed out: {user_id}")

    def get_current_session(self, access_token: Optional[str] = None) -> Optional[AuthSession]:
        stored = self.store.get_auth_session()
        if stored is None:
            return None
        if access_token is not None and stored.get("access_token") != access_token:
            return None
        if decode_access_token(stored.get("access_token", "")) is None:
            self.store.clear_auth_session()
            return None
        return AuthSession.model_validate(stored)

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.store.snapshot()
        record = self.store.find(data, "users", user_id)
        return _public_user(record) if record else None

    def quick_login(self, role: str) -> AuthSession:
        """Sign in as one of the demo accounts without a password."""
        user_id = QUICK_LOGIN_IDS.get(role)
        if user_id is None:
            raise ValueError(f"Unknown role: {role}")
        data = self.store.snapshot()
        user = self.store.find(data, "users", user_id)
        if user is None:
            raise NotFoundError("Demo user", user_id)
        return self._start_session(user, role)


class LocalStorageProfileService(IProfileService):
    def __init__(self, store: LocalStorageService):
        self.store = store

    def get_profile(self, user_id: str) -> Optional[Profile]:
        data = self.store.snapshot()
        profile = self.store.find(data, "profiles", user_id)
        return _profile_with_email(data, profile) if profile else None

    def get_trainer_profile(self, trainer_id: str) -> Optional[TrainerProfile]:
        data = self.store.snapshot()
        record = self.store.find(data, "trainer_profiles", trainer_id)
        return TrainerProfile.model_validate(record) if record else None

    def get_student_profile(self, student_id: str) -> Optional[StudentProfile]:
        data = self.store.snapshot()
        record = self.store.find(data, "student_profiles", student_id)
        return StudentProfile.model_validate(record) if record else None

    def update_profile(self, user_id: str, updates: ProfileUpdate) -> Profile:
        with self.store.transaction() as data:
            profile = self.store.require(data, "profiles", user_id, "Profile")
            profile.update(updates.model_dump(exclude_unset=True))
            profile["updated_at"] = now_iso()
            return _profile_with_email(data, profile)

    def update_student_profile(self, student_id: str, updates: StudentProfileUpdate) -> StudentProfile:
        with self.store.transaction() as data:
            record = self.store.require(data, "student_profiles", student_id, "Student profile")
            record.update(updates.model_dump(exclude_unset=True))
            record["updated_at"] = now_iso()
            return StudentProfile.model_validate(record)
