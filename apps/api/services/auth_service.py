"""
Authentication and profile services.

IAuthService / IProfileService are the contracts; the Sql* classes are the
remote implementation backed by the relational database. The local JSON
implementation lives in services/local_auth_service.py.

Both implementations issue the same JWT access tokens (core.security), so
the HTTP auth dependency works unchanged whichever backend is active.
"""
from __future__ import annotations

import logging
import secrets
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError

import models
from core.database import SessionFactory, SessionLocal, session_scope
from core.exceptions import (
    InvalidCredentialsError,
    NotFoundError,
    PlanLimitExceededError,
    UnsupportedOperationError,
    UserAlreadyExistsError,
    WeakPasswordError,
)
from core.password_policy import validate_password
from core.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
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
from services.plan_limits import can_add_student, get_plan_limits

logger = logging.getLogger(__name__)


def issue_session(user: User, role: str) -> AuthSession:
    """Mint an access/refresh token pair for ``user``."""
    token = create_access_token({"sub": user.id, "role": role})
    return AuthSession(
        user=user,
        access_token=token,
        refresh_token=create_refresh_token(),
        expires_at=int((time.time() + ACCESS_TOKEN_EXPIRE_MINUTES * 60) * 1000),
        token_type="bearer",
    )


def check_password_policy(password: str) -> None:
    valid, errors = validate_password(password)
    if not valid:
        raise WeakPasswordError(errors)


def generate_temporary_password() -> str:
    """Password for accounts created on someone's behalf (e.g. a trainer adding a student)."""
    return f"{secrets.token_urlsafe(12)}Aa1!"


class IAuthService(ABC):
    @abstractmethod
    def sign_in(self, email: str, password: str) -> AuthSession: ...

    @abstractmethod
    def sign_up(self, email: str, password: str, user_data: SignUpData) -> AuthSession: ...

    @abstractmethod
    def sign_out(self, user_id: Optional[str] = None) -> None: ...

    @abstractmethod
    def get_current_session(self, access_token: Optional[str] = None) -> Optional[AuthSession]: ...

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def quick_login(self, role: str) -> AuthSession: ...


class IProfileService(ABC):
    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Profile]: ...

    @abstractmethod
    def get_trainer_profile(self, trainer_id: str) -> Optional[TrainerProfile]: ...

    @abstractmethod
    def get_student_profile(self, student_id: str) -> Optional[StudentProfile]: ...

    @abstractmethod
    def update_profile(self, user_id: str, updates: ProfileUpdate) -> Profile: ...

    @abstractmethod
    def update_student_profile(self, student_id: str, updates: StudentProfileUpdate) -> StudentProfile: ...


def _profile_from_row(row: models.Profile) -> Profile:
    profile = Profile.model_validate(row)
    profile.email = row.user.email if row.user else None
    return profile


def ensure_student_capacity(db, trainer_id: str) -> models.TrainerProfile:
    """Raise unless ``trainer_id`` names a trainer with room for one more student."""
    trainer = db.get(models.TrainerProfile, trainer_id)
    if trainer is None:
        raise NotFoundError("Trainer profile", trainer_id)
    count = (
        db.query(models.StudentProfile)
        .filter(models.StudentProfile.trainer_id == trainer_id)
        .count()
    )
    if not can_add_student(count, trainer.max_students):
        raise PlanLimitExceededError(trainer.plan, trainer.max_students)
    return trainer


def _role_profile_row(user_id: str, user_data: SignUpData, now: datetime):
    if user_data.role == "trainer":
        limits = get_plan_limits("free")
        return models.TrainerProfile(
            id=user_id,
            plan="free",
            max_students=limits.max_students,
            ai_credits=limits.ai_credits,
        )
    if user_data.role == "student":
        return models.StudentProfile(
            id=user_id,
            trainer_id=user_data.trainer_id,
            start_date=now,
            status="active",
        )
    return None


class SqlAuthService(IAuthService):
    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def sign_in(self, email: str, password: str) -> AuthSession:
        with session_scope(self._session_factory) as db:
            user = db.query(models.User).filter(models.User.email == email.lower()).first()
            # Same error for unknown email and wrong password
            if user is None or not verify_password(password, user.password_hash):
                logger.info(f"Failed sign-in for {email}")
                raise InvalidCredentialsError()
            user.last_sign_in_at = datetime.now(timezone.utc)
            role = user.profile.role if user.profile else "student"
            db.flush()
            session = issue_session(User.model_validate(user), role)
        logger.info(f"User signed in: {session.user.id}")
        return session

    def sign_up(self, email: str, password: str, user_data: SignUpData) -> AuthSession:
        check_password_policy(password)
        email = email.lower()
        now = datetime.now(timezone.utc)
        try:
            with session_scope(self._session_factory) as db:
                if db.query(models.User.id).filter(models.User.email == email).first():
                    raise UserAlreadyExistsError(email)
                if user_data.role == "student" and user_data.trainer_id:
                    ensure_student_capacity(db, user_data.trainer_id)
                user = models.User(
                    email=email,
                    password_hash=get_password_hash(password),
                    created_at=now,
                    email_confirmed_at=now,
                    last_sign_in_at=now,
                )
                db.add(user)
                db.flush()
                db.add(models.Profile(
                    id=user.id,
                    first_name=user_data.first_name,
                    last_name=user_data.last_name,
                    phone=user_data.phone,
                    role=user_data.role,
                ))
                role_row = _role_profile_row(user.id, user_data, now)
                if role_row is not None:
                    db.flush()
                    db.add(role_row)
                db.flush()
                session = issue_session(User.model_validate(user), user_data.role)
        except IntegrityError:
            # A concurrent sign-up took the email; any other constraint is a real failure
            if self._email_taken(email):
                raise UserAlreadyExistsError(email)
            raise
        logger.info(f"User signed up: {session.user.id} role={user_data.role}")
        return session

    def _email_taken(self, email: str) -> bool:
        with session_scope(self._session_factory) as db:
            return db.query(models.User.id).filter(models.User.email == email).first() is not None

    def sign_out(self, user_id: Optional[str] = None) -> None:
        # Access tokens are stateless; the client discards them
        logger.info(f"User signed out: {user_id}")

    def get_current_session(self, access_token: Optional[str] = None) -> Optional[AuthSession]:
        if not access_token:
            return None
        payload = decode_access_token(access_token)
        if not payload or not payload.get("sub"):
            return None
        user = self.get_user(payload["sub"])
        if user is None:
            return None
        return AuthSession(
            user=user,
            access_token=access_token,
            expires_at=int(payload["exp"]) * 1000,
        )

    def get_user(self, user_id: str) -> Optional[User]:
        with session_scope(self._session_factory) as db:
            user = db.query(models.User).filter(models.User.id == user_id).first()
            return User.model_validate(user) if user else None

    def quick_login(self, role: str) -> AuthSession:
        raise UnsupportedOperationError("Quick login is only available with local data")


class SqlProfileService(IProfileService):
    def __init__(self, session_factory: SessionFactory = SessionLocal):
        self._session_factory = session_factory

    def get_profile(self, user_id: str) -> Optional[Profile]:
        with session_scope(self._session_factory) as db:
            row = db.query(models.Profile).filter(models.Profile.id == user_id).first()
            return _profile_from_row(row) if row else None

    def get_trainer_profile(self, trainer_id: str) -> Optional[TrainerProfile]:
        with session_scope(self._session_factory) as db:
            row = db.query(models.TrainerProfile).filter(models.TrainerProfile.id == trainer_id).first()
            return TrainerProfile.model_validate(row) if row else None

    def get_student_profile(self, student_id: str) -> Optional[StudentProfile]:
        with session_scope(self._session_factory) as db:
            row = db.query(models.StudentProfile).filter(models.StudentProfile.id == student_id).first()
            return StudentProfile.model_validate(row) if row else None

    def update_profile(self, user_id: str, updates: ProfileUpdate) -> Profile:
        with session_scope(self._session_factory) as db:
            row = db.query(models.Profile).filter(models.Profile.id == user_id).first()
            if row is None:
                raise NotFoundError("Profile", user_id)
            for key, value in updates.model_dump(exclude_unset=True).items():
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            return _profile_from_row(row)

    def update_student_profile(self, student_id: str, updates: StudentProfileUpdate) -> StudentProfile:
        with session_scope(self._session_factory) as db:
            row = db.query(models.StudentProfile).filter(models.StudentProfile.id == student_id).first()
            if row is None:
                raise NotFoundError("Student profile", student_id)
            for key, value in updates.model_dump(exclude_unset=True).items():
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            return StudentProfile.model_validate(row)
