"""Auth hooks: the signed-in user's profiles and profile updates."""
from typing import Any, Dict, Optional

from core.container import AUTH_SERVICE, PROFILE_SERVICE, container
from hooks.query_client import Mutation, QueryResult, get_query_client
from schemas import AuthSession, Profile, ProfileUpdate, SignUpData, StudentProfile, TrainerProfile
from services.auth_service import IAuthService, IProfileService


def _auth() -> IAuthService:
    return container.resolve(AUTH_SERVICE)


def _profiles() -> IProfileService:
    return container.resolve(PROFILE_SERVICE)


def use_profile(user_id: Optional[str]) -> QueryResult[Optional[Profile]]:
    return get_query_client().use_query(
        ("profile", user_id),
        lambda: _profiles().get_profile(user_id),
        enabled=bool(user_id),
    )


def use_trainer_profile(trainer_id: Optional[str]) -> QueryResult[Optional[TrainerProfile]]:
    return get_query_client().use_query(
        ("trainer-profile", trainer_id),
        lambda: _profiles().get_trainer_profile(trainer_id),
        enabled=bool(trainer_id),
    )


def use_student_profile(student_id: Optional[str]) -> QueryResult[Optional[StudentProfile]]:
    return get_query_client().use_query(
        ("student-profile", student_id),
        lambda: _profiles().get_student_profile(student_id),
        enabled=bool(student_id),
    )


def use_auth(user_id: Optional[str]) -> Dict[str, Any]:
    """The user's profile plus the role-specific profile that goes with it."""
    profile = use_profile(user_id).data
    trainer_profile = student_profile = None
    if profile and profile.role == "trainer":
        trainer_profile = use_trainer_profile(profile.id).data
    elif profile and profile.role == "student":
        student_profile = use_student_profile(profile.id).data
    return {"profile": profile, "trainer_profile": trainer_profile, "student_profile": student_profile}


def use_update_profile(user_id: str) -> Mutation[Profile]:
    def update(updates: ProfileUpdate) -> Profile:
        return _profiles().update_profile(user_id, updates)

    return get_query_client().use_mutation(
        update,
        invalidates=(("profile", user_id), ("students",), ("admin-trainers",)),
        success_toast="Profile updated",
        error_toast="Could not update profile",
    )


def use_sign_in() -> Mutation[AuthSession]:
    def sign_in(email: str, password: str) -> AuthSession:
        return _auth().sign_in(email, password)

    client = get_query_client()
    # A new user must not see the previous user's cached data
    return client.use_mutation(sign_in, invalidates=((),), error_toast="Sign-in failed")


def use_sign_up() -> Mutation[AuthSession]:
    def sign_up(email: str, password: str, user_data: SignUpData) -> AuthSession:
        return _auth().sign_up(email, password, user_data)

    return get_query_client().use_mutation(
        sign_up,
        invalidates=((),),
        success_toast="Account created",
        error_toast="Could not create account",
    )


def use_sign_out() -> Mutation[None]:
    return get_query_client().use_mutation(
        lambda user_id=None: _auth().sign_out(user_id),
        invalidates=((),),
    )
