"""
Authentication API endpoints.

Provides:
- Registration (trainers and students)
- Login (JWT session) and logout
- Current session and profile
- Demo quick login (local data only)
- Password strength check
"""
from fastapi import APIRouter, Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr
from typing import Any, Dict, List, Literal, Optional
import logging

from core.auth import get_current_user, security
from core.container import AUTH_SERVICE, SECURITY_SERVICE, container
from core.exceptions import InvalidCredentialsError, UnauthorizedError
from core.password_policy import get_password_requirements_text, score_password_strength
from hooks import use_auth
from schemas import AuthSession, Profile, ProfileUpdate, SignUpData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


class RegisterRequest(SignUpData):
    """Self-service sign-up; admins are never created through this endpoint."""
    email: EmailStr
    password: str
    role: Literal["trainer", "student"] = "trainer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class PasswordCheckRequest(BaseModel):
    password: str


class PasswordStrengthResponse(BaseModel):
    score: int
    feedback: List[str]
    is_strong: bool
    requirements: str


def _client_info(request: Request) -> Dict[str, Optional[str]]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/register", response_model=AuthSession, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, request: Request):
    """Create an account with its profile and role profile, and sign it in."""
    user_data = SignUpData(**body.model_dump(exclude={"email", "password"}))
    session = use_auth.use_sign_up().mutate_or_raise(body.email, body.password, user_data)
    container.resolve(SECURITY_SERVICE).log_audit_event(
        session.user.id, "register", "users",
        new_values={"email": session.user.email, "role": body.role},
        ip_address=_client_info(request)["ip_address"],
    )
    return session


@router.post("/login", response_model=AuthSession)
def login(body: LoginRequest, request: Request):
    """
    Sign in with email and password.

    Unknown email and wrong password answer with the same 401.
    """
    result = use_auth.use_sign_in().mutate(body.email, body.password)
    security_service = container.resolve(SECURITY_SERVICE)
    if isinstance(result.error, InvalidCredentialsError):
        security_service.log_security_event(
            "failed_login",
            details={"email": body.email.lower()},
            risk_level="medium",
            **_client_info(request),
        )
    session = result.unwrap()
    security_service.log_security_event("login", user_id=session.user.id, **_client_info(request))
    return session


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(current_user: Profile = Depends(get_current_user)):
    use_auth.use_sign_out().mutate_or_raise(current_user.id)


@router.get("/session", response_model=AuthSession)
def get_session(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """The session behind the bearer token."""
    token = credentials.credentials if credentials else None
    session = container.resolve(AUTH_SERVICE).get_current_session(token)
    if session is None:
        raise UnauthorizedError("No active session")
    return session


@router.post("/quick-login/{role}", response_model=AuthSession)
def quick_login(role: Literal["admin", "trainer", "student"]):
    """Sign in as a demo account. Only available with local data."""
    return container.resolve(AUTH_SERVICE).quick_login(role)


@router.get("/me")
def me(current_user: Profile = Depends(get_current_user)) -> Dict[str, Any]:
    """The signed-in profile with its trainer or student profile."""
    return use_auth.use_auth(current_user.id)


@router.patch("/me", response_model=Profile)
def update_me(updates: ProfileUpdate, current_user: Profile = Depends(get_current_user)):
    return use_auth.use_update_profile(current_user.id).mutate_or_raise(updates)


@router.post("/password-strength", response_model=PasswordStrengthResponse)
def password_strength(body: PasswordCheckRequest):
    return PasswordStrengthResponse(
        **score_password_strength(body.password),
        requirements=get_password_requirements_text(),
    )
