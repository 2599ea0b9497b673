"""
Authentication and authorization dependencies.

Provides FastAPI dependencies for:
- Getting the current authenticated profile from the bearer token
- Role-based access control (admin / trainer / student)
- Trainer-scoped access to a student's data
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import List, Optional

from core.container import PROFILE_SERVICE, TRAINER_SERVICE, container, provide
from core.security import decode_access_token
from schemas import Profile
from services.auth_service import IProfileService

# Use auto_error=False to handle missing credentials manually and return 401 (not 403)
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    profiles: IProfileService = Depends(provide(PROFILE_SERVICE)),
) -> Profile:
    """
    Get the current authenticated profile from the JWT.

    Raises HTTPException if the token is invalid or the profile is gone.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    profile = profiles.get_profile(user_id)
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return profile


def require_role(allowed_roles: List[str]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/admin-only")
        def admin_endpoint(user: Profile = Depends(require_role(["admin"]))):
            ...
    """
    def role_checker(current_user: Profile = Depends(get_current_user)) -> Profile:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {allowed_roles}",
            )
        return current_user

    return role_checker


def require_admin(current_user: Profile = Depends(require_role(["admin"]))) -> Profile:
    return current_user


def require_trainer(current_user: Profile = Depends(require_role(["trainer"]))) -> Profile:
    return current_user


def ensure_student_access(current_user: Profile, student_id: str) -> None:
    """
    Students may only read their own data, trainers only their own students'.
    Admins may read anyone's.
    """
    if current_user.role == "admin":
        return
    if current_user.role == "student":
        if current_user.id != student_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. You can only access your own data.",
            )
        return

    students = container.resolve(TRAINER_SERVICE).get_students(current_user.id)
    if not any(s.id == student_id for s in students):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Student does not belong to this trainer.",
        )
