"""
Custom exception classes and error handling.

Two families live here:
- APIException and subclasses: HTTP-facing errors raised by routers and dependencies.
- ServiceError and subclasses: domain errors raised by service implementations.
  Both the remote and the local backend raise the same ServiceError for the same
  condition; main.py maps each one to a status code.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------

class ServiceError(Exception):
    """Base class for errors raised by domain services."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "SERVICE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidCredentialsError(ServiceError):
    """Unknown email or wrong password. Both cases share one message."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "INVALID_CREDENTIALS"

    def __init__(self):
        super().__init__("Invalid credentials")


class UserAlreadyExistsError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "USER_EXISTS"

    def __init__(self, email: str):
        super().__init__("User already exists")
        self.email = email


class NotFoundError(ServiceError):
    """Resource not found."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier


class InsufficientCreditsError(ServiceError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    error_code = "INSUFFICIENT_CREDITS"

    def __init__(self, required: int, available: int):
        super().__init__(f"Insufficient credits (required: {required}, available: {available})")
        self.required = required
        self.available = available


class PlanLimitExceededError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "PLAN_LIMIT_EXCEEDED"

    def __init__(self, plan: str, max_students: int):
        super().__init__(f"Student limit reached for plan '{plan}' ({max_students} students)")
        self.plan = plan
        self.max_students = max_students


class RateLimitExceededError(ServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "RATE_LIMITED"

    def __init__(self, identifier: str, endpoint: str, reset_time: float):
        super().__init__("Rate limit exceeded")
        self.identifier = identifier
        self.endpoint = endpoint
        self.reset_time = reset_time


class LocalStoreError(ServiceError):
    """The local JSON blob is unreadable (corrupt or wrong shape)."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "LOCAL_STORE_CORRUPT"


class ProviderError(ServiceError):
    """A third-party provider (Stripe, OpenAI) failed or is not configured."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "PROVIDER_ERROR"

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class WeakPasswordError(ServiceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "WEAK_PASSWORD"

    def __init__(self, errors):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class UnsupportedOperationError(ServiceError):
    """The active backend does not offer this operation."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "UNSUPPORTED_OPERATION"


class InvalidWebhookError(ServiceError):
    """A provider webhook failed signature verification or could not be parsed."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_WEBHOOK"
