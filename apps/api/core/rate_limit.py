"""
Rate Limiting Middleware

Fixed-window limits per identifier (user ID or IP) and endpoint, enforced
through the SecurityService so counters, per-endpoint ceilings and the
"rate_limit_exceeded" security log live in one place.
"""
import time
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.container import SECURITY_SERVICE, container
from core.security import decode_access_token

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/health/detailed", "/ping", "/docs", "/openapi.json", "/redoc")


def get_request_identifier(request: Request) -> str:
    """'user:<id>' for a valid bearer token, otherwise 'ip:<address>'."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        payload = decode_access_token(auth_header.split(" ", 1)[1])
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"

    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Counts every request and rejects the ones past the window's ceiling with 429."""

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        identifier = get_request_identifier(request)
        limit_status = container.resolve(SECURITY_SERVICE).hit(identifier, request.url.path)

        headers = {
            "X-RateLimit-Limit": str(limit_status.limit),
            "X-RateLimit-Remaining": str(limit_status.remaining),
            "X-RateLimit-Reset": str(int(limit_status.reset_time)),
        }
        if limit_status.is_blocked:
            logger.warning(
                f"Rate limit exceeded: {identifier} {request.url.path}",
                extra={"extra_fields": {"identifier": identifier, "path": request.url.path}},
            )
            retry_after = max(1, int(limit_status.reset_time - time.time()))
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Rate limit exceeded",
                    "limit": limit_status.limit,
                    "reset_at": int(limit_status.reset_time),
                },
                headers={**headers, "Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
