"""
Service wiring.

Binds every service token on the container to the implementation for the
configured data source:

    local   JSON blob on disk (LocalStorage*Service)
    remote  SQL database, Stripe and OpenAI

Security is bound as a singleton so its rate-limit windows outlive a single
request. The query client is a singleton for the same reason.
"""
import logging
from typing import Optional

from core.cache import get_redis_client
from core.config import settings
from core.container import (
    AI_SERVICE,
    AUTH_SERVICE,
    LOCAL_STORAGE,
    PAYMENT_SERVICE,
    PROFILE_SERVICE,
    QUERY_CLIENT,
    SECURITY_SERVICE,
    TRAINER_SERVICE,
    WORKOUT_SERVICE,
    Container,
)
from core.database import SessionFactory, SessionLocal
from hooks.query_client import QueryClient
from services.security_service import FixedWindowRateLimiter, RedisRateLimiter

logger = logging.getLogger(__name__)

DATA_SOURCES = ("local", "remote")


def build_rate_limiter() -> FixedWindowRateLimiter:
    client = get_redis_client()
    if client is not None:
        return RedisRateLimiter(client)
    return FixedWindowRateLimiter()


def setup_modules(
    container: Container,
    data_source: Optional[str] = None,
    storage_dir: Optional[str] = None,
    session_factory: Optional[SessionFactory] = None,
) -> Container:
    """Bind all service tokens for ``data_source`` (defaults to settings.DATA_SOURCE)."""
    data_source = data_source or settings.DATA_SOURCE
    if data_source not in DATA_SOURCES:
        raise ValueError(f"Unknown data source: {data_source}")

    if data_source == "local":
        _bind_local(container, storage_dir or settings.LOCAL_STORAGE_DIR)
    else:
        _bind_remote(container, session_factory or SessionLocal)

    container.bind(QUERY_CLIENT).to_singleton(
        lambda: QueryClient(stale_time=settings.QUERY_STALE_TIME_S)
    )
    logger.info(f"Services bound for data source '{data_source}'")
    return container


def _bind_local(container: Container, storage_dir: str) -> None:
    from services.local_ai_service import LocalStorageAIService
    from services.local_auth_service import LocalStorageAuthService, LocalStorageProfileService
    from services.local_payment_service import LocalStoragePaymentService
    from services.local_security_service import LocalStorageSecurityService
    from services.local_store import LocalStorageService
    from services.local_trainer_service import LocalStorageTrainerService
    from services.local_workout_service import LocalStorageWorkoutService

    store = LocalStorageService(storage_dir, seed_demo_data=settings.LOCAL_SEED_DEMO_DATA)
    container.bind(LOCAL_STORAGE).to_value(store)
    container.bind(AUTH_SERVICE).to(LocalStorageAuthService, store)
    container.bind(PROFILE_SERVICE).to(LocalStorageProfileService, store)
    container.bind(WORKOUT_SERVICE).to(LocalStorageWorkoutService, store)
    container.bind(AI_SERVICE).to(LocalStorageAIService, store)
    container.bind(PAYMENT_SERVICE).to(LocalStoragePaymentService, store)
    container.bind(TRAINER_SERVICE).to(LocalStorageTrainerService, store)
    container.bind(SECURITY_SERVICE).to_singleton(
        lambda: LocalStorageSecurityService(store, build_rate_limiter())
    )


def _bind_remote(container: Container, session_factory: SessionFactory) -> None:
    from services.ai_generation import build_openai_generator
    from services.ai_service import OpenAIService
    from services.auth_service import SqlAuthService, SqlProfileService
    from services.payment_service import StripePaymentService
    from services.security_service import SqlSecurityService
    from services.trainer_service import SqlTrainerService
    from services.workout_service import SqlWorkoutService

    generator = build_openai_generator()
    container.bind(AUTH_SERVICE).to(SqlAuthService, session_factory)
    container.bind(PROFILE_SERVICE).to(SqlProfileService, session_factory)
    container.bind(WORKOUT_SERVICE).to(SqlWorkoutService, session_factory)
    container.bind(AI_SERVICE).to_singleton(lambda: OpenAIService(session_factory, generator))
    container.bind(PAYMENT_SERVICE).to(StripePaymentService, session_factory)
    container.bind(TRAINER_SERVICE).to(SqlTrainerService, session_factory)
    container.bind(SECURITY_SERVICE).to_singleton(
        lambda: SqlSecurityService(session_factory, build_rate_limiter())
    )
