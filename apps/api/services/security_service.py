"""
Security and LGPD compliance service.

Covers request rate limiting, consent records, privacy settings, data-rights
requests (export / deletion), security logs and alerts, audit trails and the
LGPD compliance report.

Rate limiting is a fixed window per ``identifier:endpoint`` key. ``hit()``
is the enforcing entry point used by the HTTP middleware: it resets an
elapsed window, counts the request and reports whether it is blocked, all
under one lock (in process) or one MULTI block (Redis).
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from redis.exceptions import RedisError
from sqlalchemy import func

import models
from core.cache import incr_window, peek_window
from core.config import settings
from core.database import SessionFactory, SessionLocal, session_scope
from schemas import (
    AuditLog,
    ComplianceReport,
    ComplianceSummary,
    DataDeletionRequest,
    DataExportRequest,
    DataRequests,
    LGPDConsent,
    PrivacySettings,
    PrivacySettingsUpdate,
    RateLimitStatus,
    SecurityAlert,
    SecurityLog,
)

logger = logging.getLogger(__name__)

CONSENT_VERSION = "1.0"
EXPORT_LINK_TTL = timedelta(days=7)
DELETION_GRACE_PERIOD = timedelta(days=30)
INCIDENT_SEVERITIES = ("high", "critical")

PRIVACY_DEFAULTS: Dict[str, Any] = {
    "data_processing_consent": True,
    "marketing_consent": False,
    "analytics_consent": False,
    "profile_visibility": "private",
    "data_retention_days": 365,
    "newsletter_subscription": False,
}

# Tighter ceilings for sensitive endpoints (requests per window)
ENDPOINT_LIMITS: Dict[str, int] = {
    "/v1/auth/login": 10,
    "/v1/auth/register": 5,
    "/v1/ai/diet-plans": 20,
    "/v1/ai/workout-suggestions": 20,
}


def export_download_url(user_id: str) -> str:
    return f"/v1/privacy/export/{user_id}"


def user_from_identifier(identifier: str) -> Optional[str]:
    """'user:<id>' identifiers carry a user ID; IP identifiers do not."""
    if identifier.startswith("user:"):
        return identifier[len("user:"):]
    return None


def compliance_score(consent_rate: float, incidents: int, data_requests: int) -> float:
    return min(
        100,
        consent_rate * 0.4
        + max(0, 100 - incidents * 5) * 0.3
        + max(0, 100 - data_requests * 2) * 0.3,
    )


def build_compliance_report(
    period_start: str,
    period_end: str,
    total_users: int,
    consents: Iterable[Tuple[str, str, bool]],
    data_requests: int,
    incidents: int,
    event_types: Iterable[str],
) -> ComplianceReport:
    """
    Assemble the LGPD report.

    ``consents`` yields (user_id, consent_type, consented). The consent rate
    is the share of users with at least one positive consent, 100 when there
    are no users.
    """
    consents = list(consents)
    consented_users = {user_id for user_id, _, consented in consents if consented}
    consent_rate = len(consented_users) / total_users * 100 if total_users > 0 else 100
    score = compliance_score(consent_rate, incidents, data_requests)
    return ComplianceReport(
        id=str(uuid.uuid4()),
        period_start=period_start,
        period_end=period_end,
        generated_at=datetime.now(timezone.utc),
        summary=ComplianceSummary(
            total_users=total_users,
            consent_rate=round(consent_rate),
            data_requests=data_requests,
            security_incidents=incidents,
            compliance_score=round(score),
        ),
        details={
            "consents_by_type": dict(Counter(consent_type for _, consent_type, _ in consents)),
            "security_events_summary": dict(Counter(event_types)),
        },
    )


# ---------------------------------------------------------------------------
# Rate limiters
# ---------------------------------------------------------------------------

class FixedWindowRateLimiter:
    """In-process fixed-window counters keyed by ``identifier:endpoint``."""

    MAX_KEYS = 10000

    def __init__(self, limit: Optional[int] = None, window: Optional[int] = None,
                 endpoint_limits: Optional[Dict[str, int]] = None,
                 clock: Callable[[], float] = time.time):
        self.limit = limit if limit is not None else settings.RATE_LIMIT_PER_MINUTE
        self.window = window if window is not None else settings.RATE_LIMIT_WINDOW_S
        self.endpoint_limits = dict(ENDPOINT_LIMITS if endpoint_limits is None else endpoint_limits)
        self.clock = clock
        self._windows: Dict[str, List[float]] = {}  # key -> [count, reset_time]
        self._lock = threading.Lock()

    def limit_for(self, endpoint: str) -> int:
        if endpoint in self.endpoint_limits:
            return self.endpoint_limits[endpoint]
        for prefix, limit in self.endpoint_limits.items():
            if endpoint.startswith(prefix):
                return limit
        return self.limit

    def _current(self, key: str, now: float) -> List[float]:
        entry = self._windows.get(key)
        if entry is None or now >= entry[1]:
            if len(self._windows) >= self.MAX_KEYS:
                self._prune(now)
            entry = [0, now + self.window]
            self._windows[key] = entry
        return entry

    def _prune(self, now: float) -> None:
        for key in [k for k, (_, reset) in self._windows.items() if now >= reset]:
            del self._windows[key]

    def _status(self, count: int, reset_time: float, limit: int) -> RateLimitStatus:
        return RateLimitStatus(
            remaining=max(0, limit - int(count)),
            reset_time=reset_time,
            limit=limit,
            is_blocked=count > limit,
        )

    def check(self, identifier: str, endpoint: str) -> RateLimitStatus:
        limit = self.limit_for(endpoint)
        with self._lock:
            count, reset_time = self._current(f"{identifier}:{endpoint}", self.clock())
        return RateLimitStatus(
            remaining=max(0, limit - int(count)),
            reset_time=reset_time,
            limit=limit,
            is_blocked=count >= limit,
        )

    def hit(self, identifier: str, endpoint: str) -> Tuple[RateLimitStatus, int]:
        """Count one request. Returns (status, count in the current window)."""
        limit = self.limit_for(endpoint)
        with self._lock:
            entry = self._current(f"{identifier}:{endpoint}", self.clock())
            entry[0] += 1
            count, reset_time = int(entry[0]), entry[1]
        return self._status(count, reset_time, limit), count

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RedisRateLimiter(FixedWindowRateLimiter):
    """
    Fixed-window counters in Redis, shared by every API worker.

    Falls back to the in-process windows inherited from FixedWindowRateLimiter
    whenever Redis errors.
    """

    def __init__(self, client, **kwargs):
        super().__init__(**kwargs)
        self.client = client

    @staticmethod
    def _key(identifier: str, endpoint: str) -> str:
        return f"rate_limit:{identifier}:{endpoint}"

    def check(self, identifier: str, endpoint: str) -> RateLimitStatus:
        limit = self.limit_for(endpoint)
        try:
            count, ttl = peek_window(self.client, self._key(identifier, endpoint), self.window)
        except RedisError as e:
            logger.warning(f"Redis rate-limit read failed, using in-process window: {e}")
            return super().check(identifier, endpoint)
        return RateLimitStatus(
            remaining=max(0, limit - count),
            reset_time=self.clock() + ttl,
            limit=limit,
            is_blocked=count >= limit,
        )

    def hit(self, identifier: str, endpoint: str) -> Tuple[RateLimitStatus, int]:
        limit = self.limit_for(endpoint)
        try:
            count, ttl = incr_window(self.client, self._key(identifier, endpoint), self.window)
        except RedisError as e:
            logger.warning(f"Redis rate-limit increment failed, using in-process window: {e}")
            return super().hit(identifier, endpoint)
        return self._status(count, self.clock() + ttl, limit), count


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ISecurityService(ABC):
    @abstractmethod
    def check_rate_limit(self, identifier: str, endpoint: str) -> RateLimitStatus: ...

    @abstractmethod
    def record_request(self, identifier: str, endpoint: str) -> None: ...

    @abstractmethod
    def hit(self, identifier: str, endpoint: str) -> RateLimitStatus: ...

    @abstractmethod
    def record_consent(self, user_id: str, consent_type: str, consented: bool,
                       ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> LGPDConsent: ...

    @abstractmethod
    def get_consents(self, user_id: str) -> List[LGPDConsent]: ...

    @abstractmethod
    def update_privacy_settings(self, user_id: str, updates: PrivacySettingsUpdate) -> PrivacySettings: ...

    @abstractmethod
    def get_privacy_settings(self, user_id: str) -> Optional[PrivacySettings]: ...

    @abstractmethod
    def request_data_export(self, user_id: str) -> DataExportRequest: ...

    @abstractmethod
    def request_data_deletion(self, user_id: str, reason: Optional[str] = None) -> DataDeletionRequest: ...

    @abstractmethod
    def get_data_requests(self, user_id: str) -> DataRequests: ...

    @abstractmethod
    def log_security_event(self, event_type: str, user_id: Optional[str] = None,
                           details: Optional[Dict[str, Any]] = None, ip_address: Optional[str] = None,
                           user_agent: Optional[str] = None, risk_level: str = "low") -> SecurityLog: ...

    @abstractmethod
    def get_security_logs(self, user_id: Optional[str] = None,
                          event_type: Optional[str] = None) -> List[SecurityLog]: ...

    @abstractmethod
    def create_security_alert(self, type: str, severity: str, description: str,
                              user_id: Optional[str] = None) -> SecurityAlert: ...

    @abstractmethod
    def log_audit_event(self, user_id: str, action: str, resource: str,
                        old_values: Optional[Dict[str, Any]] = None,
                        new_values: Optional[Dict[str, Any]] = None,
                        ip_address: Optional[str] = None) -> AuditLog: ...

    @abstractmethod
    def get_audit_logs(self, user_id: str) -> List[AuditLog]: ...

    @abstractmethod
    def generate_compliance_report(self, period_start: str, period_end: str) -> ComplianceReport: ...


class RateLimitingMixin:
    """Rate-limit operations shared by both implementations; needs ``rate_limiter``."""

    rate_limiter: FixedWindowRateLimiter

    def check_rate_limit(self, identifier: str, endpoint: str) -> RateLimitStatus:
        return self.rate_limiter.check(identifier, endpoint)

    def record_request(self, identifier: str, endpoint: str) -> None:
        self.rate_limiter.hit(identifier, endpoint)

    def hit(self, identifier: str, endpoint: str) -> RateLimitStatus:
        status, count = self.rate_limiter.hit(identifier, endpoint)
        if count == status.limit + 1:
            # Log once per window, on the first rejected request
            self.log_security_event(
                "rate_limit_exceeded",
                user_id=user_from_identifier(identifier),
                details={"identifier": identifier, "endpoint": endpoint, "limit": status.limit},
                risk_level="medium",
            )
        return status


class SqlSecurityService(RateLimitingMixin, ISecurityService):
    def __init__(self, session_factory: SessionFactory = SessionLocal,
                 rate_limiter: Optional[FixedWindowRateLimiter] = None):
        self._session_factory = session_factory
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter()

    # Consents and privacy

    def record_consent(self, user_id: str, consent_type: str, consented: bool,
                       ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> LGPDConsent:
        with session_scope(self._session_factory) as db:
            row = models.LGPDConsent(
                user_id=user_id,
                consent_type=consent_type,
                consented=consented,
                consent_date=datetime.now(timezone.utc),
                ip_address=ip_address,
                user_agent=user_agent,
                version=CONSENT_VERSION,
            )
            db.add(row)
            db.flush()
            return LGPDConsent.model_validate(row)

    def get_consents(self, user_id: str) -> List[LGPDConsent]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.LGPDConsent)
                .filter(models.LGPDConsent.user_id == user_id)
                .order_by(models.LGPDConsent.consent_date)
                .all()
            )
            return [LGPDConsent.model_validate(row) for row in rows]

    def update_privacy_settings(self, user_id: str, updates: PrivacySettingsUpdate) -> PrivacySettings:
        with session_scope(self._session_factory) as db:
            row = db.query(models.PrivacySettings).filter(models.PrivacySettings.user_id == user_id).first()
            if row is None:
                row = models.PrivacySettings(user_id=user_id, **PRIVACY_DEFAULTS)
                db.add(row)
            for key, value in updates.model_dump(exclude_unset=True).items():
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            db.flush()
            return PrivacySettings.model_validate(row)

    def get_privacy_settings(self, user_id: str) -> Optional[PrivacySettings]:
        with session_scope(self._session_factory) as db:
            row = db.query(models.PrivacySettings).filter(models.PrivacySettings.user_id == user_id).first()
            return PrivacySettings.model_validate(row) if row else None

    # Data-rights requests

    def request_data_export(self, user_id: str) -> DataExportRequest:
        now = datetime.now(timezone.utc)
        with session_scope(self._session_factory) as db:
            row = models.DataExportRequest(
                user_id=user_id,
                status="completed",
                requested_at=now,
                completed_at=now,
                download_url=export_download_url(user_id),
                expires_at=now + EXPORT_LINK_TTL,
            )
            db.add(row)
            db.flush()
            return DataExportRequest.model_validate(row)

    def request_data_deletion(self, user_id: str, reason: Optional[str] = None) -> DataDeletionRequest:
        now = datetime.now(timezone.utc)
        with session_scope(self._session_factory) as db:
            row = models.DataDeletionRequest(
                user_id=user_id,
                status="pending",
                reason=reason,
                requested_at=now,
                scheduled_for=now + DELETION_GRACE_PERIOD,
            )
            db.add(row)
            db.flush()
            return DataDeletionRequest.model_validate(row)

    def get_data_requests(self, user_id: str) -> DataRequests:
        with session_scope(self._session_factory) as db:
            exports = (
                db.query(models.DataExportRequest)
                .filter(models.DataExportRequest.user_id == user_id)
                .order_by(models.DataExportRequest.requested_at.desc())
                .all()
            )
            deletions = (
                db.query(models.DataDeletionRequest)
                .filter(models.DataDeletionRequest.user_id == user_id)
                .order_by(models.DataDeletionRequest.requested_at.desc())
                .all()
            )
            return DataRequests(
                exports=[DataExportRequest.model_validate(r) for r in exports],
                deletions=[DataDeletionRequest.model_validate(r) for r in deletions],
            )

    # Logs, alerts and audit trail

    def log_security_event(self, event_type: str, user_id: Optional[str] = None,
                           details: Optional[Dict[str, Any]] = None, ip_address: Optional[str] = None,
                           user_agent: Optional[str] = None, risk_level: str = "low") -> SecurityLog:
        with session_scope(self._session_factory) as db:
            row = models.SecurityLog(
                user_id=user_id,
                event_type=event_type,
                details=details or {},
                ip_address=ip_address,
                user_agent=user_agent,
                risk_level=risk_level,
                timestamp=datetime.now(timezone.utc),
            )
            db.add(row)
            db.flush()
            return SecurityLog.model_validate(row)

    def get_security_logs(self, user_id: Optional[str] = None,
                          event_type: Optional[str] = None) -> List[SecurityLog]:
        with session_scope(self._session_factory) as db:
            query = db.query(models.SecurityLog)
            if user_id:
                query = query.filter(models.SecurityLog.user_id == user_id)
            if event_type:
                query = query.filter(models.SecurityLog.event_type == event_type)
            rows = query.order_by(models.SecurityLog.timestamp.desc()).all()
            return [SecurityLog.model_validate(row) for row in rows]

    def create_security_alert(self, type: str, severity: str, description: str,
                              user_id: Optional[str] = None) -> SecurityAlert:
        with session_scope(self._session_factory) as db:
            row = models.SecurityAlert(
                type=type,
                severity=severity,
                description=description,
                user_id=user_id,
                resolved=False,
                created_at=datetime.now(timezone.utc),
            )
            db.add(row)
            db.flush()
            alert = SecurityAlert.model_validate(row)
        logger.warning(f"Security alert [{severity}] {type}: {description}")
        return alert

    def log_audit_event(self, user_id: str, action: str, resource: str,
                        old_values: Optional[Dict[str, Any]] = None,
                        new_values: Optional[Dict[str, Any]] = None,
                        ip_address: Optional[str] = None) -> AuditLog:
        with session_scope(self._session_factory) as db:
            row = models.AuditLog(
                user_id=user_id,
                action=action,
                resource=resource,
                old_values=old_values,
                new_values=new_values,
                ip_address=ip_address,
                timestamp=datetime.now(timezone.utc),
            )
            db.add(row)
            db.flush()
            return AuditLog.model_validate(row)

    def get_audit_logs(self, user_id: str) -> List[AuditLog]:
        with session_scope(self._session_factory) as db:
            rows = (
                db.query(models.AuditLog)
                .filter(models.AuditLog.user_id == user_id)
                .order_by(models.AuditLog.timestamp.desc())
                .all()
            )
            return [AuditLog.model_validate(row) for row in rows]

    def generate_compliance_report(self, period_start: str, period_end: str) -> ComplianceReport:
        with session_scope(self._session_factory) as db:
            total_users = db.query(func.count(models.Profile.id)).scalar() or 0
            consents = [
                (c.user_id, c.consent_type, c.consented)
                for c in db.query(
                    models.LGPDConsent.user_id,
                    models.LGPDConsent.consent_type,
                    models.LGPDConsent.consented,
                ).all()
            ]
            data_requests = (
                db.query(func.count(models.DataExportRequest.id)).scalar()
                + db.query(func.count(models.DataDeletionRequest.id)).scalar()
            )
            incidents = (
                db.query(func.count(models.SecurityAlert.id))
                .filter(models.SecurityAlert.severity.in_(INCIDENT_SEVERITIES))
                .scalar()
            )
            event_types = [t for (t,) in db.query(models.SecurityLog.event_type).all()]
        return build_compliance_report(
            period_start, period_end, total_users, consents, data_requests, incidents, event_types,
        )
