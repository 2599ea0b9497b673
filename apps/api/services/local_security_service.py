"""
Security service over the local JSON blob.

Security logs are capped to the newest 1000 entries and audit logs to the
newest 500 per user, to bound the blob size.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from schemas import (
    AuditLog,
    ComplianceReport,
    DataDeletionRequest,
    DataExportRequest,
    DataRequests,
    LGPDConsent,
    PrivacySettings,
    PrivacySettingsUpdate,
    SecurityAlert,
    SecurityLog,
)
from services.local_store import LocalStorageService, new_id, now_iso
from services.security_service import (
    CONSENT_VERSION,
    DELETION_GRACE_PERIOD,
    EXPORT_LINK_TTL,
    INCIDENT_SEVERITIES,
    PRIVACY_DEFAULTS,
    FixedWindowRateLimiter,
    ISecurityService,
    RateLimitingMixin,
    build_compliance_report,
    export_download_url,
)

logger = logging.getLogger(__name__)

MAX_SECURITY_LOGS = 1000
MAX_AUDIT_LOGS_PER_USER = 500


def _newest_first(records: List[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: r.get(field) or "", reverse=True)


class LocalStorageSecurityService(RateLimitingMixin, ISecurityService):
    def __init__(self, store: LocalStorageService, rate_limiter: Optional[FixedWindowRateLimiter] = None):
        self.store = store
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter()

    # Consents and privacy

    def record_consent(self, user_id: str, consent_type: str, consented: bool,
                       ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> LGPDConsent:
        record = {
            "id": new_id(),
            "user_id": user_id,
            "consent_type": consent_type,
            "consented": consented,
            "consent_date": now_iso(),
            "ip_address": ip_address,
            "user_agent": user_agent,
            "version": CONSENT_VERSION,
        }
        consent = LGPDConsent.model_validate(record)
        with self.store.transaction() as data:
            data["lgpd_consents"].append(record)
        return consent

    def get_consents(self, user_id: str) -> List[LGPDConsent]:
        data = self.store.snapshot()
        return [LGPDConsent.model_validate(c) for c in self.store.where(data, "lgpd_consents", user_id=user_id)]

    def update_privacy_settings(self, user_id: str, updates: PrivacySettingsUpdate) -> PrivacySettings:
        with self.store.transaction() as data:
            existing = self.store.where(data, "privacy_settings", user_id=user_id)
            if existing:
                record = existing[0]
            else:
                record = {"id": new_id(), "user_id": user_id, **PRIVACY_DEFAULTS}
                data["privacy_settings"].append(record)
            record.update(updates.model_dump(exclude_unset=True))
            record["updated_at"] = now_iso()
            return PrivacySettings.model_validate(record)

    def get_privacy_settings(self, user_id: str) -> Optional[PrivacySettings]:
        data = self.store.snapshot()
        existing = self.store.where(data, "privacy_settings", user_id=user_id)
        return PrivacySettings.model_validate(existing[0]) if existing else None

    # Data-rights requests

    def request_data_export(self, user_id: str) -> DataExportRequest:
        now = datetime.now(timezone.utc)
        # Exports are built on demand, so the request completes immediately
        record = {
            "id": new_id(),
            "user_id": user_id,
            "status": "completed",
            "requested_at": now.isoformat(),
            "completed_at": now.isoformat(),
            "download_url": export_download_url(user_id),
            "expires_at": (now + EXPORT_LINK_TTL).isoformat(),
        }
        with self.store.transaction() as data:
            data["data_export_requests"].append(record)
        return DataExportRequest.model_validate(record)

    def request_data_deletion(self, user_id: str, reason: Optional[str] = None) -> DataDeletionRequest:
        now = datetime.now(timezone.utc)
        record = {
            "id": new_id(),
            "user_id": user_id,
            "status": "pending",
            "reason": reason,
            "requested_at": now.isoformat(),
            "scheduled_for": (now + DELETION_GRACE_PERIOD).isoformat(),
            "completed_at": None,
        }
        with self.store.transaction() as data:
            data["data_deletion_requests"].append(record)
        return DataDeletionRequest.model_validate(record)

    def get_data_requests(self, user_id: str) -> DataRequests:
        data = self.store.snapshot()
        exports = _newest_first(self.store.where(data, "data_export_requests", user_id=user_id), "requested_at")
        deletions = _newest_first(self.store.where(data, "data_deletion_requests", user_id=user_id), "requested_at")
        return DataRequests(
            exports=[DataExportRequest.model_validate(r) for r in exports],
            deletions=[DataDeletionRequest.model_validate(r) for r in deletions],
        )

    # Logs, alerts and audit trail

    def log_security_event(self, event_type: str, user_id: Optional[str] = None,
                           details: Optional[Dict[str, Any]] = None, ip_address: Optional[str] = None,
                           user_agent: Optional[str] = None, risk_level: str = "low") -> SecurityLog:
        record = {
            "id": new_id(),
            "user_id": user_id,
            "event_type": event_type,
            "details": details or {},
            "ip_address": ip_address,
            "user_agent": user_agent,
            "risk_level": risk_level,
            "timestamp": now_iso(),
        }
        log = SecurityLog.model_validate(record)
        with self.store.transaction() as data:
            data["security_logs"].append(record)
            if len(data["security_logs"]) > MAX_SECURITY_LOGS:
                data["security_logs"] = data["security_logs"][-MAX_SECURITY_LOGS:]
        return log

    def get_security_logs(self, user_id: Optional[str] = None,
                          event_type: Optional[str] = None) -> List[SecurityLog]:
        data = self.store.snapshot()
        logs = data["security_logs"]
        if user_id:
            logs = [log for log in logs if log.get("user_id") == user_id]
        if event_type:
            logs = [log for log in logs if log.get("event_type") == event_type]
        return [SecurityLog.model_validate(log) for log in _newest_first(logs, "timestamp")]

    def create_security_alert(self, type: str, severity: str, description: str,
                              user_id: Optional[str] = None) -> SecurityAlert:
        record = {
            "id": new_id(),
            "type": type,
            "severity": severity,
            "description": description,
            "user_id": user_id,
            "resolved": False,
            "created_at": now_iso(),
        }
        alert = SecurityAlert.model_validate(record)
        with self.store.transaction() as data:
            data["security_alerts"].append(record)
        logger.warning(f"Security alert [{severity}] {type}: {description}")
        return alert

    def log_audit_event(self, user_id: str, action: str, resource: str,
                        old_values: Optional[Dict[str, Any]] = None,
                        new_values: Optional[Dict[str, Any]] = None,
                        ip_address: Optional[str] = None) -> AuditLog:
        record = {
            "id": new_id(),
            "user_id": user_id,
            "action": action,
            "resource": resource,
            "old_values": old_values,
            "new_values": new_values,
            "ip_address": ip_address,
            "timestamp": now_iso(),
        }
        audit = AuditLog.model_validate(record)
        with self.store.transaction() as data:
            data["audit_logs"].append(record)
            user_logs = [log for log in data["audit_logs"] if log["user_id"] == user_id]
            if len(user_logs) > MAX_AUDIT_LOGS_PER_USER:
                dropped = {log["id"] for log in user_logs[:-MAX_AUDIT_LOGS_PER_USER]}
                data["audit_logs"] = [log for log in data["audit_logs"] if log["id"] not in dropped]
        return audit

    def get_audit_logs(self, user_id: str) -> List[AuditLog]:
        data = self.store.snapshot()
        logs = self.store.where(data, "audit_logs", user_id=user_id)
        return [AuditLog.model_validate(log) for log in _newest_first(logs, "timestamp")]

    def generate_compliance_report(self, period_start: str, period_end: str) -> ComplianceReport:
        data = self.store.snapshot()
        return build_compliance_report(
            period_start,
            period_end,
            total_users=len(data["profiles"]),
            consents=[(c["user_id"], c["consent_type"], c["consented"]) for c in data["lgpd_consents"]],
            data_requests=len(data["data_export_requests"]) + len(data["data_deletion_requests"]),
            incidents=sum(1 for a in data["security_alerts"] if a.get("severity") in INCIDENT_SEVERITIES),
            event_types=[log["event_type"] for log in data["security_logs"]],
        )
