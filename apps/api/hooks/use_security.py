"""LGPD and security hooks: consents, privacy, data-rights requests, logs."""
from typing import Any, Dict, List, Optional

from core.container import SECURITY_SERVICE, container
from hooks.query_client import Mutation, QueryResult, get_query_client
from schemas import (
    AuditLog,
    DataDeletionRequest,
    DataExportRequest,
    DataRequests,
    LGPDConsent,
    PrivacySettings,
    PrivacySettingsUpdate,
    RateLimitStatus,
    SecurityLog,
)
from services.security_service import ISecurityService

REQUIRED_CONSENTS = ("data_processing", "analytics")


def _security() -> ISecurityService:
    return container.resolve(SECURITY_SERVICE)


def use_privacy_settings(user_id: Optional[str]) -> QueryResult[Optional[PrivacySettings]]:
    return get_query_client().use_query(
        ("privacy-settings", user_id),
        lambda: _security().get_privacy_settings(user_id),
        enabled=bool(user_id),
    )


def use_update_privacy_settings(user_id: str) -> Mutation[PrivacySettings]:
    def update(updates: PrivacySettingsUpdate) -> PrivacySettings:
        security = _security()
        settings = security.update_privacy_settings(user_id, updates)
        security.log_audit_event(
            user_id, "update", "privacy_settings",
            new_values=updates.model_dump(exclude_unset=True),
        )
        return settings

    return get_query_client().use_mutation(
        update,
        invalidates=(("privacy-settings",), ("audit-logs",)),
        success_toast="Privacy settings updated",
        error_toast="Could not update privacy settings",
    )


def use_consents(user_id: Optional[str]) -> QueryResult[List[LGPDConsent]]:
    return get_query_client().use_query(
        ("consents", user_id),
        lambda: _security().get_consents(user_id),
        enabled=bool(user_id),
    )


def use_record_consent(user_id: str) -> Mutation[LGPDConsent]:
    def record(consent_type: str, consented: bool, ip_address: Optional[str] = None,
               user_agent: Optional[str] = None) -> LGPDConsent:
        return _security().record_consent(user_id, consent_type, consented, ip_address, user_agent)

    return get_query_client().use_mutation(
        record,
        invalidates=(("consents",),),
        success_toast="Consent recorded",
        error_toast="Could not record consent",
    )


def use_data_requests(user_id: Optional[str]) -> QueryResult[DataRequests]:
    return get_query_client().use_query(
        ("data-requests", user_id),
        lambda: _security().get_data_requests(user_id),
        enabled=bool(user_id),
    )


def use_request_data_export(user_id: str) -> Mutation[DataExportRequest]:
    return get_query_client().use_mutation(
        lambda: _security().request_data_export(user_id),
        invalidates=(("data-requests",),),
        success_toast="Data export requested. The download link is valid for 7 days.",
        error_toast="Could not request data export",
    )


def use_request_data_deletion(user_id: str) -> Mutation[DataDeletionRequest]:
    return get_query_client().use_mutation(
        lambda reason=None: _security().request_data_deletion(user_id, reason),
        invalidates=(("data-requests",),),
        success_toast="Deletion requested. Your data will be removed in 30 days.",
        error_toast="Could not request data deletion",
    )


def use_security_logs(user_id: Optional[str] = None,
                      event_type: Optional[str] = None) -> QueryResult[List[SecurityLog]]:
    return get_query_client().use_query(
        ("security-logs", user_id, event_type),
        lambda: _security().get_security_logs(user_id, event_type),
    )


def use_audit_logs(user_id: Optional[str]) -> QueryResult[List[AuditLog]]:
    return get_query_client().use_query(
        ("audit-logs", user_id),
        lambda: _security().get_audit_logs(user_id),
        enabled=bool(user_id),
    )


def use_rate_limit(identifier: Optional[str], endpoint: str) -> QueryResult[RateLimitStatus]:
    # Counters move on every request, so this one is never cached
    if not identifier:
        return QueryResult()
    client = get_query_client()
    client.invalidate_queries(("rate-limit", identifier, endpoint))
    return client.use_query(
        ("rate-limit", identifier, endpoint),
        lambda: _security().check_rate_limit(identifier, endpoint),
    )


def lgpd_compliance_status(consents: Optional[List[LGPDConsent]],
                           settings: Optional[PrivacySettings]) -> Dict[str, Any]:
    """Which required consents a user has given, with recommendations."""
    if consents is None or settings is None:
        return {
            "is_compliant": False,
            "missing_consents": [],
            "recommendations": ["Configure your privacy preferences"],
            "total_consents": len(REQUIRED_CONSENTS),
            "given_consents": 0,
        }
    given = {c.consent_type for c in consents if c.consented}
    missing = [c for c in REQUIRED_CONSENTS if c not in given]
    recommendations = []
    if missing:
        recommendations.append("Complete every required consent")
    if not settings.newsletter_subscription:
        recommendations.append("Consider subscribing to the newsletter for important updates")
    return {
        "is_compliant": not missing,
        "missing_consents": missing,
        "recommendations": recommendations,
        "total_consents": len(REQUIRED_CONSENTS),
        "given_consents": len(given & set(REQUIRED_CONSENTS)),
    }


def use_lgpd_compliance(user_id: Optional[str]) -> Dict[str, Any]:
    consents = use_consents(user_id).data
    settings = use_privacy_settings(user_id).data
    return {**lgpd_compliance_status(consents, settings), "consents": consents, "privacy_settings": settings}


def security_dashboard_stats(security_logs: List[SecurityLog], audit_logs: List[AuditLog],
                             data_requests: Optional[DataRequests]) -> Dict[str, Any]:
    failed_logins = sum(1 for log in security_logs if log.event_type == "failed_login")
    suspicious = sum(1 for log in security_logs if log.risk_level == "high")
    pending = 0
    if data_requests:
        pending = sum(1 for r in data_requests.exports if r.status == "pending")
        pending += sum(1 for r in data_requests.deletions if r.status == "pending")
    return {
        "recent_security_events": security_logs[:5],
        "recent_audit_events": audit_logs[:5],
        "failed_logins": failed_logins,
        "suspicious_activity": suspicious,
        "pending_data_requests": pending,
        "security_score": max(0, 100 - failed_logins * 5 - suspicious * 10),
    }


def use_security_dashboard(user_id: Optional[str]) -> Dict[str, Any]:
    return security_dashboard_stats(
        use_security_logs(user_id).data or [],
        use_audit_logs(user_id).data or [],
        use_data_requests(user_id).data,
    )
