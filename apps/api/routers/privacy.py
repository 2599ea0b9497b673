"""
LGPD endpoints: consents, privacy settings, data-rights requests and the
personal security dashboard.

Every endpoint acts on the signed-in user's own records.
"""
from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
import logging

from core.auth import get_current_user
from hooks import use_auth, use_security
from schemas import (
    AuditLog,
    ConsentType,
    DataDeletionRequest,
    DataExportRequest,
    DataRequests,
    LGPDConsent,
    PrivacySettings,
    PrivacySettingsUpdate,
    Profile,
    SecurityLog,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/privacy", tags=["privacy"])


class ConsentRequest(BaseModel):
    consent_type: ConsentType
    consented: bool


class DeletionRequest(BaseModel):
    reason: Optional[str] = None


@router.get("/consents", response_model=List[LGPDConsent])
def list_consents(current_user: Profile = Depends(get_current_user)):
    return use_security.use_consents(current_user.id).unwrap()


@router.post("/consents", response_model=LGPDConsent, status_code=status.HTTP_201_CREATED)
def record_consent(body: ConsentRequest, request: Request, current_user: Profile = Depends(get_current_user)):
    """Append a consent decision. Earlier decisions are kept as history."""
    return use_security.use_record_consent(current_user.id).mutate_or_raise(
        body.consent_type,
        body.consented,
        request.client.host if request.client else None,
        request.headers.get("user-agent"),
    )


@router.get("/settings", response_model=Optional[PrivacySettings])
def get_settings(current_user: Profile = Depends(get_current_user)):
    return use_security.use_privacy_settings(current_user.id).unwrap()


@router.patch("/settings", response_model=PrivacySettings)
def update_settings(updates: PrivacySettingsUpdate, current_user: Profile = Depends(get_current_user)):
    return use_security.use_update_privacy_settings(current_user.id).mutate_or_raise(updates)


@router.post("/export", response_model=DataExportRequest, status_code=status.HTTP_202_ACCEPTED)
def request_export(current_user: Profile = Depends(get_current_user)):
    return use_security.use_request_data_export(current_user.id).mutate_or_raise()


@router.get("/export/data")
def export_my_data(current_user: Profile = Depends(get_current_user)) -> Dict[str, Any]:
    """Everything stored about the signed-in user, as one JSON document."""
    user_id = current_user.id
    account = use_auth.use_auth(user_id)
    return {
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "profile": account["profile"],
        "trainer_profile": account["trainer_profile"],
        "student_profile": account["student_profile"],
        "consents": use_security.use_consents(user_id).unwrap(),
        "privacy_settings": use_security.use_privacy_settings(user_id).unwrap(),
        "data_requests": use_security.use_data_requests(user_id).unwrap(),
        "audit_logs": use_security.use_audit_logs(user_id).unwrap(),
        "security_logs": use_security.use_security_logs(user_id).unwrap(),
    }


@router.post("/deletion", response_model=DataDeletionRequest, status_code=status.HTTP_202_ACCEPTED)
def request_deletion(body: DeletionRequest, current_user: Profile = Depends(get_current_user)):
    """Schedule account deletion 30 days out."""
    return use_security.use_request_data_deletion(current_user.id).mutate_or_raise(body.reason)


@router.get("/requests", response_model=DataRequests)
def list_requests(current_user: Profile = Depends(get_current_user)):
    return use_security.use_data_requests(current_user.id).unwrap()


@router.get("/audit-logs", response_model=List[AuditLog])
def my_audit_logs(current_user: Profile = Depends(get_current_user)):
    return use_security.use_audit_logs(current_user.id).unwrap()


@router.get("/security-logs", response_model=List[SecurityLog])
def my_security_logs(current_user: Profile = Depends(get_current_user)):
    return use_security.use_security_logs(current_user.id).unwrap()


@router.get("/compliance")
def compliance_status(current_user: Profile = Depends(get_current_user)) -> Dict[str, Any]:
    return use_security.use_lgpd_compliance(current_user.id)


@router.get("/dashboard")
def security_dashboard(current_user: Profile = Depends(get_current_user)) -> Dict[str, Any]:
    return use_security.use_security_dashboard(current_user.id)
