"""
Admin endpoints.

Trainer management (search, plan changes, credit grants, deletion), the
payments, settings and reports consoles, platform-wide security and LGPD
reporting, and maintenance of the local demo dataset. Every endpoint
requires the admin role.
"""
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
import logging

from core.auth import require_admin
from core.container import LOCAL_STORAGE, SECURITY_SERVICE, container
from core.exceptions import UnsupportedOperationError
from hooks import use_ai, use_security, use_trainers
from hooks.query_client import get_query_client
from schemas import (
    AuditLog,
    ComplianceReport,
    PaymentRecord,
    PaymentStats,
    PlatformReport,
    Profile,
    SecurityAlert,
    SecurityLog,
    SystemSetting,
    TrainerPlan,
    TrainerProfile,
    TrainerSummary,
)
from services.local_store import LocalStorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


class PlanChangeRequest(BaseModel):
    plan: TrainerPlan


class CreditGrantRequest(BaseModel):
    amount: int = Field(gt=0, le=10000)
    description: Optional[str] = None


class AlertRequest(BaseModel):
    type: str
    severity: Literal["low", "medium", "high", "critical"]
    description: str
    user_id: Optional[str] = None


class SettingUpdateRequest(BaseModel):
    value: str = Field(max_length=500)


class VariationRequest(BaseModel):
    variation: Literal["empty", "minimal", "full"]


def _local_store() -> LocalStorageService:
    if not container.is_bound(LOCAL_STORAGE):
        raise UnsupportedOperationError("Local data management requires the local data source")
    return container.resolve(LOCAL_STORAGE)


def _audit(admin: Profile, action: str, resource: str, **new_values: Any) -> None:
    container.resolve(SECURITY_SERVICE).log_audit_event(
        admin.id, action, resource, new_values=new_values or None,
    )


# ---------------------------------------------------------------------------
# Trainers
# ---------------------------------------------------------------------------

@router.get("/trainers", response_model=List[TrainerSummary])
def list_trainers(
    search: str = Query("", description="Matches first name, last name or email"),
    plan: str = Query("all", pattern="^(all|free|pro|elite)$"),
    admin: Profile = Depends(require_admin),
):
    return use_trainers.use_trainers_management(search, plan).unwrap()


@router.put("/trainers/{trainer_id}/plan", response_model=TrainerProfile)
def change_trainer_plan(trainer_id: str, body: PlanChangeRequest, admin: Profile = Depends(require_admin)):
    """Move a trainer to a tier; student limit and credits reset to the tier's values."""
    profile = use_trainers.use_admin_update_trainer_plan().mutate_or_raise(trainer_id, body.plan)
    _audit(admin, "update_plan", "trainer_profiles", trainer_id=trainer_id, plan=body.plan)
    return profile


@router.post("/trainers/{trainer_id}/credits")
def grant_credits(trainer_id: str, body: CreditGrantRequest, admin: Profile = Depends(require_admin)) -> Dict[str, Any]:
    balance = use_ai.use_add_credits(trainer_id).mutate_or_raise(
        body.amount, "bonus", body.description or f"Granted by admin {admin.id}"
    )
    _audit(admin, "grant_credits", "trainer_profiles", trainer_id=trainer_id, amount=body.amount)
    return {"trainer_id": trainer_id, "balance": balance}


@router.delete("/trainers/{trainer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_trainer(trainer_id: str, admin: Profile = Depends(require_admin)):
    """Delete a trainer and everything they own. Their students are kept, unassigned."""
    use_trainers.use_delete_trainer().mutate_or_raise(trainer_id)
    _audit(admin, "delete", "trainers", trainer_id=trainer_id)
    logger.warning(f"Trainer {trainer_id} deleted by admin {admin.id}")


# ---------------------------------------------------------------------------
# Payments, settings and reports
# ---------------------------------------------------------------------------

@router.get("/payments", response_model=List[PaymentRecord])
def list_payments(
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(succeeded|pending|failed|canceled)$"),
    admin: Profile = Depends(require_admin),
):
    return use_trainers.use_admin_payments(status_filter).unwrap()


@router.get("/payments/stats", response_model=PaymentStats)
def payment_stats(admin: Profile = Depends(require_admin)):
    return use_trainers.use_payment_stats().unwrap()


@router.get("/settings", response_model=List[SystemSetting])
def system_settings(admin: Profile = Depends(require_admin)):
    return use_trainers.use_system_settings().unwrap()


@router.put("/settings/{key}", response_model=SystemSetting)
def update_system_setting(key: str, body: SettingUpdateRequest, admin: Profile = Depends(require_admin)):
    setting = use_trainers.use_update_system_setting().mutate_or_raise(key, body.value)
    _audit(admin, "update", "system_settings", key=key, value=body.value)
    return setting


@router.get("/reports", response_model=PlatformReport)
def platform_report(admin: Profile = Depends(require_admin)):
    return use_trainers.use_platform_report().unwrap()


# ---------------------------------------------------------------------------
# Security and compliance
# ---------------------------------------------------------------------------

@router.get("/security/logs", response_model=List[SecurityLog])
def security_logs(
    user_id: Optional[str] = None,
    event_type: Optional[str] = None,
    admin: Profile = Depends(require_admin),
):
    return use_security.use_security_logs(user_id, event_type).unwrap()


@router.get("/security/audit-logs/{user_id}", response_model=List[AuditLog])
def audit_logs(user_id: str, admin: Profile = Depends(require_admin)):
    return use_security.use_audit_logs(user_id).unwrap()


@router.post("/security/alerts", response_model=SecurityAlert, status_code=status.HTTP_201_CREATED)
def create_alert(body: AlertRequest, admin: Profile = Depends(require_admin)):
    return container.resolve(SECURITY_SERVICE).create_security_alert(
        body.type, body.severity, body.description, body.user_id
    )


@router.get("/compliance/report", response_model=ComplianceReport)
def compliance_report(
    period_start: str = Query(..., description="ISO date"),
    period_end: str = Query(..., description="ISO date"),
    admin: Profile = Depends(require_admin),
):
    return container.resolve(SECURITY_SERVICE).generate_compliance_report(period_start, period_end)


# ---------------------------------------------------------------------------
# Local data maintenance
# ---------------------------------------------------------------------------

@router.get("/local-data/export")
def export_local_data(admin: Profile = Depends(require_admin)) -> Dict[str, Any]:
    """The local dataset in the relational schema's shape, for migrating to the remote backend."""
    return _local_store().export_data()


@router.post("/local-data/variation")
def apply_variation(body: VariationRequest, admin: Profile = Depends(require_admin)) -> Dict[str, Any]:
    data = _local_store().add_data_variation(body.variation)
    get_query_client().clear()
    return {"variation": body.variation, "counts": {k: len(v) for k, v in data.items() if isinstance(v, list)}}


@router.delete("/local-data", status_code=status.HTTP_204_NO_CONTENT)
def clear_local_data(admin: Profile = Depends(require_admin)):
    """Drop the dataset and the stored session. Demo data is reseeded on next access."""
    _local_store().clear_data()
    get_query_client().clear()


@router.get("/local-data/demo-credentials")
def demo_credentials(admin: Profile = Depends(require_admin)) -> Dict[str, Dict[str, str]]:
    return _local_store().get_demo_credentials()
