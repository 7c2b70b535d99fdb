import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.security import require_permissions, require_roles
from ..db import get_db
from ..models.models import Profile, Vehicle
from ..schemas.admin import RoleUpdate, StatusUpdate, SuspendRequest
from ..services import applications, assessments, audit, users, workflow
from ..services.events import publish_assessment_change
from ..services.permissions import ROLE_ADMIN
from ..services.serializers import serialize_assessment, serialize_profile, serialize_vehicle
from .assessments import ListFilters


router = APIRouter(prefix="/admin", tags=["admin"])
logger = structlog.get_logger(__name__)

admin_only = require_roles(ROLE_ADMIN)


def _parse_uuid(value: Optional[str], label: str) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label}") from exc


# =====================
# Assessments
# =====================


@router.get("/assessments")
def all_assessments(
    filters: ListFilters = Depends(),
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canViewAllData")),
):
    return filters.apply(assessments.all_assessments(db))


@router.put("/assessments/{assessment_id}/status")
async def set_assessment_status(
    assessment_id: str,
    req: StatusUpdate,
    db: Session = Depends(get_db),
    me: Profile = Depends(admin_only),
):
    request = workflow.admin_set_status(db, me, assessment_id, req.status)
    data = serialize_assessment(request)
    try:
        customer = db.get(Profile, request.user_id) if request.user_id else None
        await publish_assessment_change(data, "status_changed", customer.province if customer else None)
    except Exception as exc:
        logger.warning("assessment_event_failed", assessment_id=data["id"], error=str(exc))
    return data


@router.delete("/assessments/{assessment_id}")
def delete_assessment(assessment_id: str, db: Session = Depends(get_db), me: Profile = Depends(admin_only)):
    workflow.delete_request(db, me, assessment_id)
    return {"status": "ok"}


# =====================
# Users
# =====================


@router.get("/users")
def list_users(
    role: Optional[str] = None,
    account_status: Optional[str] = None,
    q: Optional[str] = None,
    include_deleted: bool = False,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canViewAllUsers")),
):
    return users.list_profiles(db, role=role, account_status=account_status, q=q, include_deleted=include_deleted)


@router.post("/users/{user_id}/suspend")
def suspend_user(
    user_id: str,
    req: SuspendRequest,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canSuspendUsers")),
):
    return serialize_profile(users.suspend(db, me, user_id, req.reason), private=True)


@router.post("/users/{user_id}/activate")
def activate_user(
    user_id: str,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canSuspendUsers")),
):
    return serialize_profile(users.activate(db, me, user_id), private=True)


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canDeleteUsers")),
):
    return serialize_profile(users.soft_delete(db, me, user_id), private=True)


@router.put("/users/{user_id}/role")
def change_user_role(
    user_id: str,
    req: RoleUpdate,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canEditUserRoles")),
):
    return serialize_profile(users.change_role(db, me, user_id, req.role), private=True)


@router.get("/assessors")
def list_assessors(db: Session = Depends(get_db), me: Profile = Depends(require_permissions("canManageAssessors"))):
    return users.list_assessors(db)


@router.get("/customers")
def list_customers(db: Session = Depends(get_db), me: Profile = Depends(require_permissions("canViewAllUsers"))):
    return users.list_customers(db)


# =====================
# Assessor applications
# =====================


@router.get("/assessor-requests")
def list_assessor_requests(
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canViewAssessorRequests")),
):
    return applications.list_applications(db, status)


@router.post("/assessor-requests/{application_id}/approve")
def approve_assessor_request(
    application_id: str,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canApproveAssessors")),
):
    return applications.serialize_application(db, applications.approve(db, me, application_id))


@router.post("/assessor-requests/{application_id}/reject")
def reject_assessor_request(
    application_id: str,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canRejectAssessors")),
):
    return applications.serialize_application(db, applications.reject(db, me, application_id))


# =====================
# Stats, vehicles and reports
# =====================


@router.get("/stats")
def stats(db: Session = Depends(get_db), me: Profile = Depends(require_permissions("canViewSystemStats"))):
    return assessments.admin_stats(db)


@router.get("/vehicles")
def list_vehicles(
    customer_id: Optional[str] = None,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canViewAllData")),
):
    q = db.query(Vehicle)
    owner = _parse_uuid(customer_id, "customer_id")
    if owner:
        q = q.filter(Vehicle.user_id == owner)
    return [serialize_vehicle(v) for v in q.order_by(Vehicle.make.asc(), Vehicle.model.asc()).all()]


@router.get("/reports")
def search_reports(
    vehicle_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_permissions("canViewAllData")),
):
    return assessments.report_search(
        db,
        vehicle_id=_parse_uuid(vehicle_id, "vehicle_id"),
        customer_id=_parse_uuid(customer_id, "customer_id"),
    )


@router.get("/audit-logs")
def audit_logs(
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
    me: Profile = Depends(admin_only),
):
    rows = audit.get_audit_logs(
        db,
        entity_type=entity_type,
        entity_id=_parse_uuid(entity_id, "entity_id"),
        limit=max(1, min(limit, 500)),
        offset=max(0, offset),
    )
    return [
        {
            "id": str(a.id),
            "entity_type": a.entity_type,
            "entity_id": str(a.entity_id),
            "action": a.action,
            "actor_id": str(a.actor_id) if a.actor_id else None,
            "actor_role": a.actor_role,
            "changes": a.changes_json,
            "context": a.context,
            "timestamp": a.timestamp_utc.isoformat() if a.timestamp_utc else None,
        }
        for a in rows
    ]
