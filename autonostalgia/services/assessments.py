"""
Read-side views over assessment requests.

Each view runs its own filtered, ordered query and resolves vehicle and
profile references through ``hydrate``.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.models import AssessmentRequest, AssessorRequest, Profile, Vehicle
from .errors import NotFoundError, PermissionDenied, ValidationFailed
from .joins import Hydrated, Reference, hydrate
from .permissions import ROLE_ADMIN, ROLE_ASSESSOR, ROLE_CUSTOMER, ROLES
from .serializers import serialize_hydrated_assessment
from .workflow import (
    APPROVED,
    ASSESSMENT_STATUSES,
    COMPLETED,
    PENDING,
    REJECTED,
    assessor_can_see,
    get_request,
    normalize_status,
)

VEHICLE = Reference("vehicle", Vehicle, "vehicle_id")
CUSTOMER = Reference("customer", Profile, "user_id")
ASSESSOR = Reference("assessor", Profile, "assigned_assessor_id")
ALL_REFERENCES = (VEHICLE, CUSTOMER, ASSESSOR)

URGENCY_ORDER = {"low": 1, "normal": 2, "high": 3, "urgent": 4}
STATUS_ORDER = {"pending": 1, "approved": 2, "rejected": 3, "completed": 4, "cancelled": 5}
SORT_FIELDS = (
    "created_at",
    "updated_at",
    "urgency",
    "status",
    "preferred_date",
    "scheduled_date",
    "completion_date",
    "vehicle_value",
    "report_generated_at",
)

HOME_RECENT_LIMIT = 5


def _serialize(items: List[Hydrated]) -> List[Dict[str, Any]]:
    return [serialize_hydrated_assessment(i) for i in items]


def _visible_pending(db: Session, assessor: Profile) -> List[Hydrated]:
    rows = (
        db.query(AssessmentRequest)
        .filter(AssessmentRequest.status == PENDING)
        .order_by(AssessmentRequest.created_at.desc())
        .all()
    )
    items = hydrate(db, rows, VEHICLE, CUSTOMER, ASSESSOR)
    return [i for i in items if assessor_can_see(assessor, i["customer"])]


def customer_history(db: Session, customer: Profile) -> List[Dict[str, Any]]:
    rows = (
        db.query(AssessmentRequest)
        .filter(AssessmentRequest.user_id == customer.id)
        .order_by(AssessmentRequest.created_at.desc())
        .all()
    )
    return _serialize(hydrate(db, rows, *ALL_REFERENCES))


def assessor_open_requests(db: Session, assessor: Profile) -> List[Dict[str, Any]]:
    return _serialize(_visible_pending(db, assessor))


def assessor_schedule(db: Session, assessor: Profile) -> List[Dict[str, Any]]:
    rows = (
        db.query(AssessmentRequest)
        .filter(
            AssessmentRequest.status == APPROVED,
            AssessmentRequest.assigned_assessor_id == assessor.id,
        )
        .order_by(AssessmentRequest.scheduled_date.asc(), AssessmentRequest.scheduled_time.asc())
        .all()
    )
    return _serialize(hydrate(db, rows, *ALL_REFERENCES))


def assessor_history(db: Session, assessor: Profile) -> List[Dict[str, Any]]:
    rows = (
        db.query(AssessmentRequest)
        .filter(
            AssessmentRequest.status.in_((COMPLETED, REJECTED)),
            AssessmentRequest.assigned_assessor_id == assessor.id,
        )
        .order_by(AssessmentRequest.updated_at.desc(), AssessmentRequest.created_at.desc())
        .all()
    )
    return _serialize(hydrate(db, rows, *ALL_REFERENCES))


def assessor_home(db: Session, assessor: Profile) -> Dict[str, Any]:
    visible = _visible_pending(db, assessor)
    counts = dict(
        db.query(AssessmentRequest.status, func.count(AssessmentRequest.id))
        .filter(AssessmentRequest.assigned_assessor_id == assessor.id)
        .group_by(AssessmentRequest.status)
        .all()
    )
    return {
        "counts": {
            "open": len(visible),
            "scheduled": counts.get(APPROVED, 0),
            "completed": counts.get(COMPLETED, 0),
            "rejected": counts.get(REJECTED, 0),
        },
        "recent_requests": _serialize(visible[:HOME_RECENT_LIMIT]),
    }


def all_assessments(db: Session) -> List[Dict[str, Any]]:
    rows = db.query(AssessmentRequest).order_by(AssessmentRequest.created_at.desc()).all()
    return _serialize(hydrate(db, rows, *ALL_REFERENCES))


def report_search(db: Session, vehicle_id=None, customer_id=None) -> List[Dict[str, Any]]:
    if not vehicle_id and not customer_id:
        raise ValidationFailed("Select a vehicle or a client")
    query = db.query(AssessmentRequest).filter(AssessmentRequest.report_url.isnot(None))
    if vehicle_id:
        query = query.filter(AssessmentRequest.vehicle_id == vehicle_id)
    if customer_id:
        query = query.filter(AssessmentRequest.user_id == customer_id)
    rows = query.order_by(AssessmentRequest.report_generated_at.desc()).all()
    return _serialize(hydrate(db, rows, *ALL_REFERENCES))


def get_visible_assessment(db: Session, viewer: Profile, request_id) -> Dict[str, Any]:
    """Single hydrated request, subject to the viewer's role."""
    request = get_request(db, request_id)
    item = hydrate(db, [request], *ALL_REFERENCES)[0]
    if viewer.role == ROLE_ADMIN:
        return serialize_hydrated_assessment(item)
    if viewer.role == ROLE_CUSTOMER:
        if request.user_id != viewer.id:
            raise NotFoundError("Assessment request not found")
        return serialize_hydrated_assessment(item)
    if viewer.role == ROLE_ASSESSOR:
        if request.assigned_assessor_id == viewer.id:
            return serialize_hydrated_assessment(item)
        if request.status == PENDING and assessor_can_see(viewer, item["customer"]):
            return serialize_hydrated_assessment(item)
    raise PermissionDenied()


def _sort_value(item: Dict[str, Any], sort_by: str):
    value = item.get(sort_by)
    if sort_by == "urgency":
        return URGENCY_ORDER.get(value, 0)
    if sort_by == "status":
        return STATUS_ORDER.get(value, 99)
    return value


def filter_and_sort(
    items: List[Dict[str, Any]],
    status: Optional[str] = None,
    assessment_type: Optional[str] = None,
    urgency: Optional[str] = None,
    sort_by: Optional[str] = None,
    order: str = "desc",
) -> List[Dict[str, Any]]:
    """List-view filters. Without sort_by the view's own order is kept; rows missing the sort key go last."""
    if sort_by is not None and sort_by not in SORT_FIELDS:
        raise ValidationFailed(f"Cannot sort by '{sort_by}'")
    if order not in ("asc", "desc"):
        raise ValidationFailed("order must be asc or desc")

    result = list(items)
    if status and status != "all":
        wanted = normalize_status(status)
        result = [i for i in result if i.get("status") == wanted]
    if assessment_type and assessment_type != "all":
        result = [i for i in result if i.get("assessment_type") == assessment_type]
    if urgency and urgency != "all":
        result = [i for i in result if i.get("urgency") == urgency]

    if sort_by is None:
        return result
    present = [i for i in result if _sort_value(i, sort_by) is not None]
    missing = [i for i in result if _sort_value(i, sort_by) is None]
    present.sort(key=lambda i: _sort_value(i, sort_by), reverse=(order == "desc"))
    return present + missing


def admin_stats(db: Session) -> Dict[str, Any]:
    applications = dict(
        db.query(AssessorRequest.status, func.count(AssessorRequest.id)).group_by(AssessorRequest.status).all()
    )
    assessments = dict(
        db.query(AssessmentRequest.status, func.count(AssessmentRequest.id))
        .group_by(AssessmentRequest.status)
        .all()
    )
    users = dict(
        db.query(Profile.role, func.count(Profile.id))
        .filter(Profile.deleted_at.is_(None))
        .group_by(Profile.role)
        .all()
    )
    return {
        "assessor_requests": {
            "pending": applications.get("pending", 0),
            "approved": applications.get("approved", 0),
            "rejected": applications.get("rejected", 0),
            "total": sum(applications.values()),
        },
        "assessments": {
            **{s: assessments.get(s, 0) for s in ASSESSMENT_STATUSES},
            "total": sum(assessments.values()),
        },
        "users": {
            **{r: users.get(r, 0) for r in ROLES},
            "total": sum(users.values()),
        },
        "generated_at": datetime.utcnow().isoformat(),
    }
