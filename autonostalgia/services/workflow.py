"""
Assessment request state machine.

All legal transitions live in ``TRANSITIONS``. Each write is a
compare-and-swap on ``status``: the UPDATE only matches while the row is
still in one of the expected source states, so two assessors racing to
accept the same pending request cannot both win.
"""
import math
import re
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Optional

import pytz
import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import AssessmentRequest, Profile, Vehicle
from .audit import build_audit_log, compute_diff
from .errors import NotFoundError, PermissionDenied, TransitionConflict, ValidationFailed
from .permissions import ROLE_ADMIN, ROLE_ASSESSOR, ROLE_CUSTOMER

logger = structlog.get_logger(__name__)

PENDING = "pending"
APPROVED = "approved"
COMPLETED = "completed"
REJECTED = "rejected"
CANCELLED = "cancelled"
ASSESSMENT_STATUSES = (PENDING, APPROVED, COMPLETED, REJECTED, CANCELLED)

# "scheduled" is what the assessor dashboards call an approved request
STATUS_ALIASES = {"scheduled": APPROVED}

URGENCIES = ("low", "normal", "high", "urgent")
ASSESSMENT_TYPES = ("valuation", "insurance", "pre_purchase", "condition_report", "restoration")

# action -> (allowed source states, target state, actor role)
TRANSITIONS = {
    "accept": (frozenset({PENDING}), APPROVED, ROLE_ASSESSOR),
    "reject": (frozenset({PENDING}), REJECTED, ROLE_ASSESSOR),
    "complete": (frozenset({APPROVED}), COMPLETED, ROLE_ASSESSOR),
    "cancel": (frozenset({PENDING}), CANCELLED, ROLE_CUSTOMER),
    "reschedule": (frozenset({PENDING}), PENDING, ROLE_CUSTOMER),
}

COMPLETION_DETAIL_FIELDS = (
    "chassis_number",
    "engine_number",
    "mean_mcgregor_code",
    "warranty",
    "warranty_expiration",
    "current_odometer",
    "full_service_history",
    "rebuilt_body_work",
    "rebuilt_engine_work",
    "accessories",
    "current_damages",
    "previous_body_work",
)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")


def today() -> date:
    return datetime.now(pytz.timezone(settings.tz_default)).date()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_status(value: str) -> str:
    status = (value or "").strip().lower()
    status = STATUS_ALIASES.get(status, status)
    if status not in ASSESSMENT_STATUSES:
        raise ValidationFailed(f"Invalid status '{value}'")
    return status


def parse_time(value: Optional[str], field: str) -> str:
    raw = (value or "").strip()
    match = _TIME_RE.match(raw)
    if not match:
        raise ValidationFailed(f"{field} must be HH:MM")
    return f"{match.group(1)}:{match.group(2)}"


def parse_date(value: Any, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise ValidationFailed(f"Invalid {field} format") from exc
    raise ValidationFailed(f"{field} is required")


def assessor_can_see(assessor: Profile, customer: Optional[Profile]) -> bool:
    """Province matching: an assessor without a province sees every request."""
    if not assessor.province:
        return True
    return customer is not None and customer.province == assessor.province


def _snapshot(request: AssessmentRequest, fields: Iterable[str]) -> Dict[str, Any]:
    return {f: getattr(request, f) for f in fields}


def get_request(db: Session, request_id) -> AssessmentRequest:
    try:
        req_uuid = uuid.UUID(str(request_id))
    except ValueError as exc:
        raise ValidationFailed("Invalid assessment id") from exc
    request = db.query(AssessmentRequest).filter(AssessmentRequest.id == req_uuid).first()
    if not request:
        raise NotFoundError("Assessment request not found")
    return request


def _compare_and_swap(
    db: Session,
    request: AssessmentRequest,
    expected: Iterable[str],
    values: Dict[str, Any],
    *,
    action: str,
    actor: Profile,
    conditions: Iterable[Any] = (),
) -> AssessmentRequest:
    expected = frozenset(expected)
    values = dict(values)
    values["updated_at"] = _now()
    before = _snapshot(request, values.keys())
    request_id = request.id

    result = db.execute(
        update(AssessmentRequest)
        .where(AssessmentRequest.id == request_id, AssessmentRequest.status.in_(sorted(expected)), *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        logger.info("assessment_transition_conflict", assessment_id=str(request_id), action=action)
        raise TransitionConflict(f"Cannot {action} an assessment that is no longer {'/'.join(sorted(expected))}")

    diff = compute_diff(before, values)
    diff.pop("updated_at", None)
    db.add(
        build_audit_log(
            entity_type="assessment",
            entity_id=request_id,
            action=action.upper(),
            actor_id=actor.id,
            actor_role=actor.role,
            changes_json=diff,
        )
    )
    db.commit()
    db.expire_all()
    updated = db.query(AssessmentRequest).filter(AssessmentRequest.id == request_id).one()
    logger.info(
        "assessment_transition",
        assessment_id=str(request_id),
        action=action,
        status=updated.status,
        actor_id=str(actor.id),
    )
    return updated


def _check_source(request: AssessmentRequest, action: str) -> None:
    sources, _, _ = TRANSITIONS[action]
    if request.status not in sources:
        raise TransitionConflict(f"Cannot {action} an assessment with status '{request.status}'")


def _require_role(actor: Profile, role: str) -> None:
    if actor.role != role:
        raise PermissionDenied()


def create_request(
    db: Session,
    customer: Profile,
    *,
    vehicle_id,
    assessment_type: str = "valuation",
    urgency: str = "normal",
    preferred_date: Any = None,
    preferred_time: Optional[str] = None,
    assessment_location: Optional[str] = None,
    special_requirements: Optional[str] = None,
) -> AssessmentRequest:
    _require_role(customer, ROLE_CUSTOMER)
    try:
        vehicle_uuid = uuid.UUID(str(vehicle_id))
    except ValueError as exc:
        raise ValidationFailed("Invalid vehicle id") from exc
    vehicle = db.query(Vehicle).filter(Vehicle.id == vehicle_uuid, Vehicle.user_id == customer.id).first()
    if not vehicle:
        raise NotFoundError("Vehicle not found")
    if assessment_type not in ASSESSMENT_TYPES:
        raise ValidationFailed("Invalid assessment_type")
    if urgency not in URGENCIES:
        raise ValidationFailed("Invalid urgency")

    preferred = None
    if preferred_date:
        preferred = parse_date(preferred_date, "preferred_date")
        if preferred < today():
            raise ValidationFailed("preferred_date cannot be in the past")
    time_value = parse_time(preferred_time, "preferred_time") if preferred_time else None

    request = AssessmentRequest(
        vehicle_id=vehicle.id,
        user_id=customer.id,
        status=PENDING,
        urgency=urgency,
        assessment_type=assessment_type,
        preferred_date=preferred,
        preferred_time=time_value,
        assessment_location=assessment_location,
        special_requirements=special_requirements,
    )
    db.add(request)
    db.flush()
    db.add(
        build_audit_log(
            entity_type="assessment",
            entity_id=request.id,
            action="CREATE",
            actor_id=customer.id,
            actor_role=customer.role,
            context={"vehicle_id": str(vehicle.id), "assessment_type": assessment_type, "urgency": urgency},
        )
    )
    db.commit()
    db.refresh(request)
    logger.info("assessment_created", assessment_id=str(request.id), vehicle_id=str(vehicle.id))
    return request


def accept(
    db: Session,
    assessor: Profile,
    request_id,
    *,
    scheduled_date: Any,
    scheduled_time: Optional[str],
    assessment_location: Optional[str] = None,
    assessment_notes: Optional[str] = None,
) -> AssessmentRequest:
    _require_role(assessor, ROLE_ASSESSOR)
    scheduled = parse_date(scheduled_date, "scheduled_date")
    time_value = parse_time(scheduled_time, "scheduled_time")

    request = get_request(db, request_id)
    customer = db.query(Profile).filter(Profile.id == request.user_id).first()
    if not assessor_can_see(assessor, customer):
        raise PermissionDenied("Assessment request is outside your province")
    _check_source(request, "accept")

    sources, target, _ = TRANSITIONS["accept"]
    return _compare_and_swap(
        db,
        request,
        sources,
        {
            "status": target,
            "assigned_assessor_id": assessor.id,
            "assigned_at": _now(),
            "scheduled_date": scheduled,
            "scheduled_time": time_value,
            "assessment_location": assessment_location,
            "assessment_notes": assessment_notes,
        },
        action="accept",
        actor=assessor,
    )


def reject(db: Session, assessor: Profile, request_id, *, reason: Optional[str]) -> AssessmentRequest:
    _require_role(assessor, ROLE_ASSESSOR)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A rejection reason is required")

    request = get_request(db, request_id)
    customer = db.query(Profile).filter(Profile.id == request.user_id).first()
    if not assessor_can_see(assessor, customer):
        raise PermissionDenied("Assessment request is outside your province")
    _check_source(request, "reject")

    sources, target, _ = TRANSITIONS["reject"]
    return _compare_and_swap(
        db,
        request,
        sources,
        {
            "status": target,
            "rejection_reason": reason,
            "assigned_assessor_id": assessor.id,
            "assigned_at": _now(),
        },
        action="reject",
        actor=assessor,
    )


def _parse_vehicle_value(value: Any) -> float:
    if value is None or isinstance(value, bool):
        raise ValidationFailed("vehicle_value is required")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationFailed("vehicle_value must be numeric") from exc
    if math.isnan(number) or math.isinf(number) or number <= 0:
        raise ValidationFailed("vehicle_value must be greater than zero")
    return number


def complete(
    db: Session,
    assessor: Profile,
    request_id,
    *,
    vehicle_value: Any,
    completion_date: Any,
    assessment_notes: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AssessmentRequest:
    _require_role(assessor, ROLE_ASSESSOR)
    value = _parse_vehicle_value(vehicle_value)
    completed_on = parse_date(completion_date, "completion_date")
    if completed_on > today():
        raise ValidationFailed("completion_date cannot be in the future")

    request = get_request(db, request_id)
    if request.assigned_assessor_id != assessor.id:
        raise PermissionDenied("Only the assigned assessor can complete this assessment")
    _check_source(request, "complete")

    extra = {k: v for k, v in (details or {}).items() if k in COMPLETION_DETAIL_FIELDS and v not in (None, "")}
    values = {
        "status": TRANSITIONS["complete"][1],
        "vehicle_value": value,
        "completion_date": completed_on,
        "completed_at": _now(),
        "completion_details": extra or None,
    }
    if assessment_notes is not None:
        values["assessment_notes"] = assessment_notes
    return _compare_and_swap(
        db,
        request,
        TRANSITIONS["complete"][0],
        values,
        action="complete",
        actor=assessor,
        conditions=(AssessmentRequest.assigned_assessor_id == assessor.id,),
    )


def cancel(db: Session, customer: Profile, request_id) -> AssessmentRequest:
    _require_role(customer, ROLE_CUSTOMER)
    request = get_request(db, request_id)
    if request.user_id != customer.id:
        raise NotFoundError("Assessment request not found")
    _check_source(request, "cancel")
    sources, target, _ = TRANSITIONS["cancel"]
    return _compare_and_swap(
        db, request, sources, {"status": target, "cancelled_at": _now()}, action="cancel", actor=customer
    )


def reschedule(
    db: Session,
    customer: Profile,
    request_id,
    *,
    preferred_date: Any,
    preferred_time: Optional[str] = None,
) -> AssessmentRequest:
    _require_role(customer, ROLE_CUSTOMER)
    preferred = parse_date(preferred_date, "preferred_date")
    if preferred < today():
        raise ValidationFailed("preferred_date cannot be in the past")
    time_value = parse_time(preferred_time, "preferred_time") if preferred_time else None

    request = get_request(db, request_id)
    if request.user_id != customer.id:
        raise NotFoundError("Assessment request not found")
    _check_source(request, "reschedule")
    return _compare_and_swap(
        db,
        request,
        TRANSITIONS["reschedule"][0],
        {"preferred_date": preferred, "preferred_time": time_value},
        action="reschedule",
        actor=customer,
    )


def admin_set_status(db: Session, admin: Profile, request_id, status: str) -> AssessmentRequest:
    """Moderation override. Completion still needs a recorded valuation."""
    _require_role(admin, ROLE_ADMIN)
    target = normalize_status(status)
    request = get_request(db, request_id)
    if request.status == target:
        return request
    if target == COMPLETED and request.vehicle_value is None:
        raise ValidationFailed("Cannot mark an assessment completed without a vehicle value")
    values: Dict[str, Any] = {"status": target}
    if target == CANCELLED:
        values["cancelled_at"] = _now()
    return _compare_and_swap(db, request, {request.status}, values, action="status", actor=admin)


def delete_request(db: Session, admin: Profile, request_id) -> None:
    _require_role(admin, ROLE_ADMIN)
    request = get_request(db, request_id)
    db.add(
        build_audit_log(
            entity_type="assessment",
            entity_id=request.id,
            action="DELETE",
            actor_id=admin.id,
            actor_role=admin.role,
            context={"status": request.status, "vehicle_id": str(request.vehicle_id)},
        )
    )
    db.delete(request)
    db.commit()
    logger.info("assessment_deleted", assessment_id=str(request_id), actor_id=str(admin.id))
