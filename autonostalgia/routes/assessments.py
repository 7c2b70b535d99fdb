from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import AssessmentRequest, Profile
from ..schemas.assessments import (
    AcceptRequest,
    AssessmentCreate,
    CompleteRequest,
    RejectRequest,
    RescheduleRequest,
)
from ..services import assessments, workflow
from ..services.events import publish_assessment_change
from ..services.permissions import ROLE_ASSESSOR, ROLE_CUSTOMER
from ..services.serializers import serialize_assessment


router = APIRouter(prefix="/assessments", tags=["assessments"])
logger = structlog.get_logger(__name__)


class ListFilters:
    def __init__(
        self,
        status: Optional[str] = None,
        assessment_type: Optional[str] = None,
        urgency: Optional[str] = None,
        sort_by: Optional[str] = None,
        order: str = "desc",
    ):
        self.status = status
        self.assessment_type = assessment_type
        self.urgency = urgency
        self.sort_by = sort_by
        self.order = order

    def apply(self, items):
        return assessments.filter_and_sort(
            items,
            status=self.status,
            assessment_type=self.assessment_type,
            urgency=self.urgency,
            sort_by=self.sort_by,
            order=self.order,
        )


async def _announce(db: Session, request: AssessmentRequest, action: str) -> dict:
    data = serialize_assessment(request)
    try:
        customer = db.get(Profile, request.user_id) if request.user_id else None
        await publish_assessment_change(data, action, customer.province if customer else None)
    except Exception as exc:
        logger.warning("assessment_event_failed", assessment_id=data["id"], action=action, error=str(exc))
    return data


# =====================
# Customer
# =====================


@router.post("", status_code=201)
async def create_assessment(
    req: AssessmentCreate,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_CUSTOMER)),
):
    request = workflow.create_request(
        db,
        me,
        vehicle_id=req.vehicle_id,
        assessment_type=req.assessment_type.value,
        urgency=req.urgency.value,
        preferred_date=req.preferred_date,
        preferred_time=req.preferred_time,
        assessment_location=req.assessment_location,
        special_requirements=req.special_requirements,
    )
    return await _announce(db, request, "created")


@router.get("/mine")
def my_assessments(
    filters: ListFilters = Depends(),
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_CUSTOMER)),
):
    return filters.apply(assessments.customer_history(db, me))


@router.post("/{assessment_id}/cancel")
async def cancel_assessment(
    assessment_id: str,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_CUSTOMER)),
):
    return await _announce(db, workflow.cancel(db, me, assessment_id), "cancelled")


@router.post("/{assessment_id}/reschedule")
async def reschedule_assessment(
    assessment_id: str,
    req: RescheduleRequest,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_CUSTOMER)),
):
    request = workflow.reschedule(
        db, me, assessment_id, preferred_date=req.preferred_date, preferred_time=req.preferred_time
    )
    return await _announce(db, request, "rescheduled")


# =====================
# Assessor
# =====================


@router.get("/open")
def open_requests(
    filters: ListFilters = Depends(),
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_ASSESSOR)),
):
    return filters.apply(assessments.assessor_open_requests(db, me))


@router.get("/schedule")
def my_schedule(
    filters: ListFilters = Depends(),
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_ASSESSOR)),
):
    return filters.apply(assessments.assessor_schedule(db, me))


@router.get("/history")
def my_history(
    filters: ListFilters = Depends(),
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_ASSESSOR)),
):
    return filters.apply(assessments.assessor_history(db, me))


@router.get("/home")
def assessor_home(db: Session = Depends(get_db), me: Profile = Depends(require_roles(ROLE_ASSESSOR))):
    return assessments.assessor_home(db, me)


@router.post("/{assessment_id}/accept")
async def accept_assessment(
    assessment_id: str,
    req: AcceptRequest,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_ASSESSOR)),
):
    request = workflow.accept(
        db,
        me,
        assessment_id,
        scheduled_date=req.scheduled_date,
        scheduled_time=req.scheduled_time,
        assessment_location=req.assessment_location,
        assessment_notes=req.assessment_notes,
    )
    return await _announce(db, request, "accepted")


@router.post("/{assessment_id}/reject")
async def reject_assessment(
    assessment_id: str,
    req: RejectRequest,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_ASSESSOR)),
):
    return await _announce(db, workflow.reject(db, me, assessment_id, reason=req.reason), "rejected")


@router.post("/{assessment_id}/complete")
async def complete_assessment(
    assessment_id: str,
    req: CompleteRequest,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_ASSESSOR)),
):
    details = req.model_dump(exclude={"vehicle_value", "completion_date", "assessment_notes"}, exclude_none=True)
    request = workflow.complete(
        db,
        me,
        assessment_id,
        vehicle_value=req.vehicle_value,
        completion_date=req.completion_date,
        assessment_notes=req.assessment_notes,
        details=details,
    )
    return await _announce(db, request, "completed")


# =====================
# Shared
# =====================


@router.get("/{assessment_id}")
def get_assessment(assessment_id: str, db: Session = Depends(get_db), me: Profile = Depends(get_current_user)):
    return assessments.get_visible_assessment(db, me, assessment_id)
