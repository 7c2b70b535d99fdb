"""
Assessor applications.

Approval flips the application and promotes the applicant's profile in a
single transaction.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.models import AssessorRequest, Profile
from . import email
from .audit import build_audit_log
from .errors import NotFoundError, PersistenceError, ValidationFailed
from .joins import Reference, hydrate
from .permissions import ROLE_ASSESSOR, STATUS_ACTIVE
from .serializers import serialize_assessor_request

logger = structlog.get_logger(__name__)

APPLICATION_STATUSES = ("pending", "approved", "rejected")
APPLICATION_STATUS_ORDER = {"pending": 1, "approved": 2, "rejected": 3}
PROFILE = Reference("profile", Profile, "user_id")


def create_application(
    db: Session,
    profile: Profile,
    *,
    phone_number: Optional[str] = None,
    location: Optional[str] = None,
    contact_method: Optional[str] = None,
    experience: Optional[str] = None,
) -> AssessorRequest:
    """Added to the caller's transaction; the caller commits."""
    application = AssessorRequest(
        user_id=profile.id,
        phone_number=phone_number or profile.phone,
        location=location or ", ".join(p for p in (profile.city, profile.province) if p) or None,
        contact_method=contact_method or profile.contact_method,
        experience=experience,
        status="pending",
    )
    db.add(application)
    return application


def list_applications(db: Session, status: Optional[str] = None) -> List[Dict[str, Any]]:
    query = db.query(AssessorRequest)
    if status and status != "all":
        if status not in APPLICATION_STATUSES:
            raise ValidationFailed(f"Invalid status '{status}'")
        query = query.filter(AssessorRequest.status == status)
    rows = query.order_by(AssessorRequest.created_at.desc()).all()
    items = [serialize_assessor_request(i) for i in hydrate(db, rows, PROFILE)]
    # pending first, newest first within a status
    items.sort(key=lambda i: APPLICATION_STATUS_ORDER.get(i["status"], 99))
    return items


def _get_application(db: Session, application_id) -> AssessorRequest:
    try:
        app_uuid = uuid.UUID(str(application_id))
    except ValueError as exc:
        raise ValidationFailed("Invalid application id") from exc
    application = db.query(AssessorRequest).filter(AssessorRequest.id == app_uuid).first()
    if not application:
        raise NotFoundError("Assessor application not found")
    return application


def approve(
    db: Session,
    admin: Profile,
    application_id,
    client: Optional[httpx.Client] = None,
) -> AssessorRequest:
    application = _get_application(db, application_id)
    profile = db.query(Profile).filter(Profile.id == application.user_id).first()
    if not profile:
        raise NotFoundError("Applicant profile not found")

    now = datetime.now(timezone.utc)
    try:
        previous = {"status": application.status, "role": profile.role, "account_status": profile.account_status}
        application.status = "approved"
        application.reviewed_by = admin.id
        application.reviewed_at = now
        profile.role = ROLE_ASSESSOR
        profile.account_status = STATUS_ACTIVE
        profile.updated_at = now
        db.add(
            build_audit_log(
                entity_type="assessor_request",
                entity_id=application.id,
                action="APPROVE",
                actor_id=admin.id,
                actor_role=admin.role,
                changes_json={
                    "before": previous,
                    "after": {"status": "approved", "role": ROLE_ASSESSOR, "account_status": STATUS_ACTIVE},
                },
                context={"user_id": str(profile.id)},
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("assessor_approval_failed", application_id=str(application_id), error=str(exc))
        raise PersistenceError("Failed to approve assessor application") from exc

    db.refresh(application)
    db.refresh(profile)
    logger.info("assessor_approved", application_id=str(application.id), user_id=str(profile.id))
    email.send_assessor_approval(db, profile, client=client)
    return application


def reject(db: Session, admin: Profile, application_id) -> AssessorRequest:
    """Role and account status are left as they are."""
    application = _get_application(db, application_id)
    previous = application.status
    application.status = "rejected"
    application.reviewed_by = admin.id
    application.reviewed_at = datetime.now(timezone.utc)
    db.add(
        build_audit_log(
            entity_type="assessor_request",
            entity_id=application.id,
            action="REJECT",
            actor_id=admin.id,
            actor_role=admin.role,
            changes_json={"status": {"before": previous, "after": "rejected"}},
        )
    )
    db.commit()
    db.refresh(application)
    logger.info("assessor_rejected", application_id=str(application.id))
    return application


def serialize_application(db: Session, application: AssessorRequest) -> Dict[str, Any]:
    return serialize_assessor_request(hydrate(db, [application], PROFILE)[0])
