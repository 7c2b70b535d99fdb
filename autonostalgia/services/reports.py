"""
Report generation and retrieval.

The PDF is built first and always returned to the caller. Uploading it and
stamping the request are best effort: a failure there is reported on the
result instead of discarding the document.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import AssessmentRequest, Profile
from ..reports.pdf_report import build_assessment_report, registration_slug, report_filename
from ..storage.provider import StorageProvider
from .audit import build_audit_log
from .assessments import ALL_REFERENCES
from .errors import NotFoundError, PermissionDenied, ValidationFailed
from .joins import hydrate
from .permissions import ROLE_ADMIN
from .serializers import serialize_hydrated_assessment
from .workflow import COMPLETED, get_request

logger = structlog.get_logger(__name__)


@dataclass
class ReportResult:
    pdf: bytes
    filename: str
    record: Dict[str, Any]
    persisted: bool = False
    error: Optional[str] = None
    url: Optional[str] = None


def report_key(record: Dict[str, Any], generated_at: datetime) -> str:
    return f"{record['id']}/{registration_slug(record)}_{generated_at.strftime('%Y%m%d%H%M%S')}.pdf"


def _hydrated_record(db: Session, request: AssessmentRequest) -> Dict[str, Any]:
    return serialize_hydrated_assessment(hydrate(db, [request], *ALL_REFERENCES)[0])


def generate_report(db: Session, storage: StorageProvider, assessment_id, actor: Profile) -> ReportResult:
    request = get_request(db, assessment_id)
    if actor.role != ROLE_ADMIN and request.assigned_assessor_id != actor.id:
        raise PermissionDenied()
    if request.status != COMPLETED:
        raise ValidationFailed("Reports can only be generated for completed assessments")

    record = _hydrated_record(db, request)
    generated_at = datetime.now(timezone.utc)
    pdf = build_assessment_report(record, generated_at=generated_at)
    result = ReportResult(pdf=pdf, filename=report_filename(record), record=record)

    key = report_key(record, generated_at)
    bucket = settings.reports_bucket
    try:
        storage.upload(bucket, key, pdf, "application/pdf")
        url = storage.get_public_url(bucket, key)
    except Exception as exc:
        logger.error("report_persist_failed", assessment_id=str(request.id), stage="upload", error=str(exc))
        result.error = f"Failed to store report: {exc}"
        return result

    try:
        request.report_url = url
        request.report_key = key
        request.report_generated_at = generated_at
        db.add(
            build_audit_log(
                entity_type="assessment",
                entity_id=request.id,
                action="REPORT",
                actor_id=actor.id,
                actor_role=actor.role,
                context={"report_key": key, "size": len(pdf)},
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("report_persist_failed", assessment_id=str(request.id), stage="update", error=str(exc))
        result.error = "Report stored but the assessment could not be updated"
        result.url = url
        return result

    result.persisted = True
    result.url = url
    result.record = _hydrated_record(db, request)
    logger.info("report_generated", assessment_id=str(request.id), report_key=key, size=len(pdf))
    return result


def download_report(db: Session, storage: StorageProvider, assessment_id, viewer: Profile) -> ReportResult:
    request = get_request(db, assessment_id)
    allowed = viewer.role == ROLE_ADMIN or viewer.id in (request.user_id, request.assigned_assessor_id)
    if not allowed:
        raise PermissionDenied()
    if not request.report_key:
        raise NotFoundError("No report has been generated for this assessment")

    data = storage.read(settings.reports_bucket, request.report_key)
    if data is None:
        logger.warning("report_blob_missing", assessment_id=str(request.id), report_key=request.report_key)
        raise NotFoundError("Report file not found")
    record = _hydrated_record(db, request)
    return ReportResult(
        pdf=data,
        filename=report_filename(record),
        record=record,
        persisted=True,
        url=request.report_url,
    )
