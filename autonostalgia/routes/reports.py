from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_role_or_higher
from ..db import get_db
from ..models.models import Profile
from ..services.permissions import ROLE_ASSESSOR
from ..services.reports import ReportResult, download_report, generate_report
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/assessments", tags=["reports"])


def _pdf_response(result: ReportResult) -> Response:
    headers = {
        "Content-Disposition": f'attachment; filename="{result.filename}"',
        "X-Report-Persisted": "true" if result.persisted else "false",
    }
    if result.url:
        headers["X-Report-Url"] = result.url
    if result.error:
        # header values must stay latin-1
        headers["X-Report-Error"] = result.error.encode("latin-1", "replace").decode("latin-1")
    return Response(content=result.pdf, media_type="application/pdf", headers=headers)


@router.post("/{assessment_id}/report")
def create_report(
    assessment_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    me: Profile = Depends(require_role_or_higher(ROLE_ASSESSOR)),
):
    return _pdf_response(generate_report(db, storage, assessment_id, me))


@router.get("/{assessment_id}/report")
def get_report(
    assessment_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    me: Profile = Depends(get_current_user),
):
    return _pdf_response(download_report(db, storage, assessment_id, me))
