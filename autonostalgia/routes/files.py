import mimetypes

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from ..config import settings
from ..storage.factory import get_storage
from ..storage.local_provider import LocalStorageProvider
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/files", tags=["files"])

PUBLIC_BUCKETS = {settings.vehicle_images_bucket, settings.reports_bucket}


@router.get("/{bucket}/{key:path}")
def serve_local_file(bucket: str, key: str, storage: StorageProvider = Depends(get_storage)):
    """Public URLs handed out by the local storage provider resolve here."""
    if bucket not in PUBLIC_BUCKETS or not isinstance(storage, LocalStorageProvider):
        raise HTTPException(status_code=404, detail="File not found")
    path = storage.path_for(bucket, key)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(str(path), media_type=media_type, headers={"Cache-Control": "public, max-age=300"})
