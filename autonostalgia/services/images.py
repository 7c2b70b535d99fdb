"""
Vehicle image slots.

Uploads are re-encoded to JPEG before storage: the full image is capped at
IMAGE_MAX_DIMENSION and a thumbnail at THUMBNAIL_MAX_DIMENSION. Objects
live in the vehicle-images bucket under ``<user_id>/<vehicle_id>/``.
"""
import io
from datetime import datetime, timezone
from typing import List

import structlog
from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener  # phone uploads are often HEIC
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Vehicle
from ..storage.provider import StorageProvider
from .errors import StorageError, ValidationFailed

register_heif_opener()

logger = structlog.get_logger(__name__)

MAX_UPLOAD_BYTES = 15 * 1024 * 1024


def compress_image(data: bytes, max_dim: int, quality: int) -> bytes:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ValidationFailed("Uploaded file is not a supported image") from exc

    img = ImageOps.exif_transpose(img)
    if img.mode in ("RGBA", "LA", "P"):
        # Flatten transparency onto white
        if img.mode == "P":
            img = img.convert("RGBA")
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        img = background
    elif img.mode != "RGB":
        img = img.convert("RGB")

    img.thumbnail((max_dim, max_dim), Image.Resampling.LANCZOS)
    out = io.BytesIO()
    img.save(out, format="JPEG", quality=quality, optimize=True)
    return out.getvalue()


def image_key(vehicle: Vehicle, slot: int) -> str:
    return f"{vehicle.user_id}/{vehicle.id}/image_{slot}.jpg"


def thumbnail_key(vehicle: Vehicle, slot: int) -> str:
    return f"{vehicle.user_id}/{vehicle.id}/thumbnail_{slot}.jpg"


def _check_slot(slot: int) -> None:
    if slot < 1 or slot > settings.max_vehicle_images:
        raise ValidationFailed(f"Image slot must be between 1 and {settings.max_vehicle_images}")


def store_vehicle_image(db: Session, storage: StorageProvider, vehicle: Vehicle, slot: int, data: bytes) -> Vehicle:
    _check_slot(slot)
    if not data:
        raise ValidationFailed("Empty upload")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationFailed("Image is too large")

    full = compress_image(data, settings.image_max_dimension, settings.image_jpeg_quality)
    thumb = compress_image(full, settings.thumbnail_max_dimension, settings.image_jpeg_quality)
    bucket = settings.vehicle_images_bucket
    try:
        storage.upload(bucket, image_key(vehicle, slot), full, "image/jpeg")
        storage.upload(bucket, thumbnail_key(vehicle, slot), thumb, "image/jpeg")
    except Exception as exc:
        logger.error("vehicle_image_upload_failed", vehicle_id=str(vehicle.id), slot=slot, error=str(exc))
        raise StorageError("Failed to upload image") from exc

    setattr(vehicle, f"image_{slot}_url", storage.get_public_url(bucket, image_key(vehicle, slot)))
    setattr(vehicle, f"thumbnail_{slot}_url", storage.get_public_url(bucket, thumbnail_key(vehicle, slot)))
    vehicle.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(vehicle)
    logger.info(
        "vehicle_image_stored",
        vehicle_id=str(vehicle.id),
        slot=slot,
        original_size=len(data),
        stored_size=len(full),
    )
    return vehicle


def remove_vehicle_image(db: Session, storage: StorageProvider, vehicle: Vehicle, slot: int) -> Vehicle:
    _check_slot(slot)
    storage.remove(settings.vehicle_images_bucket, [image_key(vehicle, slot), thumbnail_key(vehicle, slot)])
    setattr(vehicle, f"image_{slot}_url", None)
    setattr(vehicle, f"thumbnail_{slot}_url", None)
    vehicle.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(vehicle)
    return vehicle


def all_image_keys(vehicle: Vehicle) -> List[str]:
    keys = []
    for slot in range(1, settings.max_vehicle_images + 1):
        keys.extend([image_key(vehicle, slot), thumbnail_key(vehicle, slot)])
    return keys


def remove_all_vehicle_images(storage: StorageProvider, vehicle_id: str, keys: List[str]) -> None:
    """Runs after the vehicle row is gone; orphaned objects are only logged."""
    try:
        storage.remove(settings.vehicle_images_bucket, keys)
    except Exception as exc:
        logger.warning("vehicle_images_cleanup_failed", vehicle_id=vehicle_id, error=str(exc))
