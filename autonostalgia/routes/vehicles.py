import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import Profile, Vehicle
from ..schemas.vehicles import VehicleCreate, VehicleUpdate
from ..services import images
from ..services.audit import build_audit_log
from ..services.nhtsa_client import NHTSAClient, vehicle_years
from ..services.permissions import ROLE_ADMIN, ROLE_CUSTOMER
from ..services.serializers import serialize_vehicle
from ..storage.factory import get_storage
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/vehicles", tags=["vehicles"])
logger = structlog.get_logger(__name__)


def get_nhtsa_client() -> NHTSAClient:
    return NHTSAClient()


def _normalize(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip().upper() or None


def _parse_uuid(value: Optional[str], label: str) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label}") from exc


def registration_exists(db: Session, registration_number: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
    q = db.query(Vehicle.id).filter(Vehicle.registration_number == _normalize(registration_number))
    if exclude_id:
        q = q.filter(Vehicle.id != exclude_id)
    return q.first() is not None


def vin_exists(db: Session, vin: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
    q = db.query(Vehicle.id).filter(Vehicle.vin == _normalize(vin))
    if exclude_id:
        q = q.filter(Vehicle.id != exclude_id)
    return q.first() is not None


def _get_owned_vehicle(db: Session, vehicle_id: str, user: Profile) -> Vehicle:
    vehicle_uuid = _parse_uuid(vehicle_id, "vehicle id")
    vehicle = db.query(Vehicle).filter(Vehicle.id == vehicle_uuid, Vehicle.user_id == user.id).first()
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


def _check_unique(db: Session, registration_number: Optional[str], vin: Optional[str], exclude_id=None) -> None:
    if registration_number and registration_exists(db, registration_number, exclude_id):
        raise HTTPException(status_code=409, detail="A vehicle with this registration number already exists")
    if vin and vin_exists(db, vin, exclude_id):
        raise HTTPException(status_code=409, detail="A vehicle with this VIN already exists")


@router.get("")
def list_my_vehicles(db: Session = Depends(get_db), me: Profile = Depends(require_roles(ROLE_CUSTOMER))):
    rows = db.query(Vehicle).filter(Vehicle.user_id == me.id).order_by(Vehicle.created_at.desc()).all()
    return [serialize_vehicle(v) for v in rows]


@router.get("/check-registration")
def check_registration(
    registration_number: str,
    exclude_id: Optional[str] = None,
    db: Session = Depends(get_db),
    me: Profile = Depends(get_current_user),
):
    return {"exists": registration_exists(db, registration_number, _parse_uuid(exclude_id, "exclude_id"))}


@router.get("/check-vin")
def check_vin(
    vin: str,
    exclude_id: Optional[str] = None,
    db: Session = Depends(get_db),
    me: Profile = Depends(get_current_user),
):
    return {"exists": vin_exists(db, vin, _parse_uuid(exclude_id, "exclude_id"))}


# =====================
# Catalogue (NHTSA vPIC)
# =====================


@router.get("/catalog/makes")
def catalog_makes(client: NHTSAClient = Depends(get_nhtsa_client), me: Profile = Depends(get_current_user)):
    return client.get_all_makes()


@router.get("/catalog/models")
def catalog_models(
    make: str,
    year: Optional[int] = None,
    client: NHTSAClient = Depends(get_nhtsa_client),
    me: Profile = Depends(get_current_user),
):
    return client.get_models_for_make(make, year)


@router.get("/catalog/years")
def catalog_years(me: Profile = Depends(get_current_user)):
    return vehicle_years()


@router.get("/catalog/decode-vin/{vin}")
def catalog_decode_vin(vin: str, client: NHTSAClient = Depends(get_nhtsa_client), me: Profile = Depends(get_current_user)):
    return client.decode_vin(vin)


@router.post("", status_code=201)
def create_vehicle(req: VehicleCreate, db: Session = Depends(get_db), me: Profile = Depends(require_roles(ROLE_CUSTOMER))):
    _check_unique(db, req.registration_number, req.vin)
    vehicle = Vehicle(user_id=me.id, **req.model_dump())
    db.add(vehicle)
    db.flush()
    db.add(
        build_audit_log(
            entity_type="vehicle",
            entity_id=vehicle.id,
            action="CREATE",
            actor_id=me.id,
            actor_role=me.role,
            context={"registration_number": vehicle.registration_number},
        )
    )
    db.commit()
    db.refresh(vehicle)
    logger.info("vehicle_created", vehicle_id=str(vehicle.id), user_id=str(me.id))
    return serialize_vehicle(vehicle)


@router.get("/{vehicle_id}")
def get_vehicle(vehicle_id: str, db: Session = Depends(get_db), me: Profile = Depends(get_current_user)):
    if me.role == ROLE_ADMIN:
        vehicle = db.query(Vehicle).filter(Vehicle.id == _parse_uuid(vehicle_id, "vehicle id")).first()
        if not vehicle:
            raise HTTPException(status_code=404, detail="Vehicle not found")
        return serialize_vehicle(vehicle)
    return serialize_vehicle(_get_owned_vehicle(db, vehicle_id, me))


@router.put("/{vehicle_id}")
def update_vehicle(
    vehicle_id: str,
    req: VehicleUpdate,
    db: Session = Depends(get_db),
    me: Profile = Depends(require_roles(ROLE_CUSTOMER)),
):
    vehicle = _get_owned_vehicle(db, vehicle_id, me)
    data = req.model_dump(exclude_unset=True)
    for required in ("make", "model", "year", "registration_number"):
        if required in data and data[required] is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be empty")
    _check_unique(db, data.get("registration_number"), data.get("vin"), exclude_id=vehicle.id)
    for field, value in data.items():
        setattr(vehicle, field, value)
    vehicle.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(vehicle)
    return serialize_vehicle(vehicle)


@router.delete("/{vehicle_id}")
def delete_vehicle(
    vehicle_id: str,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    me: Profile = Depends(require_roles(ROLE_CUSTOMER)),
):
    vehicle = _get_owned_vehicle(db, vehicle_id, me)
    image_keys = images.all_image_keys(vehicle)
    db.add(
        build_audit_log(
            entity_type="vehicle",
            entity_id=vehicle.id,
            action="DELETE",
            actor_id=me.id,
            actor_role=me.role,
            context={"registration_number": vehicle.registration_number},
        )
    )
    db.delete(vehicle)
    db.commit()
    images.remove_all_vehicle_images(storage, vehicle_id, image_keys)
    logger.info("vehicle_deleted", vehicle_id=vehicle_id, user_id=str(me.id))
    return {"status": "ok"}


@router.post("/{vehicle_id}/images/{slot}")
async def upload_vehicle_image(
    vehicle_id: str,
    slot: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    me: Profile = Depends(require_roles(ROLE_CUSTOMER)),
):
    vehicle = _get_owned_vehicle(db, vehicle_id, me)
    data = await file.read()
    vehicle = images.store_vehicle_image(db, storage, vehicle, slot, data)
    return serialize_vehicle(vehicle)


@router.delete("/{vehicle_id}/images/{slot}")
def delete_vehicle_image(
    vehicle_id: str,
    slot: int,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
    me: Profile = Depends(require_roles(ROLE_CUSTOMER)),
):
    vehicle = _get_owned_vehicle(db, vehicle_id, me)
    return serialize_vehicle(images.remove_vehicle_image(db, storage, vehicle, slot))
