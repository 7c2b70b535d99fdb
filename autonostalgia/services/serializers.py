"""
Canonical dict shapes for profiles, vehicles and assessment requests.

Hydrated assessments always expose the same keys (``vehicle``, ``customer``,
``assessor``) no matter which view produced them.
"""
from typing import Any, Dict, Optional

from ..models.models import AssessmentRequest, AssessorRequest, Profile, Vehicle
from .joins import Hydrated

IMAGE_SLOTS = range(1, 7)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _sid(value) -> Optional[str]:
    return str(value) if value is not None else None


def serialize_profile(profile: Optional[Profile], *, private: bool = False) -> Optional[Dict[str, Any]]:
    if profile is None:
        return None
    data = {
        "id": str(profile.id),
        "email": profile.email,
        "full_name": profile.full_name,
        "phone": profile.phone,
        "city": profile.city,
        "province": profile.province,
        "role": profile.role,
    }
    if private:
        data.update(
            {
                "contact_method": profile.contact_method,
                "account_status": profile.account_status,
                "suspension_reason": profile.suspension_reason,
                "suspended_at": _iso(profile.suspended_at),
                "deleted_at": _iso(profile.deleted_at),
                "created_at": _iso(profile.created_at),
                "last_login_at": _iso(profile.last_login_at),
            }
        )
    return data


def vehicle_images(vehicle: Vehicle) -> list:
    images = []
    for n in IMAGE_SLOTS:
        url = getattr(vehicle, f"image_{n}_url")
        if url and url.strip():
            images.append({"slot": n, "url": url, "thumbnail_url": getattr(vehicle, f"thumbnail_{n}_url")})
    return images


def serialize_vehicle(vehicle: Optional[Vehicle]) -> Optional[Dict[str, Any]]:
    if vehicle is None:
        return None
    data = {
        "id": str(vehicle.id),
        "user_id": str(vehicle.user_id),
        "make": vehicle.make,
        "model": vehicle.model,
        "variant": vehicle.variant,
        "year": vehicle.year,
        "vin": vehicle.vin,
        "registration_number": vehicle.registration_number,
        "mileage": vehicle.mileage,
        "color": vehicle.color,
        "body_type": vehicle.body_type,
        "fuel_type": vehicle.fuel_type,
        "transmission": vehicle.transmission,
        "engine_size": vehicle.engine_size,
        "number_of_doors": vehicle.number_of_doors,
        "condition": vehicle.condition,
        "service_history": vehicle.service_history,
        "modifications": vehicle.modifications,
        "description": vehicle.description,
        "created_at": _iso(vehicle.created_at),
        "updated_at": _iso(vehicle.updated_at),
    }
    for n in IMAGE_SLOTS:
        data[f"image_{n}_url"] = getattr(vehicle, f"image_{n}_url")
        data[f"thumbnail_{n}_url"] = getattr(vehicle, f"thumbnail_{n}_url")
    data["images"] = vehicle_images(vehicle)
    return data


def serialize_assessment(request: AssessmentRequest) -> Dict[str, Any]:
    return {
        "id": str(request.id),
        "vehicle_id": str(request.vehicle_id),
        "user_id": str(request.user_id),
        "assigned_assessor_id": _sid(request.assigned_assessor_id),
        "status": request.status,
        "urgency": request.urgency,
        "assessment_type": request.assessment_type,
        "preferred_date": _iso(request.preferred_date),
        "preferred_time": request.preferred_time,
        "scheduled_date": _iso(request.scheduled_date),
        "scheduled_time": request.scheduled_time,
        "assessment_location": request.assessment_location,
        "special_requirements": request.special_requirements,
        "assigned_at": _iso(request.assigned_at),
        "assessment_notes": request.assessment_notes,
        "vehicle_value": float(request.vehicle_value) if request.vehicle_value is not None else None,
        "completion_date": _iso(request.completion_date),
        "completed_at": _iso(request.completed_at),
        "completion_details": request.completion_details or {},
        "rejection_reason": request.rejection_reason,
        "cancelled_at": _iso(request.cancelled_at),
        "report_url": request.report_url,
        "report_generated_at": _iso(request.report_generated_at),
        "created_at": _iso(request.created_at),
        "updated_at": _iso(request.updated_at),
    }


def serialize_hydrated_assessment(item: Hydrated) -> Dict[str, Any]:
    data = serialize_assessment(item.row)
    data["vehicle"] = serialize_vehicle(item["vehicle"])
    data["customer"] = serialize_profile(item["customer"])
    data["assessor"] = serialize_profile(item["assessor"])
    return data


def serialize_assessor_request(item: Hydrated) -> Dict[str, Any]:
    application: AssessorRequest = item.row
    return {
        "id": str(application.id),
        "user_id": str(application.user_id),
        "phone_number": application.phone_number,
        "location": application.location,
        "contact_method": application.contact_method,
        "experience": application.experience,
        "status": application.status,
        "reviewed_by": _sid(application.reviewed_by),
        "reviewed_at": _iso(application.reviewed_at),
        "created_at": _iso(application.created_at),
        "profile": serialize_profile(item["profile"]),
    }
