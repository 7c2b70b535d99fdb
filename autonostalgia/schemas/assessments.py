from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Urgency(str, Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class AssessmentType(str, Enum):
    valuation = "valuation"
    insurance = "insurance"
    pre_purchase = "pre_purchase"
    condition_report = "condition_report"
    restoration = "restoration"


class AssessmentCreate(BaseModel):
    vehicle_id: str
    assessment_type: AssessmentType = AssessmentType.valuation
    urgency: Urgency = Urgency.normal
    preferred_date: Optional[str] = None  # YYYY-MM-DD
    preferred_time: Optional[str] = None  # HH:MM
    assessment_location: Optional[str] = None
    special_requirements: Optional[str] = None


class RescheduleRequest(BaseModel):
    preferred_date: str
    preferred_time: Optional[str] = None


class AcceptRequest(BaseModel):
    scheduled_date: str
    scheduled_time: str
    assessment_location: Optional[str] = None
    assessment_notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class CompleteRequest(BaseModel):
    # validated by the workflow so the record stays untouched on bad input
    vehicle_value: Optional[float] = None
    completion_date: Optional[str] = None
    assessment_notes: Optional[str] = None
    chassis_number: Optional[str] = None
    engine_number: Optional[str] = None
    mean_mcgregor_code: Optional[str] = None
    warranty: Optional[str] = None
    warranty_expiration: Optional[str] = None
    current_odometer: Optional[int] = Field(default=None, ge=0)
    full_service_history: Optional[str] = None
    rebuilt_body_work: Optional[str] = None
    rebuilt_engine_work: Optional[str] = None
    accessories: Optional[str] = None
    current_damages: Optional[str] = None
    previous_body_work: Optional[str] = None
