import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    ForeignKey,
    Integer,
    Float,
    JSON,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class Profile(Base):
    """Identity record for customers, assessors and admins"""
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    city: Mapped[Optional[str]] = mapped_column(String(120))
    province: Mapped[Optional[str]] = mapped_column(String(120), index=True)
    contact_method: Mapped[Optional[str]] = mapped_column(String(50))  # email|phone|sms
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="customer", index=True)  # customer|assessor|admin
    account_status: Mapped[str] = mapped_column(String(30), nullable=False, default="active")  # active|suspended|disabled|pending_approval
    suspension_reason: Mapped[Optional[str]] = mapped_column(Text)
    suspended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    suspended_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    deleted_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Vehicle(Base):
    """Customer-owned vehicle with up to six image slots"""
    __tablename__ = "vehicles"

    id: Mapped[uuid.UUID] = uuid_pk()
    # No FK constraint: hydrated views tolerate dangling owners
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    make: Mapped[str] = mapped_column(String(120), nullable=False)
    model: Mapped[str] = mapped_column(String(120), nullable=False)
    variant: Mapped[Optional[str]] = mapped_column(String(120))
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    vin: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    registration_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    mileage: Mapped[Optional[int]] = mapped_column(Integer)
    color: Mapped[Optional[str]] = mapped_column(String(50))
    body_type: Mapped[Optional[str]] = mapped_column(String(50))
    fuel_type: Mapped[Optional[str]] = mapped_column(String(50))
    transmission: Mapped[Optional[str]] = mapped_column(String(50))
    engine_size: Mapped[Optional[str]] = mapped_column(String(50))
    number_of_doors: Mapped[Optional[int]] = mapped_column(Integer)
    condition: Mapped[Optional[str]] = mapped_column(String(50))
    service_history: Mapped[Optional[str]] = mapped_column(Text)
    modifications: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    image_1_url: Mapped[Optional[str]] = mapped_column(String(1024))
    image_2_url: Mapped[Optional[str]] = mapped_column(String(1024))
    image_3_url: Mapped[Optional[str]] = mapped_column(String(1024))
    image_4_url: Mapped[Optional[str]] = mapped_column(String(1024))
    image_5_url: Mapped[Optional[str]] = mapped_column(String(1024))
    image_6_url: Mapped[Optional[str]] = mapped_column(String(1024))
    thumbnail_1_url: Mapped[Optional[str]] = mapped_column(String(1024))
    thumbnail_2_url: Mapped[Optional[str]] = mapped_column(String(1024))
    thumbnail_3_url: Mapped[Optional[str]] = mapped_column(String(1024))
    thumbnail_4_url: Mapped[Optional[str]] = mapped_column(String(1024))
    thumbnail_5_url: Mapped[Optional[str]] = mapped_column(String(1024))
    thumbnail_6_url: Mapped[Optional[str]] = mapped_column(String(1024))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class AssessmentRequest(Base):
    """Workflow record tracking one assessment order through its lifecycle"""
    __tablename__ = "assessment_requests"

    id: Mapped[uuid.UUID] = uuid_pk()
    vehicle_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    assigned_assessor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)  # pending|approved|completed|rejected|cancelled
    urgency: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")  # low|normal|high|urgent
    assessment_type: Mapped[str] = mapped_column(String(50), nullable=False, default="valuation")

    # Scheduling
    preferred_date: Mapped[Optional[date]] = mapped_column(Date)
    preferred_time: Mapped[Optional[str]] = mapped_column(String(10))  # HH:MM
    scheduled_date: Mapped[Optional[date]] = mapped_column(Date)
    scheduled_time: Mapped[Optional[str]] = mapped_column(String(10))  # HH:MM
    assessment_location: Mapped[Optional[str]] = mapped_column(String(255))
    special_requirements: Mapped[Optional[str]] = mapped_column(Text)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Completion
    assessment_notes: Mapped[Optional[str]] = mapped_column(Text)
    vehicle_value: Mapped[Optional[float]] = mapped_column(Float)
    completion_date: Mapped[Optional[date]] = mapped_column(Date)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completion_details: Mapped[Optional[dict]] = mapped_column(JSON)  # chassis/engine numbers, warranty, damages, ...

    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Report
    report_url: Mapped[Optional[str]] = mapped_column(String(1024))
    report_key: Mapped[Optional[str]] = mapped_column(String(1024))
    report_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_assessment_status_created', 'status', 'created_at'),
    )


class AssessorRequest(Base):
    """Application to become an assessor, reviewed by an admin"""
    __tablename__ = "assessor_requests"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50))
    location: Mapped[Optional[str]] = mapped_column(String(255))
    contact_method: Mapped[Optional[str]] = mapped_column(String(50))
    experience: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|approved|rejected
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class PasswordReset(Base):
    __tablename__ = "password_resets"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"))
    token: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class AuditLog(Base):
    """Append-only audit log for workflow transitions and admin actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # assessment|profile|assessor_request|vehicle
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|ACCEPT|REJECT|COMPLETE|CANCEL|RESCHEDULE|STATUS|APPROVE|SUSPEND|...
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(20))
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )


class Notification(Base):
    """One row per email dispatched through the email function or SMTP"""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="email")
    template_key: Mapped[Optional[str]] = mapped_column(String(100))
    recipient: Mapped[Optional[str]] = mapped_column(String(255))
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|sent|failed|skipped
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
