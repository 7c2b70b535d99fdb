"""
Seed the local database with demo profiles, vehicles and assessment requests.

Usage:
  python scripts/seed_demo_data.py

This script is idempotent: running it multiple times upserts the same
records based on unique fields (email for profiles, registration number
for vehicles).
"""

from datetime import date, datetime, timedelta, timezone

from autonostalgia.auth.security import get_password_hash
from autonostalgia.db import Base, SessionLocal, engine
from autonostalgia.models.models import AssessmentRequest, AssessorRequest, Profile, Vehicle


def ensure_profile(session, email: str, password: str, full_name: str, role: str, **kwargs) -> Profile:
    profile = session.query(Profile).filter(Profile.email == email).first()
    if profile:
        profile.full_name = full_name
        profile.role = role
        for k, v in kwargs.items():
            if hasattr(profile, k):
                setattr(profile, k, v)
        profile.updated_at = datetime.now(timezone.utc)
        session.add(profile)
        session.flush()
        return profile
    profile = Profile(
        email=email,
        password_hash=get_password_hash(password),
        full_name=full_name,
        role=role,
        account_status=kwargs.pop("account_status", "active"),
        created_at=datetime.now(timezone.utc),
        **{k: v for k, v in kwargs.items() if hasattr(Profile, k)},
    )
    session.add(profile)
    session.flush()
    return profile


def ensure_vehicle(session, owner: Profile, registration_number: str, **kwargs) -> Vehicle:
    vehicle = session.query(Vehicle).filter(Vehicle.registration_number == registration_number).first()
    if vehicle:
        for k, v in kwargs.items():
            if hasattr(vehicle, k):
                setattr(vehicle, k, v)
        session.add(vehicle)
        session.flush()
        return vehicle
    vehicle = Vehicle(
        user_id=owner.id,
        registration_number=registration_number,
        **{k: v for k, v in kwargs.items() if hasattr(Vehicle, k)},
    )
    session.add(vehicle)
    session.flush()
    return vehicle


def ensure_request(session, vehicle: Vehicle, **kwargs) -> AssessmentRequest:
    row = (
        session.query(AssessmentRequest)
        .filter(AssessmentRequest.vehicle_id == vehicle.id, AssessmentRequest.status == kwargs.get("status", "pending"))
        .first()
    )
    if row:
        return row
    row = AssessmentRequest(vehicle_id=vehicle.id, user_id=vehicle.user_id, **kwargs)
    session.add(row)
    session.flush()
    return row


def main() -> None:
    # Ensure tables exist (safe for SQLite dev)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        ensure_profile(session, "admin@example.com", "TestAdmin123!", "Ada Admin", "admin")
        assessor = ensure_profile(
            session,
            "sam.assessor@example.com",
            "TestUser123!",
            "Sam Assessor",
            "assessor",
            phone="082 555 0101",
            city="Cape Town",
            province="Western Cape",
        )
        ensure_profile(
            session,
            "gina.gauteng@example.com",
            "TestUser123!",
            "Gina Gauteng",
            "assessor",
            city="Pretoria",
            province="Gauteng",
        )
        pending_assessor = ensure_profile(
            session,
            "pat.pending@example.com",
            "TestUser123!",
            "Pat Pending",
            "assessor",
            account_status="pending_approval",
            city="Durban",
            province="KwaZulu-Natal",
        )
        if not session.query(AssessorRequest).filter(AssessorRequest.user_id == pending_assessor.id).first():
            session.add(
                AssessorRequest(
                    user_id=pending_assessor.id,
                    phone_number="083 555 0199",
                    location="Durban, KwaZulu-Natal",
                    contact_method="email",
                    experience="Eight years valuing classic British cars.",
                    status="pending",
                )
            )

        carla = ensure_profile(
            session,
            "carla.customer@example.com",
            "TestUser123!",
            "Carla Customer",
            "customer",
            phone="021 555 0123",
            city="Stellenbosch",
            province="Western Cape",
        )
        jag = ensure_vehicle(
            session,
            carla,
            "CA123456",
            make="Jaguar",
            model="E-Type",
            variant="Series 1",
            year=1965,
            vin="1E12345",
            mileage=84000,
            color="British Racing Green",
            transmission="manual",
        )
        beetle = ensure_vehicle(
            session,
            carla,
            "CY998877",
            make="Volkswagen",
            model="Beetle",
            year=1972,
            mileage=153000,
            color="Yellow",
        )

        ensure_request(
            session,
            jag,
            status="pending",
            urgency="high",
            assessment_type="valuation",
            preferred_date=date.today() + timedelta(days=7),
            preferred_time="10:00",
        )
        ensure_request(
            session,
            beetle,
            status="completed",
            urgency="normal",
            assessment_type="insurance",
            assigned_assessor_id=assessor.id,
            assigned_at=datetime.now(timezone.utc) - timedelta(days=10),
            scheduled_date=date.today() - timedelta(days=5),
            scheduled_time="09:30",
            vehicle_value=95000.0,
            completion_date=date.today() - timedelta(days=5),
            completed_at=datetime.now(timezone.utc) - timedelta(days=5),
            assessment_notes="Original paint, minor rust on rear valance.",
        )

        session.commit()
        print("Seed completed.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
