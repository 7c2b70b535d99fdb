from datetime import datetime

import pytest

from autonostalgia.config import settings
from autonostalgia.reports.pdf_report import (
    build_assessment_report,
    format_money,
    report_filename,
    report_sections,
)
from autonostalgia.services import reports, workflow
from autonostalgia.services.errors import NotFoundError, PermissionDenied, ValidationFailed
from autonostalgia.storage.local_provider import LocalStorageProvider


def _record(**overrides):
    record = {
        "id": "3f0c2a9e-0000-4000-8000-000000000001",
        "assessment_type": "pre_purchase",
        "completion_date": "2025-03-04",
        "vehicle_value": 150000.0,
        "assessment_notes": None,
        "completion_details": {"chassis_number": "CH-1", "warranty": ""},
        "vehicle": {
            "make": "Jaguar",
            "model": "E-Type",
            "year": 1965,
            "registration_number": "CA 123 456",
            "vin": None,
            "mileage": 84000,
            "color": "Green",
            "image_1_url": "http://testserver/files/vehicle-images/u/v/image_1.jpg",
            "image_2_url": "  ",
        },
        "customer": {"full_name": "Carla Customer", "email": "carla@example.com", "city": "Pretoria", "province": None},
        "assessor": {"full_name": "Sam Assessor", "email": "sam@example.com", "phone": None},
    }
    record.update(overrides)
    return record


def _section(sections, title):
    return dict(sections)[title]


def test_format_money():
    assert format_money(150000) == "R 150,000"
    assert format_money(1234.5, "$") == "$ 1,234.50"
    assert format_money(None) == "Not provided"


def test_vehicle_section_lists_identity():
    lines = _section(report_sections(_record()), "Vehicle Information")
    assert lines[:4] == ["Make: Jaguar", "Model: E-Type", "Year: 1965", "Registration: CA 123 456"]
    assert "VIN: Not provided" in lines
    assert "Mileage: 84,000 km" in lines


def test_sections_fill_defaults_and_details():
    sections = report_sections(_record())
    assert [title for title, _ in sections] == [
        "Report Details",
        "Vehicle Information",
        "Customer Information",
        "Assessor Information",
        "Assessment Results",
        "Assessment Details",
    ]
    assert "Assessment Type: Pre Purchase" in _section(sections, "Report Details")
    assert "Location: Pretoria, Not provided" in _section(sections, "Customer Information")
    assert _section(sections, "Assessment Results") == [
        "Vehicle Value: R 150,000",
        "Assessment Notes: No notes provided",
    ]
    assert _section(sections, "Assessment Details") == ["Chassis Number: CH-1"]


def test_details_section_omitted_when_empty():
    titles = [t for t, _ in report_sections(_record(completion_details={}))]
    assert "Assessment Details" not in titles


@pytest.mark.parametrize("missing", ["vehicle", "customer", "assessor"])
def test_sections_require_joined_records(missing):
    with pytest.raises(ValidationFailed):
        report_sections(_record(**{missing: None}))


def test_filename_strips_spaces():
    assert report_filename(_record()) == "assessment_report_CA123456_3f0c2a9e-0000-4000-8000-000000000001.pdf"


def test_pdf_contains_sections_and_image_links():
    pdf = build_assessment_report(_record(), generated_at=datetime(2025, 3, 4, 12, 0), compress=False)
    assert pdf.startswith(b"%PDF")
    assert b"Vehicle Assessment Report" in pdf
    assert b"Make: Jaguar" in pdf
    assert b"Image 1" in pdf
    assert b"Image 2" not in pdf
    assert b"Generated on 2025-03-04 12:00" in pdf


def test_long_reports_break_pages():
    record = _record(assessment_notes="Rust " * 2000)
    pdf = build_assessment_report(record, compress=False)
    # footer is stamped once per page
    assert pdf.count(b"Generated on") > 1


def test_report_key_is_safe():
    key = reports.report_key(
        {"id": "abc", "vehicle": {"registration_number": "CA 12/3"}}, datetime(2025, 3, 4, 9, 30, 15)
    )
    assert key == "abc/CA123_20250304093015.pdf"


@pytest.fixture()
def completed(db, assessor, vehicle, make_request):
    request = make_request(vehicle)
    workflow.accept(db, assessor, request.id, scheduled_date="2025-03-01", scheduled_time="10:00")
    return workflow.complete(db, assessor, request.id, vehicle_value=150000, completion_date=workflow.today())


def test_generate_persists_and_stamps_request(db, storage, assessor, completed):
    result = reports.generate_report(db, storage, completed.id, assessor)

    assert result.persisted is True
    assert result.error is None
    assert result.pdf.startswith(b"%PDF")
    assert result.record["report_url"] == result.url
    db.expire_all()
    stamped = workflow.get_request(db, completed.id)
    assert stamped.report_key.startswith(f"{completed.id}/")
    assert storage.read(settings.reports_bucket, stamped.report_key) == result.pdf


class _BrokenStorage(LocalStorageProvider):
    def upload(self, bucket, key, data, content_type):
        raise OSError("disk full")


def test_storage_failure_still_returns_pdf(db, tmp_path, assessor, completed):
    result = reports.generate_report(db, _BrokenStorage(base_dir=str(tmp_path)), completed.id, assessor)

    assert result.pdf.startswith(b"%PDF")
    assert result.persisted is False
    assert "disk full" in result.error
    db.expire_all()
    assert workflow.get_request(db, completed.id).report_url is None


def test_only_completed_requests_get_reports(db, storage, assessor, vehicle, make_request):
    request = make_request(vehicle, status="approved", assigned_assessor_id=assessor.id)
    with pytest.raises(ValidationFailed):
        reports.generate_report(db, storage, request.id, assessor)


def test_other_assessors_cannot_generate(db, storage, make_profile, completed):
    other = make_profile("other@example.com", role="assessor", province="Gauteng")
    with pytest.raises(PermissionDenied):
        reports.generate_report(db, storage, completed.id, other)


def test_download_round_trip_and_permissions(db, storage, customer, admin, make_profile, assessor, completed):
    with pytest.raises(NotFoundError):
        reports.download_report(db, storage, completed.id, customer)

    generated = reports.generate_report(db, storage, completed.id, admin)

    assert reports.download_report(db, storage, completed.id, customer).pdf == generated.pdf
    with pytest.raises(PermissionDenied):
        reports.download_report(db, storage, completed.id, make_profile("nosy@example.com"))


def test_filename_is_header_safe():
    name = report_filename(_record(vehicle={"registration_number": 'CA "12" 3'}))
    assert name == "assessment_report_CA123_3f0c2a9e-0000-4000-8000-000000000001.pdf"


def test_non_latin_registration_over_http(client, db, assessor, customer, make_vehicle, make_request, auth_headers):
    request = make_request(make_vehicle(customer, "ЖК 123 GP"))
    workflow.accept(db, assessor, request.id, scheduled_date="2025-03-01", scheduled_time="10:00")
    workflow.complete(db, assessor, request.id, vehicle_value=95000, completion_date=workflow.today())

    r = client.post(f"/assessments/{request.id}/report", headers=auth_headers(assessor))
    assert r.status_code == 200
    assert r.headers["X-Report-Persisted"] == "true"
    disposition = r.headers["content-disposition"]
    assert disposition.isascii()
    assert disposition.endswith(f'123GP_{request.id}.pdf"')

    r = client.get(f"/assessments/{request.id}/report", headers=auth_headers(customer))
    assert r.status_code == 200
    assert r.content.startswith(b"%PDF")
