"""Customer request through assessor completion and report, over HTTP."""
from autonostalgia import main
from autonostalgia.reports.pdf_report import report_sections
from autonostalgia.routes import reports as report_routes
from autonostalgia.services import workflow
from autonostalgia.services.reports import ReportResult


def test_valuation_lifecycle(client, customer, assessor, make_profile, auth_headers, tomorrow, monkeypatch):
    outsider = make_profile("wc@example.com", role="assessor", province="Western Cape")
    as_customer = auth_headers(customer)
    as_assessor = auth_headers(assessor)

    # customer registers V and asks for a valuation
    r = client.post(
        "/vehicles",
        json={"make": "Jaguar", "model": "E-Type", "year": 1965, "registration_number": "ca 123 gp"},
        headers=as_customer,
    )
    assert r.status_code == 201, r.text
    vehicle = r.json()
    assert vehicle["registration_number"] == "CA 123 GP"

    r = client.post(
        "/assessments",
        json={
            "vehicle_id": vehicle["id"],
            "assessment_type": "valuation",
            "urgency": "high",
            "preferred_date": tomorrow.isoformat(),
            "preferred_time": "09:00",
        },
        headers=as_customer,
    )
    assert r.status_code == 201, r.text
    request_id = r.json()["id"]
    assert r.json()["status"] == "pending"

    # visible to the Gauteng assessor only
    r = client.get("/assessments/open", headers=as_assessor)
    assert [i["id"] for i in r.json()] == [request_id]
    assert r.json()[0]["vehicle"]["registration_number"] == "CA 123 GP"
    assert client.get("/assessments/open", headers=auth_headers(outsider)).json() == []

    r = client.post(
        f"/assessments/{request_id}/accept",
        json={"scheduled_date": "2025-03-01", "scheduled_time": "10:00"},
        headers=as_assessor,
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "approved"

    r = client.get("/assessments/mine", headers=as_customer)
    mine = r.json()[0]
    assert mine["status"] == "approved"
    assert mine["assessor"]["full_name"] == assessor.full_name
    assert mine["assessor"]["email"] == assessor.email

    r = client.get("/assessments/schedule", headers=as_assessor)
    assert [i["id"] for i in r.json()] == [request_id]

    # a second accept loses
    r = client.post(
        f"/assessments/{request_id}/accept",
        json={"scheduled_date": "2025-03-02", "scheduled_time": "11:00"},
        headers=as_assessor,
    )
    assert r.status_code == 409

    r = client.post(
        f"/assessments/{request_id}/complete",
        json={"vehicle_value": 150000, "completion_date": workflow.today().isoformat(), "chassis_number": "1E100"},
        headers=as_assessor,
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "completed"
    assert r.json()["vehicle_value"] == 150000

    captured = {}
    original = report_routes.generate_report

    def spy(*args, **kwargs):
        result: ReportResult = original(*args, **kwargs)
        captured["record"] = result.record
        return result

    monkeypatch.setattr(report_routes, "generate_report", spy)

    r = client.post(f"/assessments/{request_id}/report", headers=as_assessor)
    assert r.status_code == 200, r.text
    assert r.headers["content-type"] == "application/pdf"
    assert r.headers["x-report-persisted"] == "true"
    assert r.content.startswith(b"%PDF")
    assert "assessment_report_CA123GP_" in r.headers["content-disposition"]

    vehicle_lines = dict(report_sections(captured["record"]))["Vehicle Information"]
    assert vehicle_lines[:4] == ["Make: Jaguar", "Model: E-Type", "Year: 1965", "Registration: CA 123 GP"]

    # the stored copy is served back to the customer
    r = client.get(f"/assessments/{request_id}/report", headers=as_customer)
    assert r.status_code == 200
    assert r.content.startswith(b"%PDF")

    r = client.get(f"/assessments/{request_id}", headers=as_customer)
    assert r.json()["report_url"].startswith("http://testserver/files/reports/")


def test_rejected_without_reason_stays_pending(client, customer, assessor, vehicle, make_request, auth_headers):
    request = make_request(vehicle)
    r = client.post(f"/assessments/{request.id}/reject", json={"reason": " "}, headers=auth_headers(assessor))
    assert r.status_code == 400
    r = client.get(f"/assessments/{request.id}", headers=auth_headers(customer))
    assert r.json()["status"] == "pending"


def test_cancel_after_approval_is_refused(client, customer, assessor, vehicle, make_request, auth_headers):
    request = make_request(vehicle, status="approved", assigned_assessor_id=assessor.id)
    r = client.post(f"/assessments/{request.id}/cancel", headers=auth_headers(customer))
    assert r.status_code == 409


def test_role_guards(client, customer, assessor, auth_headers):
    assert client.get("/assessments/open", headers=auth_headers(customer)).status_code == 403
    assert client.get("/assessments/mine", headers=auth_headers(assessor)).status_code == 403
    assert client.get("/admin/stats", headers=auth_headers(assessor)).json() == {"detail": "Access Denied"}
    assert client.get("/assessments/mine").status_code == 401


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert "x-request-id" in r.headers


def test_run_binds_configured_address(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    monkeypatch.setattr(main.settings, "host", "127.0.0.1")
    monkeypatch.setattr(main.settings, "port", 9100)

    main.run()

    assert calls == [("autonostalgia.main:app", {"host": "127.0.0.1", "port": 9100})]
