import json

import httpx
import pytest

from autonostalgia.config import settings
from autonostalgia.services import email


@pytest.fixture()
def function_endpoint(monkeypatch):
    monkeypatch.setattr(settings, "enable_email", True)
    monkeypatch.setattr(settings, "email_function_url", "https://mail.example.com/send-email")
    monkeypatch.setattr(settings, "email_function_key", "anon-key")


def _recording_client(calls, status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status, json={"ok": status < 400})

    return httpx.Client(transport=httpx.MockTransport(handler))


def test_function_payload_shape(db, customer, function_endpoint):
    calls = []
    note = email.send_customer_welcome(db, customer, client=_recording_client(calls))

    assert note.status == "sent"
    assert note.sent_at is not None
    assert len(calls) == 1
    assert calls[0].headers["Authorization"] == "Bearer anon-key"
    body = json.loads(calls[0].content)
    assert set(body) == {"template", "recipient_email", "recipient_name", "subject", "variables"}
    assert body["template"] == "customer_welcome"
    assert body["recipient_email"] == customer.email
    assert body["subject"] == "Welcome to Auto Nostalgia!"
    assert body["variables"]["login_url"] == "http://testserver/login"


def test_upstream_error_is_recorded_not_raised(db, customer, function_endpoint):
    note = email.send_assessor_approval(db, customer, client=_recording_client([], status=503))
    assert note.status == "failed"
    assert "503" in note.error_message


def test_disabled_email_is_skipped(db, customer, monkeypatch):
    monkeypatch.setattr(settings, "enable_email", False)
    monkeypatch.setattr(settings, "email_function_url", "https://mail.example.com/send-email")
    calls = []
    note = email.send_customer_welcome(db, customer, client=_recording_client(calls))
    assert note.status == "skipped"
    assert calls == []


def test_admin_notification_goes_to_every_admin(db, make_profile, function_endpoint):
    make_profile("ada@example.com", role="admin")
    make_profile("bob@example.com", role="admin")
    applicant = make_profile("pat@example.com", role="assessor", account_status="pending_approval")
    calls = []

    notes = email.send_admin_assessor_notification(db, applicant, client=_recording_client(calls))

    assert [n.recipient for n in notes] == ["ada@example.com", "bob@example.com"]
    variables = json.loads(calls[0].content)["variables"]
    assert variables["assessor_email"] == "pat@example.com"
    assert variables["assessor_phone"] == "Not provided"
    assert variables["assessor_location"] == "Not provided"
    assert variables["assessor_experience"] == "Not provided"
    assert variables["admin_panel_url"] == "http://testserver/admin"


def test_unknown_template(db):
    with pytest.raises(ValueError):
        email.send_template_email(db, "birthday", "x@example.com")


def test_plain_text_rendering_fills_blanks():
    text = email.render_text("admin_assessor_notification", None, {"assessor_name": "Pat"})
    assert "Name: Pat" in text
    assert "{" not in text
