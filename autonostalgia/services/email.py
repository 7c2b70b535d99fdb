"""
Transactional email.

Messages go to the hosted email function as
``{template, recipient_email, recipient_name, subject, variables}``. When
only SMTP is configured a plain-text rendering is sent instead. Every
attempt leaves a ``notifications`` row; failures are logged and never
raised to the caller.
"""
import smtplib
from collections import defaultdict
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Dict, Iterable, Optional

import httpx
import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Notification, Profile
from .permissions import ROLE_ADMIN

logger = structlog.get_logger(__name__)

TEMPLATES = {
    "customer_welcome": {
        "subject": "Welcome to Auto Nostalgia!",
        "text": (
            "Hi {recipient_name},\n\n"
            "Welcome to Auto Nostalgia. Your account is ready and you can add your vehicles "
            "and request assessments at any time.\n\nSign in: {login_url}\n"
        ),
    },
    "assessor_application_pending": {
        "subject": "Application Received - Auto Nostalgia Assessor Program",
        "text": (
            "Hi {recipient_name},\n\n"
            "Thank you for applying to the Auto Nostalgia assessor program. "
            "An administrator will review your application and email you once it is approved.\n"
        ),
    },
    "admin_assessor_notification": {
        "subject": "New Assessor Application Requires Review - Auto Nostalgia",
        "text": (
            "A new assessor application is waiting for review.\n\n"
            "Name: {assessor_name}\nEmail: {assessor_email}\nPhone: {assessor_phone}\n"
            "Location: {assessor_location}\nExperience: {assessor_experience}\n"
            "Applied: {application_date}\n\nReview it here: {admin_panel_url}\n"
        ),
    },
    "assessor_approval": {
        "subject": "Congratulations! Your Assessor Application is Approved - Auto Nostalgia",
        "text": (
            "Hi {recipient_name},\n\n"
            "Your assessor application has been approved. You can now sign in and start "
            "accepting assessment requests in your province.\n\nSign in: {login_url}\n"
        ),
    },
}

NOT_PROVIDED = "Not provided"


def render_text(template: str, recipient_name: Optional[str], variables: Dict[str, Any]) -> str:
    values = defaultdict(str, variables or {})
    values["recipient_name"] = recipient_name or "there"
    return TEMPLATES[template]["text"].format_map(values)


def _send_smtp(recipient_email: str, subject: str, body: str) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.mail_from
    msg["To"] = recipient_email
    msg.set_content(body)
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as s:
        if settings.smtp_tls:
            s.starttls()
        if settings.smtp_username and settings.smtp_password:
            s.login(settings.smtp_username, settings.smtp_password)
        s.send_message(msg)


def _post_function(payload: Dict[str, Any], client: Optional[httpx.Client]) -> None:
    headers = {"Content-Type": "application/json"}
    if settings.email_function_key:
        headers["Authorization"] = f"Bearer {settings.email_function_key}"
    if client is not None:
        response = client.post(settings.email_function_url, json=payload, headers=headers)
        response.raise_for_status()
        return
    with httpx.Client(timeout=settings.http_timeout_seconds) as c:
        response = c.post(settings.email_function_url, json=payload, headers=headers)
        response.raise_for_status()


def send_template_email(
    db: Session,
    template: str,
    recipient_email: str,
    recipient_name: Optional[str] = None,
    subject: Optional[str] = None,
    variables: Optional[Dict[str, Any]] = None,
    user_id=None,
    client: Optional[httpx.Client] = None,
) -> Notification:
    if template not in TEMPLATES:
        raise ValueError(f"Unknown email template '{template}'")
    subject = subject or TEMPLATES[template]["subject"]
    variables = dict(variables or {})
    variables.setdefault("recipient_email", recipient_email)
    payload = {
        "template": template,
        "recipient_email": recipient_email,
        "recipient_name": recipient_name,
        "subject": subject,
        "variables": variables,
    }
    notification = Notification(
        user_id=user_id,
        channel="email",
        template_key=template,
        recipient=recipient_email,
        payload_json=payload,
        status="pending",
    )

    try:
        if not settings.enable_email:
            notification.status = "skipped"
        elif settings.email_function_url:
            _post_function(payload, client)
            notification.status = "sent"
        elif settings.smtp_host and settings.mail_from:
            _send_smtp(recipient_email, subject, render_text(template, recipient_name, variables))
            notification.status = "sent"
        else:
            notification.status = "skipped"
    except (httpx.HTTPError, smtplib.SMTPException, OSError) as exc:
        notification.status = "failed"
        notification.error_message = str(exc)
        logger.warning("email_send_failed", template=template, recipient=recipient_email, error=str(exc))

    if notification.status == "sent":
        notification.sent_at = datetime.now(timezone.utc)
        logger.info("email_sent", template=template, recipient=recipient_email)

    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def login_url() -> str:
    return f"{settings.public_base_url.rstrip('/')}/login"


def send_customer_welcome(db: Session, profile: Profile, client: Optional[httpx.Client] = None) -> Notification:
    return send_template_email(
        db,
        "customer_welcome",
        profile.email,
        profile.full_name,
        variables={"login_url": login_url()},
        user_id=profile.id,
        client=client,
    )


def send_assessor_application_pending(
    db: Session, profile: Profile, client: Optional[httpx.Client] = None
) -> Notification:
    return send_template_email(
        db, "assessor_application_pending", profile.email, profile.full_name, user_id=profile.id, client=client
    )


def admin_recipients(db: Session) -> Iterable[Profile]:
    return (
        db.query(Profile)
        .filter(Profile.role == ROLE_ADMIN, Profile.deleted_at.is_(None))
        .order_by(Profile.email.asc())
        .all()
    )


def send_admin_assessor_notification(
    db: Session,
    applicant: Profile,
    experience: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> list:
    """One email per admin profile."""
    location = f"{applicant.city}, {applicant.province}" if applicant.city and applicant.province else NOT_PROVIDED
    variables = {
        "assessor_name": applicant.full_name,
        "assessor_email": applicant.email,
        "assessor_phone": applicant.phone or NOT_PROVIDED,
        "assessor_location": location,
        "assessor_experience": experience or NOT_PROVIDED,
        "application_date": datetime.now(timezone.utc).date().isoformat(),
        "admin_panel_url": f"{settings.public_base_url.rstrip('/')}/admin",
    }
    sent = []
    for admin in admin_recipients(db):
        sent.append(
            send_template_email(
                db,
                "admin_assessor_notification",
                admin.email,
                "Admin",
                variables=variables,
                user_id=admin.id,
                client=client,
            )
        )
    return sent


def send_assessor_approval(db: Session, profile: Profile, client: Optional[httpx.Client] = None) -> Notification:
    return send_template_email(
        db,
        "assessor_approval",
        profile.email,
        profile.full_name,
        variables={"login_url": login_url()},
        user_id=profile.id,
        client=client,
    )


def send_password_reset(db: Session, profile: Profile, token: str) -> None:
    """Reset links are sent over SMTP only."""
    if not (settings.enable_email and settings.smtp_host and settings.mail_from):
        logger.info("password_reset_email_skipped", user_id=str(profile.id))
        return
    link = f"{settings.public_base_url.rstrip('/')}/reset-password?token={token}"
    try:
        _send_smtp(profile.email, f"Reset your {settings.app_name} password", f"Reset your password: {link}")
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("password_reset_email_failed", user_id=str(profile.id), error=str(exc))
