"""
Admin moderation of profiles. Profiles are never hard-deleted.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models.models import Profile
from .audit import build_audit_log, compute_diff
from .errors import NotFoundError, ValidationFailed
from .permissions import (
    ACCOUNT_STATUSES,
    ROLES,
    ROLE_ASSESSOR,
    ROLE_CUSTOMER,
    STATUS_ACTIVE,
    STATUS_DISABLED,
    STATUS_SUSPENDED,
)
from .serializers import serialize_profile

logger = structlog.get_logger(__name__)


def get_profile(db: Session, user_id) -> Profile:
    try:
        user_uuid = uuid.UUID(str(user_id))
    except ValueError as exc:
        raise ValidationFailed("Invalid user id") from exc
    profile = db.query(Profile).filter(Profile.id == user_uuid).first()
    if not profile:
        raise NotFoundError("User not found")
    return profile


def list_profiles(
    db: Session,
    role: Optional[str] = None,
    account_status: Optional[str] = None,
    q: Optional[str] = None,
    include_deleted: bool = False,
) -> List[Dict[str, Any]]:
    query = db.query(Profile)
    if role and role != "all":
        if role not in ROLES:
            raise ValidationFailed(f"Invalid role '{role}'")
        query = query.filter(Profile.role == role)
    if account_status and account_status != "all":
        if account_status not in ACCOUNT_STATUSES:
            raise ValidationFailed(f"Invalid account status '{account_status}'")
        query = query.filter(Profile.account_status == account_status)
    if not include_deleted:
        query = query.filter(Profile.deleted_at.is_(None))
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(Profile.full_name.ilike(like), Profile.email.ilike(like)))
    return [serialize_profile(p, private=True) for p in query.order_by(Profile.created_at.desc()).all()]


def _apply(db: Session, admin: Profile, profile: Profile, values: Dict[str, Any], action: str) -> Profile:
    before = {k: getattr(profile, k) for k in values}
    for k, v in values.items():
        setattr(profile, k, v)
    profile.updated_at = datetime.now(timezone.utc)
    db.add(
        build_audit_log(
            entity_type="profile",
            entity_id=profile.id,
            action=action,
            actor_id=admin.id,
            actor_role=admin.role,
            changes_json=compute_diff(before, values),
        )
    )
    db.commit()
    db.refresh(profile)
    logger.info("profile_moderated", user_id=str(profile.id), action=action, actor_id=str(admin.id))
    return profile


def _not_self(admin: Profile, profile: Profile, verb: str) -> None:
    if admin.id == profile.id:
        raise ValidationFailed(f"You cannot {verb} your own account")


def suspend(db: Session, admin: Profile, user_id, reason: Optional[str]) -> Profile:
    profile = get_profile(db, user_id)
    _not_self(admin, profile, "suspend")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("A suspension reason is required")
    return _apply(
        db,
        admin,
        profile,
        {
            "account_status": STATUS_SUSPENDED,
            "suspension_reason": reason,
            "suspended_at": datetime.now(timezone.utc),
            "suspended_by": admin.id,
        },
        "SUSPEND",
    )


def activate(db: Session, admin: Profile, user_id) -> Profile:
    profile = get_profile(db, user_id)
    return _apply(
        db,
        admin,
        profile,
        {
            "account_status": STATUS_ACTIVE,
            "suspension_reason": None,
            "suspended_at": None,
            "suspended_by": None,
            "deleted_at": None,
            "deleted_by": None,
        },
        "ACTIVATE",
    )


def soft_delete(db: Session, admin: Profile, user_id) -> Profile:
    profile = get_profile(db, user_id)
    _not_self(admin, profile, "delete")
    return _apply(
        db,
        admin,
        profile,
        {
            "account_status": STATUS_DISABLED,
            "deleted_at": datetime.now(timezone.utc),
            "deleted_by": admin.id,
        },
        "DISABLE",
    )


def change_role(db: Session, admin: Profile, user_id, role: str) -> Profile:
    if role not in ROLES:
        raise ValidationFailed(f"Invalid role '{role}'")
    profile = get_profile(db, user_id)
    _not_self(admin, profile, "change the role of")
    return _apply(db, admin, profile, {"role": role}, "ROLE")


def list_by_role(db: Session, role: str) -> List[Dict[str, Any]]:
    rows = (
        db.query(Profile)
        .filter(Profile.role == role, Profile.deleted_at.is_(None))
        .order_by(Profile.full_name.asc())
        .all()
    )
    return [serialize_profile(p, private=True) for p in rows]


def list_assessors(db: Session) -> List[Dict[str, Any]]:
    return list_by_role(db, ROLE_ASSESSOR)


def list_customers(db: Session) -> List[Dict[str, Any]]:
    return list_by_role(db, ROLE_CUSTOMER)
