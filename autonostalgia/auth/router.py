import secrets
import uuid
from datetime import datetime, timedelta, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import PasswordReset, Profile
from ..schemas.auth import (
    LoginRequest,
    MeResponse,
    PasswordChange,
    PasswordForgot,
    PasswordReset as PasswordResetRequest,
    ProfileUpdate,
    RefreshRequest,
    SignupRequest,
    TokenResponse,
)
from ..services import applications, email
from ..services.audit import build_audit_log
from ..services.permissions import (
    ROLE_ASSESSOR,
    STATUS_ACTIVE,
    STATUS_PENDING_APPROVAL,
    FEATURE_PERMISSIONS,
    can_access,
    granted_permissions,
    is_account_active,
    is_account_disabled,
    is_account_pending_approval,
    is_account_suspended,
)
from ..services.serializers import serialize_profile
from .security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_current_user,
    get_password_hash,
    verify_password,
)


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


def _tokens(profile: Profile) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(profile.id), role=profile.role),
        refresh_token=create_refresh_token(str(profile.id)),
    )


def _me(profile: Profile) -> MeResponse:
    return MeResponse(
        id=str(profile.id),
        email=profile.email,
        full_name=profile.full_name,
        phone=profile.phone,
        city=profile.city,
        province=profile.province,
        contact_method=profile.contact_method,
        role=profile.role,
        account_status=profile.account_status,
        permissions=granted_permissions(profile.role),
        features=[f for f in FEATURE_PERMISSIONS if can_access(profile.role, f)],
    )


@router.post("/signup", status_code=201)
def signup(req: SignupRequest, db: Session = Depends(get_db)):
    email_addr = req.email.lower()
    if db.query(Profile).filter(Profile.email == email_addr).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    is_assessor = req.role.value == ROLE_ASSESSOR
    profile = Profile(
        email=email_addr,
        password_hash=get_password_hash(req.password),
        full_name=req.full_name,
        phone=req.phone,
        city=req.city,
        province=req.province,
        contact_method=req.contact_method.value if req.contact_method else None,
        role=req.role.value,
        account_status=STATUS_PENDING_APPROVAL if is_assessor else STATUS_ACTIVE,
    )
    db.add(profile)
    db.flush()
    if is_assessor:
        applications.create_application(db, profile, experience=req.experience)
    db.add(
        build_audit_log(
            entity_type="profile",
            entity_id=profile.id,
            action="CREATE",
            actor_id=profile.id,
            actor_role=profile.role,
            context={"account_status": profile.account_status},
        )
    )
    db.commit()
    db.refresh(profile)
    logger.info("signup", user_id=str(profile.id), role=profile.role)

    if is_assessor:
        email.send_assessor_application_pending(db, profile)
        email.send_admin_assessor_notification(db, profile, experience=req.experience)
        return {"user": serialize_profile(profile, private=True), "status": STATUS_PENDING_APPROVAL}

    email.send_customer_welcome(db, profile)
    tokens = _tokens(profile)
    return {"user": serialize_profile(profile, private=True), "status": STATUS_ACTIVE, **tokens.model_dump()}


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(Profile.email == req.email.lower()).first()
    if not profile or not verify_password(req.password, profile.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if is_account_disabled(profile.account_status) or profile.deleted_at is not None:
        raise HTTPException(status_code=403, detail="Account disabled")
    if is_account_suspended(profile.account_status):
        reason = f": {profile.suspension_reason}" if profile.suspension_reason else ""
        raise HTTPException(status_code=403, detail=f"Account suspended{reason}")
    if is_account_pending_approval(profile.account_status):
        raise HTTPException(status_code=403, detail="Account pending approval")
    if not is_account_active(profile.account_status):
        raise HTTPException(status_code=403, detail="Access Denied")
    profile.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return _tokens(profile)


@router.post("/refresh", response_model=TokenResponse)
def refresh(req: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(req.refresh_token)
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        user_uuid = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid subject")
    profile = db.query(Profile).filter(Profile.id == user_uuid).first()
    if not profile or not is_account_active(profile.account_status) or profile.deleted_at is not None:
        raise HTTPException(status_code=401, detail="User not active")
    return _tokens(profile)


@router.get("/me", response_model=MeResponse)
def me(user: Profile = Depends(get_current_user)):
    return _me(user)


@router.put("/me/profile", response_model=MeResponse)
def update_my_profile(req: ProfileUpdate, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    data = req.model_dump(exclude_unset=True)
    if "contact_method" in data and data["contact_method"] is not None:
        data["contact_method"] = data["contact_method"].value
    for field, value in data.items():
        setattr(user, field, value)
    user.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)
    return _me(user)


@router.post("/me/password")
def change_password(req: PasswordChange, db: Session = Depends(get_db), user: Profile = Depends(get_current_user)):
    if not verify_password(req.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = get_password_hash(req.new_password)
    user.updated_at = datetime.now(timezone.utc)
    db.commit()
    return {"status": "ok"}


@router.post("/password/forgot")
def password_forgot(req: PasswordForgot, db: Session = Depends(get_db)):
    profile = db.query(Profile).filter(Profile.email == req.email.lower()).first()
    if not profile:
        return {"status": "ok"}
    token = secrets.token_urlsafe(32)
    db.add(
        PasswordReset(
            user_id=profile.id,
            token=token,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=settings.password_reset_ttl_seconds),
        )
    )
    db.commit()
    email.send_password_reset(db, profile, token)
    return {"status": "ok"}


@router.post("/password/reset")
def password_reset(req: PasswordResetRequest, db: Session = Depends(get_db)):
    pr = db.query(PasswordReset).filter(PasswordReset.token == req.token).first()
    if not pr:
        raise HTTPException(status_code=400, detail="Invalid or expired token")
    # SQLite hands back naive datetimes
    now_utc = datetime.now(timezone.utc)
    expires_at = pr.expires_at
    if expires_at and expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if pr.used_at is not None or (expires_at and expires_at < now_utc):
        raise HTTPException(status_code=400, detail="Invalid or expired token")
    profile = db.query(Profile).filter(Profile.id == pr.user_id).first()
    if not profile:
        raise HTTPException(status_code=400, detail="Invalid token")
    profile.password_hash = get_password_hash(req.new_password)
    profile.updated_at = now_utc
    pr.used_at = now_utc
    db.commit()
    return {"status": "ok"}
