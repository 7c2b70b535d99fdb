"""
Role-based permission matrix and account status predicates.
"""
from typing import Optional

ROLE_ADMIN = "admin"
ROLE_ASSESSOR = "assessor"
ROLE_CUSTOMER = "customer"
ROLES = (ROLE_ADMIN, ROLE_ASSESSOR, ROLE_CUSTOMER)

STATUS_ACTIVE = "active"
STATUS_SUSPENDED = "suspended"
STATUS_DISABLED = "disabled"
STATUS_PENDING_APPROVAL = "pending_approval"
ACCOUNT_STATUSES = (STATUS_ACTIVE, STATUS_SUSPENDED, STATUS_DISABLED, STATUS_PENDING_APPROVAL)


PERMISSIONS = {
    ROLE_ADMIN: {
        # User management
        "canViewAllUsers": True,
        "canEditUserRoles": True,
        "canSuspendUsers": True,
        "canDeleteUsers": True,
        "canViewUserDetails": True,
        # Assessor management
        "canApproveAssessors": True,
        "canRejectAssessors": True,
        "canViewAssessorRequests": True,
        "canManageAssessors": True,
        # System
        "canAccessAdminPanel": True,
        "canViewSystemStats": True,
        "canManageSystemSettings": True,
        # Content
        "canCreateContent": True,
        "canEditContent": True,
        "canDeleteContent": True,
        "canPublishContent": True,
        # Data access
        "canViewAllData": True,
        "canExportData": True,
        "canViewAnalytics": True,
    },
    ROLE_ASSESSOR: {
        "canViewAllUsers": False,
        "canEditUserRoles": False,
        "canSuspendUsers": False,
        "canDeleteUsers": False,
        "canViewUserDetails": False,
        "canApproveAssessors": False,
        "canRejectAssessors": False,
        "canViewAssessorRequests": False,
        "canManageAssessors": False,
        "canAccessAdminPanel": False,
        "canViewSystemStats": False,
        "canManageSystemSettings": False,
        "canCreateContent": True,
        "canEditOwnContent": True,
        "canDeleteOwnContent": True,
        "canPublishContent": False,
        "canViewAllData": False,
        "canExportData": False,
        "canViewAnalytics": False,
        "canViewAssignedData": True,
    },
    ROLE_CUSTOMER: {
        "canViewAllUsers": False,
        "canEditUserRoles": False,
        "canSuspendUsers": False,
        "canDeleteUsers": False,
        "canViewUserDetails": False,
        "canApproveAssessors": False,
        "canRejectAssessors": False,
        "canViewAssessorRequests": False,
        "canManageAssessors": False,
        "canAccessAdminPanel": False,
        "canViewSystemStats": False,
        "canManageSystemSettings": False,
        "canCreateContent": False,
        "canEditOwnContent": False,
        "canDeleteOwnContent": False,
        "canPublishContent": False,
        "canViewAllData": False,
        "canExportData": False,
        "canViewAnalytics": False,
        "canViewOwnData": True,
    },
}

FEATURE_PERMISSIONS = {
    "admin-panel": "canAccessAdminPanel",
    "user-management": "canViewAllUsers",
    "assessor-management": "canManageAssessors",
    "content-creation": "canCreateContent",
    "data-export": "canExportData",
    "analytics": "canViewAnalytics",
}

ROLE_HIERARCHY = {
    ROLE_ADMIN: 3,
    ROLE_ASSESSOR: 2,
    ROLE_CUSTOMER: 1,
}


def has_permission(role: Optional[str], permission: str) -> bool:
    if not role or role not in PERMISSIONS:
        return False
    return bool(PERMISSIONS[role].get(permission, False))


def can_access(role: Optional[str], feature: str) -> bool:
    permission = FEATURE_PERMISSIONS.get(feature)
    return has_permission(role, permission) if permission else False


def granted_permissions(role: Optional[str]) -> list:
    return sorted(k for k, v in PERMISSIONS.get(role or "", {}).items() if v)


def has_role_or_higher(role: Optional[str], required_role: str) -> bool:
    return ROLE_HIERARCHY.get(role or "", 0) >= ROLE_HIERARCHY.get(required_role, 0)


def is_account_active(account_status: Optional[str]) -> bool:
    return account_status == STATUS_ACTIVE


def is_account_suspended(account_status: Optional[str]) -> bool:
    return account_status == STATUS_SUSPENDED


def is_account_disabled(account_status: Optional[str]) -> bool:
    return account_status == STATUS_DISABLED


def is_account_pending_approval(account_status: Optional[str]) -> bool:
    return account_status == STATUS_PENDING_APPROVAL
