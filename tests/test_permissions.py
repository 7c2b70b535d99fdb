import pytest

from autonostalgia.services import permissions as p


@pytest.mark.parametrize(
    "role, feature, allowed",
    [
        ("admin", "admin-panel", True),
        ("admin", "analytics", True),
        ("assessor", "content-creation", True),
        ("assessor", "admin-panel", False),
        ("customer", "content-creation", False),
        ("customer", "user-management", False),
        ("admin", "time-travel", False),
        (None, "admin-panel", False),
    ],
)
def test_can_access(role, feature, allowed):
    assert p.can_access(role, feature) is allowed


def test_has_permission_unknown_role_or_key():
    assert p.has_permission("superuser", "canViewAllUsers") is False
    assert p.has_permission("assessor", "canDoAnything") is False
    assert p.has_permission("assessor", "canViewAssignedData") is True


def test_role_hierarchy():
    assert p.has_role_or_higher("admin", "assessor")
    assert p.has_role_or_higher("assessor", "assessor")
    assert not p.has_role_or_higher("customer", "assessor")
    assert not p.has_role_or_higher(None, "customer")


def test_granted_permissions_only_lists_true_flags():
    granted = p.granted_permissions("customer")
    assert granted == ["canViewOwnData"]
    assert p.granted_permissions(None) == []


def test_account_status_predicates():
    assert p.is_account_active("active")
    assert p.is_account_suspended("suspended")
    assert p.is_account_disabled("disabled")
    assert p.is_account_pending_approval("pending_approval")
    assert not p.is_account_active(None)


def test_report_generation_is_for_assessors_and_above(client, customer, auth_headers):
    r = client.post("/assessments/00000000-0000-0000-0000-000000000000/report", headers=auth_headers(customer))
    assert r.status_code == 403


def test_me_lists_admin_features(client, admin, auth_headers):
    me = client.get("/auth/me", headers=auth_headers(admin)).json()
    assert me["features"] == ["admin-panel", "user-management", "assessor-management", "content-creation", "data-export", "analytics"]
