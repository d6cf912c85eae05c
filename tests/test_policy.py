import pytest

from accounts import AccountRegistry
from errors import Forbidden, Unauthenticated
from identity import Identity
from policy import POLICY, ActiveAccount, Grant, Owner, OwnerOrRoles, Roles, authorize


@pytest.fixture
def accounts(db):
    return AccountRegistry(db)


def test_every_rule_is_known_kind():
    for action, rule in POLICY.items():
        assert isinstance(rule, (Owner, Roles, OwnerOrRoles, ActiveAccount)), action


def test_missing_identity_is_unauthenticated(accounts):
    with pytest.raises(Unauthenticated):
        authorize(accounts, None, "admin:users")
    with pytest.raises(Unauthenticated):
        authorize(accounts, None, "user:read", owner_email="a@example.com")


def test_owner_rule(accounts):
    me = Identity("me@example.com")
    assert authorize(accounts, me, "user:read", owner_email="me@example.com") == Grant("owner")
    with pytest.raises(Forbidden):
        authorize(accounts, me, "user:read", owner_email="you@example.com")


def test_role_rule(accounts, make_user):
    make_user("boss@example.com", role="admin")
    make_user("vol@example.com", role="volunteer")

    assert authorize(accounts, Identity("boss@example.com"), "admin:users").role == "admin"
    with pytest.raises(Forbidden):
        authorize(accounts, Identity("vol@example.com"), "admin:users")
    assert authorize(accounts, Identity("vol@example.com"), "admin:requests").via == "role"


def test_unregistered_caller_forbidden(accounts):
    with pytest.raises(Forbidden):
        authorize(accounts, Identity("nobody@example.com"), "admin:stats")
    with pytest.raises(Forbidden):
        authorize(accounts, Identity("nobody@example.com"), "request:create")


def test_role_change_applies_immediately(accounts, make_user, db):
    make_user("boss@example.com", role="admin")
    boss = Identity("boss@example.com")
    authorize(accounts, boss, "admin:users")

    db["users"].update_one({"email": "boss@example.com"}, {"$set": {"role": "donor"}})
    with pytest.raises(Forbidden):
        authorize(accounts, boss, "admin:users")


def test_blocked_admin_loses_access(accounts, make_user):
    make_user("boss@example.com", role="admin", status="blocked")
    with pytest.raises(Forbidden):
        authorize(accounts, Identity("boss@example.com"), "admin:users")


def test_owner_or_moderator(accounts, make_user):
    make_user("req@example.com")
    make_user("vol@example.com", role="volunteer")

    grant = authorize(accounts, Identity("req@example.com"), "request:update", owner_email="req@example.com")
    assert grant.via == "owner"
    grant = authorize(accounts, Identity("vol@example.com"), "request:update", owner_email="req@example.com")
    assert grant.via == "role"
    with pytest.raises(Forbidden):
        authorize(accounts, Identity("x@example.com"), "request:update", owner_email="req@example.com")


def test_admin_listing_endpoint(client, auth, make_user):
    make_user("boss@example.com", role="admin")
    make_user("donor@example.com")

    assert client.get("/admin/donation-requests", headers=auth("donor@example.com")).status_code == 403
    resp = client.get("/admin/donation-requests", headers=auth("boss@example.com"))
    assert resp.status_code == 200
    assert resp.json() == {"items": [], "total": 0, "totalPages": 0}
    assert client.get("/admin/donation-requests").status_code == 401
