import pytest

from accounts import AccountRegistry
from errors import InvalidInput, InvalidQuery, NotFound


def test_add_user_forces_role_and_status(client, auth, db):
    payload = {
        "email": "rahim@example.com",
        "name": "Rahim",
        "bloodGroup": "A+",
        "district": "Dhaka",
        "upazila": "Savar",
        "role": "admin",
        "status": "blocked",
    }
    resp = client.post("/add-user", json=payload, headers=auth("rahim@example.com"))
    assert resp.status_code == 201
    user = db["users"].find_one({"email": "rahim@example.com"})
    assert user["role"] == "donor"
    assert user["status"] == "active"
    assert user["createdAt"] == user["lastLoginAt"]


def test_add_user_for_someone_else_is_forbidden(client, auth):
    resp = client.post("/add-user", json={"email": "a@example.com"}, headers=auth("b@example.com"))
    assert resp.status_code == 403


def test_add_user_without_token(client):
    resp = client.post("/add-user", json={"email": "a@example.com"})
    assert resp.status_code == 401


def test_add_user_with_bad_token(client):
    resp = client.post("/add-user", json={"email": "a@example.com"}, headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_duplicate_registration_rejected(db):
    accounts = AccountRegistry(db)
    accounts.create({"email": "dup@example.com"})
    with pytest.raises(InvalidInput):
        accounts.create({"email": "dup@example.com"})


def test_get_user_and_role(client, auth, make_user):
    make_user("v@example.com", role="volunteer", name="Vee")
    resp = client.get("/user", params={"email": "v@example.com"}, headers=auth("v@example.com"))
    assert resp.status_code == 200
    assert resp.json()["name"] == "Vee"
    assert isinstance(resp.json()["_id"], str)

    resp = client.get("/user-role", params={"email": "v@example.com"}, headers=auth("v@example.com"))
    assert resp.json() == {"role": "volunteer"}


def test_get_other_user_forbidden(client, auth, make_user):
    make_user("v@example.com")
    resp = client.get("/user", params={"email": "v@example.com"}, headers=auth("x@example.com"))
    assert resp.status_code == 403


def test_get_missing_user(client, auth):
    resp = client.get("/user", params={"email": "ghost@example.com"}, headers=auth("ghost@example.com"))
    assert resp.status_code == 404


def test_donor_search_filters(client, make_user):
    make_user("d1@example.com", bloodGroup="O+", district="Dhaka", upazila="Savar")
    make_user("d2@example.com", bloodGroup="O+", district="Dhaka", upazila="Savar", status="blocked")
    make_user("d3@example.com", bloodGroup="O+", district="Dhaka", upazila="Savar", role="volunteer")
    make_user("d4@example.com", bloodGroup="A+", district="Dhaka", upazila="Savar")

    resp = client.get("/donors", params={"bloodGroup": "O+", "district": "Dhaka", "upazila": "Savar"})
    assert resp.status_code == 200
    assert [d["email"] for d in resp.json()] == ["d1@example.com"]


@pytest.mark.parametrize("missing", ["bloodGroup", "district", "upazila"])
def test_donor_search_requires_all_filters(client, make_user, missing):
    make_user("d1@example.com", bloodGroup="O+", district="Dhaka", upazila="Savar")
    params = {"bloodGroup": "O+", "district": "Dhaka", "upazila": "Savar"}
    del params[missing]
    resp = client.get("/donors", params=params)
    assert resp.status_code == 400
    assert resp.json() == {"message": "All fields are required."}


def test_update_profile_ignores_role(client, auth, make_user, db):
    make_user("me@example.com", district="Dhaka")
    resp = client.put(
        "/user/update/me@example.com",
        json={"district": "Khulna", "role": "admin"},
        headers=auth("me@example.com"),
    )
    assert resp.status_code == 200
    assert resp.json()["modified"] is True
    user = db["users"].find_one({"email": "me@example.com"})
    assert user["district"] == "Khulna"
    assert user["role"] == "donor"


def test_empty_profile_patch_reports_no_change(db, make_user):
    make_user("me@example.com", district="Dhaka")
    before = db["users"].find_one({"email": "me@example.com"})
    assert AccountRegistry(db).update_profile("me@example.com", {}) is False
    assert db["users"].find_one({"email": "me@example.com"}) == before


def test_update_profile_unknown_user(db):
    with pytest.raises(NotFound):
        AccountRegistry(db).update_profile("ghost@example.com", {"name": "x"})


def test_last_login(client, auth, make_user):
    make_user("me@example.com")
    resp = client.patch("/users/me@example.com/last-login", headers=auth("me@example.com"))
    assert resp.status_code == 200


def test_admin_update_requires_role_or_status(db, make_user):
    uid = make_user("u@example.com")
    with pytest.raises(InvalidQuery):
        AccountRegistry(db).admin_update(uid, {})


def test_admin_update_unknown_user(db):
    with pytest.raises(NotFound):
        AccountRegistry(db).admin_update("64b7f0000000000000000000", {"role": "admin"})
    with pytest.raises(NotFound):
        AccountRegistry(db).admin_update("not-an-id", {"role": "admin"})


def test_admin_can_block_user(client, auth, make_user, db):
    make_user("boss@example.com", role="admin")
    uid = make_user("u@example.com")
    resp = client.patch(f"/admin/users/{uid}", json={"status": "blocked"}, headers=auth("boss@example.com"))
    assert resp.status_code == 200
    assert resp.json()["modified"] is True
    assert db["users"].find_one({"email": "u@example.com"})["status"] == "blocked"


def test_admin_users_listing(client, auth, make_user):
    make_user("boss@example.com", role="admin")
    for i in range(3):
        make_user(f"u{i}@example.com", status="blocked" if i == 0 else "active")

    resp = client.get("/admin/users", params={"status": "active"}, headers=auth("boss@example.com"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 3
    assert body["totalPages"] == 1


def test_admin_users_listing_forbidden_for_volunteer(client, auth, make_user):
    make_user("vol@example.com", role="volunteer")
    resp = client.get("/admin/users", headers=auth("vol@example.com"))
    assert resp.status_code == 403
