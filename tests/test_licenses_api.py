from __future__ import annotations

import pytest

BASE = "/api/v1/licenses"


def _create(client, headers, **overrides):
    body = {"licenseKey": "KEY-1", "purchaseDate": "2024-01-01", "licenseType": "Single User"}
    body.update(overrides)
    if "assignedTo" in overrides:
        body.setdefault("assignedDate", "2024-01-15")
    return client.post(BASE, json=body, headers=headers)


@pytest.fixture
def admin(auth):
    return auth("admin")


def test_admin_creates_and_reads_license(client, admin, people):
    r = _create(client, admin, assignedTo=people["employee"]["employee"], cost=99.5)
    assert r.status_code == 201
    body = r.get_json()
    assert body["success"] is True
    assert body["message"] == "License created successfully"
    lic = body["data"]
    assert lic["license_key"] == "KEY-1"
    assert lic["purchase_date"] == "2024-01-01"
    assert lic["status"] == "Active"

    r = client.get(f"{BASE}/{lic['id']}", headers=admin)
    assert r.status_code == 200
    assert r.get_json()["data"]["cost"] == 99.5


def test_list_is_paginated(client, admin):
    for n in range(3):
        assert _create(client, admin, licenseKey=f"K-{n}").status_code == 201
    r = client.get(f"{BASE}?page=1&limit=2", headers=admin)
    body = r.get_json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    # newest first
    assert body["data"][0]["license_key"] == "K-2"


def test_bad_pagination_is_400(client, admin):
    r = client.get(f"{BASE}?page=0", headers=admin)
    assert r.status_code == 400
    assert r.get_json()["message"] == "Page must be a positive integer"


def test_employee_sees_only_assigned_licenses(client, admin, auth, people):
    _create(client, admin, licenseKey="MINE", assignedTo=people["employee"]["employee"])
    other = _create(client, admin, licenseKey="THEIRS", assignedTo=people["other"]["employee"]).get_json()["data"]
    _create(client, admin, licenseKey="POOL")

    bob = auth("employee")
    body = client.get(BASE, headers=bob).get_json()
    assert [row["license_key"] for row in body["data"]] == ["MINE"]
    assert body["pagination"]["total"] == 1

    # other people's rows read as missing
    assert client.get(f"{BASE}/{other['id']}", headers=bob).status_code == 404

    admin_total = client.get(BASE, headers=admin).get_json()["pagination"]["total"]
    assert admin_total == 3


def test_list_cache_is_per_caller(client, admin, auth, people, cache):
    _create(client, admin, licenseKey="MINE", assignedTo=people["employee"]["employee"])
    client.get(BASE, headers=admin)
    client.get(BASE, headers=auth("employee"))
    assert cache.exists("license:list:admin:all:1:10")
    assert cache.exists(f"license:list:employee:{people['employee']['employee']}:1:10")


def test_by_employee_route(client, admin, auth, people):
    bob_id = people["employee"]["employee"]
    _create(client, admin, licenseKey="MINE", assignedTo=bob_id)
    bob = auth("employee")
    r = client.get(f"{BASE}/employee/{bob_id}", headers=bob)
    assert r.status_code == 200
    assert [row["license_key"] for row in r.get_json()["data"]] == ["MINE"]

    r = client.get(f"{BASE}/employee/{people['other']['employee']}", headers=bob)
    assert r.status_code == 403
    assert r.get_json()["message"] == "Access denied. You can only view your own licenses."


def test_detail_key_absent_after_update(client, admin, cache):
    lic = _create(client, admin).get_json()["data"]
    key = f"license:detail:{lic['id']}"
    client.get(f"{BASE}/{lic['id']}", headers=admin)
    assert cache.exists(key)

    r = client.put(f"{BASE}/{lic['id']}", json={"status": "Suspended"}, headers=admin)
    assert r.status_code == 200
    assert r.get_json()["data"]["status"] == "Suspended"
    assert not cache.exists(key)
    assert client.get(f"{BASE}/{lic['id']}", headers=admin).get_json()["data"]["status"] == "Suspended"


def test_detail_key_absent_after_delete(client, admin, cache):
    lic = _create(client, admin).get_json()["data"]
    key = f"license:detail:{lic['id']}"
    client.get(f"{BASE}/{lic['id']}", headers=admin)
    client.get(BASE, headers=admin)
    assert cache.exists(key)

    r = client.delete(f"{BASE}/{lic['id']}", headers=admin)
    assert r.status_code == 200
    assert r.get_json()["message"] == "License deleted successfully"
    assert not cache.exists(key)
    assert not cache.exists("license:list:admin:all:1:10")
    assert client.get(f"{BASE}/{lic['id']}", headers=admin).status_code == 404


def test_writes_require_admin_role(client, auth):
    for name in ("employee", "manager", "hr"):
        r = _create(client, auth(name))
        assert r.status_code == 403
        assert r.get_json()["message"] == "Access denied. Insufficient privileges."


def test_it_admin_may_write(client, auth):
    assert _create(client, auth("it_admin")).status_code == 201


def test_validation_errors_collected(client, admin):
    r = client.post(BASE, json={"licenseType": "Bogus", "maxUsers": 0}, headers=admin)
    assert r.status_code == 400
    body = r.get_json()
    assert body["message"] == "Validation failed"
    fields = {e["field"] for e in body["errors"]}
    assert {"license_key", "purchase_date", "license_type", "max_users"} <= fields


def test_expiry_before_purchase_rejected(client, admin):
    r = _create(client, admin, expiryDate="2023-01-01")
    assert r.status_code == 400
    assert r.get_json()["errors"][0]["field"] == "expiry_date"


def test_unknown_assignee_rejected(client, admin):
    r = _create(client, admin, assignedTo=9999)
    assert r.status_code == 400
    assert r.get_json()["errors"][0]["field"] == "assigned_to"


def test_duplicate_key_is_conflict(client, admin):
    assert _create(client, admin).status_code == 201
    r = _create(client, admin)
    assert r.status_code == 409


def test_update_missing_license_is_404(client, admin):
    r = client.put(f"{BASE}/4242", json={"status": "Expired"}, headers=admin)
    assert r.status_code == 404
    assert r.get_json()["message"] == "License not found"


def test_unauthenticated_list_is_401(client):
    assert client.get(BASE).status_code == 401


def _fields(r):
    assert r.status_code == 400
    return {e["field"] for e in r.get_json()["errors"]}


def test_expiry_must_be_after_purchase(client, admin):
    assert _fields(_create(client, admin, expiryDate="2024-01-01")) == {"expiry_date"}


def test_partial_update_checked_against_stored_dates(client, admin):
    lic = _create(client, admin, purchaseDate="2024-06-01", expiryDate="2025-06-01").get_json()["data"]
    r = client.put(f"{BASE}/{lic['id']}", json={"expiryDate": "2020-01-01"}, headers=admin)
    assert _fields(r) == {"expiry_date"}
    stored = client.get(f"{BASE}/{lic['id']}", headers=admin).get_json()["data"]
    assert stored["expiry_date"] == "2025-06-01"


def test_partial_update_checked_against_stored_seats(client, admin):
    lic = _create(client, admin, licenseType="Multi User", maxUsers=2).get_json()["data"]
    r = client.put(f"{BASE}/{lic['id']}", json={"currentUsers": 50}, headers=admin)
    assert _fields(r) == {"current_users"}
    assert client.put(f"{BASE}/{lic['id']}", json={"currentUsers": 2}, headers=admin).status_code == 200


def test_assigned_date_not_before_purchase(client, admin, people):
    r = _create(client, admin, assignedTo=people["employee"]["employee"], assignedDate="2023-12-31")
    assert _fields(r) == {"assigned_date"}


def test_multi_seat_license_needs_max_users(client, admin):
    for kind in ("Multi User", "Volume License"):
        assert _fields(_create(client, admin, licenseType=kind, maxUsers=None)) == {"max_users"}
    assert _create(client, admin, licenseType="Single User", maxUsers=None).status_code == 201


def test_active_assigned_license_needs_assigned_date(client, admin, people):
    bob_id = people["employee"]["employee"]
    body = {"licenseKey": "K-A", "purchaseDate": "2024-01-01", "assignedTo": bob_id}
    assert _fields(client.post(BASE, json=body, headers=admin)) == {"assigned_date"}
    assert client.post(BASE, json={**body, "status": "Available"}, headers=admin).status_code == 201

    pool = _create(client, admin, licenseKey="K-B").get_json()["data"]
    r = client.put(f"{BASE}/{pool['id']}", json={"assignedTo": bob_id}, headers=admin)
    assert _fields(r) == {"assigned_date"}
    r = client.put(f"{BASE}/{pool['id']}", json={"assignedTo": bob_id, "assignedDate": "2024-03-01"}, headers=admin)
    assert r.status_code == 200


def test_renewal_must_follow_expiry(client, admin):
    r = _create(client, admin, expiryDate="2025-01-01", renewalDate="2025-01-01")
    assert _fields(r) == {"renewal_date"}
    assert _create(client, admin, expiryDate="2025-01-01", renewalDate="2025-02-01").status_code == 201
