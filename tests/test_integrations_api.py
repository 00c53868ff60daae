from __future__ import annotations

BASE = "/api/v1/integrations"


def _create(client, headers, **overrides):
    body = {
        "name": "Payroll export",
        "type": "SFTP",
        "endpointUrl": "sftp://payroll.example.com",
        "credentials": "user:hunter2",
        "syncFrequency": "daily",
        "configuration": {"path": "/in"},
    }
    body.update(overrides)
    return client.post(BASE, json=body, headers=headers)


def test_create_never_echoes_credentials(client, auth, people):
    r = _create(client, auth("admin"))
    assert r.status_code == 201
    data = r.get_json()["data"]
    assert "credentials" not in data
    assert data["configuration"] == {"path": "/in"}
    assert data["created_by"] == people["admin"]["urm"]

    detail = client.get(f"{BASE}/{data['id']}", headers=auth("employee")).get_json()["data"]
    assert "credentials" not in detail
    listed = client.get(BASE, headers=auth("employee")).get_json()["data"]
    assert all("credentials" not in row for row in listed)


def test_by_type_and_status(client, auth):
    admin = auth("admin")
    _create(client, admin)
    _create(client, admin, name="CRM hook", type="Webhook", status="Testing")

    body = client.get(f"{BASE}/type/Webhook", headers=admin).get_json()
    assert body["count"] == 1
    assert body["data"][0]["name"] == "CRM hook"

    body = client.get(f"{BASE}/status/Active", headers=admin).get_json()
    assert [row["name"] for row in body["data"]] == ["Payroll export"]

    assert client.get(f"{BASE}/type/Carrier%20Pigeon", headers=admin).status_code == 400


def test_status_change_refreshes_status_lists(client, auth):
    admin = auth("admin")
    row = _create(client, admin).get_json()["data"]
    assert client.get(f"{BASE}/status/Active", headers=admin).get_json()["count"] == 1

    client.put(f"{BASE}/{row['id']}", json={"status": "Error"}, headers=admin)
    assert client.get(f"{BASE}/status/Active", headers=admin).get_json()["count"] == 0
    assert client.get(f"{BASE}/status/Error", headers=admin).get_json()["count"] == 1


def test_writes_require_admin(client, auth):
    assert _create(client, auth("employee")).status_code == 403
    assert _create(client, auth("hr")).status_code == 403
    assert _create(client, auth("it_admin")).status_code == 201


def test_delete(client, auth):
    admin = auth("admin")
    row = _create(client, admin).get_json()["data"]
    assert client.delete(f"{BASE}/{row['id']}", headers=admin).status_code == 200
    assert client.get(f"{BASE}/{row['id']}", headers=admin).status_code == 404
    assert client.get(f"{BASE}/type/SFTP", headers=admin).get_json()["count"] == 0


def _fields(r):
    assert r.status_code == 400
    return {e["field"] for e in r.get_json()["errors"]}


def test_api_integration_needs_endpoint_and_auth(client, auth):
    admin = auth("admin")
    r = client.post(BASE, json={"name": "Payroll", "type": "API", "authenticationType": "OAuth2"}, headers=admin)
    assert _fields(r) == {"endpoint_url", "credentials", "sync_frequency"}

    r = _create(client, admin, type="API", endpointUrl="https://api.example.com")
    assert _fields(r) == {"authentication_type"}
    assert _create(client, admin, type="API", endpointUrl="https://api.example.com", authenticationType="Basic").status_code == 201


def test_auth_type_needs_credentials(client, auth):
    admin = auth("admin")
    assert _fields(_create(client, admin, authenticationType="Bearer", credentials=None)) == {"credentials"}
    assert _create(client, admin, authenticationType="None", credentials=None).status_code == 201


def test_active_integration_needs_sync_frequency(client, auth):
    admin = auth("admin")
    assert _fields(_create(client, admin, syncFrequency=None)) == {"sync_frequency"}
    assert _create(client, admin, name="Inactive feed", syncFrequency=None, status="Inactive").status_code == 201
    assert _create(client, admin, name="Push hook", type="Webhook", syncFrequency=None).status_code == 201


def test_update_checked_against_stored_row(client, auth):
    admin = auth("admin")
    row = _create(client, admin, status="Inactive", syncFrequency=None).get_json()["data"]
    r = client.put(f"{BASE}/{row['id']}", json={"status": "Active"}, headers=admin)
    assert _fields(r) == {"sync_frequency"}
    r = client.put(f"{BASE}/{row['id']}", json={"status": "Active", "syncFrequency": "hourly"}, headers=admin)
    assert r.status_code == 200
