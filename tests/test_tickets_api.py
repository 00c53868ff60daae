from __future__ import annotations

import re

from ems.tickets_api import generate_ticket_number

BASE = "/api/v1/tickets"


def _ticket(**overrides):
    body = {
        "title": "Laptop will not boot",
        "description": "Screen stays black after the vendor logo.",
        "category": "Hardware",
    }
    body.update(overrides)
    return body


def _create(client, headers, **overrides):
    return client.post(BASE, json=_ticket(**overrides), headers=headers)


def _events(client, headers, ticket_id):
    return client.get(f"{BASE}/{ticket_id}/events", headers=headers).get_json()["data"]


def test_ticket_number_format():
    assert re.fullmatch(r"TKT-\d{8}-[0-9A-F]{6}", generate_ticket_number())


def test_create_applies_defaults(client, auth, people):
    r = _create(client, auth("employee"))
    assert r.status_code == 201
    t = r.get_json()["data"]
    assert t["priority"] == "Medium"
    assert t["status"] == "Open"
    assert t["created_by"] == people["employee"]["employee"]
    assert t["assigned_to"] is None
    assert re.fullmatch(r"TKT-\d{8}-[0-9A-F]{6}", t["ticket_number"])


def test_create_validation(client, auth):
    r = client.post(BASE, json={"title": "Hi", "category": "Kitchen"}, headers=auth("employee"))
    assert r.status_code == 400
    fields = {e["field"] for e in r.get_json()["errors"]}
    assert fields == {"title", "description", "category"}


def test_cannot_assign_to_self(client, auth, people):
    r = _create(client, auth("manager"), assigned_to=people["manager"]["employee"])
    assert r.status_code == 400
    assert r.get_json()["message"] == "Cannot assign ticket to self."


def test_assignment_on_create_records_event(client, auth, people):
    bob = auth("employee")
    it = people["it_admin"]["employee"]
    t = _create(client, bob, assigned_to=it).get_json()["data"]
    events = _events(client, bob, t["id"])
    assert [(e["event_type"], e["old_value"], e["new_value"]) for e in events] == [("assigned", None, str(it))]


def test_employee_sees_only_own_tickets(client, auth, people):
    mine = _create(client, auth("employee")).get_json()["data"]
    # dan's ticket assigned to bob is still not visible to bob (employee role)
    theirs = _create(client, auth("other"), assigned_to=people["employee"]["employee"]).get_json()["data"]

    bob = auth("employee")
    listed = client.get(BASE, headers=bob).get_json()["data"]
    assert [t["id"] for t in listed] == [mine["id"]]

    r = client.get(f"{BASE}/{theirs['id']}", headers=bob)
    assert r.status_code == 403
    assert r.get_json()["message"] == "Access denied. You can only view your own tickets."


def test_manager_sees_created_and_assigned(client, auth, people):
    assigned = _create(client, auth("employee"), assigned_to=people["manager"]["employee"]).get_json()["data"]
    own = _create(client, auth("manager")).get_json()["data"]
    _create(client, auth("other"))

    carol = auth("manager")
    ids = {t["id"] for t in client.get(BASE, headers=carol).get_json()["data"]}
    assert ids == {assigned["id"], own["id"]}
    assert client.get(f"{BASE}/{assigned['id']}", headers=carol).status_code == 200


def test_admin_sees_everything_and_filters_by_status(client, auth):
    a = _create(client, auth("employee")).get_json()["data"]
    _create(client, auth("other"))
    admin = auth("admin")
    client.put(f"{BASE}/{a['id']}", json={"status": "In Progress"}, headers=admin)

    body = client.get(BASE, headers=admin).get_json()
    assert body["pagination"]["total"] == 2
    filtered = client.get(BASE, query_string={"status": "In Progress"}, headers=admin).get_json()["data"]
    assert [t["id"] for t in filtered] == [a["id"]]
    assert client.get(f"{BASE}?status=Bogus", headers=admin).status_code == 400


def test_update_journals_changes_and_resolves(client, auth, people):
    bob = auth("employee")
    admin = auth("admin")
    t = _create(client, bob).get_json()["data"]
    it = people["it_admin"]["employee"]
    hr = people["hr"]["employee"]

    r = client.put(f"{BASE}/{t['id']}", json={"assigned_to": it, "priority": "High"}, headers=admin)
    assert r.status_code == 200
    r = client.put(f"{BASE}/{t['id']}", json={"assigned_to": hr, "status": "Resolved"}, headers=admin)
    updated = r.get_json()["data"]
    assert updated["status"] == "Resolved"
    assert updated["resolved_date"] is not None

    kinds = [(e["event_type"], e["old_value"], e["new_value"]) for e in _events(client, admin, t["id"])]
    assert ("assigned", None, str(it)) in kinds
    assert ("priority_change", "Medium", "High") in kinds
    assert ("reassigned", str(it), str(hr)) in kinds
    assert ("status_change", "Open", "Resolved") in kinds
    assert all(e["changed_by"] == people["admin"]["employee"] for e in _events(client, admin, t["id"]))


def test_ticket_number_is_immutable(client, auth):
    admin = auth("admin")
    t = _create(client, admin).get_json()["data"]
    r = client.put(f"{BASE}/{t['id']}", json={"ticket_number": "TKT-HACKED"}, headers=admin)
    assert r.get_json()["data"]["ticket_number"] == t["ticket_number"]


def test_non_owner_cannot_update(client, auth):
    t = _create(client, auth("employee")).get_json()["data"]
    r = client.put(f"{BASE}/{t['id']}", json={"status": "Closed"}, headers=auth("other"))
    assert r.status_code == 403


def test_delete_is_admin_only_and_removes_children(client, auth, people):
    bob = auth("employee")
    t = _create(client, bob, assigned_to=people["it_admin"]["employee"]).get_json()["data"]
    client.post(f"{BASE}/{t['id']}/comments", json={"body": "any news?"}, headers=bob)

    assert client.delete(f"{BASE}/{t['id']}", headers=bob).status_code == 403
    admin = auth("admin")
    r = client.delete(f"{BASE}/{t['id']}", headers=admin)
    assert r.status_code == 200
    assert client.get(f"{BASE}/{t['id']}", headers=admin).status_code == 404


def test_comments(client, auth, people):
    bob = auth("employee")
    t = _create(client, bob).get_json()["data"]
    r = client.post(f"{BASE}/{t['id']}/comments", json={"body": "Tried rebooting twice."}, headers=bob)
    assert r.status_code == 201
    assert r.get_json()["message"] == "Comment added"
    assert r.get_json()["data"]["author_id"] == people["employee"]["employee"]

    listed = client.get(f"{BASE}/{t['id']}/comments", headers=bob).get_json()["data"]
    assert [c["body"] for c in listed] == ["Tried rebooting twice."]

    assert client.post(f"{BASE}/{t['id']}/comments", json={}, headers=bob).status_code == 400
    assert client.get(f"{BASE}/{t['id']}/comments", headers=auth("other")).status_code == 403


def test_missing_ticket_is_404(client, auth):
    r = client.get(f"{BASE}/999", headers=auth("employee"))
    assert r.status_code == 404
    assert r.get_json()["message"] == "Ticket not found"
