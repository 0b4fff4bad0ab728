from __future__ import annotations

from datetime import datetime

from fastapi.testclient import TestClient

from app.main import app

AMC_SUBMIT = {
    "row_data": {"Site Code": "4A1001", "CIRCLE": "SOUTH", "Division": "HSR"},
    "routing": "AMC Team",
    "issue_type": "Dismantled",
    "source_file_id": "file-1",
    "row_key": "file-1:1",
    "remarks": "tower light off",
}


def _submit(client, body=AMC_SUBMIT):
    r = client.post("/actions/submit", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def _pending_approval(client):
    r = client.get("/approvals", params={"status": "Pending"})
    assert r.status_code == 200
    [approval] = r.json()
    return approval


def test_health():
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_requires_session(db):
    client = TestClient(app)
    r = client.get("/actions/my-actions")
    assert r.status_code == 401
    assert r.json()["error"] == "AuthenticationError"

    bad = TestClient(app, cookies={"sid": "forged"})
    assert bad.get("/health/auth").status_code == 401


def test_override_site_routes_to_override_vendor(db, directory, client_for):
    admin = client_for(directory.admin)
    r = admin.put("/vendor-overrides", json={"site_codes": ["3w2872"]})
    assert r.status_code == 200
    assert r.json() == {"site_codes": ["3W2872"], "count": 1}

    body = {**AMC_SUBMIT, "row_data": {"Site Code": "3W2872", "CIRCLE": "NORTH"}, "row_key": None}
    action = _submit(client_for(directory.router_eq), body)
    assert action["assigned_to_id"] == directory.amc_jyothi.id
    assert action["assigned_to_vendor"] == "Jyothi Electricals"


def test_no_eligible_assignee(db, directory, client_for):
    router = client_for(directory.router_eq)
    body = {**AMC_SUBMIT, "routing": "Relay Team", "row_data": {"Site Code": "5B2001", "DIVISION": "HSR"}}

    r = router.post("/actions/submit", json=body)
    assert r.status_code == 404
    err = r.json()
    assert err["error"] == "NoEligibleAssigneeError"
    assert err["context"] == {"role": "Relay", "division": "HSR", "site_code": "5B2001"}
    assert router.get("/actions/my-routed-actions").json() == []


def test_full_chain_through_api(db, directory, client_for):
    router = client_for(directory.router_eq)
    vendor = client_for(directory.amc_south)
    ccr = client_for(directory.ccr2)

    action = _submit(router)
    assert action["status"] == "Pending"
    assert [a["id"] for a in vendor.get("/actions/my-actions").json()] == [action["id"]]

    r = vendor.put(f"/actions/{action['id']}/status", json={"status": "Completed", "remarks": "replaced breaker"})
    assert r.status_code == 200
    assert r.json()["status"] == "Completed"

    stage1 = _pending_approval(router)
    assert stage1["approval_type"] == "AMC Resolution Approval"
    assert stage1["metadata"]["origin_action_id"] == action["id"]
    assert ccr.get("/approvals").json() == []

    r = router.put(f"/actions/{stage1['action_id']}/status", json={"status": "Completed", "decision": "approve"})
    assert r.status_code == 200

    stage2 = _pending_approval(ccr)
    assert stage2["approval_type"] == "CCR Resolution Approval"
    assert stage2["prior_action_id"] == stage1["action_id"]

    r = ccr.put(f"/actions/{stage2['action_id']}/status", json={"status": "Completed"})
    assert r.status_code == 200
    assert ccr.get(f"/approvals/{stage2['id']}").json()["status"] == "Approved"

    assert vendor.get("/site-records").json() == []
    [record] = vendor.get("/site-records", params={"include_approved": "true"}).json()
    assert record["ccr_status"] == "Approved"
    assert record["original_owner_id"] == directory.router_eq.id

    history = router.get(f"/actions/{action['id']}/history").json()
    assert [h["event"] for h in history] == ["create", "status"]

    stats = client_for(directory.admin).get("/approvals/stats").json()
    assert stats == {"pending": 0, "approved": 2, "kept_for_monitoring": 0, "recheck_requested": 0, "total": 2}


def test_keep_for_monitoring_via_remarks(db, directory, client_for):
    router = client_for(directory.router_eq)
    vendor = client_for(directory.amc_south)
    action = _submit(router)
    vendor.put(f"/actions/{action['id']}/status", json={"status": "Completed"})
    stage1 = _pending_approval(router)

    r = router.put(
        f"/actions/{stage1['action_id']}/status",
        json={"status": "In Progress", "remarks": "please keep for monitoring"},
    )
    assert r.status_code == 200

    assert router.get(f"/approvals/{stage1['id']}").json()["status"] == "Kept for Monitoring"
    assert vendor.get(f"/actions/{action['id']}").json()["status"] == "In Progress"
    assert client_for(directory.ccr1).get("/approvals").json() == []


def test_non_assignee_is_forbidden(db, directory, client_for):
    action = _submit(client_for(directory.router_eq))
    other = client_for(directory.amc_north)

    r = other.put(f"/actions/{action['id']}/status", json={"status": "Completed"})
    assert r.status_code == 403
    assert r.json()["error"] == "AuthorizationError"
    assert other.delete(f"/actions/{action['id']}").status_code == 403

    r = client_for(directory.amc_south).put(f"/actions/{action['id']}/status", json={"status": "Pending"})
    assert r.status_code == 400
    assert r.json()["error"] == "InvalidTransitionError"


def test_resolution_via_site_record(db, directory, client_for):
    router = client_for(directory.router_eq)
    vendor = client_for(directory.amc_south)
    action = _submit(router)

    [record] = vendor.get("/site-records").json()
    assert record["observation"] == "Pending"
    assert record["is_finalized"] is False

    # an omitted observation is rejected rather than read as "resolved"
    r = vendor.put("/site-records/observation", json={"file_id": "file-1", "row_key": record["row_key"]})
    assert r.status_code == 422
    assert vendor.get(f"/actions/{action['id']}").json()["status"] == "Pending"

    r = vendor.put(
        "/site-records/observation",
        json={"file_id": "file-1", "row_key": record["row_key"], "observation": "", "remarks": "fixed"},
    )
    assert r.status_code == 200
    assert r.json()["observation"] == ""
    assert r.json()["ccr_status"] == "Pending"

    assert vendor.get(f"/actions/{action['id']}").json()["status"] == "Completed"
    stage1 = _pending_approval(router)
    assert stage1["origin_action_id"] == action["id"]


def test_reroute_and_delete(db, directory, client_for):
    router = client_for(directory.router_eq)
    vendor = client_for(directory.amc_south)
    action = _submit(router)

    r = vendor.put(
        f"/actions/{action['id']}/reroute",
        json={"target_user_id": directory.amc_north.id, "target_role": "AMC", "remarks": "north crew"},
    )
    assert r.status_code == 200
    assert r.json()["remarks"] == "tower light off\n\n[Rerouted] north crew"

    north = client_for(directory.amc_north)
    [record] = north.get("/site-records").json()
    assert record["original_owner_id"] == directory.router_eq.id
    assert north.get("/notifications/unread-count").json() == {"unread": 1}

    north.put(f"/actions/{action['id']}/status", json={"status": "Completed"})
    stage1 = _pending_approval(router)

    assert router.delete(f"/actions/{stage1['action_id']}").status_code == 204
    assert router.get(f"/actions/{stage1['action_id']}").status_code == 404
    assert router.get(f"/approvals/{stage1['id']}").status_code == 200


def test_admin_reset_and_overrides_are_admin_only(db, directory, client_for):
    router = client_for(directory.router_eq)
    action = _submit(router)
    client_for(directory.amc_south).put(f"/actions/{action['id']}/status", json={"status": "Completed"})
    stage1 = _pending_approval(router)
    router.put(f"/actions/{stage1['action_id']}/status", json={"status": "Completed"})

    body = {"approved_date": datetime.utcnow().date().isoformat(), "site_code": "4A1001"}
    assert router.post("/approvals/reset", json=body).status_code == 403
    assert router.get("/vendor-overrides").status_code == 403

    r = client_for(directory.admin).post("/approvals/reset", json={**body, "roles": ["Equipment"]})
    assert r.status_code == 200
    assert r.json() == {"reset": 1}
    assert router.get(f"/approvals/{stage1['id']}").json()["status"] == "Pending"


def test_notifications_flow(db, directory, client_for):
    _submit(client_for(directory.router_eq))
    vendor = client_for(directory.amc_south)

    [note] = vendor.get("/notifications", params={"unread_only": "true"}).json()
    assert note["metadata"]["site_code"] == "4A1001"
    assert note["link"].startswith("/actions/")

    r = vendor.post(f"/notifications/{note['id']}/read")
    assert r.status_code == 200
    assert r.json()["is_read"] is True
    assert vendor.get("/notifications/unread-count").json() == {"unread": 0}
    assert client_for(directory.amc_north).post(f"/notifications/{note['id']}/read").status_code == 404
