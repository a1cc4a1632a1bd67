"""
Tests for the /api/auth/audit-logs endpoints of SafawiNet Server
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

AUDIT_VIEW = [{"page": "audit-logs", "actions": ["view", "export"]}]
AUDIT_VIEW_OWN = [{"page": "audit-logs", "actions": ["view_own"]}]


def test_login_events_recorded(client, admin_headers, make_user):
    """Successful and failed logins are logged with risk levels"""
    make_user("alice")
    client.post("/api/auth/login", json={"identifier": "alice", "password": "Wrong!Pass1"})

    data = client.get("/api/auth/audit-logs", headers=admin_headers).json()["data"]

    actions = [log["action"] for log in data["logs"]]
    assert "login" in actions
    assert "login_failed" in actions
    assert data["summary"]["failedLoginsCount"] == 1
    assert data["scope"] == "all"


def test_view_own_only_sees_own_events(client, login, make_user):
    """view_own holders never see other users' events, even when asking for them"""
    alice_id = make_user("alice", permissions=AUDIT_VIEW_OWN)
    bob_id = make_user("bob")
    login("bob")
    headers = login("alice")

    response = client.get("/api/auth/audit-logs", params={"userId": str(bob_id)}, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["scope"] == "own"
    assert data["logs"]
    assert {log["userId"] for log in data["logs"]} == {alice_id}


def test_full_viewer_filters_by_user(client, login, make_user):
    """view holders can narrow to chosen users"""
    make_user("auditor", permissions=AUDIT_VIEW)
    bob_id = make_user("bob")
    login("bob")
    headers = login("auditor")

    logs = client.get("/api/auth/audit-logs", params={"userId": str(bob_id)}, headers=headers).json()["data"]["logs"]

    assert logs
    assert {log["userId"] for log in logs} == {bob_id}


def test_filters_are_validated(client, admin_headers):
    """Bad risk levels and cutoff dates are refused"""
    response = client.get("/api/auth/audit-logs", params={"riskLevel": "extreme"}, headers=admin_headers)
    assert response.status_code == 400

    response = client.get("/api/auth/audit-logs", params={"cutoff": "yesterday"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid cutoff date format"

    response = client.get("/api/auth/audit-logs", params={"limit": 1001}, headers=admin_headers)
    assert response.status_code == 400


def test_cutoff_excludes_older_events(client, admin_headers):
    """A cutoff in the future leaves nothing"""
    response = client.get("/api/auth/audit-logs", params={"cutoff": "2999-01-01T00:00:00Z"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["data"]["logs"] == []


def test_user_options_need_full_view(client, admin_headers, login, make_user):
    """The user filter options are for full viewers only"""
    make_user("alice", permissions=AUDIT_VIEW_OWN)

    response = client.get("/api/auth/audit-logs/users", headers=admin_headers)
    assert response.status_code == 200
    assert "System Administrator (admin)" in [option["label"] for option in response.json()["data"]]

    assert client.get("/api/auth/audit-logs/users", headers=login("alice")).status_code == 403


def test_export_requires_export_permission(client, login, make_user):
    """Export needs the export action; the CSV has a header row"""
    make_user("alice", permissions=AUDIT_VIEW_OWN)
    make_user("auditor", permissions=AUDIT_VIEW)

    assert client.get("/api/auth/audit-logs/export", headers=login("alice")).status_code == 403

    response = client.get("/api/auth/audit-logs/export", headers=login("auditor"))
    assert response.status_code == 200
    assert response.text.splitlines()[0].startswith("Timestamp,User ID,Username,Action")
