"""
HTTP tests for the admin stats endpoint.
"""

import pytest


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", is_admin=True)


def test_requires_session(client):
    assert client.get("/api/admin/mcp-stats").status_code == 401


def test_non_admin_forbidden(client, make_user, session_headers):
    resp = client.get("/api/admin/mcp-stats", headers=session_headers(make_user()))
    assert resp.status_code == 403
    assert resp.json()["error"] == "Admin access required"


def test_empty_stats(client, admin, session_headers):
    resp = client.get("/api/admin/mcp-stats", headers=session_headers(admin))
    assert resp.status_code == 200
    data = resp.json()
    assert data["totalUsers"] == 1
    assert data["totalRequests"] == 0
    assert data["successRate"] == 0
    assert data["toolsUsage"] == {}
    assert data["recentRequests"] == []
    assert data["uniqueUsers"] == 0
    assert data["requestsByDay"] == {}
    assert data["timeRange"] == "7d"


def test_stats_reflect_traffic(client, admin, make_user, api_keys, vault, valid_descriptor, session_headers):
    user = make_user(name="Traffic")
    vault.store(user.id, valid_descriptor)
    raw = api_keys.generate(user.id).raw_key

    call = {"method": "tools/call", "params": {"name": "meet_v2_create_space", "arguments": {}}}
    client.post("/api/mcp", json=call, headers={"X-API-Key": raw})
    client.post("/api/mcp", json={"method": "tools/list"}, headers={"X-API-Key": raw})
    client.post("/api/mcp", json={"params": {}}, headers={"X-API-Key": raw})

    data = client.get("/api/admin/mcp-stats", headers=session_headers(admin)).json()
    assert data["totalUsers"] == 2
    assert data["totalApiKeys"] == 1
    assert data["activeApiKeys"] == 1
    assert data["totalCredentialRecords"] == 1
    assert data["totalRequests"] == 3
    assert data["successfulRequests"] == 2
    assert data["successRate"] == pytest.approx(2 / 3)
    assert data["uniqueUsers"] == 1
    assert sum(data["requestsByDay"].values()) == 3
    assert data["toolsUsage"] == {"meet_v2_create_space": 1}
    assert len(data["recentRequests"]) == 3
    assert {r["userName"] for r in data["recentRequests"]} == {"Traffic"}
