from __future__ import annotations

import json

from fastapi.testclient import TestClient

DEADLINE = "2030-01-01T00:00:00Z"


def _create_user(client: TestClient, name: str, email: str, **fields) -> dict:
    response = client.post("/api/users", json={"name": name, "email": email, **fields})
    assert response.status_code == 201, response.json()
    return response.json()["data"]


def _create_task(client: TestClient, name: str, **fields) -> dict:
    response = client.post("/api/tasks", json={"name": name, "deadline": DEADLINE, **fields})
    assert response.status_code == 201, response.json()
    return response.json()["data"]


def test_api_home(client: TestClient) -> None:
    response = client.get("/api")
    assert response.status_code == 200
    assert response.json()["message"] == "OK"


def test_create_user(client: TestClient) -> None:
    response = client.post("/api/users", json={"name": "Ada", "email": "ada@example.com"})

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "User created successfully"
    assert body["data"]["pendingTasks"] == []
    assert len(body["data"]["_id"]) == 24


def test_create_user_requires_name_and_email(client: TestClient) -> None:
    for payload in ({"email": "x@example.com"}, {"name": "NoEmail"}, {"name": "  ", "email": "x@example.com"}):
        response = client.post("/api/users", json=payload)
        assert response.status_code == 400
        assert response.json()["message"] == "name and email are required"


def test_duplicate_email_is_conflict(client: TestClient) -> None:
    _create_user(client, "Ada", "ada@example.com")

    response = client.post("/api/users", json={"name": "Dup", "email": "ada@example.com"})

    assert response.status_code == 409
    assert response.json()["message"] == "User with this email already exists"
    assert client.get("/api/users", params={"count": "true"}).json()["data"] == 1


def test_users_list_is_unlimited_and_paginates(client: TestClient) -> None:
    for index in range(120):
        _create_user(client, f"user{index:03d}", f"user{index}@example.com")

    assert len(client.get("/api/users").json()["data"]) == 120

    response = client.get("/api/users", params={"sort": json.dumps({"name": 1}), "skip": "1", "limit": "2"})
    assert [user["name"] for user in response.json()["data"]] == ["user001", "user002"]


def test_users_where_on_pending_tasks(client: TestClient) -> None:
    busy = _create_user(client, "Busy", "busy@example.com")
    _create_user(client, "Idle", "idle@example.com")
    _create_task(client, "Work", assignedUser=busy["_id"])

    response = client.get("/api/users", params={"where": json.dumps({"pendingTasks": {"$size": 0}})})

    assert [user["name"] for user in response.json()["data"]] == ["Idle"]


def test_get_user_hides_version_and_supports_select(client: TestClient) -> None:
    user = _create_user(client, "Ada", "ada@example.com")

    full = client.get(f"/api/users/{user['_id']}").json()["data"]
    assert "__v" not in full
    assert full["email"] == "ada@example.com"

    selected = client.get(f"/api/users/{user['_id']}", params={"select": json.dumps({"email": 1, "_id": 0})})
    assert selected.json()["data"] == {"email": "ada@example.com"}


def test_unknown_user_is_404(client: TestClient) -> None:
    for user_id in ("not-an-id", "e" * 24):
        assert client.get(f"/api/users/{user_id}").json() == {"message": "User not found", "data": {}}
        assert client.put(f"/api/users/{user_id}", json={"name": "x", "email": "x@example.com"}).status_code == 404
        assert client.delete(f"/api/users/{user_id}").status_code == 404


def test_put_requires_name_and_email(client: TestClient) -> None:
    user = _create_user(client, "Ada", "ada@example.com")

    response = client.put(f"/api/users/{user['_id']}", json={"name": "Only name"})

    assert response.status_code == 400
    assert response.json()["message"] == "name and email are required for PUT"


def test_put_pending_tasks_claims_and_releases(client: TestClient) -> None:
    ada = _create_user(client, "Ada", "ada@example.com")
    grace = _create_user(client, "Grace", "grace@example.com")
    mine = _create_task(client, "Mine", assignedUser=ada["_id"])
    theirs = _create_task(client, "Theirs", assignedUser=grace["_id"])

    response = client.put(
        f"/api/users/{ada['_id']}",
        json={"name": "Ada", "email": "ada@example.com", "pendingTasks": [theirs["_id"]]},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "User updated successfully"
    assert response.json()["data"]["pendingTasks"] == [theirs["_id"]]

    released = client.get(f"/api/tasks/{mine['_id']}").json()["data"]
    assert (released["assignedUser"], released["assignedUserName"]) == ("", "unassigned")
    claimed = client.get(f"/api/tasks/{theirs['_id']}").json()["data"]
    assert (claimed["assignedUser"], claimed["assignedUserName"]) == (ada["_id"], "Ada")
    assert client.get(f"/api/users/{grace['_id']}").json()["data"]["pendingTasks"] == []


def test_put_with_unknown_pending_task_changes_nothing(client: TestClient) -> None:
    ada = _create_user(client, "Ada", "ada@example.com")

    response = client.put(
        f"/api/users/{ada['_id']}",
        json={"name": "Renamed", "email": "ada@example.com", "pendingTasks": ["d" * 24]},
    )

    assert response.status_code == 400
    assert client.get(f"/api/users/{ada['_id']}").json()["data"]["name"] == "Ada"


def test_put_duplicate_email_is_conflict(client: TestClient) -> None:
    _create_user(client, "Ada", "ada@example.com")
    grace = _create_user(client, "Grace", "grace@example.com")

    response = client.put(f"/api/users/{grace['_id']}", json={"name": "Grace", "email": "ada@example.com"})

    assert response.status_code == 409


def test_delete_user_unassigns_tasks(client: TestClient) -> None:
    ada = _create_user(client, "Ada", "ada@example.com")
    tasks = [_create_task(client, f"Task {index}", assignedUser=ada["_id"]) for index in range(3)]

    response = client.delete(f"/api/users/{ada['_id']}")

    assert response.json() == {"message": "User deleted successfully", "data": {}}
    for task in tasks:
        stored = client.get(f"/api/tasks/{task['_id']}").json()["data"]
        assert (stored["assignedUser"], stored["assignedUserName"]) == ("", "unassigned")
    assert client.delete(f"/api/users/{ada['_id']}").status_code == 404
