"""
Tests for the HTTP API.
"""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from taskpulse.api import create_app
from taskpulse.app import TaskPulse
from taskpulse.config import Settings


@pytest.fixture
def container(tmp_path):
    container = TaskPulse(Settings(
        db_path=tmp_path / "api.db",
        jwt_secret="test-secret",
        environment="test",
    ))
    users = container.users
    container.boss = users.create_user("Boss", "boss@example.com", "boss-pass", role="manager", team="T1")
    container.alice = users.create_user("Alice", "alice@example.com", "alice-pass", team="T1")
    container.bob = users.create_user("Bob", "bob@example.com", "bob-pass", team="T1")
    return container


@pytest.fixture
async def client(container):
    async with TestClient(TestServer(create_app(container))) as client:
        yield client


async def login(client, email, password):
    resp = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status == 200
    data = await resp.json()
    return {"Authorization": f"Bearer {data['token']}"}


class TestPublicRoutes:
    """Test routes reachable without a token."""

    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status == 200
        data = await resp.json()
        assert data["status"] == "healthy"
        assert data["rooms"]["rooms"] == 0
        assert data["roomKinds"] == {}

    async def test_ready(self, client):
        resp = await client.get("/ready")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ready"

    async def test_login(self, client, container):
        resp = await client.post("/api/auth/login", json={"email": "Alice@Example.com", "password": "alice-pass"})
        assert resp.status == 200
        data = await resp.json()
        assert data["user"]["id"] == container.alice.user_id
        assert data["user"]["team"] == "T1"
        assert data["token"] and data["refresh_token"]

    async def test_bad_password(self, client):
        resp = await client.post("/api/auth/login", json={"email": "alice@example.com", "password": "nope"})
        assert resp.status == 401

    async def test_cors_preflight(self, client):
        resp = await client.options("/api/tasks")
        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "Authorization" in resp.headers["Access-Control-Allow-Headers"]


class TestAuthentication:
    """Test bearer token handling."""

    async def test_missing_token(self, client):
        resp = await client.get("/api/tasks")
        assert resp.status == 401
        assert await resp.json() == {"message": "No token provided"}

    async def test_garbage_token(self, client):
        resp = await client.get("/api/tasks", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status == 401

    async def test_me(self, client):
        headers = await login(client, "alice@example.com", "alice-pass")
        resp = await client.get("/api/auth/me", headers=headers)
        assert resp.status == 200
        assert (await resp.json())["email"] == "alice@example.com"

    async def test_logout_revokes(self, client):
        """A logged out access token is rejected even before it expires."""
        headers = await login(client, "alice@example.com", "alice-pass")

        resp = await client.post("/api/auth/logout", headers=headers)
        assert (await resp.json()) == {"success": True}

        resp = await client.get("/api/auth/me", headers=headers)
        assert resp.status == 401

    async def test_refresh(self, client):
        resp = await client.post("/api/auth/login", json={"email": "bob@example.com", "password": "bob-pass"})
        refresh_token = (await resp.json())["refresh_token"]

        resp = await client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert resp.status == 200
        token = (await resp.json())["token"]

        resp = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert (await resp.json())["name"] == "Bob"


class TestTasks:
    """Test task routes end to end."""

    async def create(self, client, headers, container, **fields):
        body = {"title": "Write report", "assignedTo": container.bob.user_id, "team": "T1", **fields}
        return await client.post("/api/tasks", json=body, headers=headers)

    async def test_create_and_get(self, client, container):
        boss = await login(client, "boss@example.com", "boss-pass")

        resp = await self.create(client, boss, container)
        assert resp.status == 201
        task = await resp.json()
        assert task["status"] == "pending"

        bob = await login(client, "bob@example.com", "bob-pass")
        resp = await client.get(f"/api/tasks/{task['_id']}", headers=bob)
        assert resp.status == 200
        assert (await resp.json())["title"] == "Write report"

    async def test_employee_cannot_delete_foreign_task(self, client, container):
        boss = await login(client, "boss@example.com", "boss-pass")
        task = await (await self.create(client, boss, container)).json()

        alice = await login(client, "alice@example.com", "alice-pass")
        resp = await client.delete(f"/api/tasks/{task['_id']}", headers=alice)

        assert resp.status == 403
        data = await resp.json()
        assert data["message"] == "Forbidden: insufficient permissions"
        assert data["details"]["reason"] == "insufficient_permission"

    async def test_employee_cannot_create(self, client, container):
        alice = await login(client, "alice@example.com", "alice-pass")
        resp = await self.create(client, alice, container)
        assert resp.status == 403

    async def test_delete(self, client, container):
        boss = await login(client, "boss@example.com", "boss-pass")
        task = await (await self.create(client, boss, container)).json()

        resp = await client.delete(f"/api/tasks/{task['_id']}", headers=boss)
        assert await resp.json() == {"message": "Task deleted successfully"}

        resp = await client.get(f"/api/tasks/{task['_id']}", headers=boss)
        assert resp.status == 404
        assert (await resp.json())["message"] == "Task not found"

    async def test_invalid_json(self, client):
        boss = await login(client, "boss@example.com", "boss-pass")
        resp = await client.post("/api/tasks", data="{not json", headers={**boss, "Content-Type": "application/json"})
        assert resp.status == 400
        assert (await resp.json())["message"] == "Invalid JSON body"

    async def test_validation_errors(self, client, container):
        boss = await login(client, "boss@example.com", "boss-pass")
        resp = await self.create(client, boss, container, title="", priority="whenever")

        assert resp.status == 400
        data = await resp.json()
        assert data["message"] == "Validation failed"
        assert {e["field"] for e in data["details"]["errors"]} == {"title", "priority"}

    async def test_bad_page(self, client):
        boss = await login(client, "boss@example.com", "boss-pass")
        resp = await client.get("/api/tasks?page=abc", headers=boss)
        assert resp.status == 400
        assert (await resp.json())["details"] == {"field": "page"}


class TestProductionErrors:
    """Test error bodies in production."""

    async def test_details_hidden(self, tmp_path):
        container = TaskPulse(Settings(
            db_path=tmp_path / "prod.db",
            jwt_secret="test-secret",
            environment="production",
        ))
        container.users.create_user("Boss", "boss@example.com", "boss-pass", role="manager", team="T1")

        async with TestClient(TestServer(create_app(container))) as client:
            boss = await login(client, "boss@example.com", "boss-pass")
            resp = await client.get("/api/tasks?page=abc", headers=boss)

            assert resp.status == 400
            assert await resp.json() == {"message": "page must be an integer"}


class TestOrganization:
    """Test department and user routes end to end."""

    async def test_department_lifecycle(self, client, container):
        container.users.create_user("Root", "root@example.com", "root-pass", role="admin")
        root = await login(client, "root@example.com", "root-pass")

        resp = await client.post("/api/organization/departments", json={"name": "Engineering", "code": "eng"}, headers=root)
        assert resp.status == 201
        department = (await resp.json())["department"]
        assert department["code"] == "ENG"

        resp = await client.post("/api/organization/departments", json={"name": "ENGINEERING"}, headers=root)
        assert resp.status == 409

        resp = await client.get(f"/api/organization/departments/{department['_id']}/members", headers=root)
        assert await resp.json() == {"members": []}

        resp = await client.delete(f"/api/organization/departments/{department['_id']}", headers=root)
        assert (await resp.json())["departmentId"] == department["_id"]

    async def test_manager_cannot_create_department(self, client):
        boss = await login(client, "boss@example.com", "boss-pass")
        resp = await client.post("/api/organization/departments", json={"name": "Skunkworks"}, headers=boss)
        assert resp.status == 403

    async def test_profile(self, client):
        alice = await login(client, "alice@example.com", "alice-pass")

        resp = await client.put("/api/users/profile", json={"bio": "Hello", "role": "admin"}, headers=alice)
        assert resp.status == 200

        resp = await client.get("/api/users/profile", headers=alice)
        user = (await resp.json())["user"]
        assert user["bio"] == "Hello"
        assert user["role"] == "employee"
        assert "passwordHash" not in user

    async def test_employee_cannot_promote_self(self, client, container):
        alice = await login(client, "alice@example.com", "alice-pass")
        resp = await client.put(f"/api/users/{container.alice.user_id}", json={"role": "admin"}, headers=alice)
        assert resp.status == 403

    async def test_user_directory(self, client):
        bob = await login(client, "bob@example.com", "bob-pass")
        resp = await client.get("/api/users", headers=bob)
        assert [u["name"] for u in (await resp.json())["users"]] == ["Alice", "Bob", "Boss"]


class TestNotifications:
    """Test the notification list."""

    async def test_list_includes_unread_count(self, client, container):
        boss = await login(client, "boss@example.com", "boss-pass")
        body = {"user": container.boss.user_id, "type": "system", "title": "Hi", "message": "Welcome"}
        resp = await client.post("/api/notifications", json=body, headers=boss)
        assert resp.status == 201

        resp = await client.get("/api/notifications", headers=boss)
        data = await resp.json()
        assert data["unreadCount"] == 1
        assert [n["title"] for n in data["notifications"]] == ["Hi"]
