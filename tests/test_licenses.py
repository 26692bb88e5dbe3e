"""Tests for license endpoints (stateful regime)."""
import re

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from license_server.auth.dependencies import get_settings
from license_server.models.license import License
from main import app
from conftest import make_settings

KEY_FORMAT = re.compile(r"^ECLIPSE-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}$")


async def count_licenses(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(License))
        return result.scalar_one()


async def create(client, admin_headers, owner="U1", **extra):
    response = await client.post(
        "/api/create", json={"owner": owner, **extra}, headers=admin_headers
    )
    assert response.status_code == 200, response.text
    return response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_full_license_lifecycle(client, admin_headers):
    """Create, validate, revoke, validate again."""
    created = await create(client, admin_headers, owner="U1", notes="trial")
    assert KEY_FORMAT.match(created["key"])
    assert created["owner"] == "U1"
    assert created["expires_at"] is None

    response = await client.post("/api/validate", json={"key": created["key"]})
    assert response.status_code == 200
    assert response.json() == {"valid": True, "owner": "U1"}

    response = await client.post(
        "/api/revoke", json={"key": created["key"]}, headers=admin_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["revoked"] is True
    assert data["key"] == created["key"]
    assert data["status"] == "revoked"

    response = await client.post("/api/validate", json={"key": created["key"]})
    assert response.json() == {"valid": False, "reason": "revoked"}


async def test_create_with_expiry_date(client, admin_headers):
    created = await create(client, admin_headers, owner="U2", expires_at="2999-12-31")
    assert created["expires_at"].startswith("2999-12-31T00:00:00")

    response = await client.post("/api/validate", json={"key": created["key"]})
    assert response.json()["valid"] is True


async def test_expired_license_fails_validation(client, admin_headers):
    created = await create(client, admin_headers, owner="U2", expires_at="2020-01-01T00:00:00Z")

    response = await client.post("/api/validate", json={"key": created["key"]})

    assert response.json() == {"valid": False, "reason": "expired"}


@pytest.mark.parametrize("body", [{}, {"owner": ""}, {"owner": "   "}, {"owner": "U1", "expires_at": "soon"}])
async def test_create_rejects_bad_input(client, admin_headers, session_factory, body):
    response = await client.post("/api/create", json=body, headers=admin_headers)

    assert response.status_code == 400
    assert "error" in response.json()
    assert await count_licenses(session_factory) == 0


@pytest.mark.parametrize("headers", [{}, {"x-admin-secret": "wrong"}, {"x-admin-secret": ""}])
async def test_admin_endpoints_require_secret(client, session_factory, admin_headers, headers):
    """Every admin call without the right secret is a 401 and changes nothing."""
    created = await create(client, admin_headers, owner="U1")
    before = await count_licenses(session_factory)

    calls = [
        client.post("/api/create", json={"owner": "intruder"}, headers=headers),
        client.post("/api/revoke", json={"key": created["key"]}, headers=headers),
        client.get("/api/list", headers=headers),
        client.get("/api/lookup", params={"owner": "U1"}, headers=headers),
    ]
    for call in calls:
        response = await call
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    assert await count_licenses(session_factory) == before
    response = await client.post("/api/validate", json={"key": created["key"]})
    assert response.json()["valid"] is True


async def test_empty_configured_secret_rejects_everything(client, session_factory):
    app.dependency_overrides[get_settings] = lambda: make_settings(ADMIN_SECRET="")

    response = await client.post("/api/create", json={"owner": "U1"}, headers={"x-admin-secret": ""})

    assert response.status_code == 401
    assert await count_licenses(session_factory) == 0


async def test_revoke_twice_reports_already_revoked(client, admin_headers, session_factory):
    created = await create(client, admin_headers)

    await client.post("/api/revoke", json={"key": created["key"]}, headers=admin_headers)
    response = await client.post("/api/revoke", json={"key": created["key"]}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "already_revoked"

    async with session_factory() as session:
        record = await session.get(License, created["key"])
        assert record.active is False


async def test_revoke_unknown_key_is_not_found(client, admin_headers, session_factory):
    response = await client.post("/api/revoke", json={"key": "UNKNOWN-KEY"}, headers=admin_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Not found"}
    assert await count_licenses(session_factory) == 0


async def test_revoke_requires_key(client, admin_headers):
    response = await client.post("/api/revoke", json={}, headers=admin_headers)
    assert response.status_code == 400


async def test_validate_unknown_key(client):
    response = await client.post("/api/validate", json={"key": "ECLIPSE-0000-0000-0000"})

    assert response.status_code == 200
    assert response.json() == {"valid": False, "reason": "invalid key"}


@pytest.mark.parametrize("body", [{}, {"key": None}, {"key": 123}, {"key": ["ECLIPSE"]}])
async def test_validate_malformed_key_is_invalid_not_an_error(client, body):
    response = await client.post("/api/validate", json=body)

    assert response.status_code == 200
    assert response.json() == {"valid": False, "reason": "invalid key"}


async def test_validate_accepts_oversized_address(client, admin_headers):
    created = await create(client, admin_headers, owner="U1")
    ip = "fe80::1234:5678:9abc:def0:1234:5678%" + "x" * 24
    assert len(ip) == 60

    response = await client.post("/api/validate", json={"key": created["key"], "ip": ip})

    assert response.status_code == 200
    assert response.json() == {"valid": True, "owner": "U1"}

    response = await client.get("/api/lookup", params={"owner": "U1"}, headers=admin_headers)
    assert response.json()[0]["server_ip"] == ip[:45]


async def test_validate_ignores_non_string_address(client, admin_headers):
    created = await create(client, admin_headers, owner="U1")

    response = await client.post("/api/validate", json={"key": created["key"], "ip": 12345})

    assert response.json() == {"valid": True, "owner": "U1"}


async def test_store_outage_is_reported_as_unavailable(client, admin_headers, monkeypatch):
    async def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(AsyncSession, "execute", broken_execute)

    response = await client.get("/api/list", headers=admin_headers)
    assert response.status_code == 503
    assert response.json() == {"error": "License store unavailable"}

    response = await client.post("/api/validate", json={"key": "ECLIPSE-0000-0000-0000"})
    assert response.status_code == 503
    assert response.json() == {"error": "License store unavailable"}


async def test_validate_binds_first_address(client, admin_headers):
    created = await create(client, admin_headers, owner="U3")

    await client.post("/api/validate", json={"key": created["key"], "ip": "203.0.113.7"})
    await client.post("/api/validate", json={"key": created["key"], "ip": "203.0.113.8"})

    response = await client.get("/api/lookup", params={"owner": "U3"}, headers=admin_headers)
    assert response.json()[0]["server_ip"] == "203.0.113.7"


async def test_validate_falls_back_to_client_address(client, admin_headers):
    created = await create(client, admin_headers, owner="U3")

    await client.post("/api/validate", json={"key": created["key"]})

    response = await client.get("/api/lookup", params={"owner": "U3"}, headers=admin_headers)
    assert response.json()[0]["server_ip"] == "127.0.0.1"


async def test_validate_can_require_admin_secret(client, admin_headers):
    created = await create(client, admin_headers)
    app.dependency_overrides[get_settings] = lambda: make_settings(VALIDATE_REQUIRES_ADMIN_SECRET=True)

    anonymous = await client.post("/api/validate", json={"key": created["key"]})
    privileged = await client.post("/api/validate", json={"key": created["key"]}, headers=admin_headers)

    assert anonymous.status_code == 401
    assert privileged.json() == {"valid": True, "owner": "U1"}


async def test_list_returns_records_most_recent_first(client, admin_headers):
    keys = [(await create(client, admin_headers, owner=f"owner-{i}"))["key"] for i in range(3)]

    response = await client.get("/api/list", headers=admin_headers)

    assert response.status_code == 200
    rows = response.json()
    assert {r["key"] for r in rows} == set(keys)
    created_at = [r["created_at"] for r in rows]
    assert created_at == sorted(created_at, reverse=True)
    assert set(rows[0]) == {"key", "owner", "created_at", "expires_at", "notes", "active", "server_ip"}


async def test_list_default_cap_and_unlimited(client, admin_headers):
    app.dependency_overrides[get_settings] = lambda: make_settings(LIST_DEFAULT_LIMIT=2)
    for i in range(4):
        await create(client, admin_headers, owner=f"owner-{i}")

    capped = await client.get("/api/list", headers=admin_headers)
    unlimited = await client.get("/api/list", params={"limit": 0}, headers=admin_headers)
    explicit = await client.get("/api/list", params={"limit": 3}, headers=admin_headers)

    assert len(capped.json()) == 2
    assert len(unlimited.json()) == 4
    assert len(explicit.json()) == 3


async def test_lookup_isolates_owners(client, admin_headers):
    for owner in ["A", "B", "A"]:
        await create(client, admin_headers, owner=owner, notes=f"for {owner}")

    response = await client.get("/api/lookup", params={"owner": "A"}, headers=admin_headers)

    rows = response.json()
    assert len(rows) == 2
    assert all(r["owner"] == "A" for r in rows)


async def test_lookup_unknown_owner_is_empty(client, admin_headers):
    response = await client.get("/api/lookup", params={"owner": "nobody"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == []


async def test_lookup_requires_owner(client, admin_headers):
    response = await client.get("/api/lookup", headers=admin_headers)
    assert response.status_code == 400
    assert "error" in response.json()
