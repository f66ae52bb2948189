"""HTTP tests for the key endpoints."""

from unittest.mock import AsyncMock

import pytest

from keygate.config.settings import settings
from keygate.features.keys.exceptions import GenerationFailedError, StoreUnavailableError


async def issue(client, **body) -> dict:
    response = await client.post("/api/keys", json=body)
    assert response.status_code == 200
    return response.json()


@pytest.mark.integration
class TestCreateKey:
    @pytest.mark.asyncio
    async def test_create_with_defaults(self, client):
        data = await issue(client)

        assert data["name"] == "Unnamed Key"
        assert data["format"] == "uuid"
        assert data["length"] == 36
        assert data["used_count"] == 0
        assert data["max_uses"] == 1
        assert data["created_at"] == "2025-01-15T10:30:00Z"
        assert data["expires_at"] == "2025-01-16T10:30:00Z"

    @pytest.mark.asyncio
    async def test_create_with_options(self, client):
        data = await issue(client, name="Beta", format="alphanumeric", length=3, max_uses=2)

        assert data["name"] == "Beta"
        assert data["format"] == "alphanumeric"
        assert len(data["token"]) == 8
        assert data["max_uses"] == 2

    @pytest.mark.asyncio
    async def test_rejects_unknown_format(self, client):
        response = await client.post("/api/keys", json={"format": "base64"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_rejects_zero_max_uses(self, client):
        response = await client.post("/api/keys", json={"max_uses": 0})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_generation_failure(self, client, memory_service):
        memory_service.issue = AsyncMock(side_effect=GenerationFailedError(3))

        response = await client.post("/api/keys", json={})

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to generate key"


@pytest.mark.integration
class TestListing:
    @pytest.mark.asyncio
    async def test_list_all_includes_used(self, client):
        first = await issue(client, name="first")
        await issue(client, name="second")
        await client.get(f"/api/validate/{first['token']}")

        response = await client.get("/api/keys")

        assert response.status_code == 200
        assert {k["name"] for k in response.json()} == {"first", "second"}

    @pytest.mark.asyncio
    async def test_list_sweeps_expired(self, client, clock, memory_store):
        key = await issue(client)
        clock.advance(hours=25)

        response = await client.get("/api/keys")

        assert response.json() == []
        assert await memory_store.get(key["token"]) is None

    @pytest.mark.asyncio
    async def test_live_view(self, client, clock):
        await issue(client, name="older")
        clock.advance(minutes=1)
        newer = await issue(client, name="newer")
        used = await issue(client, name="used")
        await client.post("/api/validate", json={"key": used["token"]})

        response = await client.get("/api/keys/live")

        body = response.json()
        assert [k["name"] for k in body["keys"]] == ["newer", "older"]
        assert body["metadata"] == {"total_keys": 2, "last_generated": newer["created_at"]}

    @pytest.mark.asyncio
    async def test_live_view_legacy_path(self, client):
        await issue(client)

        response = await client.get("/api/keys/file")

        assert response.status_code == 200
        assert response.json()["metadata"]["total_keys"] == 1


@pytest.mark.integration
class TestValidation:
    @pytest.mark.asyncio
    async def test_redeem_by_path(self, client):
        key = await issue(client, name="Beta")

        first = await client.get(f"/api/validate/{key['token']}")
        second = await client.get(f"/api/validate/{key['token']}")

        assert first.status_code == 200
        assert first.json() == {
            "valid": True,
            "status": "valid",
            "message": "Key is valid and has been consumed",
            "data": {
                "name": "Beta",
                "format": "uuid",
                "created_at": "2025-01-15T10:30:00Z",
                "expires_at": "2025-01-16T10:30:00Z",
                "uses_remaining": 0,
            },
        }
        assert second.json()["status"] == "exhausted"
        assert second.json()["message"] == "Key has already been used"

    @pytest.mark.asyncio
    async def test_redeem_by_query_and_body(self, client):
        key = await issue(client, max_uses=2)

        by_query = await client.get("/api/validate", params={"key": key["token"]})
        by_body = await client.post("/api/validate", json={"key": key["token"]})
        after = await client.post("/api/validate", json={"key": key["token"]})

        assert by_query.json()["data"]["uses_remaining"] == 1
        assert by_body.json()["data"]["uses_remaining"] == 0
        assert after.json()["valid"] is False

    @pytest.mark.asyncio
    async def test_missing_key(self, client):
        by_query = await client.get("/api/validate")
        by_body = await client.post("/api/validate", json={})

        for response in (by_query, by_body):
            assert response.status_code == 200
            assert response.json()["valid"] is False
            assert response.json()["message"] == "Key is required"

    @pytest.mark.asyncio
    async def test_unknown_key(self, client):
        response = await client.get("/api/validate/does-not-exist")

        assert response.json() == {
            "valid": False,
            "status": "not_found",
            "message": "Key not found",
            "data": None,
        }

    @pytest.mark.asyncio
    async def test_expired_key(self, client, clock):
        key = await issue(client)
        clock.advance(hours=24)

        response = await client.get(f"/api/validate/{key['token']}")

        assert response.json()["status"] == "expired"
        assert response.json()["message"] == "Key has expired"

    @pytest.mark.asyncio
    async def test_check_does_not_consume(self, client):
        key = await issue(client)

        check = await client.get(f"/api/keys/check/{key['token']}")
        redeem = await client.get(f"/api/validate/{key['token']}")

        assert check.json()["message"] == "Key is valid"
        assert check.json()["data"]["uses_remaining"] == 1
        assert redeem.json()["valid"] is True


@pytest.mark.integration
class TestGenerate:
    @pytest.mark.asyncio
    async def test_generate_segmented_key(self, client):
        response = await client.post("/api/generate", json={"name": "Script"})

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["message"] == "Key generated successfully"
        assert body["name"] == "Script"
        assert body["expires"] == "2025-01-16T10:30:00Z"
        assert body["key"].startswith("FREE-")
        assert [len(part) for part in body["key"].split("-")] == [4, 10, 8]

    @pytest.mark.asyncio
    async def test_generate_without_body(self, client):
        response = await client.post("/api/generate")

        assert response.status_code == 200
        assert response.json()["name"] == "Generated Key"


@pytest.mark.integration
class TestSearch:
    @pytest.mark.asyncio
    async def test_requires_secret_header(self, client):
        response = await client.post("/api/keys/search", json={"query": "beta"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_wrong_secret(self, client):
        response = await client.post(
            "/api/keys/search",
            json={"query": "beta"},
            headers={"X-Search-Secret": "not-the-secret"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_returns_newest_live_match(self, client, clock):
        await issue(client, name="Beta one")
        clock.advance(minutes=1)
        newest = await issue(client, name="beta two")
        await issue(client, name="Gamma")

        response = await client.post(
            "/api/keys/search",
            json={"query": "BETA"},
            headers={"X-Search-Secret": settings.search_secret},
        )

        assert response.status_code == 200
        assert [k["token"] for k in response.json()] == [newest["token"]]

    @pytest.mark.asyncio
    async def test_rejects_empty_query(self, client):
        response = await client.post(
            "/api/keys/search",
            json={"query": ""},
            headers={"X-Search-Secret": settings.search_secret},
        )

        assert response.status_code == 422


@pytest.mark.integration
class TestMaintenance:
    @pytest.mark.asyncio
    async def test_cleanup(self, client, clock):
        await issue(client)
        await issue(client)
        clock.advance(hours=25)
        await issue(client)

        first = await client.post("/api/keys/cleanup")
        second = await client.post("/api/keys/cleanup")

        assert first.json() == {"removed": 2}
        assert second.json() == {"removed": 0}

    @pytest.mark.asyncio
    async def test_store_unavailable_is_503(self, client, memory_service):
        memory_service.store.consume = AsyncMock(side_effect=StoreUnavailableError("disk gone"))

        response = await client.get("/api/validate/anything")

        assert response.status_code == 503
        assert response.json() == {"detail": "Key store unavailable"}

    @pytest.mark.asyncio
    async def test_service_not_initialized(self, client):
        from keygate.main import app

        app.state.key_service = None

        response = await client.get("/api/keys")

        assert response.status_code == 503


@pytest.mark.integration
@pytest.mark.asyncio
async def test_config_endpoint(client):
    response = await client.get("/api/config")

    body = response.json()
    assert response.status_code == 200
    assert body["key_validity_hours"] == 24
    assert body["default_max_uses"] == 1
    assert body["key_formats"] == ["uuid", "hex", "alphanumeric", "custom", "segmented"]
    assert body["search_enabled"] is True


@pytest.mark.integration
@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.json()["status"] == "ok"
