from uuid import uuid4

import pytest

from src.config import settings
from src.core.exceptions import VersionConflictError
from src.main import app
from src.sow.dependencies import get_sow_service

from factories import loft_payload


async def generate(client, **overrides):
    return await client.post("/v1/sow/generate", json=loft_payload(**overrides))


# ---------------------------------------------------------------------------
# POST /sow/generate
# ---------------------------------------------------------------------------

class TestGenerateRoute:
    @pytest.mark.asyncio
    async def test_generate_returns_created(self, async_client):
        response = await generate(async_client)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["sowId"] == body["sow"]["id"]
        assert body["sow"]["version"] == 1
        assert body["sow"]["status"] == "generated"
        assert body["sow"]["costEstimate"]["methodology"] == "NRM1"
        assert "versionKey" not in body["sow"]

    @pytest.mark.asyncio
    async def test_generation_failure_returns_500(self, async_client, fake_client):
        fake_client.responses = ["no json here"]

        response = await generate(async_client)

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "errors": ["No JSON object found in model output"],
            "warnings": [],
        }

    @pytest.mark.asyncio
    async def test_invalid_brief_returns_500_with_violations(self, async_client, fake_client):
        response = await generate(async_client, requirements={"description": ""})

        assert response.status_code == 500
        assert "requirements.description: must not be empty" in response.json()["errors"][0]
        assert fake_client.calls == 0

    @pytest.mark.asyncio
    async def test_malformed_request_is_422(self, async_client):
        response = await async_client.post("/v1/sow/generate", json={"projectType": "loft-conversion"})
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestReadRoutes:
    @pytest.mark.asyncio
    async def test_get_by_id(self, async_client):
        sow_id = (await generate(async_client)).json()["sowId"]

        response = await async_client.get(f"/v1/sow/{sow_id}")

        assert response.status_code == 200
        assert response.json()["id"] == sow_id

    @pytest.mark.asyncio
    async def test_get_unknown_is_404(self, async_client):
        response = await async_client.get(f"/v1/sow/{uuid4()}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_project_versions(self, async_client):
        await generate(async_client)
        await generate(async_client)

        response = await async_client.get("/v1/sow/project/proj-loft-1")

        assert response.status_code == 200
        assert [v["version"] for v in response.json()] == [1, 2]

    @pytest.mark.asyncio
    async def test_validation_summary(self, async_client):
        sow_id = (await generate(async_client)).json()["sowId"]

        response = await async_client.get(f"/v1/sow/{sow_id}/validation")

        assert response.status_code == 200
        body = response.json()
        assert body["sowId"] == sow_id
        assert body["overallScore"] == 100
        assert body["passed"] is True


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycleRoutes:
    @pytest.mark.asyncio
    async def test_approve(self, async_client):
        sow_id = (await generate(async_client)).json()["sowId"]

        response = await async_client.put(f"/v1/sow/{sow_id}/approve")

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert response.json()["approvedAt"] is not None

    @pytest.mark.asyncio
    async def test_approve_blocked_is_409(self, async_client, fake_client, minimal_loft_draft):
        fake_client.responses = [minimal_loft_draft]
        sow_id = (await generate(async_client)).json()["sowId"]

        response = await async_client.put(f"/v1/sow/{sow_id}/approve")

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["message"].startswith("Approval blocked")
        assert "critical check 'structural' failed (score 20)" in detail["reasons"]

    @pytest.mark.asyncio
    async def test_approve_unknown_is_404(self, async_client):
        response = await async_client.put(f"/v1/sow/{uuid4()}/approve")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_revalidate(self, async_client):
        generated = (await generate(async_client)).json()
        sow_id = generated["sowId"]

        response = await async_client.post(f"/v1/sow/{sow_id}/revalidate")

        assert response.status_code == 200
        assert len(response.json()["validationResults"]) == 2 * len(generated["sow"]["validationResults"])

    @pytest.mark.asyncio
    async def test_revalidate_unknown_is_404(self, async_client):
        response = await async_client.post(f"/v1/sow/{uuid4()}/revalidate")
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_unplanned_service_error_is_500(async_client):
    class ConflictingService:
        async def list_versions(self, project_id):
            raise VersionConflictError("Could not assign a version for project proj-loft-1")

    app.dependency_overrides[get_sow_service] = lambda: ConflictingService()

    response = await async_client.get("/v1/sow/project/proj-loft-1")

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "errors": ["Could not assign a version for project proj-loft-1"],
        "warnings": [],
    }


@pytest.mark.asyncio
async def test_health(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["llmProvider"] == settings.LLM_PROVIDER_PRIMARY
