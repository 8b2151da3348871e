from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from posted.models.image import Image


async def count_images(db_session: AsyncSession) -> int:
    result = await db_session.execute(select(func.count()).select_from(Image))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_edit_image_without_credits_submits_nothing(
    test_client: AsyncClient, db_session: AsyncSession, make_org, user, as_user, fal_client
):
    org = await make_org(members=(user,), credits=0, subscription_status="active")
    as_user(user)

    response = await test_client.post("/api/v1/ai/edit-image", json={
        "prompt": "studio shot",
        "image_urls": ["https://cdn.posted.test/product.png"],
        "organization_id": str(org.id),
    })

    assert response.status_code == 402
    assert response.json() == {"error": "Insufficient credits", "code": "INSUFFICIENT_CREDITS"}
    assert fal_client.submitted == []
    assert await count_images(db_session) == 0


@pytest.mark.asyncio
async def test_edit_image_spends_one_credit_and_saves_image(
    test_client: AsyncClient, db_session: AsyncSession, make_org, user, as_user, fal_client
):
    org = await make_org(members=(user,), credits=3, subscription_status="active")
    fal_client.statuses = ["IN_QUEUE", "IN_PROGRESS", "COMPLETED"]
    as_user(user)

    response = await test_client.post("/api/v1/ai/edit-image", json={
        "prompt": "studio shot",
        "image_urls": ["https://cdn.posted.test/product.png"],
        "organization_id": str(org.id),
    })

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["new_credits"] == 2
    assert data["organization_id"] == str(org.id)
    assert data["image"]["url"] == "https://fal.media/files/generated.png"
    assert data["image"]["storage_path"] == "ai_generated/req_test_1.png"
    assert data["image"]["metadata"] == {
        "fal_request_id": "req_test_1",
        "reference_images": ["https://cdn.posted.test/product.png"],
    }

    await db_session.refresh(org)
    assert org.credits == 2
    assert await count_images(db_session) == 1
    assert fal_client.submitted == [("studio shot", ["https://cdn.posted.test/product.png"])]
    assert fal_client.status_calls == 3


@pytest.mark.asyncio
async def test_edit_image_uses_default_prompt(test_client: AsyncClient, make_org, user, as_user, fal_client):
    org = await make_org(members=(user,), credits=1)
    as_user(user)

    response = await test_client.post("/api/v1/ai/edit-image", json={
        "prompt": "   ",
        "image_urls": ["https://cdn.posted.test/product.png"],
        "organization_id": str(org.id),
    })

    assert response.status_code == 200
    assert fal_client.submitted[0][0] == "make a professional lifestyle photo with this product"


@pytest.mark.asyncio
async def test_saved_image_keeps_callers_prompt(
    test_client: AsyncClient, db_session: AsyncSession, make_org, user, as_user, fal_client
):
    org = await make_org(members=(user,), credits=2)
    as_user(user)

    without_prompt = await test_client.post("/api/v1/ai/edit-image", json={
        "image_urls": ["https://cdn.posted.test/product.png"],
        "organization_id": str(org.id),
    })
    with_prompt = await test_client.post("/api/v1/ai/edit-image", json={
        "prompt": "studio shot",
        "image_urls": ["https://cdn.posted.test/product.png"],
        "organization_id": str(org.id),
    })

    assert without_prompt.json()["image"]["prompt"] is None
    assert with_prompt.json()["image"]["prompt"] == "studio shot"
    assert fal_client.submitted[0][0] == "make a professional lifestyle photo with this product"
    prompts = (await db_session.execute(select(Image.prompt))).scalars().all()
    assert sorted(prompts, key=str) == [None, "studio shot"]


@pytest.mark.asyncio
async def test_edit_image_requires_reference_images(test_client: AsyncClient, org, user, as_user, fal_client):
    as_user(user)

    response = await test_client.post("/api/v1/ai/edit-image", json={
        "prompt": "studio shot",
        "image_urls": [],
        "organization_id": str(org.id),
    })

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_FAILED"
    assert fal_client.submitted == []


@pytest.mark.asyncio
async def test_edit_image_for_foreign_organization_is_forbidden(
    test_client: AsyncClient, db_session: AsyncSession, make_user, make_org, as_user, fal_client
):
    owner = await make_user()
    stranger = await make_user(email="stranger@example.com")
    org = await make_org(members=(owner,), credits=5)
    as_user(stranger)

    response = await test_client.post("/api/v1/ai/edit-image", json={
        "image_urls": ["https://cdn.posted.test/product.png"],
        "organization_id": str(org.id),
    })

    assert response.status_code == 403
    await db_session.refresh(org)
    assert org.credits == 5
    assert fal_client.submitted == []


@pytest.mark.asyncio
async def test_failed_generation_keeps_credit_spent(
    test_client: AsyncClient, db_session: AsyncSession, make_org, user, as_user, fal_client
):
    org = await make_org(members=(user,), credits=2)
    fal_client.statuses = ["IN_PROGRESS", "FAILED"]
    as_user(user)

    response = await test_client.post("/api/v1/ai/edit-image", json={
        "image_urls": ["https://cdn.posted.test/product.png"],
        "organization_id": str(org.id),
    })

    assert response.status_code == 500
    assert response.json()["code"] == "GENERATION_FAILED"
    await db_session.refresh(org)
    assert org.credits == 1
    assert await count_images(db_session) == 0


@pytest.mark.asyncio
async def test_generation_timeout(test_client: AsyncClient, make_org, user, as_user, fal_client):
    org = await make_org(members=(user,), credits=1)
    fal_client.statuses = ["IN_PROGRESS"]
    as_user(user)

    response = await test_client.post("/api/v1/ai/edit-image", json={
        "image_urls": ["https://cdn.posted.test/product.png"],
        "organization_id": str(org.id),
    })

    assert response.status_code == 500
    assert response.json()["code"] == "GENERATION_TIMEOUT"
    # The test poller is configured with five attempts.
    assert fal_client.status_calls == 5


@pytest.mark.asyncio
async def test_edit_image_without_organization_skips_credits(
    test_client: AsyncClient, db_session: AsyncSession, user, as_user
):
    as_user(user)

    response = await test_client.post("/api/v1/ai/edit-image", json={
        "image_urls": ["https://cdn.posted.test/product.png"],
    })

    assert response.status_code == 200
    assert response.json()["new_credits"] is None
    image = (await db_session.execute(select(Image))).scalars().one()
    assert image.organization_id is None


@pytest.mark.asyncio
async def test_enhance_prompt(test_client: AsyncClient, user, as_user):
    as_user(user)
    completion = '```\n"CONTENT THEME: cozy morning coffee"\n```'

    with patch("posted.services.llm_service.get_completion", new=AsyncMock(return_value=completion)):
        response = await test_client.post("/api/v1/ai/enhance-prompt", json={"prompt": "coffee"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "enhanced_prompt": "CONTENT THEME: cozy morning coffee"}


@pytest.mark.asyncio
async def test_enhance_prompt_rejects_blank_prompt(test_client: AsyncClient, user, as_user):
    as_user(user)

    response = await test_client.post("/api/v1/ai/enhance-prompt", json={"prompt": "  "})

    assert response.status_code == 400
    assert response.json()["error"] == "Prompt is required"


@pytest.mark.asyncio
async def test_enhance_prompt_reports_empty_completion(test_client: AsyncClient, user, as_user):
    as_user(user)

    with patch("posted.services.llm_service.get_completion", new=AsyncMock(return_value="")):
        response = await test_client.post("/api/v1/ai/enhance-prompt", json={"prompt": "coffee"})

    assert response.status_code == 500
    assert response.json()["code"] == "UPSTREAM_FAILURE"
