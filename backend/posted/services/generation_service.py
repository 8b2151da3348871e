# backend/posted/services/generation_service.py
"""
AI image generation through the fal.ai queue API.

A job is submitted, then its status is polled at a fixed interval until it
completes, fails, or the attempt budget runs out. The credit spent on a job is
taken before submission and never refunded, whatever the outcome.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from posted.core.exceptions import (
    GenerationFailed, GenerationTimeout, InsufficientCredits, SubmissionFailed, UpstreamFailure,
)
from posted.models.image import Image, ImageSource
from posted.models.user import User
from posted.schemas.generation import EditImageRequest
from posted.services import organization_service

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "make a professional lifestyle photo with this product"

STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"


class FalQueueClient:
    """
    Minimal client for https://queue.fal.run.
    `http` is expected to carry the base URL and the `Authorization: Key ...` header.
    """

    def __init__(self, http: httpx.AsyncClient, model_id: str, endpoint: str = "edit"):
        self.http = http
        self.model_id = model_id
        self.endpoint = endpoint

    async def submit(self, prompt: str, image_urls: List[str]) -> str:
        try:
            response = await self.http.post(
                f"/{self.model_id}/{self.endpoint}",
                json={"prompt": prompt, "image_urls": image_urls, "sync_mode": False},
            )
        except httpx.HTTPError as e:
            logger.error("fal.ai submission failed: %s", e)
            raise SubmissionFailed() from e
        if response.is_error:
            logger.error("fal.ai error: %s", response.text)
            raise SubmissionFailed(details={"upstream_status": response.status_code})
        request_id = response.json().get("request_id")
        if not request_id:
            raise SubmissionFailed("fal.ai returned no request id")
        return request_id

    async def status(self, request_id: str) -> str:
        try:
            response = await self.http.get(f"/{self.model_id}/requests/{request_id}/status")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("fal.ai status check for %s failed: %s", request_id, e)
            raise UpstreamFailure("Failed to check generation status") from e
        return response.json().get("status", "")

    async def result(self, request_id: str) -> Dict[str, Any]:
        try:
            response = await self.http.get(f"/{self.model_id}/requests/{request_id}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("fal.ai result fetch for %s failed: %s", request_id, e)
            raise UpstreamFailure("Failed to fetch generation result") from e
        return response.json()


@dataclass
class GenerationResult:
    request_id: str
    image_url: str
    payload: Dict[str, Any] = field(default_factory=dict)


class GenerationPoller:
    """
    Submits a job and polls it sequentially, one status request in flight at a time.
    """

    def __init__(
        self,
        client: FalQueueClient,
        interval: float = 2.0,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def run(self, prompt: str, image_urls: List[str]) -> GenerationResult:
        request_id = await self.client.submit(prompt, image_urls)
        payload = await self.wait(request_id)

        images = payload.get("images") or []
        if not images or not images[0].get("url"):
            logger.error("Generation %s completed without images", request_id)
            raise GenerationFailed("Generation returned no image")
        return GenerationResult(request_id=request_id, image_url=images[0]["url"], payload=payload)

    async def wait(self, request_id: str) -> Dict[str, Any]:
        for attempt in range(1, self.max_attempts + 1):
            status = await self.client.status(request_id)
            if status == STATUS_COMPLETED:
                return await self.client.result(request_id)
            if status == STATUS_FAILED:
                logger.error("Generation %s failed upstream", request_id)
                raise GenerationFailed("Generation failed on fal.ai")
            # IN_QUEUE / IN_PROGRESS
            if attempt < self.max_attempts:
                await self._sleep(self.interval)

        # The job may still finish upstream; this caller stops waiting.
        logger.warning("Generation %s timed out after %d status checks", request_id, self.max_attempts)
        raise GenerationTimeout()


class ImageGenerationService:

    def __init__(self, db: AsyncSession, poller: GenerationPoller):
        self.db = db
        self.poller = poller

    async def generate(self, user: User, request: EditImageRequest) -> Dict[str, Any]:
        organization_id: Optional[uuid.UUID] = request.organization_id
        new_credits: Optional[int] = None

        if organization_id is not None:
            await organization_service.require_membership(self.db, user, organization_id)
            new_credits = await organization_service.decrement_credits(self.db, organization_id)
            if new_credits is None:
                raise InsufficientCredits()

        # fal gets the default when the caller sent none; the image keeps what the caller sent.
        effective_prompt = (request.prompt or "").strip() or DEFAULT_PROMPT
        result = await self.poller.run(effective_prompt, request.image_urls)

        image = await self._persist(organization_id, request.prompt, request.image_urls, result)
        return {
            "success": True,
            "image": image,
            "new_credits": new_credits,
            "organization_id": organization_id,
        }

    async def _persist(
        self,
        organization_id: Optional[uuid.UUID],
        prompt: Optional[str],
        image_urls: List[str],
        result: GenerationResult,
    ) -> Dict[str, Any]:
        metadata = {"fal_request_id": result.request_id, "reference_images": list(image_urls)}
        # The image stays hosted on fal.ai; the path names where a copy would live.
        storage_path = f"ai_generated/{result.request_id}.png"
        image = Image(
            organization_id=organization_id,
            url=result.image_url,
            source=ImageSource.AI_GENERATED.value,
            prompt=prompt,
            storage_path=storage_path,
            image_metadata=metadata,
        )
        try:
            self.db.add(image)
            await self.db.commit()
            await self.db.refresh(image)
        except SQLAlchemyError as e:
            # The generated asset is still returned; only bookkeeping is lost.
            await self.db.rollback()
            logger.error("Failed to save generated image %s: %s", result.request_id, e)
            return {"url": result.image_url, "metadata": metadata}

        return {
            "id": image.id,
            "url": image.url,
            "source": image.source,
            "prompt": image.prompt,
            "storage_path": image.storage_path,
            "metadata": image.image_metadata,
            "created_at": image.created_at,
        }
