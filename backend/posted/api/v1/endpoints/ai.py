from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from posted.core.dependencies import get_current_user_with_provisioning as get_current_user, get_generation_poller
from posted.database import get_db
from posted.models.user import User
from posted.schemas.generation import (
    EditImageRequest, EditImageResponse, EnhancePromptRequest, EnhancePromptResponse,
)
from posted.services import prompt_service
from posted.services.generation_service import GenerationPoller, ImageGenerationService

router = APIRouter()


@router.post("/edit-image", response_model=EditImageResponse)
async def edit_image(
    request: EditImageRequest,
    db: AsyncSession = Depends(get_db),
    poller: GenerationPoller = Depends(get_generation_poller),
    current_user: User = Depends(get_current_user)
):
    """
    Generate an image from reference images and a prompt.
    Costs one organization credit, taken before the job is submitted.
    """
    return await ImageGenerationService(db, poller).generate(current_user, request)


@router.post("/enhance-prompt", response_model=EnhancePromptResponse)
async def enhance_prompt(
    request: EnhancePromptRequest,
    current_user: User = Depends(get_current_user)
):
    enhanced = await prompt_service.enhance_prompt(request.prompt)
    return EnhancePromptResponse(enhanced_prompt=enhanced)
