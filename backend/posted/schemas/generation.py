import uuid
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

# --- /ai/edit-image ---
class EditImageRequest(BaseModel):
    prompt: Optional[str] = None
    image_urls: List[str] = Field(min_length=1)
    organization_id: Optional[uuid.UUID] = None

class ImageOut(BaseModel):
    id: Optional[uuid.UUID] = None
    url: str
    source: Optional[str] = None
    prompt: Optional[str] = None
    storage_path: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

class EditImageResponse(BaseModel):
    success: bool = True
    image: ImageOut
    new_credits: Optional[int] = None
    organization_id: Optional[uuid.UUID] = None

# --- /ai/enhance-prompt ---
class EnhancePromptRequest(BaseModel):
    prompt: str

class EnhancePromptResponse(BaseModel):
    success: bool = True
    enhanced_prompt: str
