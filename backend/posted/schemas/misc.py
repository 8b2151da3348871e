from pydantic import BaseModel, EmailStr
from typing import Optional

# --- /subscription/gate ---
class GateResponse(BaseModel):
    state: str
    status: Optional[str] = None
    redirect_to: Optional[str] = None

# --- /feedback ---
class FeedbackRequest(BaseModel):
    message: str
    type: str = "feedback"
    user_email: Optional[EmailStr] = None

class FeedbackResponse(BaseModel):
    queued: bool = True
