from fastapi import APIRouter, status

from posted.background.tasks import send_feedback_email
from posted.core.exceptions import ValidationFailed
from posted.schemas.misc import FeedbackRequest, FeedbackResponse

router = APIRouter()


@router.post("/", response_model=FeedbackResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_feedback(body: FeedbackRequest):
    if not body.message.strip():
        raise ValidationFailed("Message is required")
    send_feedback_email.delay(
        message=body.message,
        feedback_type=body.type,
        user_email=body.user_email,
    )
    return FeedbackResponse()
