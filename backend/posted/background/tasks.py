import logging

from python_http_client.exceptions import HTTPError

from posted.core.celery_app import celery_app
from posted.services import email_service

logger = logging.getLogger(__name__)


@celery_app.task(
    name="posted.send_invite_email",
    autoretry_for=(HTTPError,),
    retry_backoff=True,
    max_retries=3,
)
def send_invite_email(to: str, org_name: str, invite_code: str, inviter_name: str | None = None) -> bool:
    logger.info("Sending invite for '%s' to %s", org_name, to)
    return email_service.send_invite(to, org_name, invite_code, inviter_name)


@celery_app.task(
    name="posted.send_feedback_email",
    autoretry_for=(HTTPError,),
    retry_backoff=True,
    max_retries=3,
)
def send_feedback_email(message: str, feedback_type: str, user_email: str | None = None) -> bool:
    return email_service.send_feedback(message, feedback_type, user_email)
