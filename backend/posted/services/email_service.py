"""Email service: SendGrid with console fallback.

If SENDGRID_API_KEY is not set, emails are written to the log (safe for local dev).
"""
import html
import logging
from datetime import datetime, timezone

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from posted.core.config import settings

logger = logging.getLogger(__name__)


def send(to: str | list[str], subject: str, html_content: str | None = None, text_content: str | None = None) -> bool:
    """Sends through SendGrid when configured, otherwise logs only."""
    if not settings.SENDGRID_API_KEY:
        logger.info("[EMAIL MOCK] To: %s | Subject: %s\n%s", to, subject, html_content or text_content)
        return True

    message = Mail(
        from_email=settings.EMAIL_FROM,
        to_emails=to,
        subject=subject,
        html_content=html_content,
        plain_text_content=text_content,
    )
    client = SendGridAPIClient(settings.SENDGRID_API_KEY)
    response = client.send(message)
    logger.info("Sent email to %s (status %s)", to, response.status_code)
    return True


def render_invite(org_name: str, invite_code: str, inviter_name: str | None) -> tuple[str, str]:
    org = html.escape(org_name)
    inviter = html.escape(inviter_name or "Someone")
    code = html.escape(invite_code)
    subject = f"You've been invited to join {org_name} on Posted"
    body = f"""
<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #171717; color: #dbdbdb; border-radius: 12px;">
  <h1 style="color: #ddfc7b; font-size: 24px; font-weight: 900; text-transform: uppercase;">Posted</h1>
  <p style="font-size: 16px; line-height: 1.5;">Hi there,</p>
  <p style="font-size: 16px; line-height: 1.5;">
    <strong>{inviter}</strong> has invited you to join their workspace <strong>{org}</strong> on Posted.
  </p>
  <div style="background-color: #2a2a2a; padding: 20px; border-radius: 8px; margin: 20px 0; border: 1px solid #3f3f46;">
    <p style="margin: 0; font-size: 14px; color: #a1a1aa; text-transform: uppercase; font-weight: 900;">Your Invite Code</p>
    <p style="margin: 10px 0 0 0; font-size: 32px; font-weight: 900; color: #ddfc7b; letter-spacing: 0.2em;">{code}</p>
  </div>
  <p style="font-size: 14px; color: #a1a1aa;">
    To join, open the Posted app, click on your organization name in the sidebar, and select <strong>Join Workspace</strong>.
  </p>
  <p style="font-size: 12px; color: #71717a; text-align: center;">&copy; {datetime.now(timezone.utc).year} Posted. All rights reserved.</p>
</div>
"""
    return subject, body


def send_invite(to: str, org_name: str, invite_code: str, inviter_name: str | None = None) -> bool:
    subject, body = render_invite(org_name, invite_code, inviter_name)
    return send(to, subject, html_content=body)


def send_feedback(message: str, feedback_type: str, user_email: str | None = None) -> bool:
    subject = f"New {feedback_type} from {user_email or 'Anonymous'}"
    return send([settings.FEEDBACK_RECIPIENT], subject, text_content=message)
