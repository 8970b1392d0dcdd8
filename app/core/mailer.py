import logging
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from app.core.config import settings
from app.core.exceptions import DependencyFailure

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, html_content: str) -> bool:
    """Send an HTML email using SendGrid.

    Returns True when SendGrid accepted the message, raises
    DependencyFailure otherwise.
    """
    if not settings.sendgrid_api_key or not settings.sendgrid_from_email:
        raise DependencyFailure("Mail sender is not configured", "mail_not_configured")

    message = Mail(
        from_email=settings.sendgrid_from_email,
        to_emails=to_email,
        subject=subject,
        html_content=html_content,
    )

    try:
        sg = SendGridAPIClient(settings.sendgrid_api_key)
        response = sg.send(message)
    except Exception as e:
        logger.exception(f"Failed to send email to {to_email}")
        raise DependencyFailure(f"Mail sender unreachable: {e}", "mail_unreachable") from e

    if response.status_code >= 300:
        raise DependencyFailure(
            f"Mail sender rejected message with status {response.status_code}",
            "mail_rejected",
        )

    logger.info(f"Email sent to {to_email}, status: {response.status_code}")
    return True
