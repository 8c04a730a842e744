"""
Email Service using Resend

Sends verification emails. Without a Resend API key the message is logged
instead of sent and the call reports success, so local development and tests
run without a provider account.
"""

import asyncio
import logging
from html import escape

import resend

from otp_relay.core.config import settings

logger = logging.getLogger(__name__)


def render_html(body: str) -> str:
    """Render a plain-text body as HTML, turning newlines into line breaks."""
    return escape(body).replace("\n", "<br>")


def _log_mock_email(to_email: str, subject: str, body: str) -> None:
    logger.info("=============================================")
    logger.info("MOCK EMAIL SERVICE - MESSAGE NOT ACTUALLY SENT")
    logger.info(f"To: {to_email}")
    logger.info(f"Subject: {subject}")
    logger.info(f"Body: {body}")
    logger.info("=============================================")
    logger.warning("RESEND_API_KEY not set - set it to enable real email delivery")


async def send_email(
    to_email: str,
    subject: str,
    body: str,
    *,
    api_key: str | None = None,
    from_email: str | None = None,
) -> bool:
    """
    Send a plain-text email (with an HTML alternative) using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        body: Plain-text body; the HTML part is derived from it
        api_key: Resend API key, defaults to RESEND_API_KEY
        from_email: Sender, defaults to EMAIL_FROM

    Returns:
        True if the email was sent (or logged in mock mode)
    """
    api_key = api_key if api_key is not None else settings.resend_api_key
    if not api_key:
        _log_mock_email(to_email, subject, body)
        return True

    try:
        resend.api_key = api_key
        params: resend.Emails.SendParams = {
            "from": from_email or settings.email_from,
            "to": [to_email],
            "subject": subject,
            "text": body,
            "html": render_html(body),
        }

        logger.info(f"Sending email to {to_email} via Resend")
        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False
