"""
Email delivery for magic links

The sender is created once at startup and injected into the auth service.
"""
import asyncio
from abc import ABC, abstractmethod

import resend
import structlog

from app.config import Settings
from app.exceptions import EmailDeliveryError

logger = structlog.get_logger()


class NotificationSender(ABC):
    """Delivers login links to users."""

    @abstractmethod
    async def send_magic_link(self, to: str, link: str, expires_in_seconds: int) -> None:
        """Send a magic link. Raises EmailDeliveryError on failure."""


def render_magic_link_email(link: str, expires_in_seconds: int) -> str:
    """Create the HTML body for a magic link email."""
    minutes = expires_in_seconds // 60
    return f"""
    <div style="font-family: Arial, Helvetica, sans-serif; max-width:600px; margin:auto; padding:20px;">
      <p>Hello,</p>
      <p>Use the button below to sign in. This link is one-time use and will expire in <strong>{minutes} minutes</strong>.</p>
      <p style="text-align:center; margin: 24px 0;">
        <a href="{link}" style="background-color:#0069d9;color:#ffffff;padding:12px 20px;border-radius:6px;text-decoration:none;display:inline-block;">
          Sign in
        </a>
      </p>
      <p>If the button does not work, copy and paste this URL into your browser:</p>
      <p style="word-break:break-all">{link}</p>
      <hr />
      <p style="font-size:12px;color:#666;">If you did not request this link, you can safely ignore this email.</p>
    </div>
    """


class ResendEmailSender(NotificationSender):
    """Resend email provider."""

    subject = "Your one-time sign-in link"

    def __init__(self, api_key: str, from_address: str, timeout_seconds: float = 10.0):
        self.from_address = from_address
        self.timeout_seconds = timeout_seconds
        self.enabled = bool(api_key)

        if self.enabled:
            resend.api_key = api_key
            logger.info("email_sender_initialized", provider="resend")
        else:
            logger.error("email_sender_disabled", reason="RESEND_API_KEY not set")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendEmailSender":
        return cls(
            api_key=settings.resend_api_key,
            from_address=settings.email_from,
            timeout_seconds=settings.email_timeout_seconds,
        )

    async def send_magic_link(self, to: str, link: str, expires_in_seconds: int) -> None:
        if not self.enabled:
            raise EmailDeliveryError("Resend client is not initialized")

        params = {
            "from": self.from_address,
            "to": [to],
            "subject": self.subject,
            "html": render_magic_link_email(link, expires_in_seconds),
        }

        logger.info("magic_link_email_sending", to=to)

        # The SDK is blocking; keep it off the event loop and bound its duration.
        # A timed-out call is abandoned, not cancelled: the worker thread runs
        # on and Resend may still deliver the email after we report failure.
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(resend.Emails.send, params),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("magic_link_email_timeout", to=to, timeout=self.timeout_seconds)
            raise EmailDeliveryError(f"Email send timed out after {self.timeout_seconds}s")
        except Exception as e:
            logger.error("magic_link_email_failed", to=to, error=str(e))
            raise EmailDeliveryError(f"Resend API error: {e}") from e

        email_id = response.get("id", "unknown") if isinstance(response, dict) else getattr(response, "id", "unknown")
        logger.info("magic_link_email_sent", to=to, email_id=email_id)
