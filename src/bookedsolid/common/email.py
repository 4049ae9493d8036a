"""Transactional email: SendGrid / Resend over HTTP.

Delivery is best effort. Every send returns False instead of raising, and
with no provider configured the message is only logged.
"""

import logging

import httpx

from bookedsolid.common.config import BookedSolidSettings

logger = logging.getLogger(__name__)


class EmailSender:
    """Sends invitation and password reset emails."""

    def __init__(
        self,
        provider: str = "",
        api_key: str = "",
        from_email: str = "noreply@bookedsolid.ai",
        from_name: str = "BookedSolid AI",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = provider.lower()  # "sendgrid" or "resend"
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: BookedSolidSettings) -> "EmailSender":
        return cls(
            provider=settings.email_provider if settings.email_api_key else "",
            api_key=settings.email_api_key,
            from_email=settings.email_from,
            from_name=settings.email_from_name,
        )

    async def send_invitation(
        self, to_email: str, inviter_name: str, role_label: str, link: str,
    ) -> bool:
        subject = "You've been invited to join BookedSolid AI as an admin"
        body = (
            f"Hi,\n\n"
            f"{inviter_name} has invited you to join the BookedSolid AI admin team "
            f"as {role_label}.\n\n"
            f"Accept the invitation here:\n\n  {link}\n\n"
            f"This link expires in 7 days.\n\n"
            f"BookedSolid AI"
        )
        return await self.send(to_email, subject, body)

    async def send_password_reset(self, to_email: str, name: str, link: str) -> bool:
        subject = "Reset your BookedSolid AI password"
        body = (
            f"Hi {name or 'there'},\n\n"
            f"We received a request to reset your password. Use the link below "
            f"to choose a new one:\n\n  {link}\n\n"
            f"This link expires in 1 hour. If you didn't request a reset, you can "
            f"ignore this email.\n\n"
            f"BookedSolid AI"
        )
        return await self.send(to_email, subject, body)

    async def send(self, to_email: str, subject: str, body: str) -> bool:
        if self.provider == "sendgrid":
            return await self._send_sendgrid(to_email, subject, body)
        elif self.provider == "resend":
            return await self._send_resend(to_email, subject, body)
        logger.info("No email provider configured; would send %r to %s", subject, to_email)
        return False

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=30)

    async def _send_sendgrid(self, to: str, subject: str, body: str) -> bool:
        """Send via SendGrid v3 API."""
        try:
            async with self._client() as client:
                resp = await client.post(
                    "https://api.sendgrid.com/v3/mail/send",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "personalizations": [{"to": [{"email": to}]}],
                        "from": {"email": self.from_email, "name": self.from_name},
                        "subject": subject,
                        "content": [{"type": "text/plain", "value": body}],
                    },
                )
                if resp.status_code in (200, 202):
                    logger.info("SendGrid email sent to %s", to)
                    return True
                logger.warning("SendGrid error: %s %s", resp.status_code, resp.text)
                return False
        except Exception:
            logger.exception("SendGrid send failed")
            return False

    async def _send_resend(self, to: str, subject: str, body: str) -> bool:
        """Send via Resend API."""
        try:
            async with self._client() as client:
                resp = await client.post(
                    "https://api.resend.com/emails",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self.from_name} <{self.from_email}>",
                        "to": [to],
                        "subject": subject,
                        "text": body,
                    },
                )
                if resp.status_code in (200, 201):
                    logger.info("Resend email sent to %s", to)
                    return True
                logger.warning("Resend error: %s %s", resp.status_code, resp.text)
                return False
        except Exception:
            logger.exception("Resend send failed")
            return False
