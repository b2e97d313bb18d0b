"""
SendGrid mail client.

Sends plain-text emails with file attachments through the SendGrid v3
mail/send endpoint.
"""

import base64

import httpx

from mte_erp.config import settings
from mte_erp.core.errors import DispatchFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import Channel, RenderedFile

log = get_logger(__name__)


class SendGridMailer:
    """HTTP client for the SendGrid mail API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key or settings.sendgrid_api_key
        self.api_url = api_url or settings.sendgrid_api_url
        self.from_email = from_email or settings.mail_from_email
        self.from_name = from_name or settings.mail_from_name
        self._client = httpx.Client(timeout=timeout or settings.dispatch_timeout)

    def _payload(
        self,
        to: list[str],
        subject: str,
        body: str,
        attachments: list[RenderedFile],
        reply_to: list[str],
    ) -> dict:
        payload: dict = {
            "personalizations": [{"to": [{"email": address} for address in to]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        if attachments:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(f.content).decode("ascii"),
                    "filename": f.filename,
                    "type": f.content_type,
                    "disposition": "attachment",
                }
                for f in attachments
            ]
        if reply_to:
            payload["reply_to_list"] = [{"email": address} for address in reply_to]
        return payload

    def send(
        self,
        to: list[str],
        subject: str,
        body: str,
        attachments: list[RenderedFile] | None = None,
        reply_to: list[str] | None = None,
    ) -> None:
        """
        Send one email to all addresses.

        Raises:
            DispatchFailed: Not configured, transport error or non-2xx response.
        """
        if not self.api_key:
            raise DispatchFailed(Channel.EMAIL.value, "SendGrid API key not configured")
        if not to:
            raise DispatchFailed(Channel.EMAIL.value, "No email addresses")

        try:
            response = self._client.post(
                self.api_url,
                json=self._payload(to, subject, body, attachments or [], reply_to or []),
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error("email_http_error", status=e.response.status_code, error=e.response.text[:500])
            raise DispatchFailed(Channel.EMAIL.value, f"SendGrid error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            log.error("email_request_error", error=str(e))
            raise DispatchFailed(Channel.EMAIL.value, f"SendGrid unreachable: {e}") from e

        log.info("email_sent", to_count=len(to), subject=subject)
