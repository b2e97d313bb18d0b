"""
WhatsApp Cloud API client for template messages.
"""

import httpx

from mte_erp.config import settings
from mte_erp.core.errors import DispatchFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import Channel

log = get_logger(__name__)


class WhatsAppClient:
    """HTTP client for the WhatsApp Business messages endpoint."""

    def __init__(
        self,
        api_url: str | None = None,
        access_token: str | None = None,
        phone_number_id: str | None = None,
        timeout: float | None = None,
    ):
        self.api_url = api_url or settings.whatsapp_api_url
        self.access_token = access_token or settings.whatsapp_access_token
        self.phone_number_id = phone_number_id or settings.whatsapp_phone_number_id
        self._client = httpx.Client(timeout=timeout or settings.dispatch_timeout)

    def send_template(
        self,
        recipient: str,
        template: str,
        parameters: list[str] | None = None,
        language: str = "en",
    ) -> str:
        """
        Send an approved template message to one number.

        Returns:
            WhatsApp message id.

        Raises:
            DispatchFailed: Not configured, transport error or non-2xx response.
        """
        if not (self.access_token and self.phone_number_id):
            raise DispatchFailed(Channel.WHATSAPP.value, "WhatsApp API not configured")

        message: dict = {
            "messaging_product": "whatsapp",
            "to": recipient,
            "type": "template",
            "template": {"name": template, "language": {"code": language}},
        }
        if parameters:
            message["template"]["components"] = [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": p} for p in parameters],
                }
            ]

        try:
            response = self._client.post(
                f"{self.api_url}/{self.phone_number_id}/messages",
                json=message,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            log.error("whatsapp_http_error", status=e.response.status_code, error=e.response.text[:500])
            raise DispatchFailed(
                Channel.WHATSAPP.value,
                f"WhatsApp error: {e.response.status_code}",
                recipient=recipient,
            ) from e
        except httpx.RequestError as e:
            log.error("whatsapp_request_error", error=str(e))
            raise DispatchFailed(Channel.WHATSAPP.value, f"WhatsApp unreachable: {e}", recipient=recipient) from e
        except ValueError as e:
            log.error("whatsapp_invalid_response", error=str(e))
            raise DispatchFailed(
                Channel.WHATSAPP.value, "WhatsApp returned an unreadable response", recipient=recipient,
            ) from e

        if not isinstance(data, dict):
            data = {}
        message_id = (data.get("messages") or [{}])[0].get("id", "")
        log.info("whatsapp_sent", template=template, message_id=message_id)
        return message_id
