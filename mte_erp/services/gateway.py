"""
Messaging gateway used by the communication service.

Wraps the email and WhatsApp clients so that each channel reports a plain
success flag; a channel failure never raises past this layer.
"""

from abc import ABC, abstractmethod

from mte_erp.core.errors import DispatchFailed
from mte_erp.core.logging import get_logger
from mte_erp.core.models import RenderedFile
from mte_erp.services.mailer import SendGridMailer
from mte_erp.services.whatsapp import WhatsAppClient

log = get_logger(__name__)


class MessagingGateway(ABC):
    """Outbound email and WhatsApp."""

    @abstractmethod
    def send_email(
        self,
        to: list[str],
        subject: str,
        body: str,
        attachments: list[RenderedFile],
        reply_to: list[str],
    ) -> bool:
        pass

    @abstractmethod
    def send_whatsapp(self, numbers: list[str], template: str, parameters: list[str]) -> bool:
        """True if at least one number accepted the template."""
        pass


class HttpMessagingGateway(MessagingGateway):
    """Gateway backed by SendGrid and the WhatsApp Cloud API."""

    def __init__(self, mailer: SendGridMailer | None = None, whatsapp: WhatsAppClient | None = None):
        self.mailer = mailer or SendGridMailer()
        self.whatsapp = whatsapp or WhatsAppClient()

    def send_email(self, to, subject, body, attachments, reply_to) -> bool:
        try:
            self.mailer.send(to, subject, body, attachments=attachments, reply_to=reply_to)
            return True
        except DispatchFailed as e:
            log.warning("email_dispatch_failed", subject=subject, error=e.message)
            return False

    def send_whatsapp(self, numbers, template, parameters) -> bool:
        delivered = 0
        for number in numbers:
            try:
                self.whatsapp.send_template(number, template, parameters)
                delivered += 1
            except DispatchFailed as e:
                log.warning("whatsapp_dispatch_failed", template=template, error=e.message)
        return delivered > 0
