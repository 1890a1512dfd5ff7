# coursehub/services/notification_sender.py
"""
Outbound notification transport.

Handlers depend only on the NotificationSender protocol. The console
sender logs messages and is the default outside production; the Resend
sender delivers email through the Resend API.
"""

from dataclasses import dataclass
import logging
import re
from typing import Any, Dict, Optional, Protocol

import resend

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import NotificationDeliveryError, ServiceException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    to: str
    provider: str
    message_id: Optional[str] = None


class NotificationSender(Protocol):
    def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        """Deliver one message or raise NotificationDeliveryError."""
        ...


def html_to_text(html_content: str) -> str:
    """Convert HTML content to plain text for better deliverability"""
    text = re.sub(r"<[^>]+>", "", html_content)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


class ConsoleNotificationSender:
    """Logs messages instead of sending them."""

    provider = "console"

    def __init__(self, *_: Any, **__: Any) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        self.logger.info(f"[console email] to={to} subject={subject!r}\n{html_to_text(body)}")
        prometheus_metrics.record_notification(self.provider, "sent")
        return DeliveryResult(to=to, provider=self.provider)


class ResendNotificationSender:
    """
    Email delivery through Resend.

    Any provider error is reported as NotificationDeliveryError so the
    job engine retries it.
    """

    provider = "resend"

    def __init__(self, config: Optional[Settings] = None):
        config = config or default_settings
        if config.resend_api_key is None or not config.resend_api_key.get_secret_value():
            raise ServiceException("Resend API key not configured")
        resend.api_key = config.resend_api_key.get_secret_value()
        self.from_email = config.from_email
        self.logger = logging.getLogger(self.__class__.__name__)

    def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        email_data: Dict[str, Any] = {
            "from": self.from_email,
            "to": to,
            "subject": subject,
            "html": body,
            "text": html_to_text(body),
        }
        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            prometheus_metrics.record_notification(self.provider, "error")
            self.logger.error(f"Failed to send email to {to}: {type(e).__name__}: {e}")
            raise NotificationDeliveryError(f"Resend rejected message to {to}: {e}", [to]) from e

        prometheus_metrics.record_notification(self.provider, "sent")
        self.logger.info(f"Email sent successfully to {to} - Subject: {subject}")
        message_id = response.get("id") if isinstance(response, dict) else None
        return DeliveryResult(to=to, provider=self.provider, message_id=message_id)


def build_notification_sender(config: Optional[Settings] = None) -> NotificationSender:
    """Pick the transport configured by ``email_provider``."""
    config = config or default_settings
    if config.email_provider == "resend":
        return ResendNotificationSender(config)
    return ConsoleNotificationSender()
