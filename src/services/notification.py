"""
Outbound notifications for supervisors and customers

The default sink writes to the log. Setting SUPERVISOR_WEBHOOK_URL switches
to a webhook sink (Slack, Twilio bridge, ...) that falls back to the log
when the webhook cannot be reached.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from src.core.config import Settings
from src.core.logging import get_plain_logger
from src.models.records import EscalationRequest

logger = get_plain_logger(__name__)

SUPERVISOR_NOTIFICATION = "supervisor_notification"
CUSTOMER_NOTIFICATION = "customer_notification"


class NotificationSink(ABC):
    """Where supervisor alerts and out-of-band customer messages go"""

    @abstractmethod
    async def notify_supervisor(self, request: EscalationRequest) -> None:
        ...

    @abstractmethod
    async def notify_customer(self, customer_phone: str, message: str) -> None:
        ...


class LoggingNotificationSink(NotificationSink):
    """Simulated notifications: formatted console log"""

    async def notify_supervisor(self, request: EscalationRequest) -> None:
        lines = [
            "=" * 60,
            f"🔔 NEW HELP REQUEST {request.id}",
            f"Customer: {request.customer_name or 'unknown'} ({request.customer_phone})",
            f"Question: {request.question}",
        ]
        if request.context:
            lines.append(f"Context: {request.context}")
        lines += [
            f"Created: {request.created_at.strftime('%Y-%m-%d %I:%M %p')}",
            f"Times out: {request.timeout_at.strftime('%Y-%m-%d %I:%M %p')}",
            "→ View in admin panel to respond",
            "=" * 60,
        ]
        logger.warning("\n".join(lines))

    async def notify_customer(self, customer_phone: str, message: str) -> None:
        logger.info(
            f"📱 FOLLOW-UP TO CUSTOMER {customer_phone} (not in an active call)\n"
            f'"{message}"\n'
            "Queued for their next call."
        )


class WebhookNotificationSink(NotificationSink):
    """POSTs JSON payloads to a webhook, logging locally if that fails"""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        fallback: Optional[NotificationSink] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport
        self.fallback = fallback or LoggingNotificationSink()

    async def _post(self, payload: dict) -> bool:
        """Returns False when the webhook was unreachable"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Error sending {payload['type']} to webhook: {e}")
            return False

        if resp.is_error:
            logger.error(f"Webhook rejected {payload['type']}: {resp.status_code} {resp.reason_phrase}")
        return True

    async def notify_supervisor(self, request: EscalationRequest) -> None:
        payload = {
            "type": SUPERVISOR_NOTIFICATION,
            "request": request.model_dump(mode="json", exclude={"revision"}),
        }
        if not await self._post(payload):
            await self.fallback.notify_supervisor(request)

    async def notify_customer(self, customer_phone: str, message: str) -> None:
        payload = {
            "type": CUSTOMER_NOTIFICATION,
            "customer_phone": customer_phone,
            "message": message,
        }
        if not await self._post(payload):
            await self.fallback.notify_customer(customer_phone, message)


def create_notification_sink(settings: Settings) -> NotificationSink:
    """Pick the sink from configuration"""
    if settings.supervisor_webhook_url:
        logger.info(f"Supervisor notifications go to webhook {settings.supervisor_webhook_url}")
        return WebhookNotificationSink(
            settings.supervisor_webhook_url,
            timeout=settings.webhook_timeout_seconds,
        )
    return LoggingNotificationSink()
