"""Alert webhook notifier for critical treasury alerts"""

import logging
import httpx
from ramp_gateway.domain.models import TreasuryAlert
from ramp_gateway.config import settings
from ramp_gateway.infrastructure.observability.metrics import upstream_failure_counter

logger = logging.getLogger(__name__)


class WebhookAlertNotifier:
    """
    Push alerts to an operator webhook.

    Notification is best effort: failures are logged and counted, never raised,
    so a broken webhook cannot block the monitor.
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url or settings.alert_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def notify(self, alert: TreasuryAlert) -> None:
        if not self.webhook_url:
            logger.info("No alert webhook configured", extra={"alert_id": alert.id})
            return

        payload = {
            "alert_id": alert.id,
            "type": alert.type.value,
            "severity": alert.severity.value,
            "currency": alert.currency,
            "message": alert.message,
            "created_at": alert.created_at.isoformat(),
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
            except (httpx.HTTPStatusError, httpx.RequestError) as e:
                upstream_failure_counter.labels(service="alert_webhook").inc()
                logger.warning(
                    "Alert notification failed",
                    extra={"alert_id": alert.id, "reason": str(e)},
                )
