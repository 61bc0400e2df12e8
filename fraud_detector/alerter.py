"""Push new fraud alerts to the live admin dashboard."""

import logging
from decimal import Decimal
from typing import Optional, Protocol

import httpx

from .config import DASHBOARD_WEBHOOK_URL, REQUEST_TIMEOUT_SECONDS
from .exceptions import BroadcastError
from .models import Alert, Severity

logger = logging.getLogger(__name__)

EVENT_NAME = "new_fraud_alert"


class AlertBroadcaster(Protocol):
    async def broadcast_alert(self, alert: Alert) -> None: ...


def alert_to_payload(alert: Alert) -> dict:
    """
    Dashboard representation of an alert.

    Escalation alerts carry the user they are attributed to in user_id so
    the dashboard can show them against a user rather than a listing.
    """
    return {
        "id": alert.id,
        "listing_id": alert.listing_id,
        "severity": alert.severity.value,
        "reason": alert.reason,
        "reference_price": str(alert.reference_price),
        "observed_price": str(alert.observed_price),
        "deviation_percent": alert.deviation_percent,
        "is_read": alert.is_read,
        "created_at": alert.created_at.isoformat() if alert.created_at else None,
        "user_id": alert.responsible_party_id,
    }


class WebhookBroadcaster:
    """POSTs each alert as JSON to a dashboard webhook."""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    async def broadcast_alert(self, alert: Alert) -> None:
        """
        Send one alert to the dashboard.

        Raises:
            BroadcastError: the webhook rejected the alert or was unreachable
        """
        payload = {"event": EVENT_NAME, "alert": alert_to_payload(alert)}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BroadcastError(
                f"Dashboard webhook error: {e.response.status_code} - {e.response.text}",
                cause=e,
            )
        except httpx.RequestError as e:
            raise BroadcastError(f"Dashboard webhook request failed: {e}", cause=e)

        logger.info(f"Alert {alert.id} broadcast to dashboard ({alert.severity.value})")


class LogBroadcaster:
    """Fallback used when no dashboard webhook is configured."""

    async def broadcast_alert(self, alert: Alert) -> None:
        target = f"user {alert.responsible_party_id}" if alert.responsible_party_id else f"listing {alert.listing_id}"
        logger.info(
            f"[ALERT] {alert.severity.value} on {target}: {alert.reason}"
        )


def get_broadcaster(webhook_url: Optional[str] = DASHBOARD_WEBHOOK_URL) -> AlertBroadcaster:
    """Webhook broadcaster when a URL is configured, log-only otherwise."""
    if not webhook_url:
        logger.warning("Dashboard webhook URL not configured. Alerts will only be logged.")
        return LogBroadcaster()
    return WebhookBroadcaster(webhook_url)


def build_test_alert() -> Alert:
    """A sample alert for checking webhook connectivity."""
    return Alert(
        id=0,
        listing_id="TEST-LISTING",
        severity=Severity.HIGH,
        reason="Test alert: price above market: 200 vs median 100 (~100% deviation)",
        reference_price=Decimal("100"),
        observed_price=Decimal("200"),
        deviation_percent=100,
    )


async def send_test_alert(webhook_url: Optional[str] = DASHBOARD_WEBHOOK_URL) -> bool:
    """Send a test alert to verify webhook connectivity."""
    if not webhook_url:
        logger.warning("Dashboard webhook URL not configured. Skipping test alert.")
        return False

    try:
        await WebhookBroadcaster(webhook_url).broadcast_alert(build_test_alert())
        return True
    except BroadcastError as e:
        logger.error(str(e))
        return False
