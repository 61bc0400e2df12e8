"""Escalating repeated listing anomalies to a fraud flag on the seller."""

import logging
from decimal import Decimal
from typing import Optional

from .config import ESCALATION_THRESHOLD
from .database import AlertDatabase
from .exceptions import DuplicateEscalationError
from .models import ESCALATION_MARKER, Alert, Listing, Severity

logger = logging.getLogger(__name__)


def resolve_responsible_party(listing: Listing) -> Optional[str]:
    """The seller, else the shop owner, else None."""
    if listing.seller_id:
        return listing.seller_id
    if listing.shop is not None and listing.shop.owner_id:
        return listing.shop.owner_id
    return None


class EscalationCounter:
    """
    Counts the genuine listing alerts attributed to a party.

    The count is recomputed from stored alerts on every call. Escalation
    alerts are recognised by ESCALATION_MARKER and never counted.
    """

    def __init__(self, store: AlertDatabase, threshold: int = ESCALATION_THRESHOLD):
        self.store = store
        self.threshold = threshold

    def count_genuine_alerts(self, party_id: str) -> int:
        alerts = self.store.find_alerts_by_responsible_party(party_id)
        return sum(1 for alert in alerts if not alert.is_escalation)

    def should_escalate(self, party_id: str) -> bool:
        count = self.count_genuine_alerts(party_id)
        logger.debug(f"Party {party_id} has {count} genuine alert(s) (threshold {self.threshold})")
        return count >= self.threshold


class EscalationRecorder:
    """Creates the party-level alert once a seller crosses the threshold."""

    def __init__(self, store: AlertDatabase):
        self.store = store

    @staticmethod
    def build_reason(party_id: str) -> str:
        return f"{ESCALATION_MARKER} User {party_id} flagged: repeated price anomalies on their listings"

    def record(
        self,
        party_id: str,
        listing_id: str,
        median: Decimal,
        observed_price: Decimal,
        deviation_percent: int,
    ) -> Optional[Alert]:
        """
        Persist an escalation alert against a party.

        Returns None when the party was already escalated today.
        """
        alert = Alert(
            listing_id=listing_id,
            severity=Severity.HIGH,
            reason=self.build_reason(party_id),
            reference_price=median,
            observed_price=observed_price,
            deviation_percent=deviation_percent,
            responsible_party_id=party_id,
        )

        try:
            saved = self.store.save_alert(alert)
        except DuplicateEscalationError:
            logger.info(f"Party {party_id} already escalated today, skipping")
            return None

        logger.info(f"Escalated party {party_id} (alert {saved.id})")
        return saved
