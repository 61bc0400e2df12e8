"""Fraud alert orchestration for listing price changes."""

import asyncio
import logging
import weakref
from decimal import Decimal, InvalidOperation
from typing import Optional

from .alerter import AlertBroadcaster, LogBroadcaster
from .analyzer import AnomalyResult, MedianAnalyzer, classify_severity, describe_anomaly, to_decimal
from .database import AlertDatabase
from .escalation import EscalationCounter, EscalationRecorder, resolve_responsible_party
from .exceptions import InvalidPriceChangeError
from .models import Alert, AlertFilter, EvaluationResult, Listing

logger = logging.getLogger(__name__)


def _validate_price_change(listing_id, candidate_price) -> Decimal:
    if not isinstance(listing_id, str) or not listing_id.strip():
        raise InvalidPriceChangeError(f"Invalid listing reference: {listing_id!r}")
    if isinstance(candidate_price, bool) or candidate_price is None:
        raise InvalidPriceChangeError(f"Invalid candidate price: {candidate_price!r}")
    try:
        price = to_decimal(candidate_price)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidPriceChangeError(f"Invalid candidate price: {candidate_price!r}", cause=e)
    if not price.is_finite() or price < 0:
        raise InvalidPriceChangeError(f"Invalid candidate price: {candidate_price!r}")
    return price


class FraudAlertService:
    """
    Evaluates price changes and raises fraud alerts.

    Flow for one price change:
    1. Load the listing and its price history
    2. Compare the candidate price against the history median
    3. If anomalous, store a listing alert and broadcast it
    4. Resolve the responsible seller and count their genuine alerts
    5. At the threshold, store and broadcast one escalation alert

    Steps 4-5 never undo or hide the listing alert: failures there are
    logged and the caller gets the listing alert with party_alert None.
    The escalation step is serialized per party, and the store allows
    at most one escalation alert per party per day.
    """

    def __init__(
        self,
        store: AlertDatabase,
        broadcaster: Optional[AlertBroadcaster] = None,
        analyzer: Optional[MedianAnalyzer] = None,
        counter: Optional[EscalationCounter] = None,
        recorder: Optional[EscalationRecorder] = None,
    ):
        self.store = store
        self.broadcaster = broadcaster or LogBroadcaster()
        self.analyzer = analyzer or MedianAnalyzer()
        self.counter = counter or EscalationCounter(store)
        self.recorder = recorder or EscalationRecorder(store)
        self._party_locks = weakref.WeakValueDictionary()

    def _party_lock(self, party_id: str) -> asyncio.Lock:
        lock = self._party_locks.get(party_id)
        if lock is None:
            lock = asyncio.Lock()
            self._party_locks[party_id] = lock
        return lock

    async def evaluate_price_change(self, listing_id: str, candidate_price) -> EvaluationResult:
        """
        Evaluate a proposed price for a listing.

        Returns:
            EvaluationResult. Both alerts None means no anomaly (or the
            listing no longer exists).

        Raises:
            InvalidPriceChangeError: malformed listing id or price
            AlertStoreError: storage failed before a listing alert was stored
        """
        candidate = _validate_price_change(listing_id, candidate_price)

        listing = self.store.get_listing(listing_id)
        if listing is None:
            logger.debug(f"Listing {listing_id} not found, nothing to evaluate")
            return EvaluationResult(notes=["listing_not_found"])

        history = self.store.get_price_history(listing_id)
        result = self.analyzer.analyze(
            candidate,
            [point.price for point in history],
            listing.current_price,
        )

        if not result.evaluable:
            logger.debug(f"Listing {listing_id}: zero median, skipping")
            return EvaluationResult(notes=["not_evaluable"])
        if not result.is_anomaly:
            logger.debug(f"Listing {listing_id}: {candidate} within tolerance of median {result.median}")
            return EvaluationResult(notes=["within_tolerance"])

        listing_alert = self._record_listing_alert(listing, result)
        await self._broadcast(listing_alert)

        outcome = EvaluationResult(listing_alert=listing_alert, notes=["listing_alerted"])
        try:
            outcome.party_alert = await self._escalate(listing, result, outcome)
        except Exception as e:
            logger.exception(f"Escalation check failed for listing {listing_id}: {e}")
            outcome.notes.append("escalation_failed")

        return outcome

    def _record_listing_alert(self, listing: Listing, result: AnomalyResult) -> Alert:
        severity = classify_severity(result.direction, result.deviation_percent)
        alert = self.store.save_alert(
            Alert(
                listing_id=listing.id,
                severity=severity,
                reason=describe_anomaly(result),
                reference_price=result.median,
                observed_price=result.candidate_price,
                deviation_percent=result.deviation_percent,
            )
        )
        logger.info(
            f"Listing {listing.id}: {severity.value} alert {alert.id} "
            f"({result.candidate_price} vs median {result.median})"
        )
        return alert

    async def _escalate(
        self,
        listing: Listing,
        result: AnomalyResult,
        outcome: EvaluationResult,
    ) -> Optional[Alert]:
        party_id = resolve_responsible_party(listing)
        if party_id is None:
            logger.debug(f"Listing {listing.id} has no seller or shop owner, no escalation")
            outcome.notes.append("no_responsible_party")
            return None

        async with self._party_lock(party_id):
            if not self.counter.should_escalate(party_id):
                outcome.notes.append("below_threshold")
                return None

            party_alert = self.recorder.record(
                party_id=party_id,
                listing_id=listing.id,
                median=result.median,
                observed_price=result.candidate_price,
                deviation_percent=result.deviation_percent,
            )

        if party_alert is None:
            outcome.notes.append("already_escalated")
            return None

        outcome.notes.append("escalated")
        await self._broadcast(party_alert)
        return party_alert

    async def _broadcast(self, alert: Alert) -> None:
        """Best effort: a failed push leaves the stored alert untouched."""
        try:
            await self.broadcaster.broadcast_alert(alert)
        except Exception as e:
            logger.error(f"Failed to broadcast alert {alert.id}: {e}")

    async def apply_price_change(self, listing_id: str, new_price) -> EvaluationResult:
        """
        Evaluate a new price, then record it as the listing's price.

        The evaluation runs against the history as it was before the change.
        """
        price = _validate_price_change(listing_id, new_price)
        if self.store.get_listing(listing_id) is None:
            raise InvalidPriceChangeError(f"Unknown listing: {listing_id}")

        outcome = await self.evaluate_price_change(listing_id, price)

        self.store.record_price_change(listing_id, price)
        logger.info(f"Listing {listing_id} price set to {price}")
        return outcome

    def is_party_flagged(self, party_id: str) -> bool:
        """True once the party has reached the escalation threshold."""
        return self.counter.should_escalate(party_id)

    def list_alerts(self, alert_filter: Optional[AlertFilter] = None) -> list[Alert]:
        return self.store.list_alerts(alert_filter)

    def mark_read(self, alert_id: int) -> bool:
        found = self.store.mark_read(alert_id)
        if not found:
            logger.warning(f"Alert {alert_id} not found")
        return found

    def mark_all_read(self) -> int:
        affected = self.store.set_all_read(True)
        logger.info(f"Marked {affected} alert(s) as read")
        return affected

    def mark_all_unread(self) -> int:
        affected = self.store.set_all_read(False)
        logger.info(f"Marked {affected} alert(s) as unread")
        return affected

    def delete_alerts_for_listing(self, listing_id: str) -> int:
        return self.store.delete_alerts_for_listing(listing_id)
