"""Shared fixtures for fraud detector tests."""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fraud_detector.database import AlertDatabase
from fraud_detector.models import Alert, Severity
from fraud_detector.service import FraudAlertService

HISTORY_START = datetime(2020, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    """Fresh SQLite alert store per test."""
    return AlertDatabase(tmp_path / "alerts.db")


class RecordingBroadcaster:
    """Keeps every broadcast alert in memory for assertions."""

    def __init__(self):
        self.sent: list[Alert] = []

    async def broadcast_alert(self, alert: Alert) -> None:
        self.sent.append(alert)


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def service(db, broadcaster):
    return FraudAlertService(db, broadcaster=broadcaster)


@pytest.fixture
def make_listing(db):
    """Create a listing with an ordered price history."""

    def _make(
        listing_id: str,
        history: list,
        current_price="100",
        seller_id=None,
        shop_id=None,
        shop_owner_id=None,
    ):
        if shop_id is not None:
            db.upsert_shop(shop_id, shop_owner_id)
        db.upsert_listing(listing_id, Decimal(str(current_price)), seller_id=seller_id, shop_id=shop_id)
        for i, price in enumerate(history):
            db.add_price(listing_id, Decimal(str(price)), recorded_at=HISTORY_START + timedelta(hours=i))
        return listing_id

    return _make


@pytest.fixture
def make_alert(db):
    """Store a genuine listing alert directly."""

    def _make(listing_id: str, severity: Severity = Severity.MEDIUM):
        return db.save_alert(
            Alert(
                listing_id=listing_id,
                severity=severity,
                reason="Price above market: 150 vs median 100 (~50% deviation)",
                reference_price=Decimal("100"),
                observed_price=Decimal("150"),
                deviation_percent=50,
            )
        )

    return _make
