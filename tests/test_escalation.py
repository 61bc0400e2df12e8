"""Tests for responsible party resolution and escalation counting."""

from decimal import Decimal

from fraud_detector.escalation import EscalationCounter, EscalationRecorder, resolve_responsible_party
from fraud_detector.models import ESCALATION_MARKER, Alert, Listing, Severity, Shop


class TestResolveResponsibleParty:

    def test_seller_wins(self):
        listing = Listing(id="L1", current_price=Decimal("10"), seller_id="seller", shop=Shop("S1", "owner"))
        assert resolve_responsible_party(listing) == "seller"

    def test_falls_back_to_shop_owner(self):
        listing = Listing(id="L1", current_price=Decimal("10"), shop=Shop("S1", "owner"))
        assert resolve_responsible_party(listing) == "owner"

    def test_shop_without_owner(self):
        listing = Listing(id="L1", current_price=Decimal("10"), shop=Shop("S1"))
        assert resolve_responsible_party(listing) is None

    def test_orphan_listing(self):
        assert resolve_responsible_party(Listing(id="L1", current_price=Decimal("10"))) is None


class TestEscalationCounter:

    def test_counts_alerts_across_listings(self, db, make_listing, make_alert):
        make_listing("L1", [], seller_id="u1")
        make_listing("L2", [], shop_id="S1", shop_owner_id="u1")
        make_alert("L1")
        make_alert("L2")

        counter = EscalationCounter(db)
        assert counter.count_genuine_alerts("u1") == 2
        assert counter.should_escalate("u1")

    def test_below_threshold(self, db, make_listing, make_alert):
        make_listing("L1", [], seller_id="u1")
        make_alert("L1")

        counter = EscalationCounter(db)
        assert counter.count_genuine_alerts("u1") == 1
        assert not counter.should_escalate("u1")

    def test_escalation_alerts_not_counted(self, db, make_listing, make_alert):
        make_listing("L1", [], seller_id="u1")
        make_alert("L1")
        EscalationRecorder(db).record("u1", "L1", Decimal("100"), Decimal("300"), 200)

        assert EscalationCounter(db).count_genuine_alerts("u1") == 1

    def test_marker_match_is_case_insensitive(self, db, make_listing):
        make_listing("L1", [], seller_id="u1")
        db.save_alert(
            Alert(
                listing_id="L1",
                severity=Severity.HIGH,
                reason=ESCALATION_MARKER.upper() + " legacy",
                reference_price=Decimal("1"),
                observed_price=Decimal("2"),
                deviation_percent=100,
            )
        )
        assert EscalationCounter(db).count_genuine_alerts("u1") == 0

    def test_custom_threshold(self, db, make_listing, make_alert):
        make_listing("L1", [], seller_id="u1")
        make_alert("L1")
        make_alert("L1")
        assert not EscalationCounter(db, threshold=3).should_escalate("u1")


class TestEscalationRecorder:

    def test_records_high_party_alert(self, db, make_listing):
        make_listing("L1", [], seller_id="u1")
        alert = EscalationRecorder(db).record("u1", "L1", Decimal("100"), Decimal("300"), 200)

        assert alert.id is not None
        assert alert.severity == Severity.HIGH
        assert alert.responsible_party_id == "u1"
        assert ESCALATION_MARKER in alert.reason
        assert "u1" in alert.reason

    def test_duplicate_same_day_is_noop(self, db, make_listing):
        make_listing("L1", [], seller_id="u1")
        recorder = EscalationRecorder(db)
        assert recorder.record("u1", "L1", Decimal("100"), Decimal("300"), 200) is not None
        assert recorder.record("u1", "L1", Decimal("100"), Decimal("300"), 200) is None
        assert db.get_alert_count() == 1
