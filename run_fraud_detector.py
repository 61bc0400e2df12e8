#!/usr/bin/env python3
"""
Listing Price Fraud Detector

Evaluates listing price changes against their price history, stores fraud
alerts in SQLite and pushes them to the admin dashboard webhook.

Usage:
    python run_fraud_detector.py --evaluate LISTING 199.99   # Check a price, don't apply it
    python run_fraud_detector.py --apply LISTING 199.99      # Check and record the new price
    python run_fraud_detector.py --list --unread             # Show unread alerts
    python run_fraud_detector.py --mark-read 12              # Mark one alert as read
    python run_fraud_detector.py --mark-all-read             # Mark every alert as read
    python run_fraud_detector.py --flagged USER              # Is this seller flagged?
    python run_fraud_detector.py --test-db                   # Verify database
    python run_fraud_detector.py --test-alert                # Test dashboard webhook
"""

import argparse
import asyncio
import json
import logging
import sys

from fraud_detector.alerter import alert_to_payload, get_broadcaster, send_test_alert
from fraud_detector.config import FRAUD_DB_PATH
from fraud_detector.database import AlertDatabase
from fraud_detector.exceptions import FraudDetectorError
from fraud_detector.models import AlertFilter, EvaluationResult, Severity
from fraud_detector.service import FraudAlertService

logger = logging.getLogger(__name__)


def print_result(listing_id: str, price: str, result: EvaluationResult) -> None:
    print(f"\n{'='*60}")
    print(f"Price check: listing {listing_id} -> {price}")
    print(f"{'='*60}")
    if not result.is_anomaly:
        print("  No anomaly detected")
        return

    alert = result.listing_alert
    print(f"  Listing alert:  #{alert.id} {alert.severity.value}")
    print(f"  Median:         {alert.reference_price}")
    print(f"  Deviation:      {alert.deviation_percent}%")
    print(f"  Reason:         {alert.reason}")
    if result.party_alert:
        print(f"  Seller flagged: {result.party_alert.responsible_party_id} (alert #{result.party_alert.id})")


def list_alerts(service: FraudAlertService, args: argparse.Namespace) -> None:
    alert_filter = AlertFilter(
        listing_id=args.listing,
        severity=Severity(args.severity) if args.severity else None,
        is_read=False if args.unread else None,
        limit=args.limit,
    )
    alerts = service.list_alerts(alert_filter)

    if args.json:
        print(json.dumps([alert_to_payload(a) for a in alerts], indent=2))
        return

    print(f"\n{len(alerts)} alert(s)")
    for alert in alerts:
        marker = " " if alert.is_read else "*"
        target = f"user {alert.responsible_party_id}" if alert.responsible_party_id else f"listing {alert.listing_id}"
        print(f" {marker} #{alert.id:<5} {alert.severity.value:<6} {target}: {alert.reason}")


async def test_alert() -> bool:
    """Test dashboard webhook with a sample alert."""
    print(f"\n{'='*60}")
    print("Dashboard Webhook Test")
    print(f"{'='*60}")

    success = await send_test_alert()

    if success:
        print("✓ Test alert sent successfully!")
    else:
        print("✗ Failed to send test alert. Check DASHBOARD_WEBHOOK_URL in .env")

    return success


def test_database(db: AlertDatabase) -> bool:
    """Test database connection and schema."""
    print(f"\n{'='*60}")
    print("Database Test")
    print(f"{'='*60}")

    if db.verify_schema():
        print(f"✓ Database schema verified at {db.db_path}")
        print(f"  Listings: {db.get_listing_count()}")
        print(f"  Alerts:   {db.get_alert_count()}")
        return True

    print("✗ Database schema verification failed")
    return False


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Listing Price Fraud Detector",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--evaluate", nargs=2, metavar=("LISTING", "PRICE"), help="Evaluate a candidate price")
    action.add_argument("--apply", nargs=2, metavar=("LISTING", "PRICE"), help="Evaluate and record a new price")
    action.add_argument("--list", action="store_true", help="List alerts (newest first)")
    action.add_argument("--mark-read", type=int, metavar="ID", help="Mark one alert as read")
    action.add_argument("--mark-all-read", action="store_true", help="Mark every alert as read")
    action.add_argument("--mark-all-unread", action="store_true", help="Mark every alert as unread")
    action.add_argument("--delete-listing", metavar="LISTING", help="Delete all alerts for a listing")
    action.add_argument("--flagged", metavar="USER", help="Check whether a seller is flagged")
    action.add_argument("--test-db", action="store_true", help="Test database connection and schema")
    action.add_argument("--test-alert", action="store_true", help="Send a test alert to the dashboard")

    parser.add_argument("--db", default=str(FRAUD_DB_PATH), help=f"SQLite database path (default: {FRAUD_DB_PATH})")
    parser.add_argument("--unread", action="store_true", help="With --list: only unread alerts")
    parser.add_argument("--severity", choices=[s.value for s in Severity], help="With --list: filter by severity")
    parser.add_argument("--listing", help="With --list: filter by listing")
    parser.add_argument("--limit", type=int, default=50, help="With --list: max alerts (default: 50)")
    parser.add_argument("--json", action="store_true", help="With --list: print JSON")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    if args.test_alert:
        return 0 if asyncio.run(test_alert()) else 1

    try:
        db = AlertDatabase(args.db)
        if args.test_db:
            return 0 if test_database(db) else 1

        service = FraudAlertService(db, broadcaster=get_broadcaster())

        if args.evaluate:
            listing_id, price = args.evaluate
            print_result(listing_id, price, asyncio.run(service.evaluate_price_change(listing_id, price)))
        elif args.apply:
            listing_id, price = args.apply
            print_result(listing_id, price, asyncio.run(service.apply_price_change(listing_id, price)))
        elif args.list:
            list_alerts(service, args)
        elif args.mark_read is not None:
            if not service.mark_read(args.mark_read):
                print(f"Alert #{args.mark_read} not found")
                return 1
        elif args.mark_all_read:
            print(f"{service.mark_all_read()} alert(s) marked as read")
        elif args.mark_all_unread:
            print(f"{service.mark_all_unread()} alert(s) marked as unread")
        elif args.delete_listing:
            print(f"{service.delete_alerts_for_listing(args.delete_listing)} alert(s) deleted")
        elif args.flagged:
            flagged = service.is_party_flagged(args.flagged)
            print(f"User {args.flagged}: {'FLAGGED' if flagged else 'not flagged'}")
    except FraudDetectorError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
