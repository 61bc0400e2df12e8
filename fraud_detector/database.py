"""SQLite alert store and price-history reader."""

import sqlite3
import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional
from contextlib import contextmanager

from .config import FRAUD_DB_PATH
from .exceptions import AlertStoreError, DuplicateEscalationError
from .models import Alert, AlertFilter, Listing, PricePoint, Severity, Shop

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertDatabase:
    """
    SQLite database holding listings, their price history and fraud alerts.

    Prices are stored as TEXT so Decimal values survive the round trip
    unchanged. Escalation alerts are unique per (party, UTC day).
    """

    def __init__(self, db_path: Path | str = FRAUD_DB_PATH):
        self.db_path = Path(db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise AlertStoreError(f"Cannot open database at {self.db_path}", cause=e)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise AlertStoreError(f"Database operation failed on {self.db_path}", cause=e)
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema if not exists."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS shops (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS listings (
                    id TEXT PRIMARY KEY,
                    current_price TEXT NOT NULL,
                    seller_id TEXT,
                    shop_id TEXT REFERENCES shops(id) ON DELETE SET NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS price_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    listing_id TEXT NOT NULL REFERENCES listings(id) ON DELETE CASCADE,
                    price TEXT NOT NULL,
                    recorded_at TEXT NOT NULL
                )
            """)

            # escalation_day is only set for party-escalation alerts
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    listing_id TEXT,
                    severity TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    reference_price TEXT NOT NULL,
                    observed_price TEXT NOT NULL,
                    deviation_percent INTEGER NOT NULL,
                    responsible_party_id TEXT,
                    escalation_day TEXT,
                    is_read INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_price_history_listing ON price_history(listing_id, recorded_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_listings_seller ON listings(seller_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_shops_owner ON shops(owner_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_alerts_listing ON alerts(listing_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_alerts_created_at ON alerts(created_at)")
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS uq_alerts_party_day
                ON alerts(responsible_party_id, escalation_day)
                WHERE responsible_party_id IS NOT NULL
            """)

            logger.info(f"Database initialized at {self.db_path}")

    # -- listings & price history -------------------------------------------

    def upsert_shop(self, shop_id: str, owner_id: Optional[str] = None) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO shops (id, owner_id) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET owner_id = excluded.owner_id
                """,
                (shop_id, owner_id),
            )

    def upsert_listing(
        self,
        listing_id: str,
        current_price: Decimal,
        seller_id: Optional[str] = None,
        shop_id: Optional[str] = None,
    ) -> None:
        """Insert or replace the engine's view of a listing."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO listings (id, current_price, seller_id, shop_id)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    current_price = excluded.current_price,
                    seller_id = excluded.seller_id,
                    shop_id = excluded.shop_id
                """,
                (listing_id, str(current_price), seller_id, shop_id),
            )
            logger.debug(f"Listing {listing_id} stored at {current_price}")

    @staticmethod
    def _set_current_price(conn: sqlite3.Connection, listing_id: str, price: Decimal) -> bool:
        cursor = conn.execute(
            "UPDATE listings SET current_price = ? WHERE id = ?",
            (str(price), listing_id),
        )
        return cursor.rowcount > 0

    @staticmethod
    def _insert_price(
        conn: sqlite3.Connection,
        listing_id: str,
        price: Decimal,
        recorded_at: datetime,
    ) -> int:
        cursor = conn.execute(
            "INSERT INTO price_history (listing_id, price, recorded_at) VALUES (?, ?, ?)",
            (listing_id, str(price), recorded_at.isoformat()),
        )
        return cursor.lastrowid

    def update_listing_price(self, listing_id: str, price: Decimal) -> bool:
        """Set a listing's current price. Returns False if the listing is unknown."""
        with self._get_connection() as conn:
            return self._set_current_price(conn, listing_id, price)

    def add_price(
        self,
        listing_id: str,
        price: Decimal,
        recorded_at: Optional[datetime] = None,
    ) -> int:
        """Append a price point for a listing. Returns the price_history ID."""
        with self._get_connection() as conn:
            return self._insert_price(conn, listing_id, price, recorded_at or _utcnow())

    def record_price_change(
        self,
        listing_id: str,
        price: Decimal,
        recorded_at: Optional[datetime] = None,
    ) -> int:
        """
        Append a price point and make it the listing's current price.

        Both writes share one transaction, so history and current price
        never disagree. Returns the price_history ID.

        Raises:
            AlertStoreError: the listing is unknown or either write failed
        """
        with self._get_connection() as conn:
            price_id = self._insert_price(conn, listing_id, price, recorded_at or _utcnow())
            if not self._set_current_price(conn, listing_id, price):
                raise AlertStoreError(f"Unknown listing: {listing_id}")
            return price_id

    def get_price_history(self, listing_id: str) -> list[PricePoint]:
        """All recorded prices for a listing, oldest first."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT price, recorded_at
                FROM price_history
                WHERE listing_id = ?
                ORDER BY recorded_at ASC, id ASC
                """,
                (listing_id,),
            )
            return [
                PricePoint(
                    price=Decimal(row["price"]),
                    recorded_at=datetime.fromisoformat(row["recorded_at"]),
                )
                for row in cursor.fetchall()
            ]

    def get_listing(self, listing_id: str) -> Optional[Listing]:
        """Get a listing with its shop, or None if it does not exist."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT l.id, l.current_price, l.seller_id,
                       s.id AS shop_id, s.owner_id AS shop_owner_id
                FROM listings l
                LEFT JOIN shops s ON s.id = l.shop_id
                WHERE l.id = ?
                """,
                (listing_id,),
            )
            row = cursor.fetchone()
            if not row:
                return None

            shop = None
            if row["shop_id"] is not None:
                shop = Shop(id=row["shop_id"], owner_id=row["shop_owner_id"])

            return Listing(
                id=row["id"],
                current_price=Decimal(row["current_price"]),
                seller_id=row["seller_id"],
                shop=shop,
            )

    # -- alerts ---------------------------------------------------------------

    @staticmethod
    def _row_to_alert(row: sqlite3.Row) -> Alert:
        return Alert(
            id=row["id"],
            listing_id=row["listing_id"],
            severity=Severity(row["severity"]),
            reason=row["reason"],
            reference_price=Decimal(row["reference_price"]),
            observed_price=Decimal(row["observed_price"]),
            deviation_percent=row["deviation_percent"],
            responsible_party_id=row["responsible_party_id"],
            is_read=bool(row["is_read"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def save_alert(self, alert: Alert) -> Alert:
        """
        Persist a new alert and return it with id and created_at assigned.

        Raises:
            DuplicateEscalationError: the party already has an escalation
                alert for the current UTC day
            AlertStoreError: any other storage failure
        """
        created_at = alert.created_at or _utcnow()
        escalation_day = None
        if alert.responsible_party_id is not None:
            escalation_day = created_at.date().isoformat()

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO alerts (
                        listing_id, severity, reason, reference_price, observed_price,
                        deviation_percent, responsible_party_id, escalation_day,
                        is_read, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        alert.listing_id,
                        alert.severity.value,
                        alert.reason,
                        str(alert.reference_price),
                        str(alert.observed_price),
                        alert.deviation_percent,
                        alert.responsible_party_id,
                        escalation_day,
                        int(alert.is_read),
                        created_at.isoformat(),
                    ),
                )
                alert_id = cursor.lastrowid
        except AlertStoreError as e:
            if escalation_day and isinstance(e.__cause__, sqlite3.IntegrityError):
                raise DuplicateEscalationError(alert.responsible_party_id, cause=e.__cause__)
            raise

        logger.debug(f"Alert {alert_id} saved ({alert.severity.value})")
        return replace(alert, id=alert_id, created_at=created_at)

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,))
            row = cursor.fetchone()
            return self._row_to_alert(row) if row else None

    def find_alerts_by_responsible_party(self, party_id: str) -> list[Alert]:
        """
        All alerts attributable to a party: alerts on listings they sell or
        whose shop they own, plus alerts escalated against them directly.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT DISTINCT a.*
                FROM alerts a
                LEFT JOIN listings l ON l.id = a.listing_id
                LEFT JOIN shops s ON s.id = l.shop_id
                WHERE l.seller_id = ?
                   OR s.owner_id = ?
                   OR a.responsible_party_id = ?
                ORDER BY a.created_at ASC, a.id ASC
                """,
                (party_id, party_id, party_id),
            )
            return [self._row_to_alert(row) for row in cursor.fetchall()]

    def list_alerts(self, alert_filter: Optional[AlertFilter] = None) -> list[Alert]:
        """List alerts matching the filter, newest first."""
        alert_filter = alert_filter or AlertFilter()

        clauses = []
        params: list = []
        if alert_filter.listing_id is not None:
            clauses.append("listing_id = ?")
            params.append(alert_filter.listing_id)
        if alert_filter.severity is not None:
            clauses.append("severity = ?")
            params.append(alert_filter.severity.value)
        if alert_filter.is_read is not None:
            clauses.append("is_read = ?")
            params.append(int(alert_filter.is_read))
        if alert_filter.responsible_party_id is not None:
            clauses.append("responsible_party_id = ?")
            params.append(alert_filter.responsible_party_id)

        query = "SELECT * FROM alerts"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
        limit = alert_filter.limit if alert_filter.limit is not None else -1
        params.extend([limit, alert_filter.offset])

        with self._get_connection() as conn:
            cursor = conn.execute(query, params)
            return [self._row_to_alert(row) for row in cursor.fetchall()]

    def mark_read(self, alert_id: int, is_read: bool = True) -> bool:
        """Set is_read on one alert. Returns False if no such alert."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE alerts SET is_read = ? WHERE id = ?",
                (int(is_read), alert_id),
            )
            return cursor.rowcount > 0

    def set_all_read(self, is_read: bool) -> int:
        """Set is_read on every alert. Returns the number of rows changed."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE alerts SET is_read = ? WHERE is_read != ?",
                (int(is_read), int(is_read)),
            )
            return cursor.rowcount

    def delete_alerts_for_listing(self, listing_id: str) -> int:
        """Remove every alert tied to a listing. Returns the number deleted."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM alerts WHERE listing_id = ?", (listing_id,))
            if cursor.rowcount:
                logger.info(f"Deleted {cursor.rowcount} alerts for listing {listing_id}")
            return cursor.rowcount

    def get_alert_count(self) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT COUNT(*) AS count FROM alerts")
            return cursor.fetchone()["count"]

    def get_listing_count(self) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT COUNT(*) AS count FROM listings")
            return cursor.fetchone()["count"]

    def verify_schema(self) -> bool:
        """Verify database schema is correct. Returns True if valid."""
        try:
            with self._get_connection() as conn:
                for table in ("shops", "listings", "price_history", "alerts"):
                    cursor = conn.execute(
                        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?",
                        (table,),
                    )
                    if not cursor.fetchone():
                        logger.error(f"Missing '{table}' table")
                        return False

                logger.info("Database schema verified ✓")
                return True

        except AlertStoreError as e:
            logger.error(f"Schema verification failed: {e}")
            return False
