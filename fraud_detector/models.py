"""Data types shared by the analyzer, the alert store and the service."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

# Token carried in the reason of every party-escalation alert.
# Alerts whose reason contains it are never counted as evidence.
ESCALATION_MARKER = "[user-escalation]"


class Severity(Enum):
    """Alert severity tiers."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Direction(Enum):
    """Which side of the tolerance band a candidate price fell on."""
    ABOVE = "above"
    BELOW = "below"


@dataclass(frozen=True)
class PricePoint:
    """A recorded price for a listing."""
    price: Decimal
    recorded_at: datetime


@dataclass(frozen=True)
class Shop:
    id: str
    owner_id: Optional[str] = None


@dataclass(frozen=True)
class Listing:
    """The slice of a marketplace listing the engine reads."""
    id: str
    current_price: Decimal
    seller_id: Optional[str] = None
    shop: Optional[Shop] = None


@dataclass
class Alert:
    """
    One fraud/anomaly finding.

    A listing alert has no responsible_party_id. A party-escalation alert
    has responsible_party_id set and ESCALATION_MARKER in its reason.
    """
    listing_id: Optional[str]
    severity: Severity
    reason: str
    reference_price: Decimal
    observed_price: Decimal
    deviation_percent: int
    responsible_party_id: Optional[str] = None
    is_read: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def is_escalation(self) -> bool:
        return ESCALATION_MARKER.lower() in self.reason.lower()


@dataclass
class AlertFilter:
    """Optional filters for listing alerts (newest first)."""
    listing_id: Optional[str] = None
    severity: Optional[Severity] = None
    is_read: Optional[bool] = None
    responsible_party_id: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class EvaluationResult:
    """Outcome of evaluating one price change. Both None means no anomaly."""
    listing_alert: Optional[Alert] = None
    party_alert: Optional[Alert] = None
    notes: list[str] = field(default_factory=list)

    @property
    def is_anomaly(self) -> bool:
        return self.listing_alert is not None
