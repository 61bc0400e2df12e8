"""Price-anomaly and fraud-escalation engine for marketplace listings."""

from .database import AlertDatabase
from .analyzer import MedianAnalyzer, classify_severity
from .alerter import WebhookBroadcaster, LogBroadcaster, get_broadcaster
from .models import Alert, AlertFilter, Direction, EvaluationResult, Severity
from .service import FraudAlertService

__all__ = [
    "AlertDatabase",
    "MedianAnalyzer",
    "classify_severity",
    "WebhookBroadcaster",
    "LogBroadcaster",
    "get_broadcaster",
    "Alert",
    "AlertFilter",
    "Direction",
    "EvaluationResult",
    "Severity",
    "FraudAlertService",
]
