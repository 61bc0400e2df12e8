"""
Exceptions raised by the fraud detector.

Hierarchy:
    Exception
    └── FraudDetectorError
        ├── InvalidPriceChangeError   (bad listing id / candidate price)
        ├── AlertStoreError           (storage failure)
        │   └── DuplicateEscalationError
        └── BroadcastError            (dashboard push failed)
"""


class FraudDetectorError(Exception):
    """Base class for all fraud detector errors."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        self.message = message
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.__cause__:
            return f"{self.message} (Caused by: {self.__cause__})"
        return self.message


class InvalidPriceChangeError(FraudDetectorError):
    """The price-change event itself is malformed and should be rejected."""


class AlertStoreError(FraudDetectorError):
    """The alert store could not complete a read or write."""


class DuplicateEscalationError(AlertStoreError):
    """An escalation alert already exists for this party today."""

    def __init__(self, party_id: str, cause: Exception | None = None) -> None:
        self.party_id = party_id
        super().__init__(f"Party {party_id} already escalated today", cause=cause)


class BroadcastError(FraudDetectorError):
    """The live dashboard could not be notified."""
