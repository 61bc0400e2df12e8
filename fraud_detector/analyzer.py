"""Median-based anomaly detection for listing prices."""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from .models import Direction, Severity

logger = logging.getLogger(__name__)

Number = Decimal | int | float | str


def to_decimal(value: Number) -> Decimal:
    """Convert a price to Decimal without picking up float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass
class AnomalyResult:
    """Result of comparing a candidate price against a listing's history."""
    is_anomaly: bool
    evaluable: bool
    candidate_price: Decimal
    median: Decimal
    upper_limit: Decimal
    lower_limit: Decimal
    deviation_percent: int
    direction: Optional[Direction]
    sample_size: int


class MedianAnalyzer:
    """
    Flags candidate prices that fall outside a tolerance band around the
    median of the listing's price history.

    The band is [median * LOWER_MULTIPLIER, median * UPPER_MULTIPLIER] and
    both bounds are inclusive. Arithmetic is done in Decimal so a candidate
    sitting exactly on a bound is never flagged.
    """

    UPPER_MULTIPLIER = Decimal("1.1")
    LOWER_MULTIPLIER = Decimal("0.5")

    def __init__(
        self,
        upper_multiplier: Number = UPPER_MULTIPLIER,
        lower_multiplier: Number = LOWER_MULTIPLIER,
    ):
        self.upper_multiplier = to_decimal(upper_multiplier)
        self.lower_multiplier = to_decimal(lower_multiplier)

    @staticmethod
    def calculate_median(prices: Iterable[Number]) -> Decimal:
        """
        Median of a non-empty sample.

        Odd length: the middle element. Even length: the mean of the two
        middle elements.
        """
        ordered = sorted(to_decimal(p) for p in prices)
        if not ordered:
            raise ValueError("median of an empty sample")

        mid = len(ordered) // 2
        if len(ordered) % 2:
            return ordered[mid]
        return (ordered[mid - 1] + ordered[mid]) / 2

    @staticmethod
    def calculate_deviation_percent(candidate: Decimal, median: Decimal) -> int:
        """Distance from the median as a percentage, rounded half-up."""
        ratio = abs(candidate - median) / median * 100
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def analyze(
        self,
        candidate_price: Number,
        price_history: list[Number],
        current_price: Number,
    ) -> AnomalyResult:
        """
        Evaluate a candidate price.

        Args:
            candidate_price: The proposed new price
            price_history: Previously recorded prices (oldest first, may be empty)
            current_price: The listing's current price, used as the sole
                sample when there is no history

        Returns:
            AnomalyResult. evaluable is False when the median is zero or negative.
        """
        candidate = to_decimal(candidate_price)
        sample = list(price_history) if price_history else [current_price]
        median = self.calculate_median(sample)

        upper_limit = median * self.upper_multiplier
        lower_limit = median * self.lower_multiplier

        if median <= 0:
            logger.debug(f"Median is {median}, price cannot be evaluated")
            return AnomalyResult(
                is_anomaly=False,
                evaluable=False,
                candidate_price=candidate,
                median=median,
                upper_limit=upper_limit,
                lower_limit=lower_limit,
                deviation_percent=0,
                direction=None,
                sample_size=len(sample),
            )

        if lower_limit <= candidate <= upper_limit:
            return AnomalyResult(
                is_anomaly=False,
                evaluable=True,
                candidate_price=candidate,
                median=median,
                upper_limit=upper_limit,
                lower_limit=lower_limit,
                deviation_percent=self.calculate_deviation_percent(candidate, median),
                direction=None,
                sample_size=len(sample),
            )

        direction = Direction.ABOVE if candidate > upper_limit else Direction.BELOW
        deviation = self.calculate_deviation_percent(candidate, median)

        logger.info(
            f"Price anomaly: {candidate} vs median {median} "
            f"({direction.value}, {deviation}%)"
        )

        return AnomalyResult(
            is_anomaly=True,
            evaluable=True,
            candidate_price=candidate,
            median=median,
            upper_limit=upper_limit,
            lower_limit=lower_limit,
            deviation_percent=deviation,
            direction=direction,
            sample_size=len(sample),
        )


ABOVE_HIGH_THRESHOLD = 30  # Overpricing beyond this % is HIGH
BELOW_HIGH_THRESHOLD = 50  # Underpricing tolerates more (clearance sales)


def classify_severity(direction: Direction, deviation_percent: Number) -> Severity:
    """Map an anomaly to MEDIUM or HIGH. Never returns LOW."""
    deviation = to_decimal(deviation_percent)
    if direction == Direction.ABOVE:
        threshold = ABOVE_HIGH_THRESHOLD
    else:
        threshold = BELOW_HIGH_THRESHOLD
    return Severity.HIGH if deviation > threshold else Severity.MEDIUM


def describe_anomaly(result: AnomalyResult) -> str:
    """Human-readable reason stored on a listing alert."""
    if result.direction == Direction.ABOVE:
        kind = "Price above market"
    else:
        kind = "Price below market"
    return (
        f"{kind}: {result.candidate_price} vs median {result.median} "
        f"(~{result.deviation_percent}% deviation)"
    )
