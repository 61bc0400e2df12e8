"""Unit tests for the median analyzer and severity classification."""

from decimal import Decimal

import pytest

from fraud_detector.analyzer import MedianAnalyzer, classify_severity, describe_anomaly
from fraud_detector.models import Direction, Severity


class TestMedianCalculation:
    """Tests for the median of a price sample."""

    def test_odd_length_takes_middle(self):
        """Odd samples use the middle element after sorting."""
        assert MedianAnalyzer.calculate_median([300, 100, 200]) == Decimal("200")

    def test_even_length_averages_middles(self):
        """Even samples average the two middle elements."""
        assert MedianAnalyzer.calculate_median([100, 400, 200, 300]) == Decimal("250")

    def test_even_length_fractional(self):
        assert MedianAnalyzer.calculate_median(["10.5", "11"]) == Decimal("10.75")

    def test_single_element(self):
        assert MedianAnalyzer.calculate_median([42]) == Decimal("42")

    def test_empty_sample_raises(self):
        with pytest.raises(ValueError):
            MedianAnalyzer.calculate_median([])


class TestDeviation:
    """Tests for deviation percentage rounding."""

    def test_deviation_from_median(self):
        assert MedianAnalyzer.calculate_deviation_percent(Decimal("200"), Decimal("100")) == 100

    def test_rounds_half_up(self):
        """50.5% rounds to 51, not to the even neighbour."""
        assert MedianAnalyzer.calculate_deviation_percent(Decimal("301"), Decimal("200")) == 51

    def test_below_median_is_positive(self):
        assert MedianAnalyzer.calculate_deviation_percent(Decimal("40"), Decimal("100")) == 60


class TestToleranceBand:
    """Boundary behaviour of the [0.5x, 1.1x] band."""

    def test_exact_upper_bound_not_anomalous(self):
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(110, [100, 100, 100], 100)
        assert result.upper_limit == Decimal("110")
        assert not result.is_anomaly

    def test_exact_lower_bound_not_anomalous(self):
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(50, [100, 100, 100], 100)
        assert result.lower_limit == Decimal("50")
        assert not result.is_anomaly

    def test_exact_upper_bound_awkward_median(self):
        """No float drift: 37 * 1.1 is exactly 40.7."""
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(40.7, [37], 37)
        assert not result.is_anomaly

    def test_one_percent_above_upper_bound(self):
        """Deviation is measured from the median, not from the bound."""
        analyzer = MedianAnalyzer()
        result = analyzer.analyze("111.1", [100, 100, 100], 100)
        assert result.is_anomaly
        assert result.direction == Direction.ABOVE
        assert result.deviation_percent == 11

    def test_just_below_lower_bound(self):
        analyzer = MedianAnalyzer()
        result = analyzer.analyze("49.99", [100, 100, 100], 100)
        assert result.is_anomaly
        assert result.direction == Direction.BELOW
        assert result.deviation_percent == 50

    def test_custom_multipliers(self):
        analyzer = MedianAnalyzer(upper_multiplier="1.5", lower_multiplier="0.9")
        assert not analyzer.analyze(140, [100], 100).is_anomaly
        assert analyzer.analyze(85, [100], 100).is_anomaly


class TestAnalyze:
    """End-to-end analysis scenarios."""

    def test_overpriced_listing(self):
        """History [100, 100, 100], candidate 200: ABOVE by 100%."""
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(200, [100, 100, 100], 100)
        assert result.is_anomaly
        assert result.median == Decimal("100")
        assert result.upper_limit == Decimal("110")
        assert result.direction == Direction.ABOVE
        assert result.deviation_percent == 100
        assert classify_severity(result.direction, result.deviation_percent) == Severity.HIGH

    def test_empty_history_uses_current_price(self):
        """No history: the current price is the baseline, 60 is inside [50, 110]."""
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(60, [], 100)
        assert result.evaluable
        assert result.median == Decimal("100")
        assert result.lower_limit == Decimal("50")
        assert not result.is_anomaly
        assert result.sample_size == 1

    def test_underpriced_listing(self):
        """History [100, 100, 100], candidate 40: BELOW by 60%."""
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(40, [100, 100, 100], 100)
        assert result.is_anomaly
        assert result.direction == Direction.BELOW
        assert result.deviation_percent == 60
        assert classify_severity(result.direction, result.deviation_percent) == Severity.HIGH

    def test_history_takes_precedence_over_current_price(self):
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(200, [200, 210, 190], 100)
        assert result.median == Decimal("200")
        assert not result.is_anomaly

    def test_zero_median_not_evaluable(self):
        """A zero baseline is a normal 'cannot evaluate' outcome."""
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(50, [], 0)
        assert not result.evaluable
        assert not result.is_anomaly
        assert result.direction is None

    def test_negative_median_not_evaluable(self):
        """Negative recorded prices give no usable baseline."""
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(100, ["-200", "-100", "-150"], 100)
        assert result.median == Decimal("-150")
        assert not result.evaluable
        assert not result.is_anomaly
        assert result.direction is None

    def test_reason_mentions_deviation(self):
        analyzer = MedianAnalyzer()
        result = analyzer.analyze(200, [100], 100)
        reason = describe_anomaly(result)
        assert "above" in reason
        assert "100%" in reason


class TestSeverity:
    """Tests for severity thresholds."""

    def test_above_at_threshold_is_medium(self):
        assert classify_severity(Direction.ABOVE, 30) == Severity.MEDIUM

    def test_above_past_threshold_is_high(self):
        assert classify_severity(Direction.ABOVE, 30.0001) == Severity.HIGH

    def test_below_at_threshold_is_medium(self):
        assert classify_severity(Direction.BELOW, 50) == Severity.MEDIUM

    def test_below_past_threshold_is_high(self):
        assert classify_severity(Direction.BELOW, 51) == Severity.HIGH

    def test_below_tolerates_wider_deviation(self):
        """40% is HIGH when overpriced but MEDIUM when underpriced."""
        assert classify_severity(Direction.ABOVE, 40) == Severity.HIGH
        assert classify_severity(Direction.BELOW, 40) == Severity.MEDIUM

    @pytest.mark.parametrize("direction", list(Direction))
    @pytest.mark.parametrize("deviation", [0, 11, 30, 50, 99, 1000])
    def test_never_low(self, direction, deviation):
        assert classify_severity(direction, deviation) != Severity.LOW


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
