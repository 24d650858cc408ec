"""Statistics helper tests."""

from datetime import datetime, timedelta, timezone

from todo_api.core.stats import completion_stats, percentage, whole_days_between


class TestPercentage:
    def test_two_decimals(self):
        assert percentage(1, 3) == "33.33"
        assert percentage(2, 3) == "66.67"
        assert percentage(1, 1) == "100.00"

    def test_zero_part(self):
        assert percentage(0, 5) == "0.00"

    def test_empty_total(self):
        """No todos at all reports 0.00 instead of a division error."""
        assert percentage(0, 0) == "0.00"


class TestWholeDaysBetween:
    def test_floors_partial_days(self):
        start = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert whole_days_between(start, start + timedelta(hours=47)) == 1
        assert whole_days_between(start, start + timedelta(days=3)) == 3

    def test_same_instant(self):
        now = datetime.now(timezone.utc)
        assert whole_days_between(now, now) == 0

    def test_naive_values_are_utc(self):
        start = datetime(2024, 1, 1)
        end = datetime(2024, 1, 11, tzinfo=timezone.utc)
        assert whole_days_between(start, end) == 10


def test_completion_stats():
    assert completion_stats(4, 1) == {
        "total": 4,
        "completed": 1,
        "completion_rate": "25.00",
    }
