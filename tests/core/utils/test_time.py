"""Tests for time helpers."""

from datetime import date, datetime, timedelta, timezone

import pytest

from evidence_engine.core.utils.time import (
    month_bounds,
    parse_date,
    parse_remote_timestamp,
    to_naive_utc,
    utcnow_naive,
)


class TestTimestamps:
    """Tests for timestamp normalization."""

    def test_utcnow_naive_has_no_tzinfo(self) -> None:
        assert utcnow_naive().tzinfo is None

    def test_to_naive_utc_converts_aware(self) -> None:
        aware = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert to_naive_utc(aware) == datetime(2024, 5, 1, 12, 0)

    def test_github_timestamp(self) -> None:
        assert parse_remote_timestamp("2024-03-01T10:22:33Z") == datetime(2024, 3, 1, 10, 22, 33)

    def test_jira_timestamp(self) -> None:
        parsed = parse_remote_timestamp("2024-03-01T10:22:33.000+0100")
        assert parsed == datetime(2024, 3, 1, 9, 22, 33)

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_unparseable_timestamp(self, value) -> None:
        assert parse_remote_timestamp(value) is None

    def test_parse_date(self) -> None:
        assert parse_date("2024-03-01") == date(2024, 3, 1)
        assert parse_date("2024-03-01T10:00:00Z") == date(2024, 3, 1)
        assert parse_date("03/01/2024") is None
        assert parse_date(None) is None


class TestMonthBounds:
    """Tests for month_bounds."""

    def test_regular_month(self) -> None:
        assert month_bounds("2024-05") == (datetime(2024, 5, 1), datetime(2024, 6, 1))

    def test_december_rolls_over(self) -> None:
        assert month_bounds("2023-12") == (datetime(2023, 12, 1), datetime(2024, 1, 1))

    @pytest.mark.parametrize("month", ["2024-13", "2024", "May-2024", "2024-00"])
    def test_invalid_month(self, month) -> None:
        with pytest.raises(ValueError):
            month_bounds(month)
