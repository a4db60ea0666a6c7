"""Time helpers shared by the job engine and the sync pipeline."""

from datetime import UTC, date, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def utcnow_naive() -> datetime:
    """
    Return the current UTC time without tzinfo.

    All DateTime columns in this project are naive and hold UTC, so this is
    the default for column values and for comparisons against stored rows.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_remote_timestamp(value: str | None) -> datetime | None:
    """
    Parse an ISO-8601 timestamp coming from GitHub or Jira.

    GitHub uses a trailing "Z", Jira uses "+0000" style offsets. Both are
    normalized to naive UTC. Empty or unparseable values return None.
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Jira: 2024-03-01T10:22:33.000+0000 -> +00:00
    if len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit():
        text = f"{text[:-2]}:{text[-2:]}"

    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def parse_date(value: str | None) -> date | None:
    """Parse the date part of "YYYY-MM-DD" or a full ISO timestamp."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def month_bounds(month: str) -> tuple[datetime, datetime]:
    """
    Return the [start, end) naive UTC range for a "YYYY-MM" month string.

    Raises:
        ValueError: If the month string is malformed.
    """
    year_str, month_str = month.split("-")
    year, month_num = int(year_str), int(month_str)
    if not 1 <= month_num <= 12:
        raise ValueError(f"Invalid month: {month}")

    start = datetime(year, month_num, 1)
    if month_num == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month_num + 1, 1)
    return start, end
