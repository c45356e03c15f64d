"""Jira timestamp, duration and version date helpers.

Everything time-like leaves the bridge as epoch milliseconds, except plain
calendar dates (due dates, version release dates) which stay ``yyyy-mm-dd``.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

# 2015-06-04T11:22:33.000-0300
JIRA_DATETIME_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)
# 05/Jun/15, used by version webhooks in userReleaseDate
VERSION_DATE_FORMAT = "%d/%b/%y"
STANDARD_DATE_FORMAT = "%Y-%m-%d"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_jira_date(text: Optional[str]) -> Optional[int]:
    """Parse a Jira timestamp into epoch milliseconds, None if blank or unparseable."""
    if text is None or not str(text).strip():
        return None
    text = str(text).strip()
    for fmt in JIRA_DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return (parsed - EPOCH) // timedelta(milliseconds=1)
    return None


def format_jira_date(millis: Optional[int]) -> Optional[str]:
    """Format epoch milliseconds the way Jira expects datetime fields (UTC)."""
    if millis is None:
        return None
    moment = EPOCH + timedelta(milliseconds=int(millis))
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}" + moment.strftime("%z")


def parse_seconds(seconds: Optional[int]) -> int:
    """Jira durations come in seconds; missing values count as zero."""
    if seconds is None:
        return 0
    return int(seconds) * 1000


def parse_version_date(version_date: Optional[str]) -> Optional[str]:
    """Convert ``05/Jun/15`` into ``2015-06-05``; None if blank or unparseable."""
    if version_date is None or not str(version_date).strip():
        return None
    try:
        parsed = datetime.strptime(str(version_date).strip(), VERSION_DATE_FORMAT)
    except ValueError:
        return None
    return parsed.strftime(STANDARD_DATE_FORMAT)
