from datetime import date, datetime, timezone
from typing import Optional, Union

DateLike = Union[str, date]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today(now: Optional[datetime] = None) -> date:
    return (now or utcnow()).date()


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def isoformat(moment: datetime) -> str:
    return as_utc(moment).isoformat()


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp. Naive values are taken as UTC and a trailing
    "Z" is accepted. Raises ValueError on malformed input.
    """
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if "T" in value:
        return parse_timestamp(value).date()
    return date.fromisoformat(value)
