"""
Date helpers for message rendering.
All dates are computed in a fixed IANA timezone so rendered text does not
depend on the host clock's zone.
"""
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Jerusalem"


def today(tz_name: str = DEFAULT_TIMEZONE, now: Optional[datetime] = None) -> date:
    """Current calendar date in tz_name."""
    zone = ZoneInfo(tz_name)
    if now is None:
        return datetime.now(zone).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(zone).date()


def format_iso(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def format_he(value: date) -> str:
    """Local (Israeli) display format, DD/MM/YYYY."""
    return value.strftime("%d/%m/%Y")


def utc_now_iso() -> str:
    """UTC timestamp in ISO 8601 with a Z suffix, as the CRM expects for datetime fields."""
    return datetime.now(ZoneInfo("UTC")).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
