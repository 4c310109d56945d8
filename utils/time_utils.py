"""
utils/time_utils.py

Purpose: Time and expiry helpers

- Naive-UTC timestamps (what MongoDB stores and returns)
- Business-timezone conversion
- Indian fiscal year (April 1 - March 31) labels and boundaries
- OTP expiry checks
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

FISCAL_YEAR_START_MONTH = 4


def utc_now() -> datetime:
    """
    Current time as a naive UTC datetime.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_local(dt: datetime, tz_name: str) -> datetime:
    """
    Converts a naive-UTC (or aware) datetime to the given timezone.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(ZoneInfo(tz_name))


def local_to_utc(dt: datetime, tz_name: str) -> datetime:
    """
    Interprets a naive datetime as wall-clock time in tz_name and returns
    the naive UTC equivalent.
    """
    aware = dt.replace(tzinfo=ZoneInfo(tz_name))
    return aware.astimezone(timezone.utc).replace(tzinfo=None)


def _calendar_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def get_financial_year(value: Union[date, datetime]) -> str:
    """
    Returns the Indian fiscal year label for a calendar date.

    April 1, 2025 to March 31, 2026 is FY 2025-26, labelled "202526".

    >>> get_financial_year(date(2025, 3, 31))
    '202425'
    >>> get_financial_year(date(2025, 4, 1))
    '202526'
    """
    day = _calendar_date(value)
    start_year = day.year if day.month >= FISCAL_YEAR_START_MONTH else day.year - 1
    end_year = start_year + 1
    return f"{start_year}{str(end_year)[-2:]}"


def get_financial_year_start(value: Union[date, datetime]) -> date:
    """
    Returns April 1 of the fiscal year containing the given date.
    """
    day = _calendar_date(value)
    start_year = day.year if day.month >= FISCAL_YEAR_START_MONTH else day.year - 1
    return date(start_year, FISCAL_YEAR_START_MONTH, 1)


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """
    Checks whether a naive-UTC expiry timestamp has passed.
    """
    if not expires_at:
        return True
    if expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    return (now or utc_now()) > expires_at


def calculate_otp_expiry(issued_at: datetime, validity_minutes: int = 10) -> datetime:
    """
    Calculates OTP expiry timestamp.
    """
    return issued_at + timedelta(minutes=validity_minutes)
