from datetime import date, datetime

from utils.time_utils import (
    get_financial_year,
    get_financial_year_start,
    is_expired,
    local_to_utc,
    to_local,
)


def test_financial_year_boundaries():
    assert get_financial_year(date(2025, 3, 31)) == "202425"
    assert get_financial_year(date(2025, 4, 1)) == "202526"
    assert get_financial_year(date(2026, 1, 15)) == "202526"
    assert get_financial_year(datetime(2099, 12, 31, 23, 59)) == "209900"


def test_financial_year_start():
    assert get_financial_year_start(date(2026, 2, 1)) == date(2025, 4, 1)
    assert get_financial_year_start(date(2025, 4, 1)) == date(2025, 4, 1)


def test_local_conversion_round_trip():
    utc = datetime(2026, 3, 31, 20, 0)
    local = to_local(utc, "Asia/Kolkata")
    assert (local.month, local.day, local.hour, local.minute) == (4, 1, 1, 30)
    assert local_to_utc(local.replace(tzinfo=None), "Asia/Kolkata") == utc


def test_is_expired():
    now = datetime(2026, 1, 1, 12, 0)
    assert is_expired(datetime(2026, 1, 1, 11, 59), now=now)
    assert not is_expired(datetime(2026, 1, 1, 12, 1), now=now)
    assert is_expired(None)
