from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def today_utc() -> date:
    return now_utc().date()


def fmt_date(value: date | datetime | None) -> str:
    """Format dates as D Month YYYY."""
    if not value:
        return ""
    return value.strftime("%d %B %Y").lstrip("0")


def fmt_dt(value: datetime | None) -> str:
    if not value:
        return ""
    return value.strftime("%d.%m.%Y %H:%M:%S")
