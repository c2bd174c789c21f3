import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]

FREQUENCY_DAYS = {
    "weekly": 7,
    "fortnightly": 14,
}

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def local_date(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar date of ``moment`` as seen in the operating timezone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()

def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    # Jan 31 + 1 month lands on the last day of February
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)

def next_payment_date(frequency: str, now: datetime, tz: ZoneInfo) -> date:
    """
    Date of the next expected charge, one billing unit after ``now``.

    Always derived from the current moment rather than the previously stored
    date so that drift in the gateway's billing cycle is not compounded.
    """
    today = local_date(now, tz)

    if frequency in FREQUENCY_DAYS:
        return today + timedelta(days=FREQUENCY_DAYS[frequency])
    if frequency == "monthly":
        return add_months(today, 1)
    if frequency == "yearly":
        return add_months(today, 12)

    raise ValueError(f"Unsupported billing frequency: {frequency}")
