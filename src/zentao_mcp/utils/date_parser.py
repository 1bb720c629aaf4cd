from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

ISO_DATE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")
THIS_YEAR_MONTH_RE = re.compile(r"^今年(\d+)月$")
RECENT_MONTHS_RE = re.compile(r"^(?:最近(\d+)个月|last (\d+) months?)$")
RECENT_DAYS_RE = re.compile(r"^(?:最近(\d+)天|last (\d+) days?)$")

DateLike = Union[date, datetime, str]


class DateParseError(ValueError):
    """Raised when a date bound cannot be understood."""


def parse_natural_date(value: DateLike, *, today: Optional[date] = None) -> date:
    """
    Parse a date bound: a date/datetime, 'YYYY-MM-DD[ HH:MM:SS]', or a
    relative expression.

    Relative forms (Chinese or English):
    - 今天 / today, 昨天 / yesterday
    - 今年 / this year            -> Jan 1st of the current year
    - 今年N月                     -> 1st of month N of the current year
    - 上个月 / last month          -> 1st of the previous month
    - 最近N天 / last N days        -> today minus N days
    - 最近N个月 / last N months    -> same day N months ago (clamped)
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        raise DateParseError("Date is required.")

    text = " ".join(str(value).lower().strip().split())
    if not text:
        raise DateParseError("Date is required.")

    m = ISO_DATE_RE.match(text)
    if m:
        try:
            return date.fromisoformat(m.group(1))
        except ValueError as exc:
            raise DateParseError(f"Invalid date: {value!r}") from exc

    today = today or date.today()

    if text in {"今天", "today"}:
        return today
    if text in {"昨天", "yesterday"}:
        return today - timedelta(days=1)
    if text in {"今年", "this year"}:
        return date(today.year, 1, 1)
    if text in {"上个月", "last month"}:
        return _shift_months(today.replace(day=1), -1)

    m = THIS_YEAR_MONTH_RE.match(text)
    if m:
        month = int(m.group(1))
        if not 1 <= month <= 12:
            raise DateParseError(f"Month out of range: {value!r}")
        return date(today.year, month, 1)

    m = RECENT_DAYS_RE.match(text)
    if m:
        return today - timedelta(days=int(m.group(1) or m.group(2)))

    m = RECENT_MONTHS_RE.match(text)
    if m:
        return _shift_months(today, -int(m.group(1) or m.group(2)))

    raise DateParseError(
        f"Unrecognized date {value!r} (use YYYY-MM-DD, 'today', '最近7天', ...)."
    )


def _shift_months(day: date, months: int) -> date:
    total = day.year * 12 + (day.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))
