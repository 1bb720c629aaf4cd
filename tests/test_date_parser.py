from datetime import date, datetime

import pytest
from zentao_mcp.utils.date_parser import DateParseError, parse_natural_date

TODAY = date(2024, 3, 31)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-01-15", date(2024, 1, 15)),
        ("2024-01-15 10:20:30", date(2024, 1, 15)),
        (datetime(2023, 5, 6, 7, 8), date(2023, 5, 6)),
        (date(2022, 2, 2), date(2022, 2, 2)),
        ("今天", TODAY),
        ("Today", TODAY),
        ("昨天", date(2024, 3, 30)),
        ("今年", date(2024, 1, 1)),
        ("this year", date(2024, 1, 1)),
        ("今年2月", date(2024, 2, 1)),
        ("上个月", date(2024, 2, 1)),
        ("last month", date(2024, 2, 1)),
        ("最近7天", date(2024, 3, 24)),
        ("last 10 days", date(2024, 3, 21)),
        ("最近1个月", date(2024, 2, 29)),
        ("last 3 months", date(2023, 12, 31)),
    ],
)
def test_parse_natural_date(value, expected):
    assert parse_natural_date(value, today=TODAY) == expected


def test_last_month_across_year_boundary():
    assert parse_natural_date("上个月", today=date(2024, 1, 15)) == date(2023, 12, 1)


@pytest.mark.parametrize("value", ["", "   ", "next week", "今年13月", "2024-02-30"])
def test_rejects_unknown_dates(value):
    with pytest.raises(DateParseError):
        parse_natural_date(value, today=TODAY)


def test_date_parse_error_is_value_error():
    with pytest.raises(ValueError):
        parse_natural_date("someday")
