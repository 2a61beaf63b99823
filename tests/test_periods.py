from datetime import date

import pytest

from periods import Period, resolve_period


def test_all_is_unbounded() -> None:
    assert resolve_period("all", None, None) == Period("all", None, None)
    assert resolve_period(None, None, None).slug == "all"
    assert resolve_period("", None, None).start is None


def test_this_month_handles_december() -> None:
    period = resolve_period("this_month", None, None, today=date(2024, 12, 15))
    assert period == Period("this_month", date(2024, 12, 1), date(2024, 12, 31))


def test_last_month_crosses_year() -> None:
    period = resolve_period("last_month", None, None, today=date(2024, 1, 10))
    assert period == Period("last_month", date(2023, 12, 1), date(2023, 12, 31))


def test_this_year() -> None:
    period = resolve_period("this_year", None, None, today=date(2024, 6, 1))
    assert period == Period("this_year", date(2024, 1, 1), date(2024, 12, 31))


def test_custom_range() -> None:
    period = resolve_period("custom", "2024-02-01", "2024-02-29")
    assert period == Period("custom", date(2024, 2, 1), date(2024, 2, 29))


@pytest.mark.parametrize(
    "start, end, message",
    [
        (None, "2024-01-01", "requires start and end"),
        ("2024-02-01", "2024-01-01", "before end"),
    ],
)
def test_custom_range_errors(start, end, message) -> None:
    with pytest.raises(ValueError, match=message):
        resolve_period("custom", start, end)


def test_unknown_slug_falls_back_to_this_month() -> None:
    period = resolve_period("fortnight", None, None, today=date(2024, 2, 10))
    assert period == Period("this_month", date(2024, 2, 1), date(2024, 2, 29))
