from datetime import date

import pytest

from periods import ViewMode, navigation_label, period_range, resolve_period, step_period


def test_period_range_modes() -> None:
    ref = date(2024, 3, 15)  # Friday
    assert period_range(ref, ViewMode.day) == (ref, ref)
    assert period_range(ref, ViewMode.week) == (date(2024, 3, 11), date(2024, 3, 17))
    assert period_range(ref, ViewMode.month) == (date(2024, 3, 1), date(2024, 3, 31))
    assert period_range(ref, "year") == (date(2024, 1, 1), date(2024, 12, 31))
    assert period_range(date(2024, 2, 10), "month") == (
        date(2024, 2, 1),
        date(2024, 2, 29),
    )


def test_step_period_clamps_month_end() -> None:
    assert step_period(date(2024, 1, 31), ViewMode.month, 1) == date(2024, 2, 29)
    assert step_period(date(2024, 3, 31), ViewMode.month, -1) == date(2024, 2, 29)
    assert step_period(date(2024, 2, 29), ViewMode.year, 1) == date(2025, 2, 28)
    assert step_period(date(2024, 1, 1), ViewMode.day, -1) == date(2023, 12, 31)
    assert step_period(date(2024, 1, 1), ViewMode.week, 1) == date(2024, 1, 8)


def test_step_period_rejects_bad_direction() -> None:
    with pytest.raises(ValueError):
        step_period(date(2024, 1, 1), ViewMode.day, 2)


def test_navigation_labels() -> None:
    assert navigation_label(date(2024, 3, 15), ViewMode.day) == "15 Marzo 2024"
    assert navigation_label(date(2024, 3, 13), ViewMode.week) == "11 – 17 Mar 2024"
    assert navigation_label(date(2024, 2, 28), ViewMode.week) == "26 Feb – 3 Mar 2024"
    assert navigation_label(date(2024, 3, 1), ViewMode.month) == "Marzo 2024"
    assert navigation_label(date(2024, 3, 1), ViewMode.year) == "2024"


def test_resolve_period() -> None:
    today = date(2024, 5, 20)
    default = resolve_period(None, None, None, None, today=today)
    assert (default.slug, default.start, default.end) == (
        "month",
        date(2024, 5, 1),
        date(2024, 5, 31),
    )

    week = resolve_period("week", "2024-01-03", None, None, today=today)
    assert (week.start, week.end) == (date(2024, 1, 1), date(2024, 1, 7))

    custom = resolve_period("custom", None, "2024-01-10", "2024-02-10", today=today)
    assert custom.contains(date(2024, 2, 1))
    assert not custom.contains(date(2024, 2, 11))


@pytest.mark.parametrize(
    "view, start, end",
    [
        ("custom", None, None),
        ("custom", "2024-02-10", "2024-01-10"),
        ("fortnight", None, None),
    ],
)
def test_resolve_period_errors(view, start, end) -> None:
    with pytest.raises(ValueError):
        resolve_period(view, None, start, end, today=date(2024, 1, 1))
