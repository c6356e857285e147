from datetime import date, datetime, timedelta

import pytest

from crewapp.calendar_grid import (
    CalendarFilter,
    CalendarView,
    bucket_items,
    build_month_grid,
    date_key,
    items_in_grid,
)
from crewapp.models import CalendarItem, CalendarItemType, MonthMembership


def _items() -> list[CalendarItem]:
    return [
        CalendarItem(
            id="fair",
            title="Furniture fair",
            date=date(2024, 2, 27),
            end_date=date(2024, 3, 1),
            type=CalendarItemType.EVENT_TRAVEL,
            status="confirmed",
            is_assigned=True,
        ),
        CalendarItem(
            id="wh-1",
            title="Warehouse shift",
            date=date(2024, 2, 5),
            type=CalendarItemType.WAREHOUSE,
            status="confirmed",
        ),
        CalendarItem(
            id="gig",
            title="Concert",
            date=date(2024, 1, 30),
            status="pending",
        ),
        CalendarItem(
            id="far-away",
            title="Summer tour",
            date=date(2024, 6, 1),
        ),
    ]


def test_february_2024_grid() -> None:
    grid = build_month_grid(2024, 2, {}, date(2024, 2, 14))

    assert len(grid) == 42
    assert grid[0].date == date(2024, 1, 29)
    assert grid[0].date.weekday() == 0
    assert grid[-1].date == date(2024, 3, 10)
    assert grid[0].membership == MonthMembership.PREVIOUS
    assert grid[3].date == date(2024, 2, 1)
    assert grid[3].membership == MonthMembership.CURRENT
    assert grid[31].date == date(2024, 2, 29)
    assert grid[32].membership == MonthMembership.NEXT
    assert [d.date for d in grid if d.is_today] == [date(2024, 2, 14)]


@pytest.mark.parametrize(
    "year,month",
    [(2024, 1), (2024, 9), (2025, 6), (2026, 2), (2021, 2), (2023, 12)],
)
def test_grid_is_42_contiguous_days(year, month) -> None:
    grid = build_month_grid(year, month, {}, date(2000, 1, 1))
    assert len(grid) == 42
    assert grid[0].date.weekday() == 0
    for prev, cur in zip(grid, grid[1:]):
        assert cur.date - prev.date == timedelta(days=1)
    current = [d for d in grid if d.membership == MonthMembership.CURRENT]
    assert current[0].date == date(year, month, 1)
    assert all(d.date.month == month for d in current)
    assert not any(d.is_today for d in grid)


def test_today_ignores_time_of_day() -> None:
    grid = build_month_grid(2024, 2, {}, datetime(2024, 2, 14, 23, 59))
    assert [d.date for d in grid if d.is_today] == [date(2024, 2, 14)]


def test_items_bucketed_across_multi_day_range() -> None:
    grid = build_month_grid(2024, 2, bucket_items(_items()), date(2024, 2, 1))
    by_date = {d.date: d for d in grid}

    for day in (27, 28, 29):
        assert [i.id for i in by_date[date(2024, 2, day)].items] == ["fair"]
    assert [i.id for i in by_date[date(2024, 3, 1)].items] == ["fair"]
    assert [i.id for i in by_date[date(2024, 1, 30)].items] == ["gig"]
    assert by_date[date(2024, 2, 6)].is_available
    assert not by_date[date(2024, 2, 5)].is_available


@pytest.mark.parametrize(
    "filters,expected_ids",
    [
        (CalendarFilter(), {"fair", "wh-1", "gig"}),
        (CalendarFilter(view=CalendarView.ASSIGNED), {"fair"}),
        (CalendarFilter(view=CalendarView.WAREHOUSE), {"wh-1"}),
        (CalendarFilter(statuses=frozenset({"pending"})), {"gig"}),
        (
            CalendarFilter(
                types=frozenset(
                    {CalendarItemType.EVENT, CalendarItemType.WAREHOUSE}
                )
            ),
            {"wh-1", "gig"},
        ),
    ],
)
def test_filters_applied_before_bucketing(filters, expected_ids) -> None:
    grid = build_month_grid(
        2024, 2, bucket_items(_items()), date(2024, 2, 1), filters=filters
    )
    shown = {i.id for d in grid for i in d.items}
    assert shown == expected_ids


@pytest.mark.parametrize(
    "filters",
    [CalendarFilter(), CalendarFilter(view=CalendarView.ASSIGNED)],
)
def test_reverse_lookup_recovers_every_item_once(filters) -> None:
    items_by_date = bucket_items(_items())
    grid = build_month_grid(
        2024, 2, items_by_date, date(2024, 2, 1), filters=filters
    )
    recovered = items_in_grid(grid)

    grid_keys = {date_key(d.date) for d in grid}
    expected = {
        key: [i for i in items if filters.matches(i)]
        for key, items in items_by_date.items()
        if key in grid_keys
    }
    expected = {k: v for k, v in expected.items() if v}

    assert recovered == expected
    for key, items in recovered.items():
        assert len({i.id for i in items}) == len(items)
