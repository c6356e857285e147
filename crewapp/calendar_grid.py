"""
Month view calendar grid.

A month is always rendered as 6 rows of 7 days, Monday first, padded with
the tail of the previous month and the head of the next one.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel

from crewapp.config import CALENDAR_GRID_CELLS
from crewapp.models import (
    CalendarDay,
    CalendarItem,
    CalendarItemType,
    MonthMembership,
)


class CalendarView(StrEnum):
    ALL = "all"
    ASSIGNED = "assigned"
    WAREHOUSE = "warehouse"


class CalendarFilter(BaseModel):
    view: CalendarView = CalendarView.ALL
    types: frozenset[CalendarItemType] | None = None
    statuses: frozenset[str] | None = None

    def matches(self, item: CalendarItem) -> bool:
        if self.view == CalendarView.ASSIGNED and not item.is_assigned:
            return False
        if (
            self.view == CalendarView.WAREHOUSE
            and item.type != CalendarItemType.WAREHOUSE
        ):
            return False
        if self.types is not None and item.type not in self.types:
            return False
        if self.statuses is not None and item.status not in self.statuses:
            return False
        return True


def date_key(d: date) -> str:
    return d.isoformat()


def bucket_items(items: Iterable[CalendarItem]) -> dict[str, list[CalendarItem]]:
    """Group items by date key; multi-day items land on every day they span."""
    by_date: dict[str, list[CalendarItem]] = defaultdict(list)
    for item in items:
        end = item.date
        if item.end_date and item.end_date > item.date:
            end = item.end_date
        day = item.date
        while day <= end:
            by_date[date_key(day)].append(item)
            day += timedelta(days=1)
    return dict(by_date)


def _first_cell(year: int, month: int) -> date:
    first = date(year, month, 1)
    # weekday(): Monday == 0
    return first - timedelta(days=first.weekday())


def build_month_grid(
    year: int,
    month: int,
    items_by_date: Mapping[str, list[CalendarItem]],
    today: date,
    *,
    filters: CalendarFilter | None = None,
) -> list[CalendarDay]:
    filters = filters or CalendarFilter()
    if isinstance(today, datetime):
        today = today.date()
    start = _first_cell(year, month)

    grid: list[CalendarDay] = []
    for offset in range(CALENDAR_GRID_CELLS):
        day = start + timedelta(days=offset)
        if (day.year, day.month) < (year, month):
            membership = MonthMembership.PREVIOUS
        elif (day.year, day.month) > (year, month):
            membership = MonthMembership.NEXT
        else:
            membership = MonthMembership.CURRENT

        grid.append(
            CalendarDay(
                date=day,
                membership=membership,
                is_today=day == today,
                items=[
                    item
                    for item in items_by_date.get(date_key(day), [])
                    if filters.matches(item)
                ],
            )
        )
    return grid


def items_in_grid(grid: Iterable[CalendarDay]) -> dict[str, list[CalendarItem]]:
    """Reverse of build_month_grid: the items shown, keyed by date."""
    return {date_key(day.date): list(day.items) for day in grid if day.items}
