import logging
from collections.abc import Iterable
from datetime import UTC, datetime, time

from crewapp.config import EXPENSE_SUBMISSION_WINDOW
from crewapp.models import (
    ExpenseCandidate,
    ExpenseKind,
    TimesheetEntry,
    WarehouseCheckin,
)

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_within_submission_window(reference: datetime, now: datetime) -> bool:
    """
    True if an expense for a shift or event that started at `reference` can
    still be submitted at `now`. A reference in the future is not eligible
    yet.
    """
    elapsed = _aware(now) - _aware(reference)
    return elapsed.total_seconds() >= 0 and elapsed <= EXPENSE_SUBMISSION_WINDOW


def _event_reference(entry: TimesheetEntry) -> datetime | None:
    if entry.start_time is not None:
        return entry.start_time
    if entry.date is not None:
        return datetime.combine(entry.date, time.min, tzinfo=UTC)
    return None


def eligible_expense_candidates(
    checkins: Iterable[WarehouseCheckin],
    timesheet_entries: Iterable[TimesheetEntry],
    now: datetime,
) -> list[ExpenseCandidate]:
    """
    Checked-in events and warehouse shifts an expense can still be filed
    against, newest first.
    """
    candidates: list[ExpenseCandidate] = []

    for entry in timesheet_entries:
        reference = _event_reference(entry)
        if reference is None:
            continue
        candidates.append(
            ExpenseCandidate(
                id=entry.event_id or entry.id,
                kind=ExpenseKind.EVENT,
                title=entry.event_title or "Event",
                reference_time=reference,
                location=entry.event_location or "Event venue",
            )
        )

    for checkin in checkins:
        if checkin.check_in_time is None:
            continue
        if checkin.company_name:
            title = f"Shift {checkin.company_name}"
        else:
            title = "Warehouse shift"
        candidates.append(
            ExpenseCandidate(
                id=checkin.shift_id or checkin.id,
                kind=ExpenseKind.WAREHOUSE,
                title=title,
                reference_time=checkin.check_in_time,
                location=checkin.location or "Warehouse",
            )
        )

    eligible = [
        c
        for c in candidates
        if is_within_submission_window(c.reference_time, now)
    ]
    eligible.sort(key=lambda c: _aware(c.reference_time), reverse=True)

    logger.debug(
        "%d of %d check-ins are inside the expense window",
        len(eligible),
        len(candidates),
    )
    return eligible
