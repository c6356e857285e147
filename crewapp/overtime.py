import asyncio
import logging
import math
import re
import uuid
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

from crewapp.config import (
    AUTHORIZATION_LOOKUP_TIMEOUT_SECONDS,
    CLAIM_MINUTE_OPTIONS,
    CURRENCY_DECIMAL_PLACES,
    DEFAULT_SCHEDULED_HOURS,
    OVERTIME_GRANULARITY_MINUTES,
)
from crewapp.database import InMemoryKeyValueDatabase
from crewapp.errors import (
    ExceedsRequestable,
    InsufficientDuration,
    InvalidDuration,
    InvalidRate,
    InvalidTransition,
    LookupFailed,
    MissingJustification,
    NotAuthorized,
    NotRequestOwner,
    RequestNotEditable,
    RequestNotFound,
    StoreUnavailable,
)
from crewapp.models import (
    CandidateSource,
    ClaimPrice,
    OvertimeAuthorization,
    OvertimeCandidate,
    OvertimeRequest,
    OvertimeStatus,
    TimesheetEntry,
    WarehouseCheckin,
)

logger = logging.getLogger(__name__)

AuthorizationLookup = Callable[[str], Awaitable[OvertimeAuthorization | None]]

_INTERVAL_RE = re.compile(r"(\d+):(\d+):(\d+)")


class OvertimeSplit(NamedTuple):
    excess_minutes: int
    requestable_minutes: int


def compute_excess_and_requestable(
    scheduled_minutes: int | None, worked_minutes: int | None
) -> OvertimeSplit:
    """
    Split worked-over-scheduled time into raw excess and the part that can
    be claimed, rounded down to whole 30 minute slices.

    Negative or missing durations count as zero.
    """
    scheduled = max(0, scheduled_minutes or 0)
    worked = max(0, worked_minutes or 0)
    excess = max(0, worked - scheduled)
    requestable = (
        math.floor(excess / OVERTIME_GRANULARITY_MINUTES)
        * OVERTIME_GRANULARITY_MINUTES
    )
    return OvertimeSplit(excess, requestable)


def hours_to_minutes(hours: float) -> int:
    return round(hours * 60)


def parse_interval_minutes(interval: str | None) -> int | None:
    """Minutes in a Postgres style "HH:MM:SS" interval, seconds dropped."""
    if not interval:
        return None
    match = _INTERVAL_RE.search(interval)
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes, 60)
    if hours == 0 and minutes == 0:
        return "0min"
    if hours == 0:
        return f"{minutes}min"
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}min"


def validate_claim(hours: int, minutes: int, note: str | None) -> float:
    """
    Validate a claim form and return the claimed duration in hours.
    """
    if hours < 0 or minutes not in CLAIM_MINUTE_OPTIONS:
        raise InvalidDuration(
            f"Overtime is claimed in {OVERTIME_GRANULARITY_MINUTES} minute slices"
        )

    total_minutes = hours * 60 + minutes
    if total_minutes < OVERTIME_GRANULARITY_MINUTES:
        raise InsufficientDuration(
            f"Claim at least {OVERTIME_GRANULARITY_MINUTES} minutes of overtime"
        )

    if not note or not note.strip():
        raise MissingJustification("A justification note is required")

    return total_minutes / 60.0


def price_claim(total_hours: float, hourly_rate: float) -> float:
    # round half up, currency amounts never use banker's rounding
    amount = Decimal(str(total_hours)) * Decimal(str(hourly_rate))
    quantum = Decimal(1).scaleb(-CURRENCY_DECIMAL_PLACES)
    return float(amount.quantize(quantum, rounding=ROUND_HALF_UP))


async def authorize_and_price_claim(
    user_id: str,
    total_hours: float,
    *,
    lookup: AuthorizationLookup,
    timeout: float = AUTHORIZATION_LOOKUP_TIMEOUT_SECONDS,
) -> ClaimPrice:
    try:
        async with asyncio.timeout(timeout):
            authorization = await lookup(user_id)
    except (TimeoutError, StoreUnavailable, OSError) as exc:
        logger.warning(
            "Overtime authorization lookup failed for user %s: %r", user_id, exc
        )
        raise LookupFailed(
            "Could not read the overtime authorization, try again"
        ) from exc

    if authorization is None or not authorization.enabled:
        raise NotAuthorized(f"User {user_id} is not authorized for overtime")

    rate = authorization.hourly_rate
    if not math.isfinite(rate) or rate <= 0:
        raise InvalidRate(
            f"Overtime rate for user {user_id} is not a positive amount"
        )

    return ClaimPrice(
        hourly_rate=rate,
        total_amount=price_claim(total_hours, rate),
    )


def store_authorization_lookup(
    db: InMemoryKeyValueDatabase,
) -> AuthorizationLookup:
    async def lookup(user_id: str) -> OvertimeAuthorization | None:
        authorization = db.get(f"overtime_authorization:{user_id}")
        if isinstance(authorization, OvertimeAuthorization):
            return authorization
        return None

    return lookup


def _warehouse_candidate(checkin: WarehouseCheckin) -> OvertimeCandidate | None:
    if checkin.overtime_hours:
        excess = hours_to_minutes(checkin.overtime_hours)
    else:
        excess = parse_interval_minutes(checkin.excess_interval) or 0
    if excess <= 0:
        return None

    worked = hours_to_minutes(checkin.net_hours) if checkin.net_hours else None
    if worked:
        if worked < excess:
            logger.warning(
                "Check-in %s records %d overtime minutes but only %d worked",
                checkin.id,
                excess,
                worked,
            )
            return None
        scheduled = worked - excess
    else:
        scheduled = hours_to_minutes(DEFAULT_SCHEDULED_HOURS)
        worked = scheduled + excess

    split = compute_excess_and_requestable(scheduled, worked)
    if split.requestable_minutes < OVERTIME_GRANULARITY_MINUTES:
        return None

    return OvertimeCandidate(
        id=checkin.id,
        source=CandidateSource.WAREHOUSE,
        date=checkin.date,
        title=f"Warehouse shift {checkin.date.isoformat()}",
        ref_shift_id=checkin.shift_id or checkin.id,
        scheduled_minutes=scheduled,
        worked_minutes=worked,
        excess_minutes=split.excess_minutes,
        requestable_minutes=split.requestable_minutes,
    )


def _event_candidate(entry: TimesheetEntry) -> OvertimeCandidate | None:
    if not entry.event_id or not entry.start_time or not entry.end_time:
        return None

    worked = round((entry.end_time - entry.start_time).total_seconds() / 60)
    if worked <= 0:
        return None
    scheduled = hours_to_minutes(entry.scheduled_hours or DEFAULT_SCHEDULED_HOURS)

    split = compute_excess_and_requestable(scheduled, worked)
    if split.requestable_minutes < OVERTIME_GRANULARITY_MINUTES:
        return None

    return OvertimeCandidate(
        id=entry.id,
        source=CandidateSource.EVENT,
        date=entry.date or entry.start_time.date(),
        title=entry.event_title or f"Event {entry.event_id}",
        ref_event_id=entry.event_id,
        scheduled_minutes=scheduled,
        worked_minutes=worked,
        excess_minutes=split.excess_minutes,
        requestable_minutes=split.requestable_minutes,
    )


def find_candidates(
    checkins: Iterable[WarehouseCheckin],
    timesheet_entries: Iterable[TimesheetEntry],
) -> list[OvertimeCandidate]:
    """
    Shifts and events where the crew member worked at least one claimable
    slice past the schedule. Largest claim first, then most recent.
    """
    candidates = [
        c for c in (_warehouse_candidate(ch) for ch in checkins) if c is not None
    ]
    candidates.extend(
        c
        for c in (_event_candidate(e) for e in timesheet_entries)
        if c is not None
    )

    candidates.sort(
        key=lambda c: (
            -c.requestable_minutes,
            -(c.date.toordinal() if c.date else 0),
        )
    )
    return candidates


def _check_cap(total_minutes: int, max_minutes: int) -> None:
    if total_minutes > max_minutes:
        raise ExceedsRequestable(
            f"At most {format_minutes(max_minutes)} can be claimed "
            "for this shift"
        )


async def submit_request(
    db: InMemoryKeyValueDatabase,
    user_id: str,
    hours: int,
    minutes: int,
    note: str,
    *,
    lookup: AuthorizationLookup,
    now: datetime,
    candidate: OvertimeCandidate | None = None,
) -> OvertimeRequest:
    total_hours = validate_claim(hours, minutes, note)
    total_minutes = hours_to_minutes(total_hours)

    if candidate is not None:
        _check_cap(total_minutes, candidate.requestable_minutes)

    price = await authorize_and_price_claim(user_id, total_hours, lookup=lookup)

    request = OvertimeRequest(
        id=uuid.uuid4().hex,
        owner_id=user_id,
        shift_id=candidate.ref_shift_id if candidate else None,
        event_id=candidate.ref_event_id if candidate else None,
        max_minutes=candidate.requestable_minutes if candidate else None,
        minutes=total_minutes,
        hourly_rate=price.hourly_rate,
        total_amount=price.total_amount,
        note=note.strip(),
        created_at=now,
    )
    db.put(f"overtime_request:{request.id}", request)
    logger.info(
        "Overtime request %s submitted by %s: %s at %.2f/h",
        request.id,
        user_id,
        format_minutes(total_minutes),
        price.hourly_rate,
    )
    return request


def _get_request(
    db: InMemoryKeyValueDatabase, request_id: str
) -> OvertimeRequest:
    request = db.get(f"overtime_request:{request_id}")
    if not request or not isinstance(request, OvertimeRequest):
        raise RequestNotFound(f"Overtime request {request_id} not found")
    return request


def edit_request(
    db: InMemoryKeyValueDatabase,
    request_id: str,
    owner_id: str,
    *,
    hours: int,
    minutes: int,
    note: str | None = None,
    now: datetime,
) -> OvertimeRequest:
    """
    Change duration and note of a pending request. The amount is re-priced
    with the rate snapshotted at submission, never the current one.
    """
    existing = _get_request(db, request_id)
    if existing.owner_id != owner_id:
        raise NotRequestOwner(
            f"Overtime request {request_id} belongs to another user"
        )
    if not existing.editable:
        raise RequestNotEditable(
            f"Overtime request {request_id} is {existing.status.value}"
        )

    new_note = existing.note if note is None else note
    total_hours = validate_claim(hours, minutes, new_note)
    if existing.max_minutes is not None:
        _check_cap(hours_to_minutes(total_hours), existing.max_minutes)

    updated = db.update_if(
        f"overtime_request:{request_id}",
        lambda r: r.status == OvertimeStatus.PENDING,
        {
            "minutes": hours_to_minutes(total_hours),
            "total_amount": price_claim(total_hours, existing.hourly_rate),
            "note": new_note.strip(),
            "updated_at": now,
        },
    )
    if updated is None:
        # reviewed between our read and the write
        raise RequestNotEditable(
            f"Overtime request {request_id} is no longer pending"
        )
    return updated


def review_request(
    db: InMemoryKeyValueDatabase,
    request_id: str,
    decision: OvertimeStatus,
    *,
    now: datetime,
    reason: str | None = None,
) -> OvertimeRequest:
    if decision == OvertimeStatus.PENDING:
        raise InvalidTransition("A request can't be moved back to pending")

    existing = _get_request(db, request_id)
    changes: dict = {"status": decision, "reviewed_at": now}
    if decision == OvertimeStatus.REJECTED:
        changes["rejection_reason"] = reason

    updated = db.update_if(
        f"overtime_request:{request_id}",
        lambda r: r.status == OvertimeStatus.PENDING,
        changes,
    )
    if updated is None:
        raise InvalidTransition(
            f"Overtime request {request_id} is already {existing.status.value}"
        )

    logger.info("Overtime request %s %s", request_id, decision.value)
    return updated


def list_requests(
    db: InMemoryKeyValueDatabase, owner_id: str
) -> list[OvertimeRequest]:
    requests = db.find(
        lambda r: isinstance(r, OvertimeRequest) and r.owner_id == owner_id
    )
    return sorted(requests, key=lambda r: r.created_at, reverse=True)
