"""
Crew domain models.

Upstream rows (check-ins, timesheet entries) are parsed here at the boundary;
everything past this module works with validated shapes only.
"""

import datetime as dt
from enum import StrEnum

from pydantic import BaseModel, Field, PositiveFloat, computed_field

from crewapp.config import OVERTIME_GRANULARITY_MINUTES


class CandidateSource(StrEnum):
    WAREHOUSE = "warehouse"
    EVENT = "event"


class OvertimeStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OvertimeAuthorization(BaseModel):
    owner_id: str
    enabled: bool = False
    hourly_rate: float = Field(default=0.0, allow_inf_nan=False)


class OvertimeCandidate(BaseModel):
    id: str
    source: CandidateSource
    date: dt.date | None = None
    title: str
    ref_shift_id: str | None = None
    ref_event_id: str | None = None
    scheduled_minutes: int = Field(ge=0)
    worked_minutes: int = Field(ge=0)
    excess_minutes: int = Field(ge=0)
    requestable_minutes: int = Field(
        ge=0, multiple_of=OVERTIME_GRANULARITY_MINUTES
    )


class OvertimeRequest(BaseModel):
    id: str
    owner_id: str
    shift_id: str | None = None
    event_id: str | None = None
    # requestable minutes of the linked shift or event, None for manual claims
    max_minutes: int | None = None
    minutes: int = Field(gt=0, multiple_of=OVERTIME_GRANULARITY_MINUTES)
    hourly_rate: PositiveFloat  # snapshot taken at submission time
    total_amount: float
    note: str = Field(min_length=1)
    status: OvertimeStatus = OvertimeStatus.PENDING
    created_at: dt.datetime
    updated_at: dt.datetime | None = None
    reviewed_at: dt.datetime | None = None
    rejection_reason: str | None = None

    @computed_field
    @property
    def hours(self) -> float:
        return self.minutes / 60

    @property
    def editable(self) -> bool:
        return self.status == OvertimeStatus.PENDING


class ClaimPrice(BaseModel):
    hourly_rate: float
    total_amount: float


class WarehouseCheckin(BaseModel):
    id: str
    crew_id: str
    date: dt.date
    shift_id: str | None = None
    check_in_time: dt.datetime | None = None
    check_out_time: dt.datetime | None = None
    net_hours: float | None = None
    overtime_hours: float | None = None
    excess_interval: str | None = None  # "HH:MM:SS"
    location: str | None = None
    company_name: str | None = None


class TimesheetEntry(BaseModel):
    id: str
    crew_id: str
    event_id: str | None = None
    event_title: str | None = None
    event_location: str | None = None
    date: dt.date | None = None
    start_time: dt.datetime | None = None
    end_time: dt.datetime | None = None
    scheduled_hours: float | None = None


class ExpenseKind(StrEnum):
    EVENT = "event"
    WAREHOUSE = "warehouse"


class ExpenseCandidate(BaseModel):
    id: str
    kind: ExpenseKind
    title: str
    reference_time: dt.datetime
    location: str


class CalendarItemType(StrEnum):
    EVENT = "event"
    EVENT_TRAVEL = "event_travel"
    WAREHOUSE = "warehouse"
    PERSONAL = "personal"
    VACATION = "vacation"
    UNAVAILABLE = "unavailable"


class CalendarItem(BaseModel):
    id: str
    crew_id: str | None = None
    title: str
    date: dt.date
    end_date: dt.date | None = None  # inclusive, for multi-day events
    type: CalendarItemType = CalendarItemType.EVENT
    status: str | None = None
    is_assigned: bool = False


class MonthMembership(StrEnum):
    PREVIOUS = "previous"
    CURRENT = "current"
    NEXT = "next"


class CalendarDay(BaseModel):
    date: dt.date
    membership: MonthMembership
    is_today: bool = False
    items: list[CalendarItem] = Field(default_factory=list)

    @computed_field
    @property
    def is_available(self) -> bool:
        return not self.items
