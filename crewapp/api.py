import logging
from datetime import UTC, datetime

from fastapi import (
    APIRouter,
    FastAPI,
    HTTPException,
    Path,
    Query,
    Request,
    Response,
)
from pydantic import BaseModel, Field

from crewapp.calendar_grid import (
    CalendarFilter,
    CalendarView,
    bucket_items,
    build_month_grid,
)
from crewapp.config import RECEIPT_MAX_DIMENSION, RECEIPT_QUALITY
from crewapp.database import InMemoryKeyValueDatabase
from crewapp.errors import (
    AuthorizationError,
    ClaimValidationError,
    DecodeError,
    EncodeError,
    InvalidTransition,
    LookupFailed,
    NotRequestOwner,
    RequestNotEditable,
    RequestNotFound,
)
from crewapp.expenses import eligible_expense_candidates
from crewapp.images import compress_receipt_image
from crewapp.models import (
    CalendarItem,
    CalendarItemType,
    OvertimeStatus,
    TimesheetEntry,
    WarehouseCheckin,
)
from crewapp.overtime import (
    compute_excess_and_requestable,
    edit_request,
    find_candidates,
    list_requests,
    review_request,
    store_authorization_lookup,
    submit_request,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class ExcessRequest(BaseModel):
    scheduled_minutes: int | None = None
    worked_minutes: int | None = None


class ClaimRequest(BaseModel):
    hours: int = 0
    minutes: int = 0
    note: str = ""
    candidate_id: str | None = None


class ClaimEdit(BaseModel):
    hours: int = 0
    minutes: int = 0
    note: str | None = None


class ReviewDecision(BaseModel):
    decision: OvertimeStatus
    reason: str | None = Field(default=None, max_length=500)


def _database(request: Request) -> InMemoryKeyValueDatabase:
    return request.app.state.database


def _crew_rows(
    db: InMemoryKeyValueDatabase, user_id: str
) -> tuple[list[WarehouseCheckin], list[TimesheetEntry]]:
    checkins = db.find(
        lambda r: isinstance(r, WarehouseCheckin) and r.crew_id == user_id
    )
    entries = db.find(
        lambda r: isinstance(r, TimesheetEntry) and r.crew_id == user_id
    )
    return checkins, entries


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/overtime/excess")
async def overtime_excess(body: ExcessRequest) -> dict[str, int]:
    split = compute_excess_and_requestable(
        body.scheduled_minutes, body.worked_minutes
    )
    return split._asdict()


@router.get("/users/{user_id}/overtime/candidates")
async def overtime_candidates(user_id: str, request: Request) -> list[dict]:
    checkins, entries = _crew_rows(_database(request), user_id)
    return [c.model_dump(mode="json") for c in find_candidates(checkins, entries)]


@router.get("/users/{user_id}/overtime/requests")
async def overtime_history(user_id: str, request: Request) -> list[dict]:
    return [
        r.model_dump(mode="json")
        for r in list_requests(_database(request), user_id)
    ]


@router.post("/users/{user_id}/overtime/requests", status_code=201)
async def create_overtime_request(
    user_id: str, body: ClaimRequest, request: Request
) -> dict:
    db = _database(request)

    candidate = None
    if body.candidate_id is not None:
        checkins, entries = _crew_rows(db, user_id)
        candidate = next(
            (
                c
                for c in find_candidates(checkins, entries)
                if c.id == body.candidate_id
            ),
            None,
        )
        if candidate is None:
            raise HTTPException(
                status_code=404, detail="Overtime candidate not found"
            )

    try:
        created = await submit_request(
            db,
            user_id,
            body.hours,
            body.minutes,
            body.note,
            lookup=request.app.state.authorization_lookup,
            now=request.app.state.now_fn(),
            candidate=candidate,
        )
    except ClaimValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except LookupFailed as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except AuthorizationError as exc:
        logger.warning("Overtime claim by %s refused: %s", user_id, exc)
        raise HTTPException(status_code=403, detail=str(exc)) from exc

    return created.model_dump(mode="json")


@router.patch("/users/{user_id}/overtime/requests/{request_id}")
async def update_overtime_request(
    user_id: str, request_id: str, body: ClaimEdit, request: Request
) -> dict:
    try:
        updated = edit_request(
            _database(request),
            request_id,
            user_id,
            hours=body.hours,
            minutes=body.minutes,
            note=body.note,
            now=request.app.state.now_fn(),
        )
    except RequestNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except NotRequestOwner as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except RequestNotEditable as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ClaimValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return updated.model_dump(mode="json")


@router.post("/overtime/requests/{request_id}/review")
async def review_overtime_request(
    request_id: str, body: ReviewDecision, request: Request
) -> dict:
    try:
        reviewed = review_request(
            _database(request),
            request_id,
            body.decision,
            now=request.app.state.now_fn(),
            reason=body.reason,
        )
    except RequestNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    return reviewed.model_dump(mode="json")


@router.get("/users/{user_id}/expenses/candidates")
async def expense_candidates(user_id: str, request: Request) -> list[dict]:
    checkins, entries = _crew_rows(_database(request), user_id)
    eligible = eligible_expense_candidates(
        checkins, entries, request.app.state.now_fn()
    )
    return [c.model_dump(mode="json") for c in eligible]


@router.get("/users/{user_id}/calendar/{year}/{month}")
async def month_calendar(
    user_id: str,
    request: Request,
    year: int = Path(ge=1, le=9998),
    month: int = Path(ge=1, le=12),
    view: CalendarView = CalendarView.ALL,
    item_type: list[CalendarItemType] | None = Query(default=None, alias="type"),
    status: list[str] | None = Query(default=None),
) -> list[dict]:
    items = _database(request).find(
        lambda r: isinstance(r, CalendarItem) and r.crew_id == user_id
    )
    filters = CalendarFilter(
        view=view,
        types=frozenset(item_type) if item_type else None,
        statuses=frozenset(status) if status else None,
    )
    grid = build_month_grid(
        year,
        month,
        bucket_items(items),
        request.app.state.now_fn().date(),
        filters=filters,
    )
    return [day.model_dump(mode="json") for day in grid]


@router.post("/receipts/compress")
async def compress_receipt(
    request: Request,
    max_dimension: int = Query(default=RECEIPT_MAX_DIMENSION, gt=0),
    quality: float = Query(default=RECEIPT_QUALITY, gt=0, le=1),
) -> Response:
    try:
        compressed = await compress_receipt_image(
            await request.body(), max_dimension, quality
        )
    except DecodeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except EncodeError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return Response(content=compressed, media_type="image/jpeg")


def create_app() -> FastAPI:
    app = FastAPI()
    db: InMemoryKeyValueDatabase = InMemoryKeyValueDatabase()
    app.state.database = db

    app.state.now_fn = lambda: datetime.now(UTC)
    app.state.authorization_lookup = store_authorization_lookup(db)

    app.include_router(router)
    return app
