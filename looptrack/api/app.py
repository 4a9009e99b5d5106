"""FastAPI web application for looptrack."""

import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session, sessionmaker

from looptrack import __version__
from looptrack.auth.dependencies import get_current_user
from looptrack.database.database import get_db, get_session_factory, init_db
from looptrack.engine import insights, instance_actions
from looptrack.engine.dates import logical_today
from looptrack.errors import NotFoundError, StoreUnavailableError, StreakUpdateError
from looptrack.models.insights import (
    CalendarDay,
    DayCompletion,
    HeatmapDay,
    InsightsSummary,
    StreakInfo,
    WeeklyAverage,
)
from looptrack.models.sync import FullSyncResponse, PullResponse, PushRequest, PushResponse, SyncStatus
from looptrack.models.task_instance import TaskInstance
from looptrack.models.user import User
from looptrack.sync import orchestrator

logger = logging.getLogger(__name__)

RETRY_AFTER_SEC = "5"

# Initialize FastAPI app
app = FastAPI(
    title="looptrack API",
    description="Offline-first habit loops with delta sync and streaks",
    version=__version__,
)


@app.on_event("startup")
def on_startup() -> None:
    init_db()


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc) or "Store unavailable"},
        headers={"Retry-After": RETRY_AFTER_SEC},
    )


@app.exception_handler(StreakUpdateError)
async def streak_update_handler(request: Request, exc: StreakUpdateError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


# Request models
class _CamelRequest(BaseModel):
    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True


class InstanceActionRequest(_CamelRequest):
    """Body of the complete/uncomplete/skip/unskip actions."""
    day: Optional[date] = Field(None, alias="date", description="Logical day (the user's today if omitted)")
    notes: Optional[str] = Field(None, description="Notes stored with a completion")


class NotesRequest(_CamelRequest):
    day: Optional[date] = Field(None, alias="date")
    notes: Optional[str] = None


def _body(request: Optional[InstanceActionRequest]) -> InstanceActionRequest:
    return request or InstanceActionRequest()


class HealthResponse(BaseModel):
    status: str
    version: str


@app.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", version=__version__)


# Sync

@app.get("/sync/pull", response_model=PullResponse)
def sync_pull(
    since: Optional[datetime] = Query(None, description="Checkpoint from the previous pull"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Rows changed since the checkpoint (everything if omitted)."""
    return orchestrator.pull(db, current_user.id, since)


@app.post("/sync/push", response_model=PushResponse)
def sync_push(
    request: PushRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Apply offline changes. Per-change failures come back as conflicts with a 200."""
    return orchestrator.push(db, current_user.id, request)


@app.post("/sync", response_model=FullSyncResponse)
def sync_full(
    request: PushRequest,
    db: Session = Depends(get_db),
    session_factory: Optional[sessionmaker] = Depends(get_session_factory),
    current_user: User = Depends(get_current_user),
):
    """Pull since request.lastSyncAt and push request.changes in one round trip."""
    return orchestrator.full_sync(db, current_user.id, request, session_factory=session_factory)


@app.get("/sync/status", response_model=SyncStatus)
def sync_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return orchestrator.sync_status(db, current_user.id)


# Task instances

@app.post("/tasks/{task_id}/complete", response_model=TaskInstance)
def complete_task(
    task_id: str,
    request: Optional[InstanceActionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    body = _body(request)
    return instance_actions.complete(db, current_user.id, task_id, body.day, notes=body.notes)


@app.post("/tasks/{task_id}/uncomplete", response_model=TaskInstance)
def uncomplete_task(
    task_id: str,
    request: Optional[InstanceActionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return instance_actions.uncomplete(db, current_user.id, task_id, _body(request).day)


@app.post("/tasks/{task_id}/skip", response_model=TaskInstance)
def skip_task(
    task_id: str,
    request: Optional[InstanceActionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return instance_actions.skip(db, current_user.id, task_id, _body(request).day)


@app.post("/tasks/{task_id}/unskip", response_model=TaskInstance)
def unskip_task(
    task_id: str,
    request: Optional[InstanceActionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return instance_actions.unskip(db, current_user.id, task_id, _body(request).day)


@app.patch("/tasks/{task_id}/notes", response_model=TaskInstance)
def update_task_notes(
    task_id: str,
    request: NotesRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return instance_actions.update_notes(db, current_user.id, task_id, request.notes, request.day)


@app.get("/task-instances", response_model=List[TaskInstance])
def list_task_instances(
    start: date = Query(..., description="First day, inclusive"),
    end: date = Query(..., description="Last day, inclusive"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return instance_actions.get_instances_for_range(db, current_user.id, start, end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# Insights

@app.get("/insights/daily", response_model=DayCompletion)
def insights_daily(
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return insights.get_daily(db, current_user.id, day or logical_today(current_user))


@app.get("/insights/calendar", response_model=List[CalendarDay])
def insights_calendar(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    today = logical_today(current_user)
    return insights.get_calendar(db, current_user.id, year or today.year, month or today.month)


@app.get("/insights/heatmap", response_model=List[HeatmapDay])
def insights_heatmap(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return insights.get_heatmap(db, current_user.id, year or logical_today(current_user).year)


@app.get("/insights/streak", response_model=StreakInfo)
def insights_streak(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return insights.get_streak_info(db, current_user.id)


@app.get("/insights/weekly-averages", response_model=List[WeeklyAverage])
def insights_weekly_averages(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return insights.get_weekly_averages(db, current_user.id)


@app.get("/insights/summary", response_model=InsightsSummary)
def insights_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return insights.get_summary(db, current_user.id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
