from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError

from .cache import InMemorySnapshotCache, SnapshotCache, get_or_compute, snapshot_cache_key
from .config import VenueStatsConfig, load_config
from .dataset import coerce_timezone, normalize_datetime
from .models import AssistanceEvent, DateRangeRequest, FeedbackEvent, NPSSubmission, TimeWindow, VenueStatsSnapshot
from .ranges import InvalidRangeError, comparison_window, resolve_date_range
from .repository import EventRows, VenueEventRepository, build_repository_from_env
from .service import VenueStatsService

logger = logging.getLogger(__name__)

config: VenueStatsConfig = load_config()
logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

app = FastAPI(title="Venue Stats API", version="0.1.0")
repository: Optional[VenueEventRepository] = build_repository_from_env(config.database)
snapshot_cache: Optional[SnapshotCache[VenueStatsSnapshot]] = (
    InMemorySnapshotCache(config.cache.max_entries, ttl_seconds=config.cache.ttl_seconds or None)
    if config.cache.enable
    else None
)

Preset = Literal["today", "yesterday", "last7", "last14", "last30", "all", "custom"]


class FeedbackPayload(BaseModel):
    venue_id: str
    session_id: str
    created_at: datetime
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    resolved_at: Optional[datetime] = None
    is_actioned: bool = False


class AssistancePayload(BaseModel):
    venue_id: str
    created_at: datetime
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class NPSPayload(BaseModel):
    venue_id: str
    created_at: datetime
    score: Optional[int] = Field(default=None, ge=0, le=10)
    sent_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    send_error: Optional[str] = None


class StatsSelector(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    venue_ids: List[str]
    preset: Optional[Preset] = None
    from_date: Optional[date] = Field(default=None, alias="from")
    to_date: Optional[date] = Field(default=None, alias="to")
    timezone: Optional[str] = None
    now: Optional[datetime] = None

    @field_validator("venue_ids")
    @classmethod
    def _validate_venues(cls, venue_ids: List[str]) -> List[str]:
        if not venue_ids:
            raise ValueError("venue_ids must not be empty")
        return venue_ids

    def date_range(self) -> DateRangeRequest:
        return DateRangeRequest(
            preset=self.preset or config.engine.default_preset,
            from_date=self.from_date,
            to_date=self.to_date,
        )

    def resolved_timezone(self) -> str:
        return self.timezone or config.engine.timezone

    def resolved_now(self) -> datetime:
        return self.now or datetime.now(coerce_timezone(self.resolved_timezone()))

    def resolved_window(self, now: datetime) -> TimeWindow:
        local_now = normalize_datetime(now, coerce_timezone(self.resolved_timezone()))
        return resolve_date_range(self.date_range(), local_now)


class StatsRequest(StatsSelector):
    normalize_sparklines: bool = False
    feedback: Optional[List[FeedbackPayload]] = None
    assistance: Optional[List[AssistancePayload]] = None
    nps: Optional[List[NPSPayload]] = None


class StatsResponse(BaseModel):
    data: Dict[str, Any]
    source: str
    cached: bool = False


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/stats", response_model=StatsResponse)
async def stats_endpoint(request: StatsRequest) -> StatsResponse:
    date_range = request.date_range()
    now = request.resolved_now()

    try:
        if repository is None:
            snapshot = _build_snapshot(request, _inline_rows(request), date_range, now)
            return StatsResponse(data=snapshot.as_dict(request.normalize_sparklines), source="inline")

        window = request.resolved_window(now)
        key = snapshot_cache_key(request.venue_ids, date_range, window, request.resolved_timezone())
        snapshot, cached = get_or_compute(
            snapshot_cache,
            key,
            lambda: _build_snapshot(request, _load_rows(request, window), date_range, now),
        )
    except InvalidRangeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return StatsResponse(data=snapshot.as_dict(request.normalize_sparklines), source="database", cached=cached)


@app.delete("/stats/cache")
async def invalidate_stats(selector: StatsSelector) -> Dict[str, str]:
    try:
        window = selector.resolved_window(selector.resolved_now())
    except InvalidRangeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    key = snapshot_cache_key(selector.venue_ids, selector.date_range(), window, selector.resolved_timezone())
    if snapshot_cache is not None:
        snapshot_cache.invalidate(key)
    return {"status": "invalidated", "key": key}


def _build_snapshot(
    request: StatsRequest,
    rows: EventRows,
    date_range: DateRangeRequest,
    now: datetime,
) -> VenueStatsSnapshot:
    feedback, assistance, nps = rows
    service = VenueStatsService(
        feedback=feedback,
        assistance=assistance,
        nps=nps,
        timezone=request.resolved_timezone(),
        max_workers=config.engine.max_workers,
    )
    return service.build(request.venue_ids, date_range, now)


def _load_rows(request: StatsRequest, window: TimeWindow) -> EventRows:
    comparison = comparison_window(window)
    try:
        return repository.load(request.venue_ids, comparison.start, window.end)
    except SQLAlchemyError as exc:
        logger.exception("Failed to load venue rows for %s", ",".join(request.venue_ids))
        raise HTTPException(status_code=502, detail="Failed to load venue data.") from exc


def _inline_rows(request: StatsRequest) -> EventRows:
    if request.feedback is None and request.assistance is None and request.nps is None:
        raise HTTPException(
            status_code=500,
            detail=(
                "VENUE_STATS_DATABASE_URL is not configured; "
                "supply feedback/assistance/nps rows in the request body for ad-hoc queries."
            ),
        )
    return (
        tuple(_convert_feedback_payload(payload) for payload in request.feedback or ()),
        tuple(_convert_assistance_payload(payload) for payload in request.assistance or ()),
        tuple(_convert_nps_payload(payload) for payload in request.nps or ()),
    )


def _convert_feedback_payload(payload: FeedbackPayload) -> FeedbackEvent:
    return FeedbackEvent(
        venue_id=payload.venue_id,
        session_id=payload.session_id,
        created_at=payload.created_at,
        rating=payload.rating,
        resolved_at=payload.resolved_at,
        is_actioned=payload.is_actioned,
    )


def _convert_assistance_payload(payload: AssistancePayload) -> AssistanceEvent:
    return AssistanceEvent(
        venue_id=payload.venue_id,
        created_at=payload.created_at,
        acknowledged_at=payload.acknowledged_at,
        resolved_at=payload.resolved_at,
    )


def _convert_nps_payload(payload: NPSPayload) -> NPSSubmission:
    return NPSSubmission(
        venue_id=payload.venue_id,
        created_at=payload.created_at,
        score=payload.score,
        sent_at=payload.sent_at,
        responded_at=payload.responded_at,
        send_error=payload.send_error,
    )
