from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Sequence

from .sparkline import normalize_sparkline

MILLISECOND = timedelta(milliseconds=1)

TrendDirection = Literal["up", "down", "neutral"]


@dataclass(frozen=True)
class FeedbackEvent:
    """
    One feedback row submitted by a guest.

    Several rows share a ``session_id``; the session is resolved once any of its
    rows carries ``resolved_at`` and ``is_actioned``.
    """

    venue_id: str
    session_id: str
    created_at: datetime
    rating: Optional[int] = None
    resolved_at: Optional[datetime] = None
    is_actioned: bool = False


@dataclass(frozen=True)
class AssistanceEvent:
    """A guest assistance request. Each row is its own session."""

    venue_id: str
    created_at: datetime
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


@dataclass(frozen=True)
class NPSSubmission:
    """
    NPS survey e-mail and its (optional) answer.

    ``score`` is 0..10 once answered. ``sent_at`` marks a dispatched e-mail and
    ``send_error`` a delivery failure.
    """

    venue_id: str
    created_at: datetime
    score: Optional[int] = None
    sent_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    send_error: Optional[str] = None


@dataclass(frozen=True)
class TimeWindow:
    """
    Reporting window. ``end`` is inclusive to the millisecond (23:59:59.999).
    """

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def end_exclusive(self) -> datetime:
        return self.end + MILLISECOND

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end_exclusive


@dataclass(frozen=True)
class Bucket:
    """Half-open ``[start, end)`` slice of a window."""

    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


@dataclass(frozen=True)
class TrendResult:
    value: str
    direction: TrendDirection

    def as_dict(self) -> Dict[str, str]:
        return {"value": self.value, "direction": self.direction}


@dataclass(frozen=True)
class DateRangeRequest:
    """
    Named preset or explicit custom bounds.

    ``preset`` is one of ``today``, ``yesterday``, ``last7``, ``last14``,
    ``last30``, ``all`` or ``custom``. Only ``custom`` reads the dates.
    """

    preset: str = "today"
    from_date: Optional[date] = None
    to_date: Optional[date] = None

    def cache_token(self) -> str:
        if self.preset != "custom":
            return self.preset
        return f"custom:{self.from_date}:{self.to_date}"


@dataclass(frozen=True)
class VenueBreakdown:
    totals: Dict[str, Optional[float]]
    trends: Dict[str, Optional[TrendResult]]
    sparklines: Dict[str, List[Optional[float]]]


@dataclass(frozen=True)
class VenueStatsSnapshot:
    """
    Aggregated KPIs for one venue or a portfolio of venues.

    ``series`` holds one chart value per bucket for each metric: NPS is mapped
    onto 0..100 and buckets without data draw at 0, except response rate which
    keeps ``None`` gaps. ``buckets`` holds the shared x-axis. ``per_venue`` is
    only populated when more than one venue was requested.
    """

    venue_ids: Sequence[str]
    window: TimeWindow
    comparison: TimeWindow
    buckets: Sequence[Bucket]
    totals: Dict[str, Optional[float]]
    comparison_totals: Dict[str, Optional[float]]
    trends: Dict[str, Optional[TrendResult]]
    series: Dict[str, List[Optional[float]]]
    forecasts: Dict[str, Optional[float]] = field(default_factory=dict)
    breakdown: Dict[str, int] = field(default_factory=dict)
    labels: Dict[str, Optional[str]] = field(default_factory=dict)
    peak_hour: Optional[str] = None
    per_venue: Optional[Dict[str, VenueBreakdown]] = None

    @property
    def sparkline_dates(self) -> List[str]:
        return [bucket.start.isoformat(timespec="milliseconds") for bucket in self.buckets]

    def as_dict(self, normalize_sparklines: bool = False) -> Dict[str, Any]:
        """
        Render the snapshot for the presentation layer.

        Keys follow the ``<metric>``, ``<metric>Trend``, ``<metric>Sparkline``
        convention used by the dashboard cards.
        """

        def _render_series(values: List[Optional[float]]) -> List[Optional[float]]:
            return normalize_sparkline(values) if normalize_sparklines else list(values)

        def _render_trend(trend: Optional[TrendResult]) -> Optional[Dict[str, str]]:
            return None if trend is None else trend.as_dict()

        payload: Dict[str, Any] = {
            "venueIds": list(self.venue_ids),
            "range": {
                "start": self.window.start.isoformat(timespec="milliseconds"),
                "end": self.window.end.isoformat(timespec="milliseconds"),
            },
            "comparisonRange": {
                "start": self.comparison.start.isoformat(timespec="milliseconds"),
                "end": self.comparison.end.isoformat(timespec="milliseconds"),
            },
        }
        for name, value in self.totals.items():
            payload[name] = value
            payload[f"{name}Previous"] = self.comparison_totals.get(name)
            payload[f"{name}Trend"] = _render_trend(self.trends.get(name))
            payload[f"{name}Sparkline"] = _render_series(self.series.get(name, []))
            payload[f"{name}Forecast"] = self.forecasts.get(name)
            if name in self.labels:
                payload[f"{name}Label"] = self.labels[name]
        payload.update(self.breakdown)
        payload["peakHour"] = self.peak_hour
        payload["sparklineDates"] = self.sparkline_dates

        if self.per_venue is not None:
            payload["perVenue"] = {
                venue_id: {
                    "totals": dict(venue.totals),
                    "trends": {name: _render_trend(trend) for name, trend in venue.trends.items()},
                    "sparklines": {
                        name: _render_series(values) for name, values in venue.sparklines.items()
                    },
                }
                for venue_id, venue in self.per_venue.items()
            }
        return payload
