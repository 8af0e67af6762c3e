from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .dataset import VenueEventDataset, coerce_timezone, normalize_datetime
from .metrics import (
    METRICS,
    Metric,
    aggregate_raw_series,
    aggregate_totals,
    chart_series,
    forecast_series,
    format_minutes,
    nps_breakdown,
    peak_hour,
)
from .models import (
    AssistanceEvent,
    Bucket,
    DateRangeRequest,
    FeedbackEvent,
    NPSSubmission,
    TimeWindow,
    TrendResult,
    VenueBreakdown,
    VenueStatsSnapshot,
)
from .ranges import build_buckets, comparison_window, resolve_date_range
from .trends import calculate_trend, forecast_next

logger = logging.getLogger(__name__)


def _trend(metric: Metric, current: Optional[float], previous: Optional[float]) -> Optional[TrendResult]:
    if metric.trend_needs_nonzero and not (current and previous):
        return None
    return calculate_trend(current, previous, metric.lower_is_better)


@dataclass
class _TimeWindows:
    current: TimeWindow
    comparison: TimeWindow
    buckets: List[Bucket]


@dataclass
class _Summary:
    current: VenueEventDataset
    raw_totals: Dict[str, Optional[float]]
    raw_comparison: Dict[str, Optional[float]]
    trends: Dict[str, Optional[TrendResult]]
    raw_series: Dict[str, List[Optional[float]]]

    @property
    def series(self) -> Dict[str, List[Optional[float]]]:
        return chart_series(self.raw_series)

    def totals(self) -> Dict[str, Optional[float]]:
        return {kind: METRICS[kind].total(value) for kind, value in self.raw_totals.items()}

    def comparison_totals(self) -> Dict[str, Optional[float]]:
        return {kind: METRICS[kind].total(value) for kind, value in self.raw_comparison.items()}


class VenueStatsService:
    """
    Turns raw feedback, assistance and NPS rows into dashboard KPIs.

    The service is a pure function of the rows it was built with, the requested
    venues, the date range and the supplied ``now``. Rows should cover both the
    reporting window and its comparison period.
    """

    def __init__(
        self,
        feedback: Sequence[FeedbackEvent],
        assistance: Sequence[AssistanceEvent],
        nps: Sequence[NPSSubmission],
        timezone: str = "UTC",
        max_workers: int = 1,
    ) -> None:
        self.dataset = VenueEventDataset(feedback=feedback, assistance=assistance, nps=nps, timezone=timezone)
        self.max_workers = max(1, max_workers)

    def build(
        self,
        venue_ids: Sequence[str],
        date_range: DateRangeRequest,
        now: datetime,
    ) -> VenueStatsSnapshot:
        venues = list(dict.fromkeys(venue_ids))
        if not venues:
            raise ValueError("At least one venue id is required.")

        windows = self._compute_windows(date_range, now)
        scoped = self.dataset.for_venues(venues)
        portfolio = self._summarize(scoped, windows)

        per_venue: Optional[Dict[str, VenueBreakdown]] = None
        if len(venues) > 1:
            per_venue = self._decompose(scoped, venues, windows)

        totals = portfolio.totals()
        forecasts = {kind: forecast_next(values) for kind, values in forecast_series(portfolio.raw_series).items()}
        logger.debug(
            "Built stats for %d venue(s) over %s .. %s with %d buckets",
            len(venues),
            windows.current.start,
            windows.current.end,
            len(windows.buckets),
        )
        return VenueStatsSnapshot(
            venue_ids=venues,
            window=windows.current,
            comparison=windows.comparison,
            buckets=windows.buckets,
            totals=totals,
            comparison_totals=portfolio.comparison_totals(),
            trends=portfolio.trends,
            series=portfolio.series,
            forecasts=forecasts,
            breakdown=nps_breakdown(portfolio.current),
            labels={"responseTime": format_minutes(portfolio.raw_totals["responseTime"])},
            peak_hour=peak_hour(portfolio.current),
            per_venue=per_venue,
        )

    def _compute_windows(self, date_range: DateRangeRequest, now: datetime) -> _TimeWindows:
        local_now = normalize_datetime(now, coerce_timezone(self.dataset.timezone))
        current = resolve_date_range(date_range, local_now)
        return _TimeWindows(
            current=current,
            comparison=comparison_window(current),
            buckets=build_buckets(current),
        )

    def _summarize(self, dataset: VenueEventDataset, windows: _TimeWindows) -> _Summary:
        current = dataset.between(windows.current.start, windows.current.end_exclusive)
        previous = dataset.between(windows.comparison.start, windows.comparison.end_exclusive)
        raw_totals = aggregate_totals(current)
        raw_comparison = aggregate_totals(previous)
        trends = {kind: _trend(metric, raw_totals[kind], raw_comparison[kind]) for kind, metric in METRICS.items()}
        return _Summary(
            current=current,
            raw_totals=raw_totals,
            raw_comparison=raw_comparison,
            trends=trends,
            raw_series=aggregate_raw_series(current, windows.buckets),
        )

    def _decompose(
        self,
        dataset: VenueEventDataset,
        venue_ids: Sequence[str],
        windows: _TimeWindows,
    ) -> Dict[str, VenueBreakdown]:
        """
        Repeat the aggregation per venue on the portfolio's bucket boundaries.

        Each venue slice is independent and read-only, so the work can be spread
        over a thread pool; results keep the requested venue order.
        """

        def _breakdown(venue_id: str) -> VenueBreakdown:
            summary = self._summarize(dataset.for_venues([venue_id]), windows)
            totals = summary.totals()
            totals.update(nps_breakdown(summary.current))
            return VenueBreakdown(totals=totals, trends=summary.trends, sparklines=summary.series)

        workers = min(self.max_workers, len(venue_ids))
        if workers <= 1:
            results = [_breakdown(venue_id) for venue_id in venue_ids]
        else:
            logger.debug("Decomposing %d venues across %d threads", len(venue_ids), workers)
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(_breakdown, venue_ids))
        return dict(zip(venue_ids, results))
