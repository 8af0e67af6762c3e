from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from .models import MILLISECOND, Bucket, DateRangeRequest, TimeWindow

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)
MAX_BUCKETS = 30
TRAILING_PRESETS = {"last7": 7, "last14": 14, "last30": 30}
PRESETS = {"today", "yesterday", "all", "custom", *TRAILING_PRESETS}


class InvalidRangeError(ValueError):
    """Raised when a date range cannot be resolved into a non-empty window."""


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999000)


def _one_year_before(day_start: datetime) -> datetime:
    try:
        return day_start.replace(year=day_start.year - 1)
    except ValueError:
        # 29 February rolls forward to 1 March of the previous year.
        return day_start.replace(year=day_start.year - 1, month=3, day=1)


def _day_bound(value: date, now: datetime) -> datetime:
    return datetime.combine(value, time.min, tzinfo=now.tzinfo)


def _validated(window: TimeWindow) -> TimeWindow:
    if window.end <= window.start:
        raise InvalidRangeError(
            f"Resolved range is empty: end {window.end.isoformat()} <= start {window.start.isoformat()}"
        )
    return window


def resolve_date_range(request: DateRangeRequest, now: datetime) -> TimeWindow:
    """
    Map a preset (or custom bounds) to an absolute window relative to ``now``.

    ``now`` carries the timezone whose midnights delimit the days. ``all`` is
    capped at a one year lookback.
    """

    preset = request.preset or "today"
    if preset not in PRESETS:
        raise InvalidRangeError(f"Unknown date range preset: {preset!r}")

    today_start = _start_of_day(now)
    today_end = _end_of_day(now)

    if preset == "custom":
        if request.from_date is None or request.to_date is None:
            raise InvalidRangeError("Custom date range requires both 'from' and 'to'.")
        window = TimeWindow(
            start=_start_of_day(_day_bound(request.from_date, now)),
            end=_end_of_day(_day_bound(request.to_date, now)),
        )
    elif preset == "yesterday":
        yesterday_start = today_start - DAY
        window = TimeWindow(start=yesterday_start, end=_end_of_day(yesterday_start))
    elif preset in TRAILING_PRESETS:
        days = TRAILING_PRESETS[preset]
        window = TimeWindow(start=today_start - timedelta(days=days - 1), end=today_end)
    elif preset == "all":
        window = TimeWindow(start=_one_year_before(today_start), end=today_end)
    else:
        window = TimeWindow(start=today_start, end=today_end)

    logger.debug("Resolved preset %s to %s .. %s", preset, window.start, window.end)
    return _validated(window)


def comparison_window(window: TimeWindow) -> TimeWindow:
    """
    Equal-length window ending one millisecond before ``window`` starts.

    The end snaps to 23:59:59.999 of its day and the start to midnight, so the
    comparison period never overlaps the primary one.
    """

    _validated(window)
    comparison_end = _end_of_day(_start_of_day(window.start) - MILLISECOND)
    comparison_start = _start_of_day(comparison_end - window.duration)
    return TimeWindow(start=comparison_start, end=comparison_end)


def range_days(window: TimeWindow) -> int:
    return math.ceil(window.duration / DAY)


def plan_buckets(window: TimeWindow) -> Tuple[int, timedelta]:
    """
    Pick ``(num_points, interval)`` so the sparkline never exceeds 30 points.

    Up to 30 days draw daily points, up to 60 days two-day points and anything
    longer weekly points; the result is then widened by an integer factor
    until at most 30 buckets remain.
    """

    days = range_days(window)
    num_points = days
    interval = DAY

    if days > 60:
        num_points = math.ceil(days / 7)
        interval = 7 * DAY
    elif days > 30:
        num_points = math.ceil(days / 2)
        interval = 2 * DAY

    if num_points > MAX_BUCKETS:
        factor = math.ceil(num_points / MAX_BUCKETS)
        num_points = math.ceil(num_points / factor)
        interval = interval * factor

    num_points = max(1, num_points)
    logger.debug("Planned %d buckets of %s for %d day range", num_points, interval, days)
    return num_points, interval


def build_buckets(window: TimeWindow, plan: Optional[Tuple[int, timedelta]] = None) -> List[Bucket]:
    num_points, interval = plan or plan_buckets(window)
    buckets: List[Bucket] = []
    for index in range(num_points):
        bucket_start = window.start + index * interval
        bucket_end = min(bucket_start + interval, window.end_exclusive)
        buckets.append(Bucket(start=bucket_start, end=bucket_end))
    return buckets
