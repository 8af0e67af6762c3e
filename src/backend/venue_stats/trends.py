from __future__ import annotations

import math
from typing import Optional, Sequence

from .models import TrendResult

NEUTRAL_THRESHOLD_PERCENT = 1.0
MIN_FORECAST_POINTS = 2


def _is_missing(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _format_raw(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{round(value, 1):g}"


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _direction(rising: bool, lower_is_better: bool) -> str:
    if lower_is_better:
        return "down" if rising else "up"
    return "up" if rising else "down"


def calculate_trend(
    current: Optional[float],
    previous: Optional[float],
    lower_is_better: bool = False,
) -> Optional[TrendResult]:
    """
    Signed change of ``current`` against the comparison period.

    A zero baseline reports the raw current value instead of a percentage.
    Moves under 1% are neutral. ``direction`` says whether the move is good:
    with ``lower_is_better`` a falling value is reported as ``up``.
    """

    if _is_missing(current) or _is_missing(previous):
        return None

    if previous == 0:
        if current == 0:
            return TrendResult(value="~0%", direction="neutral")
        return TrendResult(
            value=f"{'+' if current > 0 else ''}{_format_raw(current)}",
            direction=_direction(current > 0, lower_is_better),
        )

    percent_change = (current - previous) / abs(previous) * 100
    if abs(percent_change) < NEUTRAL_THRESHOLD_PERCENT:
        return TrendResult(value="~0%", direction="neutral")

    sign = "+" if percent_change > 0 else ""
    return TrendResult(
        value=f"{sign}{_round_half_away(percent_change)}%",
        direction=_direction(percent_change > 0, lower_is_better),
    )


def forecast_next(series: Sequence[Optional[float]]) -> Optional[float]:
    """
    Project the next bucket with an ordinary least-squares line.

    The bucket index is the x axis; empty buckets (``None``) are skipped. The
    projection is clamped at zero since every metric is non-negative on its
    chart axis.
    """

    points = [(index, float(value)) for index, value in enumerate(series) if not _is_missing(value)]
    if len(points) < MIN_FORECAST_POINTS:
        return None

    n = len(points)
    x_sum = sum(x for x, _ in points)
    y_sum = sum(y for _, y in points)
    xy_sum = sum(x * y for x, y in points)
    x2_sum = sum(x * x for x, _ in points)

    denominator = n * x2_sum - x_sum * x_sum
    if denominator == 0:
        return None

    slope = (n * xy_sum - x_sum * y_sum) / denominator
    intercept = (y_sum - slope * x_sum) / n
    return max(0.0, intercept + slope * len(series))
