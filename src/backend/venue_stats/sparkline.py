from __future__ import annotations

from typing import List, Optional, Sequence

FLAT_LINE_VALUE = 50.0
MAX_VISUAL_SWING = 40.0
SWING_PER_VARIATION = 200.0
FLAT_RANGE_EPSILON = 0.001


def normalize_sparkline(values: Sequence[Optional[float]]) -> List[Optional[float]]:
    """
    Rescale a raw series into the 0..100 band used by the sparkline charts.

    Series without real variation collapse to a flat line at 50. Otherwise the
    visual swing grows with the coefficient of variation, capped at 40 points
    and centred on 50, so 98-100% completion rates still draw a visible but
    modest wiggle while a 0-40 session count spans the full band.

    ``None`` entries (buckets with no defined value) are kept as gaps and are
    ignored when computing min/max/avg.
    """

    present = [float(value) for value in values if value is not None]
    if not present:
        return [None for _ in values]

    low = min(present)
    high = max(present)
    spread = high - low
    if spread < FLAT_RANGE_EPSILON:
        return [None if value is None else FLAT_LINE_VALUE for value in values]

    average = sum(present) / len(present)
    coefficient_of_variation = spread / average if average > 0 else 0.0
    swing = min(MAX_VISUAL_SWING, coefficient_of_variation * SWING_PER_VARIATION)
    baseline = FLAT_LINE_VALUE - swing / 2

    return [
        None if value is None else baseline + (float(value) - low) / spread * swing
        for value in values
    ]
