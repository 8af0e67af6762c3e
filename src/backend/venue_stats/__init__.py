"""
Venue stats engine.

This package turns raw feedback, assistance-request and NPS rows into the KPIs
shown on the hospitality dashboard: headline totals, trends against the
preceding period, bucketed sparkline series and per-venue breakdowns.
"""

from .cache import (  # noqa: F401
    InMemorySnapshotCache,
    SnapshotCache,
    get_or_compute,
    snapshot_cache_key,
)
from .dataset import VenueEventDataset  # noqa: F401
from .metrics import METRICS, Metric, aggregate_series, compute_bucket  # noqa: F401
from .models import (  # noqa: F401
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
from .ranges import (  # noqa: F401
    InvalidRangeError,
    build_buckets,
    comparison_window,
    plan_buckets,
    resolve_date_range,
)
from .repository import (  # noqa: F401
    SQLVenueEventRepository,
    VenueEventRepository,
    build_repository_from_env,
)
from .service import VenueStatsService  # noqa: F401
from .sparkline import normalize_sparkline  # noqa: F401
from .trends import calculate_trend, forecast_next  # noqa: F401
