from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from statistics import mean
from typing import Callable, Dict, List, Optional, Sequence

from .dataset import VenueEventDataset
from .models import Bucket

PROMOTER_MIN_SCORE = 9
DETRACTOR_MAX_SCORE = 6


def _session_count(dataset: VenueEventDataset) -> int:
    return len({event.session_id for event in dataset.feedback}) + len(dataset.assistance)


def _resolved_count(dataset: VenueEventDataset) -> int:
    resolved_sessions = sum(1 for session in dataset.feedback_sessions() if session.is_resolved)
    resolved_assistance = sum(1 for event in dataset.assistance if event.resolved_at is not None)
    return resolved_sessions + resolved_assistance


def _satisfaction(dataset: VenueEventDataset) -> Optional[float]:
    ratings = [event.rating for event in dataset.feedback if event.rating is not None]
    return float(mean(ratings)) if ratings else None


def _response_minutes(dataset: VenueEventDataset) -> Optional[float]:
    durations: List[float] = []
    for event in dataset.assistance:
        if event.resolved_at is not None:
            durations.append((event.resolved_at - event.created_at).total_seconds())
    for session in dataset.feedback_sessions():
        if session.resolved_at is not None:
            durations.append((session.resolved_at - session.created_at).total_seconds())
    # Resolutions stamped before creation are ignored.
    durations = [seconds for seconds in durations if seconds >= 0]
    return mean(durations) / 60 if durations else None


def _completion_rate(dataset: VenueEventDataset) -> Optional[float]:
    total = _session_count(dataset)
    if not total:
        return None
    return _resolved_count(dataset) / total * 100


def _active_alerts(dataset: VenueEventDataset) -> int:
    return sum(1 for event in dataset.assistance if event.resolved_at is None)


def _scored(dataset: VenueEventDataset) -> List[int]:
    return [submission.score for submission in dataset.nps if submission.score is not None]


def _nps(dataset: VenueEventDataset) -> Optional[float]:
    scores = _scored(dataset)
    if not scores:
        return None
    promoters = sum(1 for score in scores if score >= PROMOTER_MIN_SCORE)
    detractors = sum(1 for score in scores if score <= DETRACTOR_MAX_SCORE)
    return (promoters - detractors) / len(scores) * 100


def _emails_sent(dataset: VenueEventDataset) -> int:
    return sum(1 for submission in dataset.nps if submission.sent_at is not None)


def _emails_delivered(dataset: VenueEventDataset) -> int:
    return sum(
        1 for submission in dataset.nps if submission.sent_at is not None and not submission.send_error
    )


def _emails_failed(dataset: VenueEventDataset) -> int:
    return sum(1 for submission in dataset.nps if submission.send_error)


def _responded(dataset: VenueEventDataset) -> int:
    return sum(
        1
        for submission in dataset.nps
        if submission.score is not None and submission.responded_at is not None
    )


def _response_rate(dataset: VenueEventDataset) -> Optional[float]:
    sent = _emails_sent(dataset)
    if not sent:
        return None
    return _responded(dataset) / sent * 100


def _round_to(digits: int) -> Callable[[Optional[float]], Optional[float]]:
    def _round(value: Optional[float]) -> Optional[float]:
        return None if value is None else round(value, digits)

    return _round


def _whole(value: Optional[float]) -> Optional[float]:
    return None if value is None else float(round(value))


def _identity(value: Optional[float]) -> Optional[float]:
    return value


def _zero_if_missing(value: Optional[float]) -> Optional[float]:
    return 0.0 if value is None else value


def _or_zero(shape: Callable[[Optional[float]], Optional[float]]) -> Callable[[Optional[float]], Optional[float]]:
    def _shape(value: Optional[float]) -> Optional[float]:
        return _zero_if_missing(shape(value))

    return _shape


def _nps_chart(value: Optional[float]) -> Optional[float]:
    # -100..100 mapped into the 0..100 band shared by the other charts.
    return 0.0 if value is None else (value + 100) / 2


@dataclass(frozen=True)
class Metric:
    """
    One dashboard KPI.

    ``compute`` turns the events of one bucket (or a whole window) into a raw
    value, ``None`` when the events carry nothing to measure. ``chart`` maps
    that value onto the sparkline axis and ``total`` shapes it for the headline
    figure. ``additive`` metrics sum across disjoint venue sets. With
    ``trend_needs_nonzero`` a zero on either side yields no trend.
    """

    kind: str
    compute: Callable[[VenueEventDataset], Optional[float]]
    higher_is_better: bool = True
    additive: bool = False
    chart: Callable[[Optional[float]], Optional[float]] = _identity
    total: Callable[[Optional[float]], Optional[float]] = _identity
    trend_needs_nonzero: bool = False

    @property
    def lower_is_better(self) -> bool:
        return not self.higher_is_better


METRICS: Dict[str, Metric] = {
    metric.kind: metric
    for metric in (
        Metric("sessions", _session_count, additive=True),
        Metric("satisfaction", _satisfaction, chart=_zero_if_missing, total=_or_zero(_round_to(1))),
        Metric(
            "responseTime",
            _response_minutes,
            higher_is_better=False,
            chart=_zero_if_missing,
            total=_or_zero(_round_to(1)),
        ),
        Metric(
            "completionRate",
            _completion_rate,
            chart=_zero_if_missing,
            total=_or_zero(_whole),
            trend_needs_nonzero=True,
        ),
        Metric("activeAlerts", _active_alerts, higher_is_better=False, additive=True),
        Metric("resolved", _resolved_count, additive=True),
        Metric("nps", _nps, chart=_nps_chart, total=_whole),
        Metric("emailsSent", _emails_sent, additive=True),
        Metric("emailsDelivered", _emails_delivered, additive=True),
        Metric("emailsFailed", _emails_failed, higher_is_better=False, additive=True),
        Metric("responseRate", _response_rate, total=_whole),
    )
}


def get_metric(kind: str) -> Metric:
    try:
        return METRICS[kind]
    except KeyError as exc:
        raise KeyError(f"Unknown metric kind: {kind!r}") from exc


def compute_bucket(dataset: VenueEventDataset, bucket: Bucket, kind: str) -> Optional[float]:
    """Raw value of ``kind`` for the events created inside ``bucket``."""

    return get_metric(kind).compute(dataset.between(bucket.start, bucket.end))


def aggregate_raw_series(
    dataset: VenueEventDataset,
    buckets: Sequence[Bucket],
    kinds: Optional[Sequence[str]] = None,
) -> Dict[str, List[Optional[float]]]:
    """
    One raw value per bucket for every requested metric kind.

    Each bucket is sliced once and shared by all metrics. Buckets without
    anything to measure stay ``None``.
    """

    metrics = [get_metric(kind) for kind in (kinds or list(METRICS))]
    series: Dict[str, List[Optional[float]]] = {metric.kind: [] for metric in metrics}
    for bucket in buckets:
        bucket_events = dataset.between(bucket.start, bucket.end)
        for metric in metrics:
            series[metric.kind].append(metric.compute(bucket_events))
    return series


def chart_series(raw: Dict[str, List[Optional[float]]]) -> Dict[str, List[Optional[float]]]:
    return {kind: [get_metric(kind).chart(value) for value in values] for kind, values in raw.items()}


def aggregate_series(
    dataset: VenueEventDataset,
    buckets: Sequence[Bucket],
    kinds: Optional[Sequence[str]] = None,
) -> Dict[str, List[Optional[float]]]:
    """One chart value per bucket for every requested metric kind."""

    return chart_series(aggregate_raw_series(dataset, buckets, kinds))


def forecast_series(raw: Dict[str, List[Optional[float]]]) -> Dict[str, List[Optional[float]]]:
    """
    Chart-axis series with the undefined buckets left as ``None`` gaps.
    """

    return {
        kind: [None if value is None else get_metric(kind).chart(value) for value in values]
        for kind, values in raw.items()
    }


def aggregate_totals(
    dataset: VenueEventDataset,
    kinds: Optional[Sequence[str]] = None,
) -> Dict[str, Optional[float]]:
    """Raw value of every requested metric over the whole dataset."""

    return {kind: get_metric(kind).compute(dataset) for kind in (kinds or list(METRICS))}


def nps_breakdown(dataset: VenueEventDataset) -> Dict[str, int]:
    scores = _scored(dataset)
    responses = _responded(dataset)
    emails_sent = _emails_sent(dataset)
    return {
        "promoters": sum(1 for score in scores if score >= PROMOTER_MIN_SCORE),
        "passives": sum(1 for score in scores if DETRACTOR_MAX_SCORE < score < PROMOTER_MIN_SCORE),
        "detractors": sum(1 for score in scores if score <= DETRACTOR_MAX_SCORE),
        "responses": responses,
        "notResponded": max(0, emails_sent - responses),
    }


def peak_hour(dataset: VenueEventDataset) -> Optional[str]:
    """
    Busiest hour of day by feedback volume, e.g. ``"9PM"``.

    Ties go to the later hour.
    """

    counts = Counter(event.created_at.hour for event in dataset.feedback)
    if not counts:
        return None
    busiest = max(sorted(counts), key=lambda hour: (counts[hour], hour))
    hour12 = busiest % 12 or 12
    suffix = "AM" if busiest < 12 else "PM"
    return f"{hour12}{suffix}"


def format_minutes(minutes: Optional[float]) -> Optional[str]:
    if minutes is None:
        return None
    whole = round(minutes)
    if whole < 1:
        return "< 1m"
    if whole < 60:
        return f"{whole}m"
    return f"{whole // 60}h {whole % 60}m"
