from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from backend.venue_stats.dataset import VenueEventDataset, group_feedback_sessions
from backend.venue_stats.metrics import (
    METRICS,
    aggregate_series,
    aggregate_totals,
    compute_bucket,
    format_minutes,
    get_metric,
    nps_breakdown,
    peak_hour,
)
from backend.venue_stats.models import Bucket, DateRangeRequest
from backend.venue_stats.ranges import build_buckets, resolve_date_range
from factories import assistance, at, feedback, nps

MINUTES = timedelta(minutes=1)


def _dataset(feedback_rows=(), assistance_rows=(), nps_rows=()) -> VenueEventDataset:
    return VenueEventDataset(feedback=list(feedback_rows), assistance=list(assistance_rows), nps=list(nps_rows))


def _whole_day(day: int) -> Bucket:
    return Bucket(start=at(day, 0), end=at(day + 1, 0))


def test_sessions_count_distinct_feedback_sessions_plus_assistance() -> None:
    dataset = _dataset(
        [feedback("s1", at(14, 9)), feedback("s1", at(14, 10)), feedback("s2", at(14, 11))],
        [assistance(at(14, 12))],
    )

    assert compute_bucket(dataset, _whole_day(14), "sessions") == 3


def test_satisfaction_averages_present_ratings_only() -> None:
    dataset = _dataset([feedback("s1", at(14), rating=5), feedback("s2", at(14), rating=2), feedback("s3", at(14))])

    assert compute_bucket(dataset, _whole_day(14), "satisfaction") == pytest.approx(3.5)


def test_satisfaction_without_ratings_is_undefined_but_charts_at_zero() -> None:
    dataset = _dataset([feedback("s1", at(14))])

    assert compute_bucket(dataset, _whole_day(14), "satisfaction") is None
    assert aggregate_series(dataset, [_whole_day(14)], ["satisfaction"]) == {"satisfaction": [0.0]}


def test_response_time_uses_session_span_and_assistance() -> None:
    dataset = _dataset(
        [
            feedback("s1", at(14, 10, 0), rating=5),
            feedback("s1", at(14, 10, 5), rating=2, resolved_after=15 * MINUTES, is_actioned=True),
            feedback("s2", at(14, 11), rating=1, resolved_after=90 * MINUTES, is_actioned=False),
        ],
        [assistance(at(14, 10), resolved_after=10 * MINUTES), assistance(at(14, 13))],
    )

    # s1 runs 10:00 -> 10:20, the assistance request 10 minutes; s2 was never actioned.
    assert compute_bucket(dataset, _whole_day(14), "responseTime") == pytest.approx(15.0)


def test_response_time_without_resolutions_is_undefined() -> None:
    dataset = _dataset([feedback("s1", at(14))], [assistance(at(14))])

    assert compute_bucket(dataset, _whole_day(14), "responseTime") is None
    assert aggregate_series(dataset, [_whole_day(14)], ["responseTime"]) == {"responseTime": [0.0]}


def test_completion_rate_counts_resolved_sessions_and_requests() -> None:
    dataset = _dataset(
        [
            feedback("s1", at(14, 10), resolved_after=5 * MINUTES, is_actioned=True),
            feedback("s1", at(14, 10, 1)),
            feedback("s2", at(14, 11)),
        ],
        [assistance(at(14, 12), resolved_after=MINUTES), assistance(at(14, 13))],
    )

    assert compute_bucket(dataset, _whole_day(14), "completionRate") == pytest.approx(50.0)
    assert compute_bucket(dataset, _whole_day(14), "resolved") == 2
    assert compute_bucket(dataset, _whole_day(14), "activeAlerts") == 1


def test_completion_rate_without_sessions_is_undefined() -> None:
    assert compute_bucket(_dataset(), _whole_day(14), "completionRate") is None
    assert aggregate_series(_dataset(), [_whole_day(14)], ["completionRate"]) == {"completionRate": [0.0]}


def test_unresolved_sessions_score_a_real_zero_completion_rate() -> None:
    dataset = _dataset([feedback("s1", at(14))])

    assert compute_bucket(dataset, _whole_day(14), "completionRate") == 0.0


def test_balanced_promoters_and_detractors_score_zero_nps() -> None:
    rows = [nps(at(14), score=score) for score in [9, 9, 9, 9, 9, 2, 2, 2, 2, 2]]
    dataset = _dataset(nps_rows=rows)

    assert compute_bucket(dataset, _whole_day(14), "nps") == 0.0
    assert nps_breakdown(dataset) == {
        "promoters": 5,
        "passives": 0,
        "detractors": 5,
        "responses": 10,
        "notResponded": 0,
    }


def test_nps_ignores_unscored_submissions_and_counts_passives() -> None:
    rows = [nps(at(14), score=10), nps(at(14), score=7), nps(at(14), score=8), nps(at(14), score=None)]
    dataset = _dataset(nps_rows=rows)

    assert compute_bucket(dataset, _whole_day(14), "nps") == pytest.approx(100 / 3)
    assert nps_breakdown(dataset)["passives"] == 2
    assert nps_breakdown(dataset)["notResponded"] == 1


def test_nps_without_scores_is_undefined_but_charts_at_zero() -> None:
    dataset = _dataset(nps_rows=[nps(at(14), score=None)])
    bucket = _whole_day(14)

    assert compute_bucket(dataset, bucket, "nps") is None
    assert aggregate_series(dataset, [bucket], ["nps"]) == {"nps": [0.0]}


@pytest.mark.parametrize(
    ("scores", "chart_value"),
    [
        ([2, 3], 0.0),
        ([9, 9, 2], (100 / 3 + 100) / 2),
        ([7, 8], 50.0),
        ([10], 100.0),
    ],
)
def test_nps_chart_value_maps_into_zero_to_hundred(scores, chart_value) -> None:
    dataset = _dataset(nps_rows=[nps(at(14), score=score) for score in scores])

    (value,) = aggregate_series(dataset, [_whole_day(14)], ["nps"])["nps"]

    assert value == pytest.approx(chart_value)


def test_email_delivery_counts() -> None:
    rows = [
        nps(at(14), score=None, responded=False),
        nps(at(14), score=None, responded=False),
        nps(at(14), score=None, responded=False, send_error="mailbox full"),
        nps(at(14), score=None, sent=False, responded=False),
    ]
    dataset = _dataset(nps_rows=rows)
    bucket = _whole_day(14)

    assert compute_bucket(dataset, bucket, "emailsSent") == 3
    assert compute_bucket(dataset, bucket, "emailsDelivered") == 2
    assert compute_bucket(dataset, bucket, "emailsFailed") == 1
    counts = aggregate_totals(dataset, ["emailsSent", "emailsFailed", "sessions"])
    assert all(isinstance(value, int) for value in counts.values())


def test_response_rate_counts_scored_responses_over_sent() -> None:
    rows = [
        nps(at(14), score=9),
        nps(at(14), score=None, responded=False),
        nps(at(14), score=None, responded=False),
        nps(at(14), score=None, responded=False),
    ]

    assert compute_bucket(_dataset(nps_rows=rows), _whole_day(14), "responseRate") == pytest.approx(25.0)


def test_response_rate_without_sent_emails_is_undefined() -> None:
    dataset = _dataset(nps_rows=[nps(at(14), score=None, sent=False)])
    bucket = _whole_day(14)

    assert compute_bucket(dataset, bucket, "responseRate") is None
    assert aggregate_series(dataset, [bucket], ["responseRate"]) == {"responseRate": [None]}


def test_event_on_bucket_boundary_lands_in_one_bucket_only(now: datetime) -> None:
    window = resolve_date_range(DateRangeRequest("last7"), now)
    buckets = build_buckets(window)
    dataset = _dataset([feedback("s1", at(14, 0))])

    series = aggregate_series(dataset, buckets, ["sessions"])

    assert series["sessions"] == [0, 1, 0, 0, 0, 0, 0]


def test_event_in_last_millisecond_of_window_is_counted(now: datetime) -> None:
    window = resolve_date_range(DateRangeRequest("last7"), now)
    late = datetime(2026, 10, 19, 23, 59, 59, 999500, tzinfo=now.tzinfo)
    dataset = _dataset([feedback("s1", late)])

    assert aggregate_series(dataset, build_buckets(window), ["sessions"])["sessions"][-1] == 1


def test_aggregate_totals_covers_every_metric() -> None:
    totals = aggregate_totals(_dataset())

    assert set(totals) == set(METRICS)
    assert totals["responseRate"] is None
    assert totals["nps"] is None
    assert totals["satisfaction"] is None
    assert totals["responseTime"] is None
    assert totals["completionRate"] is None
    assert totals["sessions"] == 0


def test_metric_polarity() -> None:
    assert get_metric("responseTime").lower_is_better
    assert get_metric("activeAlerts").lower_is_better
    assert not get_metric("sessions").lower_is_better
    assert get_metric("sessions").additive
    assert not get_metric("nps").additive


def test_unknown_metric_kind_is_rejected() -> None:
    with pytest.raises(KeyError):
        get_metric("revenue")


def test_feedback_sessions_keep_earliest_creation_and_latest_resolution() -> None:
    rows = [
        feedback("s1", at(14, 10, 30), resolved_after=10 * MINUTES, is_actioned=True),
        feedback("s1", at(14, 10, 0)),
        feedback("s1", at(14, 10, 45), resolved_after=30 * MINUTES, is_actioned=True),
    ]

    (session,) = group_feedback_sessions(rows)

    assert session.created_at == at(14, 10, 0)
    assert session.resolved_at == at(14, 11, 15)


def test_peak_hour_prefers_busiest_then_latest_hour() -> None:
    dataset = _dataset(
        [feedback("s1", at(14, 9)), feedback("s2", at(14, 21)), feedback("s3", at(14, 21, 30)), feedback("s4", at(14, 0))]
    )

    assert peak_hour(dataset) == "9PM"
    assert peak_hour(_dataset([feedback("s1", at(14, 0)), feedback("s2", at(14, 11))])) == "11AM"
    assert peak_hour(_dataset()) is None


@pytest.mark.parametrize(
    ("minutes", "label"),
    [(None, None), (0.2, "< 1m"), (12.4, "12m"), (95, "1h 35m")],
)
def test_format_minutes(minutes, label) -> None:
    assert format_minutes(minutes) == label
