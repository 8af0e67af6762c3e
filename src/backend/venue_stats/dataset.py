from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import AssistanceEvent, FeedbackEvent, NPSSubmission


def coerce_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def normalize_datetime(dt: Optional[datetime], tz: ZoneInfo) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


@dataclass(frozen=True)
class FeedbackSession:
    """
    Feedback rows collapsed by ``session_id``.

    ``created_at`` is the earliest row of the session and ``resolved_at`` the
    latest resolution among its rows that were both resolved and actioned.
    """

    session_id: str
    created_at: datetime
    resolved_at: Optional[datetime]

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


def group_feedback_sessions(feedback: Iterable[FeedbackEvent]) -> List[FeedbackSession]:
    first_seen: Dict[str, datetime] = {}
    last_resolved: Dict[str, datetime] = {}

    for event in feedback:
        if event.session_id not in first_seen or event.created_at < first_seen[event.session_id]:
            first_seen[event.session_id] = event.created_at
        if event.resolved_at is None or not event.is_actioned:
            continue
        current = last_resolved.get(event.session_id)
        if current is None or event.resolved_at > current:
            last_resolved[event.session_id] = event.resolved_at

    return [
        FeedbackSession(session_id, created_at, last_resolved.get(session_id))
        for session_id, created_at in first_seen.items()
    ]


@dataclass
class VenueEventDataset:
    """
    In-memory snapshot of the three event collections for a set of venues.

    All timestamps are localized to ``timezone`` on construction and events are
    kept sorted by ``created_at`` so slicing stays deterministic.
    """

    feedback: Sequence[FeedbackEvent]
    assistance: Sequence[AssistanceEvent]
    nps: Sequence[NPSSubmission]
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        tz = coerce_timezone(self.timezone)
        self.feedback = tuple(
            sorted(
                (
                    replace(
                        event,
                        created_at=normalize_datetime(event.created_at, tz),
                        resolved_at=normalize_datetime(event.resolved_at, tz),
                    )
                    for event in self.feedback
                ),
                key=lambda event: event.created_at,
            )
        )
        self.assistance = tuple(
            sorted(
                (
                    replace(
                        event,
                        created_at=normalize_datetime(event.created_at, tz),
                        acknowledged_at=normalize_datetime(event.acknowledged_at, tz),
                        resolved_at=normalize_datetime(event.resolved_at, tz),
                    )
                    for event in self.assistance
                ),
                key=lambda event: event.created_at,
            )
        )
        self.nps = tuple(
            sorted(
                (
                    replace(
                        submission,
                        created_at=normalize_datetime(submission.created_at, tz),
                        sent_at=normalize_datetime(submission.sent_at, tz),
                        responded_at=normalize_datetime(submission.responded_at, tz),
                    )
                    for submission in self.nps
                ),
                key=lambda submission: submission.created_at,
            )
        )

    @property
    def is_empty(self) -> bool:
        return not (self.feedback or self.assistance or self.nps)

    def between(self, start: datetime, end: datetime) -> "VenueEventDataset":
        """
        Events whose ``created_at`` falls in ``[start, end)``.
        """

        return VenueEventDataset(
            feedback=[event for event in self.feedback if start <= event.created_at < end],
            assistance=[event for event in self.assistance if start <= event.created_at < end],
            nps=[submission for submission in self.nps if start <= submission.created_at < end],
            timezone=self.timezone,
        )

    def for_venues(self, venue_ids: Iterable[str]) -> "VenueEventDataset":
        allowed = set(venue_ids)
        return VenueEventDataset(
            feedback=[event for event in self.feedback if event.venue_id in allowed],
            assistance=[event for event in self.assistance if event.venue_id in allowed],
            nps=[submission for submission in self.nps if submission.venue_id in allowed],
            timezone=self.timezone,
        )

    def feedback_sessions(self) -> List[FeedbackSession]:
        return group_feedback_sessions(self.feedback)
