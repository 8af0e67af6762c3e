from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import pytest
from sqlalchemy import create_engine, insert

from backend.venue_stats.config import DatabaseConfig
from backend.venue_stats.repository import (
    SQLVenueEventRepository,
    assistance_table,
    build_repository_from_env,
    feedback_table,
    metadata,
    nps_table,
)


def _feedback_row(
    venue_id: str,
    session_id: str,
    created_at: datetime,
    rating: Optional[int] = None,
    resolved_at: Optional[datetime] = None,
    is_actioned: bool = False,
) -> Dict[str, Any]:
    return {
        "venue_id": venue_id,
        "session_id": session_id,
        "rating": rating,
        "created_at": created_at,
        "resolved_at": resolved_at,
        "is_actioned": is_actioned,
    }


def _assistance_row(venue_id: str, created_at: datetime) -> Dict[str, Any]:
    return {"venue_id": venue_id, "created_at": created_at, "acknowledged_at": None, "resolved_at": None}


def _nps_row(
    venue_id: str,
    created_at: datetime,
    score: Optional[int] = None,
    responded_at: Optional[datetime] = None,
    send_error: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "venue_id": venue_id,
        "score": score,
        "created_at": created_at,
        "sent_at": created_at,
        "responded_at": responded_at,
        "send_error": send_error,
    }


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'venue_stats.db'}")
    metadata.create_all(engine)
    with engine.begin() as connection:
        connection.execute(
            insert(feedback_table),
            [
                _feedback_row("venue-a", "s2", datetime(2026, 10, 14, 12), rating=4),
                _feedback_row(
                    "venue-a",
                    "s1",
                    datetime(2026, 10, 13, 9),
                    rating=5,
                    resolved_at=datetime(2026, 10, 13, 9, 20),
                    is_actioned=True,
                ),
                _feedback_row("venue-a", "s0", datetime(2026, 9, 1, 9), rating=1),
                _feedback_row("venue-z", "z1", datetime(2026, 10, 14, 9), rating=3),
            ],
        )
        connection.execute(
            insert(assistance_table),
            [
                _assistance_row("venue-b", datetime(2026, 10, 15, 20)),
                _assistance_row("venue-b", datetime(2026, 10, 20, 0, 0, 1)),
            ],
        )
        connection.execute(
            insert(nps_table),
            [
                _nps_row("venue-a", datetime(2026, 10, 16, 10), score=9, responded_at=datetime(2026, 10, 16, 12)),
                _nps_row("venue-b", datetime(2026, 10, 17, 10), send_error="bounced"),
            ],
        )
    yield engine
    engine.dispose()


def test_load_filters_by_venue_and_span(engine) -> None:
    repository = SQLVenueEventRepository(engine)

    feedback, assistance, nps = repository.load(
        ["venue-a", "venue-b"],
        datetime(2026, 10, 6),
        datetime(2026, 10, 19, 23, 59, 59, 999000),
    )

    assert [event.session_id for event in feedback] == ["s1", "s2"]
    assert [event.created_at for event in assistance] == [datetime(2026, 10, 15, 20)]
    assert [submission.venue_id for submission in nps] == ["venue-a", "venue-b"]


def test_rows_are_converted_to_events(engine) -> None:
    repository = SQLVenueEventRepository(engine)

    feedback, _, nps = repository.load(["venue-a", "venue-b"], datetime(2026, 10, 13), datetime(2026, 10, 19))

    resolved = feedback[0]
    assert resolved.rating == 5
    assert resolved.resolved_at == datetime(2026, 10, 13, 9, 20)
    assert resolved.is_actioned is True
    assert feedback[1].is_actioned is False
    assert nps[0].score == 9
    assert nps[1].score is None
    assert nps[1].send_error == "bounced"


def test_unknown_venue_loads_nothing(engine) -> None:
    repository = SQLVenueEventRepository(engine)

    assert repository.load(["venue-q"], datetime(2026, 1, 1), datetime(2026, 12, 31)) == ((), (), ())


def test_build_repository_from_env(tmp_path) -> None:
    assert build_repository_from_env(DatabaseConfig(url=None)) is None

    repository = build_repository_from_env(DatabaseConfig(url=f"sqlite:///{tmp_path / 'other.db'}"))

    assert isinstance(repository, SQLVenueEventRepository)
    repository.engine.dispose()
