from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Tuple

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, String, Table, create_engine, select
from sqlalchemy.engine import Engine, Row

from .config import DatabaseConfig, load_config
from .models import AssistanceEvent, FeedbackEvent, NPSSubmission

EventRows = Tuple[Sequence[FeedbackEvent], Sequence[AssistanceEvent], Sequence[NPSSubmission]]

metadata = MetaData()

feedback_table = Table(
    "feedback",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("venue_id", String(64), nullable=False, index=True),
    Column("session_id", String(64), nullable=False),
    Column("rating", Integer, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("resolved_at", DateTime(timezone=True), nullable=True),
    Column("is_actioned", Boolean, nullable=False, default=False),
)

assistance_table = Table(
    "assistance_requests",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("venue_id", String(64), nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("acknowledged_at", DateTime(timezone=True), nullable=True),
    Column("resolved_at", DateTime(timezone=True), nullable=True),
)

nps_table = Table(
    "nps_submissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("venue_id", String(64), nullable=False, index=True),
    Column("score", Integer, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("sent_at", DateTime(timezone=True), nullable=True),
    Column("responded_at", DateTime(timezone=True), nullable=True),
    Column("send_error", String(512), nullable=True),
)


class VenueEventRepository:
    """
    Interface for loading the raw rows the stats engine aggregates.

    Implementations return rows for ``venue_ids`` created within
    ``[start, end]``; callers pass a span covering both the reporting window
    and its comparison period.
    """

    def load(self, venue_ids: Sequence[str], start: datetime, end: datetime) -> EventRows:
        raise NotImplementedError


class SQLVenueEventRepository(VenueEventRepository):
    """
    Load rows from the ``feedback``, ``assistance_requests`` and
    ``nps_submissions`` tables declared on :data:`metadata`.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def load(self, venue_ids: Sequence[str], start: datetime, end: datetime) -> EventRows:
        return (
            self._load_feedback(venue_ids, start, end),
            self._load_assistance(venue_ids, start, end),
            self._load_nps(venue_ids, start, end),
        )

    def _load_rows(self, table: Table, venue_ids: Sequence[str], start: datetime, end: datetime) -> Sequence[Row]:
        query = (
            select(table)
            .where(table.c.venue_id.in_(list(venue_ids)))
            .where(table.c.created_at >= start)
            .where(table.c.created_at <= end)
            .order_by(table.c.created_at.asc())
        )
        with self.engine.connect() as connection:
            return connection.execute(query).fetchall()

    def _load_feedback(self, venue_ids: Sequence[str], start: datetime, end: datetime) -> Sequence[FeedbackEvent]:
        rows = self._load_rows(feedback_table, venue_ids, start, end)
        return tuple(self._row_to_feedback(row) for row in rows)

    def _load_assistance(self, venue_ids: Sequence[str], start: datetime, end: datetime) -> Sequence[AssistanceEvent]:
        rows = self._load_rows(assistance_table, venue_ids, start, end)
        return tuple(self._row_to_assistance(row) for row in rows)

    def _load_nps(self, venue_ids: Sequence[str], start: datetime, end: datetime) -> Sequence[NPSSubmission]:
        rows = self._load_rows(nps_table, venue_ids, start, end)
        return tuple(self._row_to_nps(row) for row in rows)

    @staticmethod
    def _row_to_feedback(row: Row) -> FeedbackEvent:
        return FeedbackEvent(
            venue_id=str(row.venue_id),
            session_id=str(row.session_id),
            rating=row.rating,
            created_at=row.created_at,
            resolved_at=row.resolved_at,
            is_actioned=bool(row.is_actioned),
        )

    @staticmethod
    def _row_to_assistance(row: Row) -> AssistanceEvent:
        return AssistanceEvent(
            venue_id=str(row.venue_id),
            created_at=row.created_at,
            acknowledged_at=row.acknowledged_at,
            resolved_at=row.resolved_at,
        )

    @staticmethod
    def _row_to_nps(row: Row) -> NPSSubmission:
        return NPSSubmission(
            venue_id=str(row.venue_id),
            score=row.score,
            created_at=row.created_at,
            sent_at=row.sent_at,
            responded_at=row.responded_at,
            send_error=row.send_error,
        )


def build_repository_from_env(config: Optional[DatabaseConfig] = None) -> Optional[VenueEventRepository]:
    cfg = config or load_config().database
    if cfg.url:
        engine = create_engine(cfg.url)
        return SQLVenueEventRepository(engine)
    return None
