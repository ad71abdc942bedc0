"""
Mood-tracking repository: session ratings, points and emotion logs.

Unlike the KV records, these rows live in a local SQLite database so
they can be summed and filtered by date. Every call runs its SQL in a
worker thread under one asyncio.Lock per repository.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional, TypeVar

from sqlalchemy import Engine, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import LocalIOError
from ..models import EmotionAnalysisResult, EmotionLog, SessionRating, utcnow
from .db import (
    TABLES,
    Base,
    EmotionLogRow,
    PointsRow,
    SessionRatingRow,
    build_engine,
    build_session_factory,
    session_scope,
)

logger = logging.getLogger("emotionaid.analytics")

T = TypeVar("T")

WEEK = timedelta(days=7)


def _require_user(user_id: str) -> None:
    if not user_id or not user_id.strip():
        raise ValueError("user_id is required")


class AnalyticsRepository:
    """SQLite-backed mood tracking for every local user.

    Args:
        db_path: SQLite database file (created on first use).
        clock: Returns the current aware UTC time (injectable for tests).
    """

    def __init__(
        self,
        db_path: Path,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db_path = db_path
        self._clock = clock
        self._lock = asyncio.Lock()
        self._engine: Optional[Engine] = None
        self._sessions: Optional[sessionmaker[Session]] = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    # -------------------------------------------------------------------
    # Session ratings
    # -------------------------------------------------------------------

    async def save_session_rating(self, user_id: str, score: int) -> SessionRating:
        """Record a session score for today (UTC)."""
        _require_user(user_id)
        day = self._clock().date()

        def _save(session: Session) -> None:
            session.add(SessionRatingRow(user_id=user_id, day=day, score=score))

        await self._run(_save)
        logger.info("Saved session rating %d for user %s", score, user_id)
        return SessionRating(day=day, score=score)

    async def get_weekly_ratings(self, user_id: str) -> list[SessionRating]:
        """Ratings from the last seven days, oldest first."""
        since = (self._clock() - WEEK).date()

        def _query(session: Session) -> list[SessionRating]:
            rows = session.scalars(
                select(SessionRatingRow)
                .where(SessionRatingRow.user_id == user_id, SessionRatingRow.day >= since)
                .order_by(SessionRatingRow.day, SessionRatingRow.id)
            )
            return [SessionRating(day=r.day, score=r.score) for r in rows]

        ratings = await self._run(_query, commit=False)
        logger.debug("Fetched %d weekly ratings for user %s", len(ratings), user_id)
        return ratings

    # -------------------------------------------------------------------
    # Points
    # -------------------------------------------------------------------

    async def add_points(self, user_id: str, amount: int, source: str = "") -> None:
        """Credit points to a user (negative amounts debit)."""
        _require_user(user_id)
        day = self._clock().date()

        def _add(session: Session) -> None:
            session.add(PointsRow(user_id=user_id, day=day, amount=amount, source=source))

        await self._run(_add)
        logger.info("Added %d points for user %s from %s", amount, user_id, source or "-")

    async def get_total_points(self, user_id: str) -> int:
        """Sum of every point entry for the user; 0 when there are none."""

        def _sum(session: Session) -> int:
            total = session.scalar(
                select(func.sum(PointsRow.amount)).where(PointsRow.user_id == user_id)
            )
            return int(total or 0)

        return await self._run(_sum, commit=False)

    # -------------------------------------------------------------------
    # Emotion logs
    # -------------------------------------------------------------------

    async def save_emotion(self, user_id: str, result: EmotionAnalysisResult) -> EmotionLog:
        """Store an analysis result with the current time."""
        _require_user(user_id)
        now = self._clock().astimezone(timezone.utc)

        def _save(session: Session) -> None:
            session.add(EmotionLogRow(
                user_id=user_id,
                logged_at=now.replace(tzinfo=None),
                emotion=result.emotion,
                confidence=result.confidence,
                is_sarcasm=result.is_sarcasm,
                source=result.source,
            ))

        await self._run(_save)
        logger.info("Saved emotion %s for user %s", result.emotion, user_id)
        return EmotionLog(user_id=user_id, logged_at=now, **result.model_dump())

    async def get_emotion_logs(self, user_id: str, limit: int = 50) -> list[EmotionLog]:
        """Most recent emotion logs for the user, newest first."""

        def _query(session: Session) -> list[EmotionLog]:
            rows = session.scalars(
                select(EmotionLogRow)
                .where(EmotionLogRow.user_id == user_id)
                .order_by(EmotionLogRow.logged_at.desc(), EmotionLogRow.id.desc())
                .limit(limit)
            )
            return [
                EmotionLog(
                    user_id=r.user_id,
                    logged_at=r.logged_at.replace(tzinfo=timezone.utc),
                    emotion=r.emotion,
                    confidence=r.confidence,
                    is_sarcasm=r.is_sarcasm,
                    source=r.source,
                )
                for r in rows
            ]

        return await self._run(_query, commit=False)

    # -------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------

    async def clear_all(self) -> int:
        """Delete every row in every table. Returns the number removed."""

        def _clear(session: Session) -> int:
            removed = 0
            for table in TABLES:
                removed += session.execute(delete(table)).rowcount or 0
            return removed

        removed = await self._run(_clear)
        logger.info("Cleared %d analytics rows", removed)
        return removed

    def dispose(self) -> None:
        """Close pooled connections."""
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._sessions = None

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    async def _run(self, work: Callable[[Session], T], commit: bool = True) -> T:
        async with self._lock:
            return await asyncio.to_thread(self._run_sync, work, commit)

    def _run_sync(self, work: Callable[[Session], T], commit: bool) -> T:
        try:
            factory = self._session_factory()
            with session_scope(factory, commit=commit) as session:
                return work(session)
        except SQLAlchemyError as exc:
            raise LocalIOError(f"Analytics database error ({self._db_path}): {exc}") from exc

    def _session_factory(self) -> sessionmaker[Session]:
        if self._sessions is None:
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise LocalIOError(f"Cannot create {self._db_path.parent}: {exc}") from exc
            engine = build_engine(self._db_path)
            Base.metadata.create_all(engine)
            self._engine = engine
            self._sessions = build_session_factory(engine)
            logger.info("Analytics database ready at %s", self._db_path)
        return self._sessions
