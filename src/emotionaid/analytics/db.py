"""
SQLite tables and session helpers for the mood-tracking database.

Storage layout:
    <home>/analytics.db
    ├── session_ratings   (user_id, day, score)
    ├── points            (user_id, day, amount, source)
    └── emotion_logs      (user_id, logged_at, emotion, confidence, is_sarcasm, source)

Timestamps are stored as naive UTC; readers re-attach the UTC zone.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Generator

from sqlalchemy import Boolean, Date, DateTime, Engine, Float, Integer, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker


class Base(DeclarativeBase):
    pass


class SessionRatingRow(Base):
    __tablename__ = "session_ratings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)


class PointsRow(Base):
    __tablename__ = "points"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(64), default="", nullable=False)


class EmotionLogRow(Base):
    __tablename__ = "emotion_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    logged_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    emotion: Mapped[str] = mapped_column(String(32), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    is_sarcasm: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    source: Mapped[str] = mapped_column(String(32), default="lexicon", nullable=False)


TABLES = (SessionRatingRow, PointsRow, EmotionLogRow)


def build_engine(db_path: Path) -> Engine:
    """Create an engine for the SQLite file (not opened until first use).

    Worker threads share the engine, so same-thread checking is off.
    """
    return create_engine(
        f"sqlite:///{db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )


@contextmanager
def session_scope(
    factory: sessionmaker[Session],
    *,
    commit: bool = True,
) -> Generator[Session, None, None]:
    """Yield a session; commit on success, roll back on any error."""
    session = factory()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
