"""
SQLAlchemy models for the durable cache tier, export snapshots and filter presets
"""
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import DateTime, Integer, JSON, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from companies_search.config import DATABASE_URL


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo on read so everything is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class CacheEntryModel(Base):
    __tablename__ = "cache_entries"

    cache_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    kind: Mapped[str] = mapped_column(String(32), index=True)
    payload: Mapped[Any] = mapped_column(JSON)
    fetched_at: Mapped[datetime] = mapped_column(DateTime)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)


class SearchSnapshotModel(Base):
    __tablename__ = "search_snapshots"

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    filters: Mapped[Any] = mapped_column(JSON)
    results: Mapped[Any] = mapped_column(JSON)
    total: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class FilterPresetModel(Base):
    __tablename__ = "filter_presets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    filters: Mapped[Any] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


def create_db_engine(url: Optional[str] = None) -> Engine:
    url = url or DATABASE_URL
    if url.startswith("sqlite"):
        # Enrichment batches read and write the cache from worker threads
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


def init_db(engine: Engine) -> sessionmaker:
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
