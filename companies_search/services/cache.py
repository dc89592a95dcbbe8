"""
Two-tier result cache: durable (database) tier checked first, then an in-process tier.

Writes are best-effort. A failed write is logged and the caller carries on with
the freshly fetched payload; callers on the write path ignore put()'s result on
purpose, so a cache outage never fails a search.
"""
import copy
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy import func, select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from companies_search.config import (
    SEARCH_CACHE_TTL,
    PROFILE_CACHE_TTL,
    PROFILE_DURABLE_CACHE_TTL,
    VOLATILE_CACHE_MAX_ENTRIES,
)
from companies_search.db import CacheEntryModel, utcnow
from companies_search.models import CachedEntity

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class CacheKind(str, Enum):
    SEARCH = "search"
    PROFILE = "company"
    OFFICERS = "officers"


@dataclass(frozen=True)
class TTLPolicy:
    volatile: int
    durable: int


DEFAULT_TTLS = {
    CacheKind.SEARCH: TTLPolicy(SEARCH_CACHE_TTL, SEARCH_CACHE_TTL),
    CacheKind.PROFILE: TTLPolicy(PROFILE_CACHE_TTL, PROFILE_DURABLE_CACHE_TTL),
    CacheKind.OFFICERS: TTLPolicy(PROFILE_CACHE_TTL, PROFILE_DURABLE_CACHE_TTL),
}


def search_cache_key(keyword: str, page: int, page_size: int) -> str:
    return f"{CacheKind.SEARCH.value}:{keyword}:{page}:{page_size}"


def entity_cache_key(kind: CacheKind, company_number: str) -> str:
    # Profile and officer data are facts about the company, independent of any filter
    return f"{kind.value}:{company_number}"


class VolatileCache:
    """In-process TTL tier, lost on restart."""

    def __init__(self, clock: Clock = utcnow, max_entries: int = VOLATILE_CACHE_MAX_ENTRIES):
        self.clock = clock
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, CachedEntity]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CachedEntity]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_fresh(self.clock()):
                del self._entries[key]
                return None
            return entry.model_copy(deep=True)

    def set(self, entry: CachedEntity) -> None:
        with self._lock:
            self._entries.pop(entry.key, None)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[entry.key] = entry.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._entries)


class DurableCache:
    """Database tier, survives restarts."""

    def __init__(self, session_factory: sessionmaker, clock: Clock = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    def get(self, key: str) -> Optional[CachedEntity]:
        with self.session_factory() as session:
            row = session.get(CacheEntryModel, key)
            if row is None or row.expires_at <= self.clock():
                return None
            return CachedEntity(
                key=row.cache_key,
                kind=row.kind,
                payload=row.payload,
                fetched_at=row.fetched_at,
                expires_at=row.expires_at,
            )

    def set(self, entry: CachedEntity) -> None:
        with self.session_factory() as session:
            session.merge(CacheEntryModel(
                cache_key=entry.key,
                kind=entry.kind,
                payload=entry.payload,
                fetched_at=entry.fetched_at,
                expires_at=entry.expires_at,
            ))
            session.commit()

    def purge_expired(self) -> int:
        with self.session_factory() as session:
            result = session.execute(delete(CacheEntryModel).where(CacheEntryModel.expires_at <= self.clock()))
            session.commit()
            return result.rowcount or 0

    def stats(self) -> Dict[str, Any]:
        with self.session_factory() as session:
            row = session.execute(
                select(
                    func.count(CacheEntryModel.cache_key),
                    func.min(CacheEntryModel.fetched_at),
                    func.max(CacheEntryModel.fetched_at),
                ).where(CacheEntryModel.expires_at > self.clock())
            ).one()
        return {
            'total_cached': row[0] or 0,
            'oldest_entry': row[1],
            'newest_entry': row[2],
        }


class ResultCache:
    """Read-through, write-through cache over both tiers."""

    def __init__(
        self,
        volatile: Optional[VolatileCache] = None,
        durable: Optional[DurableCache] = None,
        ttls: Optional[Dict[CacheKind, TTLPolicy]] = None,
        clock: Clock = utcnow
    ):
        self.volatile = volatile if volatile is not None else VolatileCache(clock=clock)
        self.durable = durable
        self.ttls = ttls or DEFAULT_TTLS
        self.clock = clock

    def get(self, kind: CacheKind, key: str) -> Optional[Dict[str, Any]]:
        if self.durable is not None:
            try:
                entry = self.durable.get(key)
            except SQLAlchemyError as e:
                logger.warning(f"Durable cache read failed for {key}: {e}")
                entry = None
            if entry is not None:
                return copy.deepcopy(entry.payload)

        entry = self.volatile.get(key)
        if entry is not None:
            return entry.payload
        return None

    def put(self, kind: CacheKind, key: str, payload: Dict[str, Any]) -> bool:
        """Write to both tiers. Returns False if any tier failed."""
        now = self.clock()
        policy = self.ttls[kind]
        ok = True

        try:
            self.volatile.set(CachedEntity(
                key=key,
                kind=kind.value,
                payload=payload,
                fetched_at=now,
                expires_at=now + timedelta(seconds=policy.volatile),
            ))
        except (TypeError, ValueError) as e:
            logger.warning(f"Volatile cache write failed for {key}: {e}")
            ok = False

        if self.durable is not None:
            try:
                self.durable.set(CachedEntity(
                    key=key,
                    kind=kind.value,
                    payload=payload,
                    fetched_at=now,
                    expires_at=now + timedelta(seconds=policy.durable),
                ))
            except (SQLAlchemyError, TypeError, ValueError) as e:
                logger.warning(f"Durable cache write failed for {key}: {e}")
                ok = False

        return ok

    def get_or_fetch(self, kind: CacheKind, key: str, fetch: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        cached = self.get(kind, key)
        if cached is not None:
            return cached

        payload = fetch()
        # Result ignored: a failed cache write must not fail the operation
        self.put(kind, key, payload)
        return copy.deepcopy(payload)

    def purge_expired(self) -> int:
        """Delete expired durable entries. Volatile entries expire on read."""
        if self.durable is None:
            return 0
        try:
            return self.durable.purge_expired()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to purge expired cache entries: {e}")
            return 0

    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {'volatile_entries': len(self.volatile)}
        if self.durable is not None:
            try:
                stats.update(self.durable.stats())
            except SQLAlchemyError as e:
                logger.warning(f"Failed to read cache stats: {e}")
                stats.update({'total_cached': 0, 'oldest_entry': None, 'newest_entry': None})
        return stats
