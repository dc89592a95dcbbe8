"""
Export snapshots: the full result list of a search, retrievable by token for 24 hours
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from companies_search.config import SNAPSHOT_RETENTION_HOURS
from companies_search.db import SearchSnapshotModel, utcnow
from companies_search.errors import SnapshotNotFound, StorageError
from companies_search.models import CompanyRecord, SearchFilters

logger = logging.getLogger(__name__)


class SnapshotStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        retention: timedelta = timedelta(hours=SNAPSHOT_RETENTION_HOURS),
        clock: Callable[[], datetime] = utcnow
    ):
        self.session_factory = session_factory
        self.retention = retention
        self.clock = clock

    def store(self, token: str, filters: SearchFilters, items: Sequence[CompanyRecord]) -> None:
        """Save a snapshot and drop the ones past retention."""
        now = self.clock()
        try:
            with self.session_factory() as session:
                session.add(SearchSnapshotModel(
                    token=token,
                    filters=filters.model_dump(mode='json'),
                    results=[item.model_dump(mode='json') for item in items],
                    total=len(items),
                    created_at=now,
                ))
                session.execute(
                    delete(SearchSnapshotModel).where(SearchSnapshotModel.created_at <= now - self.retention)
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to store snapshot {token[:8]}...: {e}")
            raise StorageError("Could not save search results for export") from e
        logger.info(f"Stored snapshot {token[:8]}... with {len(items)} companies")

    def load(self, token: str) -> List[CompanyRecord]:
        try:
            with self.session_factory() as session:
                row = session.get(SearchSnapshotModel, token)
                if row is None or row.created_at <= self.clock() - self.retention:
                    raise SnapshotNotFound(token)
                results = row.results
        except SQLAlchemyError as e:
            logger.error(f"Failed to load snapshot {token[:8]}...: {e}")
            raise StorageError("Could not load search results for export") from e
        return [CompanyRecord.model_validate(item) for item in results]

    def purge_expired(self) -> int:
        cutoff = self.clock() - self.retention
        with self.session_factory() as session:
            result = session.execute(delete(SearchSnapshotModel).where(SearchSnapshotModel.created_at <= cutoff))
            session.commit()
            return result.rowcount or 0
