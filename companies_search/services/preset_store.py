"""
Saved filter presets
"""
import logging
import uuid
from datetime import datetime
from typing import Callable, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from companies_search.db import FilterPresetModel, utcnow
from companies_search.errors import PresetNotFound, StorageError, ValidationError
from companies_search.models import FilterPreset, SearchFilters
from companies_search.utils.validation import validate_search_filters

logger = logging.getLogger(__name__)


def _to_preset(row: FilterPresetModel) -> FilterPreset:
    return FilterPreset(
        id=row.id,
        name=row.name,
        filters=SearchFilters.model_validate(row.filters),
        created_at=row.created_at,
    )


class PresetStore:
    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    def list(self) -> List[FilterPreset]:
        """All presets, newest first."""
        try:
            with self.session_factory() as session:
                rows = session.scalars(
                    select(FilterPresetModel).order_by(FilterPresetModel.created_at.desc())
                ).all()
                return [_to_preset(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list presets: {e}")
            raise StorageError("Presets are currently unavailable") from e

    def create(self, name: str, filters: SearchFilters) -> FilterPreset:
        name = (name or "").strip()
        errors = validate_search_filters(filters)
        if not name:
            errors.append('name is required')
        if filters.is_empty():
            errors.append('Provide a keyword or at least one filter')
        if errors:
            raise ValidationError(f"Validation errors: {', '.join(errors)}", problems=errors)

        preset = FilterPreset(id=str(uuid.uuid4()), name=name, filters=filters, created_at=self.clock())
        try:
            with self.session_factory() as session:
                session.add(FilterPresetModel(
                    id=preset.id,
                    name=preset.name,
                    filters=filters.model_dump(mode='json'),
                    created_at=preset.created_at,
                ))
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save preset '{name}': {e}")
            raise StorageError("Presets are currently unavailable") from e

        logger.info(f"Saved preset '{name}' ({preset.id})")
        return preset

    def delete(self, preset_id: str) -> None:
        try:
            with self.session_factory() as session:
                row = session.get(FilterPresetModel, preset_id)
                if row is None:
                    raise PresetNotFound(preset_id)
                session.delete(row)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete preset {preset_id}: {e}")
            raise StorageError("Presets are currently unavailable") from e
        logger.info(f"Deleted preset {preset_id}")
