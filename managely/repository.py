"""Generic CRUD over one spreadsheet tab.

``SheetRepository`` reads a whole tab into entities through its
:class:`~managely.schema.SheetSchema`, caches that list under the schema's
cache key and invalidates it after every write.  Filtered views are always
computed from the full cached list.

Row indices come from a ``read_all`` snapshot and go stale as soon as any
session deletes a row above them.  ``update`` and ``delete_by_id`` therefore
re-read the tab and resolve the target row by guid immediately before
writing.  A concurrent delete landing between that read and the write can
still shift the target; the store offers no stable row key to prevent it.
"""
from __future__ import annotations

import copy
import enum
import logging
import uuid
from typing import Any, Generic, List, Optional, Sequence, TypeVar

from managely import conflicts
from managely.cache import TtlCache
from managely.integrity import IntegrityHasher, field_diff
from managely.schema import SheetSchema
from managely.sheets_client import SheetsStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base error for repository level failures."""


class PersistenceError(RepositoryError):
    """Raised when the store reports that a write was not applied."""


class EntityNotFoundError(RepositoryError):
    """Raised when the guid targeted by a write is no longer in the sheet."""


class UpdateResult(enum.Enum):
    UPDATED = "updated"
    CONFLICT = "conflict"


def new_guid() -> str:
    return str(uuid.uuid4())


def _is_blank(row: Sequence[str]) -> bool:
    return not any(str(cell).strip() for cell in row)


class SheetRepository(Generic[T]):
    """CRUD over the tab described by ``schema``."""

    def __init__(
        self,
        store: SheetsStore,
        cache: TtlCache,
        schema: SheetSchema[T],
        *,
        ttl: Optional[float] = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self.schema = schema
        self._ttl = ttl

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_all(self, force_refresh: bool = False) -> List[T]:
        if not force_refresh:
            cached = self._cache.get(self.schema.cache_key)
            if cached is not None:
                return copy.deepcopy(cached)

        await self._store.ensure_sheet(self.schema.title, self.schema.headers)
        rows = await self._store.read_all(self.schema.title, self.schema.width)
        entities = [
            self._map_row(row, position + 2)
            for position, row in enumerate(rows)
            if not _is_blank(row)
        ]
        self._cache.set(self.schema.cache_key, entities, self._ttl)
        logger.debug("Loaded %d rows from %s", len(entities), self.schema.title)
        return copy.deepcopy(entities)

    async def get_by_id(self, guid: str, force_refresh: bool = False) -> Optional[T]:
        if not guid:
            return None
        for entity in await self.get_all(force_refresh):
            if getattr(entity, "guid") == guid:
                return entity
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def add(self, entity: T) -> str:
        guid = new_guid()
        setattr(entity, "guid", guid)
        self._apply_defaults(entity)
        self._before_write(entity)

        await self._store.ensure_sheet(self.schema.title, self.schema.headers)
        if not await self._store.append(self.schema.title, self.schema.width, self._to_row(entity)):
            raise PersistenceError(f"Append to {self.schema.title} was not applied")
        self._cache.invalidate(self.schema.cache_key)
        logger.info("Added %s row %s", self.schema.title, guid)
        return guid

    async def update(self, entity: T, force_write: bool = False) -> UpdateResult:
        guid = getattr(entity, "guid")
        stored = await self._fresh(guid)

        if not force_write and self._is_conflict(stored, entity):
            self._on_conflict(stored, entity)
            return UpdateResult.CONFLICT

        self._before_update(entity, stored)
        self._before_write(entity)
        row_index = getattr(stored, "row_index")
        row = self._to_row(entity)
        if not await self._store.update_at(self.schema.title, row_index, self.schema.width, row):
            raise PersistenceError(f"Update of {self.schema.title} row {row_index} was not applied")
        setattr(entity, "row_index", row_index)
        self._cache.invalidate(self.schema.cache_key)
        logger.info("Updated %s row %s (%s)%s", self.schema.title, row_index, guid, " [forced]" if force_write else "")
        return UpdateResult.UPDATED

    async def delete(self, row_index: int) -> None:
        """Delete the physical row.  Indices read before this call are stale."""

        if not await self._store.delete_at(self.schema.title, row_index):
            raise PersistenceError(f"Delete of {self.schema.title} row {row_index} was not applied")
        self._cache.invalidate(self.schema.cache_key)

    async def delete_by_id(self, guid: str) -> None:
        stored = await self._fresh(guid)
        await self.delete(getattr(stored, "row_index"))

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    def _map_row(self, row: Sequence[str], row_index: int) -> T:
        return self.schema.from_row(row, row_index)

    def _to_row(self, entity: T) -> List[str]:
        return self.schema.to_row(entity)

    def _apply_defaults(self, entity: T) -> None:
        """Fill creation-time fields of a new entity."""

    def _before_update(self, entity: T, stored: T) -> None:
        """Carry over stored fields the caller may not change."""

    def _before_write(self, entity: T) -> None:
        """Recompute derived fields right before serialising."""

    def _is_conflict(self, stored: T, entity: T) -> bool:
        return False

    def _on_conflict(self, stored: T, entity: T) -> None:
        pass

    async def _fresh(self, guid: str) -> T:
        stored = await self.get_by_id(guid, force_refresh=True)
        if stored is None:
            raise EntityNotFoundError(f"{self.schema.title} row {guid!r} not found")
        return stored


class IntegrityRepository(SheetRepository[T]):
    """Repository whose rows carry a content hash checked before updates.

    An update is rejected when the stored hash is non-empty and differs from
    the hash the caller's entity was loaded with.  ``force_write`` skips the
    comparison.  A successful write stores a hash of the new content.
    """

    def __init__(
        self,
        store: SheetsStore,
        cache: TtlCache,
        schema: SheetSchema[T],
        hasher: IntegrityHasher,
        *,
        ttl: Optional[float] = None,
    ) -> None:
        super().__init__(store, cache, schema, ttl=ttl)
        self._hasher = hasher

    @property
    def hasher(self) -> IntegrityHasher:
        return self._hasher

    def _before_write(self, entity: T) -> None:
        super()._before_write(entity)
        setattr(entity, "integrity_hash", self._hasher.compute(entity))

    def _is_conflict(self, stored: T, entity: T) -> bool:
        stored_hash = getattr(stored, "integrity_hash")
        return bool(stored_hash) and stored_hash != getattr(entity, "integrity_hash")

    def _on_conflict(self, stored: T, entity: T) -> None:
        guid = getattr(entity, "guid")
        logger.warning("Conflict on %s row %s: stored content changed since it was read", self.schema.title, guid)
        conflicts.record(
            guid,
            field_diff(self._hasher, stored, entity),
            source="update",
            context={"sheet": self.schema.title, "row_index": getattr(stored, "row_index")},
        )

    async def verify_all(self) -> List[Any]:
        """Return entities whose stored hash does not describe their content.

        Rows edited by hand in the spreadsheet show up here.  Rows without a
        hash are not reported.
        """

        suspicious = []
        for entity in await self.get_all(force_refresh=True):
            stored_hash = getattr(entity, "integrity_hash")
            if stored_hash and not self._hasher.matches(entity, stored_hash):
                suspicious.append(entity)
        return suspicious


__all__ = [
    "EntityNotFoundError",
    "IntegrityRepository",
    "PersistenceError",
    "RepositoryError",
    "SheetRepository",
    "UpdateResult",
    "new_guid",
]
