from __future__ import annotations
import asyncio
import json
import os
from typing import AsyncIterator, Callable, Iterable, Optional

from loguru import logger
from pydantic import BaseModel, TypeAdapter, ValidationError

from catalog_models import Catalog, CatalogEntry, CatalogMetadata
from config import DEFAULT_CATALOG_DIR
from search_engine import (
    SUGGESTION_LIMIT,
    ExerciseSearchEngine,
    SearchFilters,
    SearchResult,
    SortOption,
)

INDEX_PATH = os.path.join("exercise_index", "exercise_library.json")
METADATA_PATH = os.path.join("exercise_index", "metadata.json")
BODYPARTS_PATH = os.path.join("exercise_library", "bodyparts.json")
EQUIPMENTS_PATH = os.path.join("exercise_library", "equipments.json")
MUSCLES_PATH = os.path.join("exercise_library", "muscles.json")

_ENTRIES = TypeAdapter(list[CatalogEntry])


class CatalogLoadError(RuntimeError):
    """Raised when the bundled catalog is missing or malformed."""


class _NamedValue(BaseModel):
    name: str


_NAMED_VALUES = TypeAdapter(list[_NamedValue])


def _facet_values(values: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, str] = {}
    for value in values:
        cleaned = value.strip()
        if cleaned:
            seen.setdefault(cleaned.lower(), cleaned)
    return tuple(sorted(seen.values(), key=lambda v: (v.lower(), v)))


class CatalogRepository:
    """Owns the lazily loaded library catalog and its search engine.

    The first ``ensure_loaded`` call reads the catalog; concurrent callers
    wait on the same lock and receive the same snapshot. A failed load
    leaves the repository empty so a later call retries.
    """

    def __init__(
        self,
        catalog_dir: str = DEFAULT_CATALOG_DIR,
        suggestion_limit: int = SUGGESTION_LIMIT,
    ) -> None:
        self.catalog_dir = catalog_dir
        self.suggestion_limit = suggestion_limit
        self._lock = asyncio.Lock()
        self._loaded: Optional[tuple[Catalog, ExerciseSearchEngine]] = None
        self._observers: list[Callable[[Optional[Catalog]], None]] = []
        self.load_count = 0

    @property
    def current(self) -> Optional[Catalog]:
        return self._loaded[0] if self._loaded is not None else None

    async def ensure_loaded(self) -> Catalog:
        catalog, _ = await self._load()
        return catalog

    async def _load(self) -> tuple[Catalog, ExerciseSearchEngine]:
        loaded = self._loaded
        if loaded is not None:
            return loaded
        async with self._lock:
            if self._loaded is not None:
                return self._loaded
            catalog = await asyncio.to_thread(self._read_catalog)
            loaded = (catalog, ExerciseSearchEngine(catalog.entries, self.suggestion_limit))
            self._loaded = loaded
        self._notify(catalog)
        return loaded

    def _read_catalog(self) -> Catalog:
        self.load_count += 1
        index_path = os.path.join(self.catalog_dir, INDEX_PATH)
        metadata_path = os.path.join(self.catalog_dir, METADATA_PATH)
        try:
            with open(index_path, "rb") as f:
                entries = _ENTRIES.validate_json(f.read())
            with open(metadata_path, "rb") as f:
                metadata = CatalogMetadata.model_validate_json(f.read())
            catalog = Catalog(
                entries=tuple(entries),
                metadata=metadata,
                body_parts=self._named_values(
                    BODYPARTS_PATH, (v for e in entries for v in e.body_parts)
                ),
                equipments=self._named_values(
                    EQUIPMENTS_PATH, (v for e in entries for v in e.equipments)
                ),
                muscles=self._named_values(
                    MUSCLES_PATH,
                    (
                        v
                        for e in entries
                        for v in (*e.target_muscles, *e.secondary_muscles)
                    ),
                ),
            )
        except (OSError, ValidationError, ValueError) as e:
            logger.opt(exception=e).error(
                "Failed to load exercise library from {}", self.catalog_dir
            )
            raise CatalogLoadError(f"cannot load catalog from {self.catalog_dir}") from e
        if metadata.count != len(entries):
            logger.warning(
                "Catalog metadata count {} differs from {} entries",
                metadata.count,
                len(entries),
            )
        logger.info("Loaded {} library exercises", len(entries))
        return catalog

    def _named_values(self, relative: str, fallback: Iterable[str]) -> tuple[str, ...]:
        path = os.path.join(self.catalog_dir, relative)
        try:
            with open(path, "rb") as f:
                values = [v.name for v in _NAMED_VALUES.validate_json(f.read())]
        except (OSError, ValidationError, json.JSONDecodeError):
            logger.debug("Deriving facet values for {}", relative)
            values = list(fallback)
        return _facet_values(values)

    def subscribe(
        self, callback: Callable[[Optional[Catalog]], None]
    ) -> Callable[[], None]:
        """Call ``callback`` now and after every load; returns an unsubscribe."""
        self._observers.append(callback)
        callback(self.current)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    async def observe(self) -> AsyncIterator[Optional[Catalog]]:
        queue: asyncio.Queue[Optional[Catalog]] = asyncio.Queue()
        unsubscribe = self.subscribe(queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    def _notify(self, catalog: Catalog) -> None:
        for callback in list(self._observers):
            callback(catalog)

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        sort: SortOption = SortOption.RELEVANCE,
    ) -> SearchResult:
        _, engine = await self._load()
        return engine.search(query, filters, sort)

    async def get_exercise(self, exercise_id: str) -> Optional[CatalogEntry]:
        catalog = await self.ensure_loaded()
        return catalog.get(exercise_id)

    async def related_exercises(
        self,
        primary_muscle: Optional[str],
        equipment: Optional[str],
        exclude_id: str,
        limit: int = 6,
    ) -> list[CatalogEntry]:
        catalog = await self.ensure_loaded()
        entries = [e for e in catalog.entries if e.id != exclude_id]
        primary = (
            [e for e in entries if primary_muscle in e.target_muscles]
            if primary_muscle
            else []
        )
        by_equipment = (
            [e for e in entries if equipment in e.equipments] if equipment else []
        )
        combined: dict[str, CatalogEntry] = {}
        for entry in primary + by_equipment:
            combined.setdefault(entry.id, entry)
        ranked = sorted(combined.values(), key=lambda e: e.name.lower())
        return ranked[:limit]
