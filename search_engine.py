from __future__ import annotations
import enum
import re
from typing import Callable, Sequence

from loguru import logger
from pydantic import BaseModel, ConfigDict

from algorithms.trigram import similarity
from catalog_models import CatalogEntry
from search_index import SearchIndex

SUGGESTION_LIMIT = 5
SUGGESTION_THRESHOLD = 0.2

_TOKEN_SPLIT = re.compile(r"\s+")


class SearchFilters(BaseModel):
    """Facet constraints; an empty set leaves that facet unconstrained."""

    model_config = ConfigDict(frozen=True)

    body_parts: frozenset[str] = frozenset()
    equipments: frozenset[str] = frozenset()
    primary_muscles: frozenset[str] = frozenset()
    secondary_muscles: frozenset[str] = frozenset()
    difficulty: frozenset[str] = frozenset()
    mechanics: frozenset[str] = frozenset()

    def accepts(self, entry: CatalogEntry) -> bool:
        checks = (
            (self.body_parts, entry.body_parts),
            (self.equipments, entry.equipments),
            (self.primary_muscles, entry.target_muscles),
            (self.secondary_muscles, entry.secondary_muscles),
            (self.difficulty, (entry.difficulty,)),
            (self.mechanics, (entry.mechanic,)),
        )
        for wanted, values in checks:
            if wanted and not any(v in wanted for v in values if v is not None):
                return False
        return True


class SearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    exercises: tuple[CatalogEntry, ...] = ()
    suggestions: tuple[str, ...] = ()


def relevance(entry: CatalogEntry, query: str) -> int:
    """Score exact, prefix and substring name matches plus term hits."""
    if not query.strip():
        return 0
    name = entry.normalized_name
    score = 0
    if name == query:
        score += 100
    if name.startswith(query):
        score += 40
    if query in name:
        score += 20
    score += sum(1 for term in entry.search_terms if query in term)
    return score


def _first(values: Sequence[str]) -> str:
    return values[0] if values else ""


SortKey = Callable[[int], tuple]


class SortOption(str, enum.Enum):
    RELEVANCE = "relevance"
    NAME = "name"
    EQUIPMENT = "equipment"
    BODY_PART = "body_part"

    def sort_key(self, entries: Sequence[CatalogEntry], query: str) -> SortKey:
        """Return a key over entry positions giving this option's total order."""
        return _SORT_KEYS[self](entries, query)


_SORT_KEYS: dict[SortOption, Callable[[Sequence[CatalogEntry], str], SortKey]] = {
    SortOption.RELEVANCE: lambda entries, query: (
        lambda i: (-relevance(entries[i], query), entries[i].name.lower())
    ),
    SortOption.NAME: lambda entries, query: (lambda i: (entries[i].name.lower(),)),
    SortOption.EQUIPMENT: lambda entries, query: (
        lambda i: (_first(entries[i].equipments).lower(), entries[i].name.lower())
    ),
    SortOption.BODY_PART: lambda entries, query: (
        lambda i: (_first(entries[i].body_parts).lower(), entries[i].name.lower())
    ),
}


class ExerciseSearchEngine:
    """Read-only search over a catalog snapshot.

    The index is built once at construction; ``search`` keeps no state
    between calls and is safe to call concurrently.
    """

    def __init__(
        self,
        entries: Sequence[CatalogEntry],
        suggestion_limit: int = SUGGESTION_LIMIT,
    ) -> None:
        self.entries: tuple[CatalogEntry, ...] = tuple(entries)
        self.index = SearchIndex.build(self.entries)
        self.suggestion_limit = suggestion_limit

    def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        sort: SortOption = SortOption.RELEVANCE,
    ) -> SearchResult:
        filters = filters or SearchFilters()
        normalized = query.strip().lower()
        candidates = self._candidates(normalized)
        filtered = [i for i in sorted(candidates) if filters.accepts(self.entries[i])]
        ranked = sorted(filtered, key=sort.sort_key(self.entries, normalized))
        suggestions: list[str] = []
        if not ranked and normalized:
            suggestions = self.suggestions(normalized)
        logger.debug(
            "Search {!r} sort={} matched {} of {}",
            normalized,
            sort.value,
            len(ranked),
            len(self.entries),
        )
        return SearchResult(
            exercises=tuple(self.entries[i] for i in ranked),
            suggestions=tuple(suggestions),
        )

    def _candidates(self, query: str) -> set[int]:
        everything = set(range(len(self.entries)))
        if not query:
            return everything
        tokens = [t for t in _TOKEN_SPLIT.split(query) if t]
        matches = everything
        for token in tokens:
            matches = matches & self.index.lookup(token)
        if matches:
            return matches
        # The whole query, not its tokens, is matched as a substring.
        return {
            i
            for i, entry in enumerate(self.entries)
            if query in entry.normalized_name
            or any(query in alias.lower() for alias in entry.alias)
        }

    def suggestions(self, query: str) -> list[str]:
        scored = [
            (entry.name, similarity(query, entry.normalized_name))
            for entry in self.entries
        ]
        scored.sort(key=lambda item: item[1], reverse=True)
        return [name for name, score in scored if score > SUGGESTION_THRESHOLD][
            : self.suggestion_limit
        ]
