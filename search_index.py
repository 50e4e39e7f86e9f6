from __future__ import annotations
from typing import Iterator, Sequence

from catalog_models import CatalogEntry


class SearchIndex:
    """Inverted index from whole normalized terms to entry positions."""

    def __init__(self, buckets: dict[str, frozenset[int]] | None = None) -> None:
        self._buckets: dict[str, frozenset[int]] = dict(buckets or {})

    @classmethod
    def build(cls, entries: Sequence[CatalogEntry]) -> "SearchIndex":
        """Index search terms, normalized names and lowercased aliases.

        Terms are taken verbatim; blank terms are skipped. No stemming or
        partial-token keys are produced.
        """
        mapping: dict[str, set[int]] = {}
        for position, entry in enumerate(entries):
            terms = [*entry.search_terms, entry.normalized_name]
            terms.extend(alias.lower() for alias in entry.alias)
            for term in terms:
                if not term.strip():
                    continue
                mapping.setdefault(term, set()).add(position)
        return cls({term: frozenset(hits) for term, hits in mapping.items()})

    def lookup(self, term: str) -> frozenset[int]:
        return self._buckets.get(term, frozenset())

    def __contains__(self, term: object) -> bool:
        return term in self._buckets

    def __iter__(self) -> Iterator[str]:
        return iter(self._buckets)

    def __len__(self) -> int:
        return len(self._buckets)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchIndex):
            return NotImplemented
        return self._buckets == other._buckets
