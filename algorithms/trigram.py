"""Character trigram similarity used for "did you mean" suggestions."""

from typing import Set


def trigrams(value: str) -> Set[str]:
    """Return every contiguous 3-character slice of ``value``.

    Spaces become underscores first. Strings shorter than three characters
    yield a single-element set holding the whole string; the empty string
    yields an empty set.
    """
    normalized = value.replace(" ", "_")
    if len(normalized) < 3:
        return {normalized} if normalized else set()
    return {normalized[i : i + 3] for i in range(len(normalized) - 2)}


def similarity(source: str, target: str) -> float:
    """Return shared trigrams over the larger trigram set, in [0, 1]."""
    source_trigrams = trigrams(source)
    target_trigrams = trigrams(target)
    if not source_trigrams or not target_trigrams:
        return 0.0
    shared = len(source_trigrams & target_trigrams)
    return shared / max(len(source_trigrams), len(target_trigrams))
