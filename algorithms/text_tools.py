import re
import unicodedata
from typing import Iterable, Optional

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9 ]")


def normalize_name(value: str) -> str:
    """Return the lowercase, ASCII-folded, single-spaced form of ``value``."""
    folded = (
        unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    )
    text = folded.lower().replace("&", " and ").replace("/", " ")
    text = _NON_ALNUM.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def search_terms_for(
    name: str,
    alias: Iterable[str] = (),
    body_parts: Iterable[str] = (),
    target_muscles: Iterable[str] = (),
    secondary_muscles: Iterable[str] = (),
    equipments: Iterable[str] = (),
    force: Optional[str] = None,
    mechanic: Optional[str] = None,
) -> list[str]:
    """Return distinct search tokens for an exercise in first-seen order."""
    normalized = normalize_name(name)
    sources: list[str] = [normalized]
    for group in (alias, body_parts, target_muscles, secondary_muscles, equipments):
        sources.extend(normalize_name(v) for v in group)
    for value in (force, mechanic):
        if value:
            sources.append(normalize_name(value))
    terms: dict[str, None] = {}
    for text in sources:
        for token in text.split(" "):
            if token:
                terms.setdefault(token, None)
    compact = normalized.replace(" ", "")
    if compact:
        terms.setdefault(compact, None)
    return list(terms)


def _format_segment(segment: str) -> str:
    if any(ch.isupper() for ch in segment):
        return segment
    lowered = segment.lower()
    return lowered[:1].upper() + lowered[1:]


def format_tag(value: str) -> str:
    """Title-case each word while keeping hyphen segments that carry capitals.

    ``"barbell t-bar"`` becomes ``"Barbell T-Bar"`` and ``"EZ-bar curl"``
    becomes ``"EZ-Bar Curl"``.
    """
    if not value.strip():
        return value
    words = _WHITESPACE.split(value.strip())
    return " ".join(
        "-".join(_format_segment(part) for part in word.split("-")) for word in words
    )

