from __future__ import annotations
import hashlib
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from algorithms.text_tools import format_tag

LIBRARY_TAG_PREFIX = "library:"

BODYWEIGHT_KEYWORDS = {"body weight", "bodyweight", "no equipment"}
DISTANCE_KEYWORDS = ("run", "row", "bike", "cycle", "walk", "ski", "sprint")


class _CatalogModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class CatalogEntry(_CatalogModel):
    """One bundled library exercise as produced by the catalog build step."""

    id: str
    name: str
    normalized_name: str
    hero_asset: Optional[str] = None
    media_assets: tuple[str, ...] = ()
    instructions: tuple[str, ...] = ()
    tips: tuple[str, ...] = ()
    body_parts: tuple[str, ...] = ()
    target_muscles: tuple[str, ...] = ()
    secondary_muscles: tuple[str, ...] = ()
    equipments: tuple[str, ...] = ()
    force: Optional[str] = None
    mechanic: Optional[str] = None
    difficulty: Optional[str] = None
    category: Optional[str] = None
    alias: tuple[str, ...] = ()
    search_terms: tuple[str, ...] = ()
    checksum: str = ""

    @field_validator("normalized_name")
    @classmethod
    def _normalized_name_present(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("normalizedName must not be blank")
        return value

    @property
    def display_name(self) -> str:
        return display_name(self.name)

    @property
    def library_tag(self) -> str:
        return f"{LIBRARY_TAG_PREFIX}{self.id}"

    def matches_asset(self, path: str) -> bool:
        if any(asset.endswith(path) for asset in self.media_assets):
            return True
        return self.hero_asset is not None and self.hero_asset.endswith(path)


class CatalogMetadata(_CatalogModel):
    count: int
    body_parts: tuple[str, ...] = ()
    equipments: tuple[str, ...] = ()
    target_muscles: tuple[str, ...] = ()
    secondary_muscles: tuple[str, ...] = ()

    @classmethod
    def from_entries(cls, entries: Iterable[CatalogEntry]) -> "CatalogMetadata":
        items = list(entries)

        def collect(field: str) -> tuple[str, ...]:
            return tuple(sorted({v for e in items for v in getattr(e, field)}))

        return cls(
            count=len(items),
            body_parts=collect("body_parts"),
            equipments=collect("equipments"),
            target_muscles=collect("target_muscles"),
            secondary_muscles=collect("secondary_muscles"),
        )


class Catalog(_CatalogModel):
    """Snapshot of the whole library plus the facet values offered for filtering."""

    entries: tuple[CatalogEntry, ...]
    metadata: CatalogMetadata
    body_parts: tuple[str, ...] = ()
    equipments: tuple[str, ...] = ()
    muscles: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _unique_ids(self) -> "Catalog":
        seen: set[str] = set()
        for entry in self.entries:
            if entry.id in seen:
                raise ValueError(f"duplicate exercise id {entry.id}")
            seen.add(entry.id)
        return self

    def get(self, exercise_id: str) -> Optional[CatalogEntry]:
        for entry in self.entries:
            if entry.id == exercise_id:
                return entry
        return None


def display_name(name: str) -> str:
    return format_tag(name)


def instructions_checksum(instructions: Iterable[str]) -> str:
    """Return the hex SHA-256 of the instructions joined by ``|``."""
    return hashlib.sha256("|".join(instructions).encode("utf-8")).hexdigest()


def _capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def _section(title: str, lines: Iterable[str]) -> str:
    body = [f"• {line.strip()}" for line in lines if line.strip()]
    return "\n".join([title, *body])


def to_exercise_record(entry: CatalogEntry) -> dict:
    """Map a library entry to the column values of a user exercise."""
    equipments = [e.strip() for e in entry.equipments if e.strip()]
    primary = [m.strip() for m in entry.target_muscles if m.strip()]
    secondary = [m.strip() for m in entry.secondary_muscles if m.strip()]
    lowered_equipment = [e.lower() for e in equipments]
    is_bodyweight = not lowered_equipment or all(
        e in BODYWEIGHT_KEYWORDS for e in lowered_equipment
    )
    likely_distance = any(
        keyword in muscle.lower() for muscle in primary for keyword in DISTANCE_KEYWORDS
    )

    sections: list[str] = []
    if entry.instructions:
        sections.append(_section("Instructions", entry.instructions))
    if entry.tips:
        sections.append(_section("Tips", entry.tips))
    details: list[str] = []
    if equipments:
        details.append(f"Equipment: {', '.join(equipments)}")
    if primary:
        details.append(f"Primary muscles: {', '.join(primary)}")
    if secondary:
        details.append(f"Secondary muscles: {', '.join(secondary)}")
    for label, value in (
        ("Force", entry.force),
        ("Mechanic", entry.mechanic),
        ("Difficulty", entry.difficulty),
    ):
        if value and value.strip():
            details.append(f"{label}: {_capitalize_first(value)}")
    if details:
        sections.append("\n".join(details))

    return {
        "name": entry.name.strip(),
        "notes": "\n\n".join(sections).strip(),
        "log_reps": True,
        "log_weight": not is_bodyweight,
        "log_time": False,
        "log_distance": likely_distance,
        "hidden": False,
        "is_custom": False,
        "library_exercise_id": entry.id,
        "tags": entry.library_tag,
    }
