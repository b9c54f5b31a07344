"""
codex/models.py -- Pydantic v2 models shared by the linking engine.

Every linkable record, whatever collection it came from, is normalized into
an :class:`EntityRecord` at ingestion time so that ranking and rendering
never branch on which field a collection uses for its display name.

Usage::

    from codex.models import EntityCategory, EntityRecord, ReferenceNode

    rec = EntityRecord(id=1, label="Aragorn", category=EntityCategory.CHARACTER)
    node = ReferenceNode.from_record(rec)
    command = node.click()
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityCategory(str, Enum):
    """Linkable entity categories.  Values are the wire/markup strings."""

    CHARACTER = "character"
    LOCATION = "location"
    FACTION = "faction"
    WORLD_INFO = "worldInfo"
    QUEST = "quest"
    EQUIPMENT = "equipment"


# Tie-break order used by the ranker
CATEGORY_PRIORITY: dict[EntityCategory, int] = {
    EntityCategory.CHARACTER: 0,
    EntityCategory.LOCATION: 1,
    EntityCategory.FACTION: 2,
    EntityCategory.EQUIPMENT: 3,
    EntityCategory.WORLD_INFO: 4,
    EntityCategory.QUEST: 5,
}

# Snapshot iteration order (fetch order, equipment derived last)
CATEGORY_ORDER: tuple[EntityCategory, ...] = (
    EntityCategory.CHARACTER,
    EntityCategory.LOCATION,
    EntityCategory.FACTION,
    EntityCategory.WORLD_INFO,
    EntityCategory.QUEST,
    EntityCategory.EQUIPMENT,
)


def _coerce_id(value: Any) -> Any:
    """Normalize numeric ids to strings; leave everything else to pydantic."""
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class EntityRecord(BaseModel):
    """A normalized, linkable candidate.

    ``secondary_owner_id`` is populated only for equipment, where it holds the
    id of the character that carries the item.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    category: EntityCategory
    secondary_owner_id: Optional[str] = None
    type_label: str = ""

    @field_validator("id", "secondary_owner_id", mode="before")
    @classmethod
    def _normalize_ids(cls, value: Any) -> Any:
        return _coerce_id(value)


class EntitySnapshot(BaseModel):
    """Immutable category -> records mapping produced by one refresh cycle.

    ``failed`` lists the source collections that could not be fetched during
    the refresh that produced this snapshot.
    """

    model_config = ConfigDict(frozen=True)

    collections: dict[EntityCategory, tuple[EntityRecord, ...]] = Field(default_factory=dict)
    failed: tuple[str, ...] = ()

    @classmethod
    def empty(cls) -> EntitySnapshot:
        return cls(collections={category: () for category in CATEGORY_ORDER})

    def records(self, category: EntityCategory) -> tuple[EntityRecord, ...]:
        return self.collections.get(category, ())

    def iter_records(self):
        """Yield every record in category order, preserving per-category order."""
        for category in CATEGORY_ORDER:
            yield from self.collections.get(category, ())

    @property
    def total(self) -> int:
        return sum(len(records) for records in self.collections.values())


class NavigationCommand(BaseModel):
    """What a click on a reference node asks the host to open."""

    model_config = ConfigDict(frozen=True)

    id: str
    category: str
    secondary_owner_id: Optional[str] = None


class NavigationTarget(BaseModel):
    """A resolved route plus the payload the destination view auto-opens."""

    model_config = ConfigDict(frozen=True)

    route: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ReferenceNode(BaseModel):
    """Atomic, immutable inline cross-reference embedded in a document.

    ``category`` is kept as a plain string so that nodes parsed from markup
    written by a newer client (with a category this build does not know)
    still round-trip; the navigation dispatcher ignores such nodes.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    category: str
    secondary_owner_id: Optional[str] = None

    @field_validator("id", "secondary_owner_id", mode="before")
    @classmethod
    def _normalize_ids(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("category", mode="before")
    @classmethod
    def _category_value(cls, value: Any) -> Any:
        if isinstance(value, EntityCategory):
            return value.value
        return value

    @classmethod
    def from_record(cls, record: EntityRecord) -> ReferenceNode:
        return cls(
            id=record.id,
            label=record.label,
            category=record.category,
            secondary_owner_id=record.secondary_owner_id,
        )

    @property
    def display_text(self) -> str:
        return f"[[{self.label or 'Link'}]]"

    def click(self) -> NavigationCommand:
        """Return the navigation command for this node.  Never mutates."""
        return NavigationCommand(
            id=self.id,
            category=self.category,
            secondary_owner_id=self.secondary_owner_id,
        )
