"""
codex/entity_index.py -- In-memory index of every linkable entity.

Builds an :class:`~codex.models.EntitySnapshot` from an entity source:
characters (fetched three ways: player, npc, antagonist), locations,
factions, world-info entries and quests, plus a derived equipment
collection scanned out of the character sheets.

Each collection is fetched independently.  A failing fetch is logged and
replaced with an empty collection; it never aborts its siblings and never
fails the refresh as a whole.

The index is the only writer of the snapshot.  The new snapshot is built
completely before being swapped in with a single assignment under a lock,
so readers never observe a mix of old and new collections.  Readers must
call :meth:`EntityIndex.current` (or pass the bound method around as a
provider) on every use instead of holding on to a snapshot object.

Usage::

    from codex.entity_index import EntityIndex
    from codex.sources import HttpEntitySource

    index = EntityIndex(HttpEntitySource("http://localhost:3000", token))
    index.refresh("42")
    snapshot = index.current()
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from codex.models import (
    CATEGORY_ORDER,
    EntityCategory,
    EntityRecord,
    EntitySnapshot,
)
from codex.sources import CHARACTER_KINDS, EntitySource
from codex.utils import decode_json_payload

logger = logging.getLogger(__name__)

_TYPE_LABELS = {
    "player": "Player Character",
    "npc": "NPC",
    "antagonist": "Antagonist",
    EntityCategory.LOCATION: "Location",
    EntityCategory.FACTION: "Faction",
    EntityCategory.WORLD_INFO: "World Info",
    EntityCategory.QUEST: "Quest",
}


# ------------------------------------------------------------------
# Normalization
# ------------------------------------------------------------------

def record_label(raw: dict[str, Any]) -> str:
    """Return the display label of a raw record (``name`` or ``title``)."""
    for key in ("name", "title"):
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def normalize_records(
    raws: Iterable[Any],
    category: EntityCategory,
    type_label: str = "",
) -> list[EntityRecord]:
    """Convert raw API records into :class:`EntityRecord` objects.

    Records without an id or without a usable label are dropped, as are
    records whose id is not a string or an integer.
    """
    records: list[EntityRecord] = []
    for raw in raws:
        if not isinstance(raw, dict):
            continue
        entity_id = raw.get("id")
        label = record_label(raw)
        if entity_id is None or entity_id == "" or not label:
            logger.debug("Skipping %s record without id/label: %r", category.value, raw.get("id"))
            continue
        try:
            records.append(
                EntityRecord(id=entity_id, label=label, category=category, type_label=type_label)
            )
        except ValidationError as e:
            logger.warning("Skipping malformed %s record %r: %s", category.value, entity_id, e.errors()[0]["msg"])
    return records


def _equipment_names(sheet: Any) -> list[str]:
    """Extract item names from a character sheet payload.

    Accepts the structured form (``[{"name": "Sword", ...}]``) and the legacy
    string form (``["Sword"]``).  Returns ``[]`` for anything unusable.
    """
    sheet = decode_json_payload(sheet)
    if sheet is None:
        return []
    equipment = sheet.get("equipment")
    if not isinstance(equipment, list):
        return []

    names: list[str] = []
    for item in equipment:
        if isinstance(item, str):
            name = item
        elif isinstance(item, dict) and isinstance(item.get("name"), str):
            name = item["name"]
        else:
            continue
        name = name.strip()
        if name:
            names.append(name)
    return names


def derive_equipment(characters: Iterable[dict[str, Any]]) -> list[EntityRecord]:
    """Build synthetic equipment records from character sheets.

    Every distinct item name (trimmed, case-sensitive) produces one record.
    The first character carrying a name owns it; later duplicates are dropped.
    Characters whose sheet cannot be parsed, or whose id is unusable, are
    skipped without affecting the others.
    """
    seen: set[str] = set()
    records: list[EntityRecord] = []

    for character in characters:
        if not isinstance(character, dict):
            continue
        owner_id = character.get("id")
        if owner_id is None or owner_id == "":
            continue
        try:
            names = _equipment_names(character.get("character_sheet"))
        except Exception:
            logger.debug("Skipping unparseable sheet for character %s", owner_id, exc_info=True)
            continue

        owner_label = record_label(character)
        type_label = f"Equipment ({owner_label})" if owner_label else "Equipment"
        try:
            owned = [
                EntityRecord(
                    id=f"{owner_id}:{name}",
                    label=name,
                    category=EntityCategory.EQUIPMENT,
                    secondary_owner_id=owner_id,
                    type_label=type_label,
                )
                for name in dict.fromkeys(names)
                if name not in seen
            ]
        except ValidationError as e:
            logger.warning("Skipping equipment of character %r: %s", owner_id, e.errors()[0]["msg"])
            continue
        seen.update(record.label for record in owned)
        records.extend(owned)
    return records


# ------------------------------------------------------------------
# Index
# ------------------------------------------------------------------

class EntityIndex:
    """Single-writer, multi-reader holder of the current entity snapshot.

    Parameters
    ----------
    source : EntitySource
        Where raw collections come from.
    """

    def __init__(self, source: EntitySource):
        self._source = source
        self._lock = threading.RLock()
        self._snapshot: EntitySnapshot = EntitySnapshot.empty()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current(self) -> EntitySnapshot:
        """Return the latest snapshot.  Call this on every use."""
        with self._lock:
            return self._snapshot

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, context_id: str) -> EntitySnapshot:
        """Fetch every collection for campaign *context_id* and swap the snapshot.

        Never raises for a failing collection; see :attr:`EntitySnapshot.failed`.
        """
        source = self._source
        context_id = str(context_id)
        failed: list[str] = []

        def fetch(name: str, fetcher: Callable[[], list]) -> list:
            try:
                result = fetcher()
            except Exception as e:
                logger.warning("Failed to fetch %s for campaign %s: %s", name, context_id, e)
                failed.append(name)
                return []
            if not isinstance(result, list):
                logger.warning("Source returned %s for %s; expected a list", type(result).__name__, name)
                failed.append(name)
                return []
            return result

        raw_characters: list[dict] = []
        characters: list[EntityRecord] = []
        for kind in CHARACTER_KINDS:
            raws = fetch(
                f"characters:{kind}",
                lambda kind=kind: source.fetch_characters(context_id, kind),
            )
            raw_characters.extend(r for r in raws if isinstance(r, dict))
            characters.extend(normalize_records(raws, EntityCategory.CHARACTER, _TYPE_LABELS[kind]))

        collections: dict[EntityCategory, tuple[EntityRecord, ...]] = {
            EntityCategory.CHARACTER: tuple(characters),
            EntityCategory.LOCATION: tuple(normalize_records(
                fetch("locations", lambda: source.fetch_locations(context_id)),
                EntityCategory.LOCATION, _TYPE_LABELS[EntityCategory.LOCATION],
            )),
            EntityCategory.FACTION: tuple(normalize_records(
                fetch("factions", lambda: source.fetch_factions(context_id)),
                EntityCategory.FACTION, _TYPE_LABELS[EntityCategory.FACTION],
            )),
            EntityCategory.WORLD_INFO: tuple(normalize_records(
                fetch("world-info", lambda: source.fetch_world_info(context_id)),
                EntityCategory.WORLD_INFO, _TYPE_LABELS[EntityCategory.WORLD_INFO],
            )),
            EntityCategory.QUEST: tuple(normalize_records(
                fetch("quests", lambda: source.fetch_quests(context_id)),
                EntityCategory.QUEST, _TYPE_LABELS[EntityCategory.QUEST],
            )),
            EntityCategory.EQUIPMENT: tuple(derive_equipment(raw_characters)),
        }

        snapshot = EntitySnapshot(
            collections={category: collections[category] for category in CATEGORY_ORDER},
            failed=tuple(failed),
        )
        self.replace(snapshot)
        logger.info(
            "Entity index refreshed for campaign %s: %d records (%d collections failed)",
            context_id, snapshot.total, len(failed),
        )
        return snapshot

    def replace(self, snapshot: EntitySnapshot) -> None:
        """Swap in *snapshot* atomically."""
        with self._lock:
            self._snapshot = snapshot
