"""
Shared pytest fixtures for the Tabletop Codex test suite.

Provides:
    - sample_campaign: raw campaign collections as the REST API returns them
    - fake_source: an entity source serving sample_campaign from memory
    - export_file: sample_campaign written to a campaign export JSON file
    - make_snapshot: factory building an EntitySnapshot from (category, label) pairs
"""

import json
import os
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Ensure codex/ and codex_app/ are importable regardless of where pytest is invoked
# ---------------------------------------------------------------------------

# Run Qt headless unless the caller chose a platform
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

PROJECT_ROOT = Path(__file__).resolve().parent.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from codex.errors import EntitySourceError  # noqa: E402
from codex.models import CATEGORY_ORDER, EntityCategory, EntityRecord, EntitySnapshot  # noqa: E402


# ---------------------------------------------------------------------------
# Fake sources
# ---------------------------------------------------------------------------

class FakeEntitySource:
    """In-memory entity source.  Collections named in *failing* raise."""

    def __init__(self, campaign, failing=()):
        self.campaign = campaign
        self.failing = set(failing)
        self.calls = []

    def _get(self, collection, key):
        self.calls.append(collection)
        if collection in self.failing:
            raise EntitySourceError(collection, "HTTP 500: boom")
        return list(self.campaign.get(key, []))

    def fetch_characters(self, campaign_id, kind):
        return [c for c in self._get(f"characters:{kind}", "characters") if c.get("type") == kind]

    def fetch_locations(self, campaign_id):
        return self._get("locations", "locations")

    def fetch_factions(self, campaign_id):
        return self._get("factions", "factions")

    def fetch_world_info(self, campaign_id):
        return self._get("world-info", "world_info")

    def fetch_quests(self, campaign_id):
        return self._get("quests", "quests")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_campaign():
    """Return raw collections for a small campaign.

    Characters carry sheets in both the decoded and the raw-JSON-string form,
    and with structured and legacy equipment lists.
    """
    return {
        "characters": [
            {
                "id": 1,
                "name": "Aragorn",
                "type": "player",
                "character_sheet": {"equipment": [{"name": "Anduril"}, {"name": "Elven Cloak"}]},
            },
            {
                "id": 3,
                "name": "Barliman",
                "type": "npc",
                "character_sheet": json.dumps({"equipment": ["Ledger", "Elven Cloak"]}),
            },
            {
                "id": 4,
                "name": "Saruman",
                "type": "antagonist",
                "character_sheet": "{not json",
            },
        ],
        "locations": [
            {"id": 2, "name": "Arnor"},
            {"id": 5, "name": "Bree"},
        ],
        "factions": [
            {"id": 6, "name": "Rangers of the North"},
        ],
        "world_info": [
            {"id": 7, "title": "Ages of Arda"},
            {"id": 8, "title": "   "},
        ],
        "quests": [
            {"id": 9, "title": "Reach Rivendell"},
        ],
    }


@pytest.fixture
def fake_source(sample_campaign):
    return FakeEntitySource(sample_campaign)


@pytest.fixture
def failing_source_factory(sample_campaign):
    """Return a factory: ``make(*collections)`` builds a source failing those."""
    def make(*collections):
        return FakeEntitySource(sample_campaign, failing=collections)
    return make


@pytest.fixture
def export_file(tmp_path, sample_campaign):
    path = tmp_path / "campaign_export.json"
    path.write_text(json.dumps(sample_campaign), encoding="utf-8")
    return path


@pytest.fixture
def make_snapshot():
    """Return a factory building a snapshot from ``(category, label)`` pairs.

    Ids are assigned sequentially from 1 in the order given.
    """
    def make(*entries):
        collections = {category: [] for category in CATEGORY_ORDER}
        for idx, (category, label) in enumerate(entries, start=1):
            category = EntityCategory(category)
            owner = "99" if category is EntityCategory.EQUIPMENT else None
            collections[category].append(
                EntityRecord(id=idx, label=label, category=category, secondary_owner_id=owner)
            )
        return EntitySnapshot(collections={c: tuple(r) for c, r in collections.items()})
    return make
