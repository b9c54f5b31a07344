"""
Tests for codex/entity_index.py -- normalization, equipment derivation and refresh.
"""

import threading
from unittest.mock import MagicMock

import pytest

from codex.entity_index import (
    EntityIndex,
    derive_equipment,
    normalize_records,
    record_label,
)
from codex.models import EntityCategory, EntitySnapshot


# ------------------------------------------------------------------
# Normalization
# ------------------------------------------------------------------


class TestNormalization:
    def test_label_from_name_or_title(self):
        assert record_label({"name": "Aragorn"}) == "Aragorn"
        assert record_label({"title": "Reach Rivendell"}) == "Reach Rivendell"
        assert record_label({"name": "", "title": "Fallback"}) == "Fallback"
        assert record_label({"name": "  Bree  "}) == "Bree"
        assert record_label({}) == ""

    def test_records_without_id_or_label_dropped(self):
        raws = [
            {"id": 1, "name": "Kept"},
            {"name": "No id"},
            {"id": 2, "name": "   "},
            {"id": "", "name": "Empty id"},
            "not a dict",
        ]
        records = normalize_records(raws, EntityCategory.FACTION, "Faction")
        assert [r.label for r in records] == ["Kept"]
        assert records[0].type_label == "Faction"
        assert records[0].id == "1"

    def test_order_preserved(self):
        raws = [{"id": i, "title": f"Q{i}"} for i in range(5)]
        records = normalize_records(raws, EntityCategory.QUEST)
        assert [r.label for r in records] == ["Q0", "Q1", "Q2", "Q3", "Q4"]

    @pytest.mark.parametrize("bad_id", [3.5, [7], {"id": 1}, True])
    def test_unusable_id_skips_only_that_record(self, bad_id):
        raws = [{"id": 1, "name": "Before"}, {"id": bad_id, "name": "Odd"}, {"id": 2, "name": "After"}]
        records = normalize_records(raws, EntityCategory.LOCATION)
        assert [r.label for r in records] == ["Before", "After"]


# ------------------------------------------------------------------
# Equipment
# ------------------------------------------------------------------


class TestDeriveEquipment:
    def test_structured_and_legacy_lists(self, sample_campaign):
        records = derive_equipment(sample_campaign["characters"])
        assert [(r.label, r.secondary_owner_id) for r in records] == [
            ("Anduril", "1"),
            ("Elven Cloak", "1"),
            ("Ledger", "3"),
        ]

    def test_first_owner_wins_for_duplicate_names(self, sample_campaign):
        records = derive_equipment(sample_campaign["characters"])
        cloaks = [r for r in records if r.label == "Elven Cloak"]
        assert len(cloaks) == 1
        assert cloaks[0].secondary_owner_id == "1"

    def test_synthetic_id_and_type_label(self, sample_campaign):
        records = derive_equipment(sample_campaign["characters"])
        assert records[0].id == "1:Anduril"
        assert records[0].category is EntityCategory.EQUIPMENT
        assert records[0].type_label == "Equipment (Aragorn)"

    def test_names_are_trimmed_and_case_sensitive(self):
        chars = [
            {"id": 1, "name": "A", "character_sheet": {"equipment": [" Rope ", "rope", "", {"qty": 2}]}},
        ]
        assert [r.label for r in derive_equipment(chars)] == ["Rope", "rope"]

    def test_unusable_sheets_skipped(self):
        chars = [
            {"id": 1, "name": "A", "character_sheet": None},
            {"id": 2, "name": "B", "character_sheet": "[1, 2]"},
            {"id": 3, "name": "C", "character_sheet": {"equipment": "Sword"}},
            {"name": "No id", "character_sheet": {"equipment": ["Sword"]}},
        ]
        assert derive_equipment(chars) == []

    def test_repeated_name_on_one_sheet(self):
        chars = [{"id": 1, "name": "A", "character_sheet": {"equipment": ["Rope", "Rope"]}}]
        assert [r.id for r in derive_equipment(chars)] == ["1:Rope"]

    def test_bad_owner_id_does_not_stop_later_characters(self):
        chars = [
            {"id": {"nested": 1}, "name": "Broken", "character_sheet": {"equipment": ["Lantern"]}},
            {"id": 2, "name": "B", "character_sheet": {"equipment": ["Lantern", "Map"]}},
        ]
        records = derive_equipment(chars)
        assert [(r.label, r.secondary_owner_id) for r in records] == [("Lantern", "2"), ("Map", "2")]


# ------------------------------------------------------------------
# Refresh
# ------------------------------------------------------------------


class TestRefresh:
    def test_starts_empty(self, fake_source):
        index = EntityIndex(fake_source)
        assert index.current().total == 0

    def test_refresh_builds_every_collection(self, fake_source):
        index = EntityIndex(fake_source)
        snap = index.refresh("42")
        assert [r.label for r in snap.records(EntityCategory.CHARACTER)] == ["Aragorn", "Barliman", "Saruman"]
        assert [r.label for r in snap.records(EntityCategory.LOCATION)] == ["Arnor", "Bree"]
        assert [r.label for r in snap.records(EntityCategory.FACTION)] == ["Rangers of the North"]
        assert [r.label for r in snap.records(EntityCategory.WORLD_INFO)] == ["Ages of Arda"]
        assert [r.label for r in snap.records(EntityCategory.QUEST)] == ["Reach Rivendell"]
        assert len(snap.records(EntityCategory.EQUIPMENT)) == 3
        assert snap.total == 11
        assert snap.failed == ()

    def test_character_type_labels(self, fake_source):
        snap = EntityIndex(fake_source).refresh("42")
        labels = {r.label: r.type_label for r in snap.records(EntityCategory.CHARACTER)}
        assert labels == {"Aragorn": "Player Character", "Barliman": "NPC", "Saruman": "Antagonist"}

    def test_refresh_swaps_current(self, fake_source):
        index = EntityIndex(fake_source)
        before = index.current()
        snap = index.refresh(42)
        assert index.current() is snap
        assert index.current() is not before

    def test_failing_collection_is_isolated(self, failing_source_factory):
        index = EntityIndex(failing_source_factory("factions"))
        snap = index.refresh("42")
        assert snap.records(EntityCategory.FACTION) == ()
        assert snap.failed == ("factions",)
        assert len(snap.records(EntityCategory.LOCATION)) == 2

    def test_failing_character_kind_drops_its_equipment(self, failing_source_factory):
        snap = EntityIndex(failing_source_factory("characters:player")).refresh("42")
        assert [r.label for r in snap.records(EntityCategory.CHARACTER)] == ["Barliman", "Saruman"]
        assert [r.label for r in snap.records(EntityCategory.EQUIPMENT)] == ["Ledger", "Elven Cloak"]
        assert snap.records(EntityCategory.EQUIPMENT)[1].secondary_owner_id == "3"

    def test_every_collection_failing_yields_empty_snapshot(self, failing_source_factory):
        source = failing_source_factory(
            "characters:player", "characters:npc", "characters:antagonist",
            "locations", "factions", "world-info", "quests",
        )
        snap = EntityIndex(source).refresh("42")
        assert snap.total == 0
        assert len(snap.failed) == 7

    def test_non_list_result_counts_as_failure(self, fake_source):
        fake_source.fetch_quests = MagicMock(return_value={"quests": []})
        snap = EntityIndex(fake_source).refresh("42")
        assert snap.failed == ("quests",)

    def test_unexpected_exception_does_not_escape(self, fake_source):
        fake_source.fetch_locations = MagicMock(side_effect=RuntimeError("socket closed"))
        snap = EntityIndex(fake_source).refresh("42")
        assert "locations" in snap.failed
        assert snap.records(EntityCategory.LOCATION) == ()

    def test_malformed_id_skips_only_that_record(self, sample_campaign, fake_source):
        sample_campaign["quests"].append({"id": 3.5, "title": "Odd"})
        snap = EntityIndex(fake_source).refresh("42")
        assert snap.failed == ()
        assert [r.label for r in snap.records(EntityCategory.QUEST)] == ["Reach Rivendell"]
        assert len(snap.records(EntityCategory.LOCATION)) == 2
        assert snap.total == 11

    def test_malformed_character_id_skips_that_character(self, sample_campaign, fake_source):
        sample_campaign["characters"].append({
            "id": [7],
            "name": "Glitch",
            "type": "player",
            "character_sheet": {"equipment": ["Mirror Shard"]},
        })
        snap = EntityIndex(fake_source).refresh("42")
        labels = [r.label for r in snap.iter_records()]
        assert "Glitch" not in labels
        assert "Mirror Shard" not in labels
        assert "Aragorn" in labels
        assert snap.total == 11


class TestSnapshotSwap:
    def test_readers_see_whole_snapshots(self, make_snapshot):
        """Concurrent readers never observe a partially built snapshot."""
        index = EntityIndex(MagicMock())
        full = make_snapshot(("character", "A"), ("location", "B"))
        seen = []
        stop = threading.Event()

        def _read():
            while not stop.is_set():
                seen.append(index.current().total)

        reader = threading.Thread(target=_read)
        reader.start()
        for _ in range(200):
            index.replace(full)
            index.replace(EntitySnapshot.empty())
        stop.set()
        reader.join()
        assert set(seen) <= {0, 2}
