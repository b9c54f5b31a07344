"""
Tests for codex/suggestions.py -- session lifecycle, keyboard handling and commit.
"""

from unittest.mock import MagicMock

import pytest

from codex.document import ReferenceDocument
from codex.models import EntityCategory, EntitySnapshot, ReferenceNode
from codex.suggestions import (
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESCAPE,
    KEY_UP,
    SuggestionController,
)
from codex.trigger import OBJECT_REPLACEMENT, TriggerTransition


@pytest.fixture
def snapshot(make_snapshot):
    return make_snapshot(
        ("character", "Aragorn"),
        ("location", "Arnor"),
        ("location", "Bree"),
        ("quest", "Arrive at Bree"),
    )


@pytest.fixture
def setup(snapshot):
    """Return (document, controller, views) with a view factory recording views."""
    doc = ReferenceDocument("Today we ")
    views = []

    def factory():
        view = MagicMock()
        views.append(view)
        return view

    controller = SuggestionController(lambda: snapshot, doc, view_factory=factory)
    doc.add_listener(controller.on_edit)
    return doc, controller, views


# ------------------------------------------------------------------
# Session lifecycle
# ------------------------------------------------------------------


class TestSessionLifecycle:
    def test_trigger_opens_session_and_view(self, setup):
        doc, controller, views = setup
        doc.type_text("[[")
        assert controller.is_open
        assert controller.session.trigger_start == 11
        assert len(views) == 1
        views[0].show_candidates.assert_called()

    def test_show_all_on_open(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[")
        assert [r.label for r in controller.session.candidates] == [
            "Aragorn", "Bree", "Arnor", "Arrive at Bree",
        ]
        assert controller.session.selected_index == 0

    def test_typing_reranks(self, setup):
        doc, controller, views = setup
        doc.type_text("[[ar")
        assert controller.session.query == "ar"
        assert [r.label for r in controller.session.candidates] == ["Aragorn", "Arnor", "Arrive at Bree"]
        candidates, selected, caret = views[0].show_candidates.call_args[0]
        assert [r.label for r in candidates] == ["Aragorn", "Arnor", "Arrive at Bree"]
        assert selected == 0
        assert caret == doc.caret_rect()

    def test_no_matches_gives_empty_list(self, setup):
        doc, controller, views = setup
        doc.type_text("[[zz")
        assert controller.is_open
        assert controller.session.candidates == []
        assert controller.session.selected_index is None
        views[0].show_candidates.assert_called_with([], None, doc.caret_rect())

    def test_range_break_closes_view(self, setup):
        doc, controller, views = setup
        doc.type_text("[[ar\n")
        assert not controller.is_open
        views[0].close.assert_called_once()
        assert controller.view is None

    def test_new_session_gets_new_view(self, setup):
        doc, controller, views = setup
        doc.type_text("[[a\n[[b")
        assert len(views) == 2
        views[0].close.assert_called_once()
        views[1].close.assert_not_called()

    def test_headless_controller(self, snapshot):
        doc = ReferenceDocument()
        controller = SuggestionController(lambda: snapshot, doc)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[Bre")
        assert controller.view is None
        assert controller.session.selected.label == "Bree"

    def test_on_edit_returns_transition(self, snapshot):
        doc = ReferenceDocument()
        controller = SuggestionController(lambda: snapshot, doc)
        transitions = []
        doc.add_listener(lambda e: transitions.append(controller.on_edit(e)))
        doc.type_text("[[")
        assert transitions == [TriggerTransition.NONE, TriggerTransition.OPENED]


# ------------------------------------------------------------------
# Live snapshot
# ------------------------------------------------------------------


class TestLiveSnapshot:
    def test_provider_called_on_every_ranking(self, snapshot):
        doc = ReferenceDocument()
        provider = MagicMock(return_value=snapshot)
        controller = SuggestionController(provider, doc)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[ar")
        assert provider.call_count == 3

    def test_replaced_snapshot_is_used_without_reconstruction(self, make_snapshot):
        holder = {"snap": EntitySnapshot.empty()}
        doc = ReferenceDocument()
        controller = SuggestionController(lambda: holder["snap"], doc)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[")
        assert controller.session.candidates == []

        holder["snap"] = make_snapshot(("faction", "Rangers"))
        doc.type_text("r")
        assert [r.label for r in controller.session.candidates] == ["Rangers"]

    def test_refresh_candidates_after_swap(self, make_snapshot):
        holder = {"snap": EntitySnapshot.empty()}
        doc = ReferenceDocument()
        controller = SuggestionController(lambda: holder["snap"], doc)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[")
        holder["snap"] = make_snapshot(("quest", "Q"))
        controller.refresh_candidates()
        assert [r.label for r in controller.session.candidates] == ["Q"]


# ------------------------------------------------------------------
# Keyboard
# ------------------------------------------------------------------


class TestKeyboard:
    def test_keys_ignored_without_session(self, setup):
        _, controller, _ = setup
        for key in (KEY_UP, KEY_DOWN, KEY_ENTER, KEY_ESCAPE):
            assert controller.handle_key(key) is False

    def test_arrow_keys_wrap_around(self, setup):
        doc, controller, views = setup
        doc.type_text("[[ar")
        assert controller.handle_key(KEY_UP) is True
        assert controller.session.selected_index == 2
        controller.handle_key(KEY_DOWN)
        assert controller.session.selected_index == 0
        controller.handle_key(KEY_DOWN)
        assert controller.session.selected_index == 1
        views[0].set_selected.assert_called_with(1)

    def test_down_wraps_from_last_to_first(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[ar")
        for _ in range(3):
            controller.handle_key(KEY_DOWN)
        assert controller.session.selected_index == 0

    def test_other_keys_not_consumed(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[ar")
        assert controller.handle_key("Tab") is False

    def test_arrows_on_empty_list_are_consumed(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[zz")
        assert controller.handle_key(KEY_DOWN) is True
        assert controller.session.selected_index is None

    def test_enter_on_empty_list_inserts_nothing(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[zz")
        assert controller.handle_key(KEY_ENTER) is True
        assert doc.nodes() == []
        assert controller.is_open

    def test_reranking_resets_selection(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[a")
        controller.handle_key(KEY_DOWN)
        doc.type_text("r")
        assert controller.session.selected_index == 0

    def test_escape_leaves_typed_text(self, snapshot):
        doc = ReferenceDocument("Ask Tom ")
        controller = SuggestionController(lambda: snapshot, doc)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[agor")
        assert controller.session.trigger_start == 10

        assert controller.handle_key(KEY_ESCAPE) is True
        assert not controller.is_open
        assert doc.plain_text == "Ask Tom [[agor"

    def test_typing_after_escape_does_not_reopen(self, setup):
        doc, controller, views = setup
        doc.type_text("[[ar")
        controller.handle_key(KEY_ESCAPE)
        doc.type_text("agorn")
        assert not controller.is_open
        assert len(views) == 1


# ------------------------------------------------------------------
# Commit
# ------------------------------------------------------------------


class TestCommit:
    def test_commit_replaces_trigger_and_query(self, snapshot):
        doc = ReferenceDocument("Ride to ")
        controller = SuggestionController(lambda: snapshot, doc)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[Ar")
        assert controller.session.trigger_start == 10

        controller.handle_key(KEY_DOWN)
        assert controller.session.selected.label == "Arnor"
        assert controller.handle_key(KEY_ENTER) is True

        node = ReferenceNode(id=2, label="Arnor", category="location")
        assert doc.nodes() == [(8, node)]
        assert doc.plain_text == f"Ride to {OBJECT_REPLACEMENT} "
        assert doc.cursor == 10
        assert not controller.is_open

    def test_commit_closes_view_and_calls_back(self, snapshot):
        doc = ReferenceDocument()
        view = MagicMock()
        on_commit = MagicMock()
        controller = SuggestionController(lambda: snapshot, doc, view_factory=lambda: view, on_commit=on_commit)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[bree")
        node = controller.commit()
        assert node.label == "Bree"
        view.close.assert_called_once()
        on_commit.assert_called_once_with(node)

    def test_commit_by_index(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[ar")
        node = controller.commit(2)
        assert node.label == "Arrive at Bree"
        assert node.category == EntityCategory.QUEST.value

    def test_commit_out_of_range_is_ignored(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[ar")
        assert controller.commit(7) is None
        assert controller.is_open

    def test_commit_without_session(self, setup):
        _, controller, _ = setup
        assert controller.commit() is None

    def test_commit_carries_equipment_owner(self, make_snapshot):
        snap = make_snapshot(("equipment", "Longsword"))
        doc = ReferenceDocument()
        controller = SuggestionController(lambda: snap, doc)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[long")
        node = controller.commit()
        assert node.secondary_owner_id == "99"
        assert doc.nodes()[0][1].secondary_owner_id == "99"

    def test_typing_after_commit_does_not_reopen(self, setup):
        doc, controller, views = setup
        doc.type_text("[[ar")
        controller.commit()
        doc.type_text("and ")
        assert not controller.is_open
        assert len(views) == 1

    def test_can_link_again_after_commit(self, setup):
        doc, controller, _ = setup
        doc.type_text("[[ar")
        controller.commit()
        doc.type_text("and [[bree")
        controller.commit()
        assert [n.label for _, n in doc.nodes()] == ["Aragorn", "Bree"]


class TestDispose:
    def test_dispose_closes_view(self, setup):
        doc, controller, views = setup
        doc.type_text("[[ar")
        controller.dispose()
        views[0].close.assert_called_once()
        assert not controller.is_open

    def test_events_ignored_after_dispose(self, setup):
        doc, controller, views = setup
        controller.dispose()
        doc.type_text("[[ar")
        assert not controller.is_open
        assert views == []

    def test_view_close_failure_is_contained(self, snapshot):
        doc = ReferenceDocument()
        view = MagicMock()
        view.close.side_effect = RuntimeError("already deleted")
        controller = SuggestionController(lambda: snapshot, doc, view_factory=lambda: view)
        doc.add_listener(controller.on_edit)
        doc.type_text("[[a")
        controller.close()
        assert controller.view is None
