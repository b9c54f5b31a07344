"""
codex/suggestions.py -- Suggestion session state, keyboard handling and commit.

The controller owns the open suggestion session.  It listens to edit events
from the document, lets the trigger detector decide whether a session is
open, re-ranks candidates against the *current* entity snapshot on every
change, and turns Enter into a committed reference node.

Views are created per session through ``view_factory`` and closed when the
session ends, whatever the reason (commit, Escape, range break, widget
teardown), so no floating list outlives its session.

Usage::

    controller = SuggestionController(index.current, document, view_factory=make_overlay)
    document.add_listener(controller.on_edit)
    ...
    if controller.handle_key("ArrowDown"):
        event.accept()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from codex.document import DocumentEditor
from codex.models import EntityRecord, EntitySnapshot, ReferenceNode
from codex.ranker import DEFAULT_LIMIT, rank_candidates
from codex.trigger import EditEvent, TriggerDetector, TriggerTransition

logger = logging.getLogger(__name__)

KEY_UP = "ArrowUp"
KEY_DOWN = "ArrowDown"
KEY_ENTER = "Enter"
KEY_ESCAPE = "Escape"

Ranker = Callable[[str, EntitySnapshot, int], list[EntityRecord]]


@dataclass
class SuggestionSession:
    """Ephemeral state of one in-progress cross-reference."""

    trigger_start: int
    query: str = ""
    candidates: list[EntityRecord] = field(default_factory=list)
    selected_index: Optional[int] = None
    open: bool = True

    @property
    def selected(self) -> EntityRecord | None:
        if self.selected_index is None:
            return None
        return self.candidates[self.selected_index]


class SuggestionView(Protocol):
    """A rendered candidate list anchored at the caret."""

    def show_candidates(self, candidates: list[EntityRecord], selected_index: Optional[int], caret_rect: Any) -> None: ...

    def set_selected(self, index: Optional[int]) -> None: ...

    def close(self) -> None: ...


class SuggestionController:
    """Drive a suggestion session from edit events and key presses.

    Parameters
    ----------
    snapshot_provider : Callable[[], EntitySnapshot]
        Returns the current snapshot.  Called on every ranking, never cached.
    document : DocumentEditor
        The document being edited.
    view_factory : Callable[[], SuggestionView] | None
        Creates the overlay for a new session.  ``None`` runs headless.
    ranker : Callable
        Ranking function, ``rank_candidates`` by default.
    limit : int
        Maximum number of candidates shown.
    trigger_char : str
        Character that, typed twice, opens a session.
    on_commit : Callable[[ReferenceNode], None] | None
        Called after a node has been inserted.
    """

    def __init__(
        self,
        snapshot_provider: Callable[[], EntitySnapshot],
        document: DocumentEditor,
        view_factory: Callable[[], SuggestionView] | None = None,
        *,
        ranker: Ranker = rank_candidates,
        limit: int = DEFAULT_LIMIT,
        trigger_char: str = "[",
        on_commit: Callable[[ReferenceNode], None] | None = None,
    ):
        self._snapshot_provider = snapshot_provider
        self._document = document
        self._view_factory = view_factory
        self._ranker = ranker
        self._limit = limit
        self._on_commit = on_commit
        self._detector = TriggerDetector(trigger_char)
        self._session: SuggestionSession | None = None
        self._view: SuggestionView | None = None
        self._disposed = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def session(self) -> SuggestionSession | None:
        return self._session

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def detector(self) -> TriggerDetector:
        return self._detector

    @property
    def view(self) -> SuggestionView | None:
        return self._view

    # ------------------------------------------------------------------
    # Edit events
    # ------------------------------------------------------------------

    def on_edit(self, event: EditEvent) -> TriggerTransition:
        """Feed one document edit event through the trigger detector."""
        if self._disposed:
            return TriggerTransition.NONE

        transition = self._detector.feed(event, self._document)
        if transition is TriggerTransition.OPENED:
            self._session = SuggestionSession(trigger_start=self._detector.trigger_start)
            if self._view_factory is not None:
                self._view = self._view_factory()
            self._update_candidates()
        elif transition is TriggerTransition.UPDATED and self._session is not None:
            self._session.query = self._detector.query
            self._update_candidates()
        elif transition is TriggerTransition.CLOSED:
            self._teardown()
        return transition

    def refresh_candidates(self) -> None:
        """Re-rank the open session, e.g. after the snapshot was replaced."""
        if self._session is not None:
            self._update_candidates()

    def _update_candidates(self) -> None:
        session = self._session
        snapshot = self._snapshot_provider()
        session.candidates = list(self._ranker(session.query, snapshot, self._limit))
        session.selected_index = 0 if session.candidates else None
        if self._view is not None:
            self._view.show_candidates(session.candidates, session.selected_index, self._document.caret_rect())

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------

    def handle_key(self, key: str) -> bool:
        """Handle a navigation key.  Returns ``True`` if the key was consumed.

        Keys are only captured while a session is open.
        """
        if self._session is None:
            return False
        if key == KEY_DOWN:
            self.move_selection(1)
            return True
        if key == KEY_UP:
            self.move_selection(-1)
            return True
        if key == KEY_ENTER:
            self.commit()
            return True
        if key == KEY_ESCAPE:
            self.close()
            return True
        return False

    def move_selection(self, delta: int) -> None:
        session = self._session
        if session is None or not session.candidates:
            return
        count = len(session.candidates)
        session.selected_index = (session.selected_index + delta) % count
        if self._view is not None:
            self._view.set_selected(session.selected_index)

    # ------------------------------------------------------------------
    # Commit / close
    # ------------------------------------------------------------------

    def commit(self, index: int | None = None) -> ReferenceNode | None:
        """Replace the trigger and query with a node for the chosen candidate.

        Uses the selected candidate unless *index* is given.  Returns the
        inserted node, or ``None`` if there was nothing to commit.
        """
        session = self._session
        if session is None:
            return None
        if index is None:
            index = session.selected_index
        if index is None or not 0 <= index < len(session.candidates):
            return None

        record = session.candidates[index]
        node = ReferenceNode.from_record(record)
        start = self._detector.replace_start
        end = self._document.cursor

        # Idle before mutating so our own edit events are not mistaken for typing
        self._detector.close()
        self._teardown()
        self._document.replace_with_reference(start, end, node, " ")
        logger.info("Linked %s '%s' (%s)", node.category, node.label, node.id)

        if self._on_commit is not None:
            self._on_commit(node)
        return node

    def close(self) -> None:
        """Close the session without committing; typed text stays in place."""
        self._detector.close()
        self._teardown()

    def dispose(self) -> None:
        """Close and stop reacting to further events (host is going away)."""
        self.close()
        self._disposed = True

    def _teardown(self) -> None:
        if self._session is not None:
            self._session.open = False
        self._session = None
        view, self._view = self._view, None
        if view is not None:
            try:
                view.close()
            except Exception:
                logger.exception("Failed to close suggestion view")
