"""
codex/document.py -- Document engine contract and an in-memory implementation.

The linking engine does not own a rich-text engine; it talks to one through
:class:`DocumentEditor`.  :class:`ReferenceDocument` is a small, pure-Python
implementation of that contract.  It backs headless use (scripts, imports)
and the test suite; the desktop app uses the Qt implementation in
``codex_app/widgets/reference_editor.py``.

Position model: each character is one position, each reference node is one
position.  Reference nodes are atomic: deleting any part of a range that
touches a node removes the whole node, and no position falls inside one.

Usage::

    doc = ReferenceDocument("Meet ")
    doc.add_listener(controller.on_edit)
    doc.type_text("[[Ar")
"""

from __future__ import annotations

import logging
from typing import Callable, NamedTuple, Optional, Protocol, Union

from codex.markup import Segment, parse_segments, serialize_segments
from codex.models import ReferenceNode
from codex.trigger import OBJECT_REPLACEMENT, EditEvent

logger = logging.getLogger(__name__)

Unit = Union[str, ReferenceNode]


class CaretRect(NamedTuple):
    """Caret geometry in the editor's coordinate space."""

    x: int
    y: int
    width: int
    height: int


class DocumentEditor(Protocol):
    """What the suggestion controller needs from a document engine."""

    @property
    def cursor(self) -> int: ...

    def text_between(self, start: int, end: int) -> str: ...

    def __len__(self) -> int: ...

    def replace_with_reference(self, start: int, end: int, node: ReferenceNode, trailing: str = " ") -> int: ...

    def caret_rect(self) -> Optional[CaretRect]: ...


class ReferenceDocument:
    """Plain text with embedded atomic reference nodes and a caret.

    Every mutation is reported to listeners as an :class:`EditEvent` after
    it has been applied.

    Parameters
    ----------
    text : str
        Initial plain-text content.  The caret starts at the end.
    char_width, line_height : int
        Metrics used by :meth:`caret_rect` (monospace layout).
    """

    def __init__(self, text: str = "", char_width: int = 8, line_height: int = 16):
        self._units: list[Unit] = list(text)
        self._cursor = len(self._units)
        self._listeners: list[Callable[[EditEvent], None]] = []
        self._char_width = char_width
        self._line_height = line_height

    @classmethod
    def from_segments(cls, segments: list[Segment]) -> ReferenceDocument:
        doc = cls()
        for segment in segments:
            if isinstance(segment, ReferenceNode):
                doc._units.append(segment)
            else:
                doc._units.extend(segment)
        doc._cursor = len(doc._units)
        return doc

    @classmethod
    def from_markup(cls, markup: str) -> ReferenceDocument:
        return cls.from_segments(parse_segments(markup))

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[EditEvent], None]) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[EditEvent], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _emit(self, event: EditEvent) -> None:
        for callback in list(self._listeners):
            callback(event)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._units)

    @property
    def cursor(self) -> int:
        return self._cursor

    def text_between(self, start: int, end: int) -> str:
        start = max(0, start)
        end = min(len(self._units), end)
        return "".join(
            OBJECT_REPLACEMENT if isinstance(unit, ReferenceNode) else unit
            for unit in self._units[start:end]
        )

    @property
    def plain_text(self) -> str:
        return self.text_between(0, len(self._units))

    @property
    def display_text(self) -> str:
        """Text as a reader sees it, with nodes shown as ``[[label]]``."""
        return "".join(
            unit.display_text if isinstance(unit, ReferenceNode) else unit
            for unit in self._units
        )

    def unit_at(self, position: int) -> Unit | None:
        if 0 <= position < len(self._units):
            return self._units[position]
        return None

    def nodes(self) -> list[tuple[int, ReferenceNode]]:
        """Return ``(position, node)`` for every reference node."""
        return [
            (pos, unit) for pos, unit in enumerate(self._units)
            if isinstance(unit, ReferenceNode)
        ]

    def segments(self) -> list[Segment]:
        segments: list[Segment] = []
        run: list[str] = []
        for unit in self._units:
            if isinstance(unit, ReferenceNode):
                if run:
                    segments.append("".join(run))
                    run = []
                segments.append(unit)
            else:
                run.append(unit)
        if run:
            segments.append("".join(run))
        return segments

    def to_markup(self) -> str:
        return serialize_segments(self.segments())

    def caret_rect(self) -> CaretRect:
        before = self.text_between(0, self._cursor)
        line = before.count("\n")
        column = len(before) - (before.rfind("\n") + 1)
        return CaretRect(column * self._char_width, line * self._line_height, 1, self._line_height)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def move_cursor(self, position: int) -> None:
        self._cursor = max(0, min(len(self._units), position))
        self._emit(EditEvent.move(self._cursor))

    def insert_text(self, position: int, text: str) -> None:
        """Insert *text* at *position* as one edit and put the caret after it."""
        if not text:
            return
        position = max(0, min(len(self._units), position))
        self._units[position:position] = list(text)
        self._cursor = position + len(text)
        self._emit(EditEvent.insert(position, text, self._cursor))

    def type_text(self, text: str) -> None:
        """Type *text* at the caret one keystroke at a time."""
        for ch in text:
            self.insert_text(self._cursor, ch)

    def delete_range(self, start: int, end: int) -> None:
        start = max(0, start)
        end = min(len(self._units), end)
        if start >= end:
            return
        del self._units[start:end]
        if self._cursor > end:
            self._cursor -= end - start
        elif self._cursor > start:
            self._cursor = start
        self._emit(EditEvent.delete(start, end, self._cursor))

    def backspace(self) -> None:
        if self._cursor > 0:
            self.delete_range(self._cursor - 1, self._cursor)

    def replace_with_reference(self, start: int, end: int, node: ReferenceNode, trailing: str = " ") -> int:
        """Replace ``[start, end)`` with *node* plus *trailing* text.

        Returns the new caret position (right after the trailing text).
        """
        start = max(0, start)
        end = min(len(self._units), max(start, end))
        if end > start:
            del self._units[start:end]
            self._cursor = start
            self._emit(EditEvent.delete(start, end, start))

        inserted: list[Unit] = [node, *trailing]
        self._units[start:start] = inserted
        self._cursor = start + len(inserted)
        self._emit(EditEvent.insert(start, self.text_between(start, self._cursor), self._cursor))
        logger.debug("Inserted reference %s:%s at %d", node.category, node.id, start)
        return self._cursor
