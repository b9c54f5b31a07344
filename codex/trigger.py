"""
codex/trigger.py -- Detect ``[[`` and track the query typed after it.

The detector is a two-state machine (idle / open) driven by edit events
coming from whatever document engine hosts the text.  It never touches the
document; it only reads it through :class:`TextView`.

Position model: every character occupies one position and every atomic
inline node occupies one position, rendered in :meth:`TextView.text_between`
as ``U+FFFC``.

While open, the tracked range runs from ``trigger_start`` (just after the
second trigger character) to ``range_end``.  The query is always the text
between ``trigger_start`` and the cursor.  The range must stay one unbroken
inline run: an edit before the trigger, an insert outside the range, a line
break or atomic node inside it, or the cursor leaving it closes the session.
Closing never touches the typed text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Protocol

logger = logging.getLogger(__name__)

OBJECT_REPLACEMENT = "\ufffc"

# Characters that split the tracked range into more than one inline run
RANGE_BREAKERS = frozenset({"\n", "\r", "\u2028", "\u2029", OBJECT_REPLACEMENT})


class TextView(Protocol):
    """Read-only access to a document's text."""

    def text_between(self, start: int, end: int) -> str: ...

    def __len__(self) -> int: ...


class EditKind(Enum):
    INSERT = auto()
    DELETE = auto()
    CURSOR = auto()


@dataclass(frozen=True)
class EditEvent:
    """One change reported by the document engine.

    ``position``/``end`` describe the affected span *before* the change for
    deletions and the insertion point for insertions.  ``cursor`` is the
    caret position after the change has been applied.
    """

    kind: EditKind
    position: int
    end: int = 0
    text: str = ""
    cursor: int = 0

    @classmethod
    def insert(cls, position: int, text: str, cursor: int | None = None) -> EditEvent:
        if cursor is None:
            cursor = position + len(text)
        return cls(EditKind.INSERT, position, position + len(text), text, cursor)

    @classmethod
    def delete(cls, start: int, end: int, cursor: int | None = None) -> EditEvent:
        if cursor is None:
            cursor = start
        return cls(EditKind.DELETE, start, end, "", cursor)

    @classmethod
    def move(cls, cursor: int) -> EditEvent:
        return cls(EditKind.CURSOR, cursor, cursor, "", cursor)


class TriggerState(Enum):
    IDLE = auto()
    OPEN = auto()


class TriggerTransition(Enum):
    NONE = auto()
    OPENED = auto()
    UPDATED = auto()
    CLOSED = auto()


class TriggerDetector:
    """State machine that opens a suggestion session on two trigger characters.

    Parameters
    ----------
    trigger_char : str
        The single character that, typed twice in a row, opens a session.
    """

    TRIGGER_LENGTH = 2

    def __init__(self, trigger_char: str = "["):
        if len(trigger_char) != 1:
            raise ValueError("trigger_char must be exactly one character")
        self.trigger_char = trigger_char
        self.state = TriggerState.IDLE
        self.trigger_start: int | None = None
        self.range_end: int | None = None
        self.query = ""

    @property
    def is_open(self) -> bool:
        return self.state is TriggerState.OPEN

    @property
    def replace_start(self) -> int | None:
        """First position of the trigger sequence (what a commit replaces)."""
        if self.trigger_start is None:
            return None
        return self.trigger_start - self.TRIGGER_LENGTH

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def feed(self, event: EditEvent, text: TextView) -> TriggerTransition:
        """Advance the machine with one edit event."""
        if self.state is TriggerState.IDLE:
            return self._feed_idle(event, text)
        return self._feed_open(event, text)

    def close(self) -> bool:
        """Return to idle.  Returns ``True`` if a session was open."""
        was_open = self.is_open
        self.state = TriggerState.IDLE
        self.trigger_start = None
        self.range_end = None
        self.query = ""
        return was_open

    def _feed_idle(self, event: EditEvent, text: TextView) -> TriggerTransition:
        if event.kind is not EditKind.INSERT or not event.text.endswith(self.trigger_char):
            return TriggerTransition.NONE

        second = event.position + len(event.text) - 1
        if second < 1:
            return TriggerTransition.NONE
        if text.text_between(second - 1, second) != self.trigger_char:
            return TriggerTransition.NONE
        if event.cursor != second + 1:
            return TriggerTransition.NONE

        self.state = TriggerState.OPEN
        self.trigger_start = second + 1
        self.range_end = self.trigger_start
        self.query = ""
        logger.debug("Suggestion session opened at %d", self.trigger_start)
        return TriggerTransition.OPENED

    def _feed_open(self, event: EditEvent, text: TextView) -> TriggerTransition:
        start = self.trigger_start
        end = self.range_end

        if event.kind is EditKind.INSERT:
            if event.position < start or event.position > end:
                return self._break("insert outside the tracked range")
            if any(ch in RANGE_BREAKERS for ch in event.text):
                return self._break("range split by a break or inline node")
            self.range_end = end + len(event.text)

        elif event.kind is EditKind.DELETE:
            if event.position < start:
                return self._break("edit reached the trigger sequence")
            if event.position < end:
                removed = min(event.end, end) - event.position
                self.range_end = end - removed

        if event.cursor < self.trigger_start or event.cursor > self.range_end:
            return self._break("cursor left the tracked range")

        marker = text.text_between(start - self.TRIGGER_LENGTH, start)
        if marker != self.trigger_char * self.TRIGGER_LENGTH:
            return self._break("trigger sequence no longer present")

        query = text.text_between(self.trigger_start, event.cursor)
        if any(ch in RANGE_BREAKERS for ch in query):
            return self._break("range split by a break or inline node")

        if event.kind is EditKind.CURSOR and query == self.query:
            return TriggerTransition.NONE
        self.query = query
        return TriggerTransition.UPDATED

    def _break(self, reason: str) -> TriggerTransition:
        logger.debug("Suggestion session closed: %s", reason)
        self.close()
        return TriggerTransition.CLOSED
