"""
codex_app/widgets/reference_editor.py -- Rich-text editor with inline entity references.

:class:`ReferenceTextEdit` is a QTextEdit whose document can hold atomic
reference nodes.  A node is a single object-replacement character carrying
the entity attributes in user properties of its char format; a
``QPyTextObject`` handler paints it as a gold, underlined ``[[label]]``.

Typing ``[[`` opens a :class:`~codex_app.widgets.suggestion_overlay.SuggestionOverlay`
at the caret.  Arrow keys, Enter and Escape go to the suggestion controller
while the list is open; everything else types normally.  Clicking a node
emits :attr:`ReferenceTextEdit.reference_clicked` and hands the navigation
command to the dispatcher.

Documents load from and save to the markup in :mod:`codex.markup`, so notes
written here round-trip with the web client.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6.QtCore import QMimeData, QPointF, QSizeF, Qt, Signal
from PySide6.QtGui import (
    QFontMetricsF,
    QPainter,
    QPen,
    QColor,
    QPyTextObject,
    QTextCharFormat,
    QTextCursor,
    QTextFormat,
)
from PySide6.QtWidgets import QTextEdit, QWidget

from codex.document import CaretRect
from codex.markup import Segment, parse_segments, serialize_segments, NODE_TYPE
from codex.models import EntitySnapshot, ReferenceNode
from codex.navigation import NavigationDispatcher
from codex.ranker import DEFAULT_LIMIT
from codex.suggestions import (
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESCAPE,
    KEY_UP,
    SuggestionController,
)
from codex.trigger import OBJECT_REPLACEMENT, EditEvent
from codex_app.services.event_bus import EventBus
from codex_app.widgets.suggestion_overlay import SuggestionOverlay

logger = logging.getLogger(__name__)

REFERENCE_OBJECT = QTextFormat.ObjectTypes.UserObject.value + 1

REF_PROP_ID = QTextFormat.Property.UserProperty.value + 1
REF_PROP_LABEL = REF_PROP_ID + 1
REF_PROP_CATEGORY = REF_PROP_ID + 2
REF_PROP_OWNER = REF_PROP_ID + 3
_REF_PROPERTIES = (REF_PROP_ID, REF_PROP_LABEL, REF_PROP_CATEGORY, REF_PROP_OWNER)

# QTextCursor.selectedText() reports block boundaries as U+2029
PARAGRAPH_SEPARATOR = "\u2029"

REFERENCE_COLOR = QColor("#ffd700")

_KEY_NAMES = {
    Qt.Key.Key_Up: KEY_UP,
    Qt.Key.Key_Down: KEY_DOWN,
    Qt.Key.Key_Return: KEY_ENTER,
    Qt.Key.Key_Enter: KEY_ENTER,
    Qt.Key.Key_Escape: KEY_ESCAPE,
}


# ------------------------------------------------------------------
# Char format helpers
# ------------------------------------------------------------------

def reference_format(node: ReferenceNode) -> QTextCharFormat:
    """Return the char format that turns an object character into *node*."""
    fmt = QTextCharFormat()
    fmt.setObjectType(REFERENCE_OBJECT)
    fmt.setProperty(REF_PROP_ID, node.id)
    fmt.setProperty(REF_PROP_LABEL, node.label)
    fmt.setProperty(REF_PROP_CATEGORY, node.category)
    fmt.setProperty(REF_PROP_OWNER, node.secondary_owner_id or "")
    fmt.setToolTip(f"{node.label} ({node.category})")
    return fmt


def node_from_format(fmt: QTextFormat) -> Optional[ReferenceNode]:
    """Rebuild the node stored in *fmt*, or ``None`` for any other format."""
    if fmt.objectType() != REFERENCE_OBJECT:
        return None
    node_id = fmt.stringProperty(REF_PROP_ID)
    category = fmt.stringProperty(REF_PROP_CATEGORY)
    if not node_id or not category:
        return None
    return ReferenceNode(
        id=node_id,
        label=fmt.stringProperty(REF_PROP_LABEL),
        category=category,
        secondary_owner_id=fmt.stringProperty(REF_PROP_OWNER) or None,
    )


def plain_format(fmt: QTextCharFormat) -> QTextCharFormat:
    """Copy *fmt* without the reference object type and attributes."""
    plain = QTextCharFormat(fmt)
    plain.setObjectType(QTextFormat.ObjectTypes.NoObject.value)
    for prop in _REF_PROPERTIES:
        plain.clearProperty(prop)
    plain.clearProperty(QTextFormat.Property.TextToolTip.value)
    return plain


class _ReferenceObjectHandler(QPyTextObject):
    """Lays out and paints reference nodes as ``[[label]]``."""

    def _metrics(self, fmt: QTextFormat) -> tuple[QFontMetricsF, str]:
        font = fmt.toCharFormat().font()
        label = fmt.stringProperty(REF_PROP_LABEL) or "Link"
        return QFontMetricsF(font), f"[[{label}]]"

    def intrinsicSize(self, doc, posInDocument, fmt) -> QSizeF:
        metrics, text = self._metrics(fmt)
        return QSizeF(metrics.horizontalAdvance(text), metrics.height())

    def drawObject(self, painter: QPainter, rect, doc, posInDocument, fmt) -> None:
        metrics, text = self._metrics(fmt)
        font = fmt.toCharFormat().font()
        font.setUnderline(True)
        painter.save()
        painter.setFont(font)
        painter.setPen(QPen(REFERENCE_COLOR))
        painter.drawText(QPointF(rect.left(), rect.bottom() - metrics.descent()), text)
        painter.restore()


# ------------------------------------------------------------------
# Document adapter
# ------------------------------------------------------------------

class EditorDocument:
    """Exposes a :class:`ReferenceTextEdit` to the suggestion controller.

    Positions are QTextDocument positions: one per character, one per
    reference node, one per block separator.
    """

    def __init__(self, editor: ReferenceTextEdit):
        self._editor = editor

    @property
    def cursor(self) -> int:
        return self._editor.textCursor().position()

    def __len__(self) -> int:
        return max(0, self._editor.document().characterCount() - 1)

    def text_between(self, start: int, end: int) -> str:
        start = max(0, start)
        end = min(len(self), end)
        if start >= end:
            return ""
        cursor = QTextCursor(self._editor.document())
        cursor.setPosition(start)
        cursor.setPosition(end, QTextCursor.MoveMode.KeepAnchor)
        return cursor.selectedText()

    def replace_with_reference(self, start: int, end: int, node: ReferenceNode, trailing: str = " ") -> int:
        editor = self._editor
        cursor = QTextCursor(editor.document())
        cursor.beginEditBlock()
        cursor.setPosition(max(0, start))
        cursor.setPosition(min(len(self), max(start, end)), QTextCursor.MoveMode.KeepAnchor)
        cursor.removeSelectedText()
        text_format = plain_format(cursor.charFormat())
        cursor.insertText(OBJECT_REPLACEMENT, reference_format(node))
        if trailing:
            cursor.insertText(trailing, text_format)
        cursor.endEditBlock()

        editor.setTextCursor(cursor)
        editor.setCurrentCharFormat(text_format)
        return cursor.position()

    def caret_rect(self) -> CaretRect:
        rect = self._editor.cursorRect()
        return CaretRect(rect.x(), rect.y(), rect.width(), rect.height())


# ------------------------------------------------------------------
# Editor
# ------------------------------------------------------------------

class ReferenceTextEdit(QTextEdit):
    """Notes editor that links entities with ``[[`` autocompletion.

    Parameters
    ----------
    snapshot_provider : Callable[[], EntitySnapshot]
        Returns the live entity snapshot; called on every ranking.
    dispatcher : NavigationDispatcher | None
        Receives the navigation command of a clicked node.
    trigger_char : str
        Character that, typed twice, opens the suggestion list.
    max_results : int
        Maximum number of candidates shown.

    Signals
    -------
    reference_clicked(object)
        A node was clicked.  Payload is its :class:`NavigationCommand`.
    reference_inserted(object)
        A node was committed.  Payload is the :class:`ReferenceNode`.
    """

    reference_clicked = Signal(object)
    reference_inserted = Signal(object)

    def __init__(
        self,
        snapshot_provider: Callable[[], EntitySnapshot],
        dispatcher: NavigationDispatcher | None = None,
        trigger_char: str = "[",
        max_results: int = DEFAULT_LIMIT,
        parent: QWidget | None = None,
    ):
        super().__init__(parent)
        self.setObjectName("referenceEditor")
        self.setAcceptRichText(True)
        self.setPlaceholderText("Write notes. Type [[ to link a character, place or quest.")

        self._bus = EventBus.instance()
        self._dispatcher = dispatcher
        self._handler = _ReferenceObjectHandler(self)
        self.document().documentLayout().registerHandler(REFERENCE_OBJECT, self._handler)

        self._adapter = EditorDocument(self)
        self._controller = SuggestionController(
            snapshot_provider,
            self._adapter,
            view_factory=self._create_overlay,
            limit=max_results,
            trigger_char=trigger_char,
            on_commit=self._on_committed,
        )

        # Plain-text mirror used to turn contentsChange into minimal edits
        self._shadow = ""
        self._loading = False
        self._disposed = False

        self.document().contentsChange.connect(self._on_contents_change)
        self.cursorPositionChanged.connect(self._on_cursor_moved)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def controller(self) -> SuggestionController:
        return self._controller

    def refresh_suggestions(self) -> None:
        """Re-rank an open suggestion list against the current snapshot."""
        self._controller.refresh_candidates()

    def insert_reference(self, node: ReferenceNode) -> int:
        """Insert *node* at the caret, replacing any selection."""
        cursor = self.textCursor()
        return self._adapter.replace_with_reference(cursor.selectionStart(), cursor.selectionEnd(), node)

    def reference_at(self, position: int) -> Optional[ReferenceNode]:
        """Return the node occupying *position*, if any."""
        if self._adapter.text_between(position, position + 1) != OBJECT_REPLACEMENT:
            return None
        cursor = QTextCursor(self.document())
        cursor.setPosition(position + 1)
        return node_from_format(cursor.charFormat())

    def references(self) -> list[tuple[int, ReferenceNode]]:
        """Return ``(position, node)`` for every node in the document."""
        found = []
        for offset, ch in enumerate(self._adapter.text_between(0, len(self._adapter))):
            if ch == OBJECT_REPLACEMENT:
                node = self.reference_at(offset)
                if node is not None:
                    found.append((offset, node))
        return found

    def segments(self, start: int = 0, end: int | None = None) -> list[Segment]:
        """Return the text runs and nodes between *start* and *end*."""
        if end is None:
            end = len(self._adapter)
        segments: list[Segment] = []
        run: list[str] = []
        for offset, ch in enumerate(self._adapter.text_between(start, end)):
            if ch == OBJECT_REPLACEMENT:
                node = self.reference_at(start + offset)
                if node is None:
                    # Foreign inline object (e.g. an image) has no markup form
                    continue
                if run:
                    segments.append("".join(run))
                    run = []
                segments.append(node)
            elif ch == PARAGRAPH_SEPARATOR:
                run.append("\n")
            else:
                run.append(ch)
        if run:
            segments.append("".join(run))
        return segments

    def to_markup(self) -> str:
        return serialize_segments(self.segments())

    def set_markup(self, markup: str) -> None:
        """Replace the whole document with *markup*."""
        self._controller.close()
        self._loading = True
        try:
            self.clear()
            cursor = self.textCursor()
            self._insert_segments(cursor, parse_segments(markup))
            self.setTextCursor(cursor)
        finally:
            self._loading = False
        self._shadow = self._adapter.text_between(0, len(self._adapter))

    def dispose(self) -> None:
        """Close any open suggestion list and stop reacting to edits."""
        if self._disposed:
            return
        self._disposed = True
        self._controller.dispose()
        try:
            self.document().contentsChange.disconnect(self._on_contents_change)
            self.cursorPositionChanged.disconnect(self._on_cursor_moved)
        except (RuntimeError, TypeError):
            logger.debug("Editor signals already disconnected")

    # ------------------------------------------------------------------
    # Edit tracking
    # ------------------------------------------------------------------

    def _on_contents_change(self, position: int, removed: int, added: int) -> None:
        if self._loading:
            return
        old = self._shadow[position:position + removed]
        new = self._adapter.text_between(position, position + added)
        self._shadow = self._shadow[:position] + new + self._shadow[position + removed:]
        if old == new:
            # Formatting-only change
            return

        # Qt may report a wider span than what changed; trim the common ends
        prefix = 0
        while prefix < min(len(old), len(new)) and old[prefix] == new[prefix]:
            prefix += 1
        suffix = 0
        while (suffix < min(len(old), len(new)) - prefix
               and old[len(old) - 1 - suffix] == new[len(new) - 1 - suffix]):
            suffix += 1
        start = position + prefix
        old_mid = old[prefix:len(old) - suffix]
        new_mid = new[prefix:len(new) - suffix]

        cursor = self.textCursor().position()
        if old_mid:
            self._controller.on_edit(EditEvent.delete(start, start + len(old_mid), cursor))
        if new_mid:
            self._controller.on_edit(EditEvent.insert(start, new_mid, cursor))

    def _on_cursor_moved(self) -> None:
        if self._loading:
            return
        # Text typed right after a node must not inherit the node's format
        if self.currentCharFormat().objectType() == REFERENCE_OBJECT:
            self.setCurrentCharFormat(plain_format(self.currentCharFormat()))
        self._controller.on_edit(EditEvent.move(self.textCursor().position()))

    def _insert_segments(self, cursor: QTextCursor, segments: list[Segment]) -> None:
        text_format = plain_format(cursor.charFormat())
        for segment in segments:
            if isinstance(segment, ReferenceNode):
                cursor.insertText(OBJECT_REPLACEMENT, reference_format(segment))
            else:
                cursor.insertText(segment, text_format)

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def _create_overlay(self) -> SuggestionOverlay:
        overlay = SuggestionOverlay(self.viewport())
        overlay.activated.connect(self._controller.commit)
        return overlay

    def _on_committed(self, node: ReferenceNode) -> None:
        self.reference_inserted.emit(node)
        self._bus.reference_inserted.emit(node.model_dump())

    # ------------------------------------------------------------------
    # Qt event overrides
    # ------------------------------------------------------------------

    def keyPressEvent(self, event) -> None:
        key_name = _KEY_NAMES.get(event.key())
        if key_name is not None and self._controller.is_open:
            if self._controller.handle_key(key_name):
                event.accept()
                return
        super().keyPressEvent(event)

    def mouseReleaseEvent(self, event) -> None:
        super().mouseReleaseEvent(event)
        if event.button() != Qt.MouseButton.LeftButton or self.textCursor().hasSelection():
            return
        node = self._reference_under(event.position().toPoint())
        if node is not None:
            self._activate(node)

    def mouseMoveEvent(self, event) -> None:
        node = self._reference_under(event.position().toPoint())
        if node is not None:
            self.viewport().setCursor(Qt.CursorShape.PointingHandCursor)
        else:
            self.viewport().setCursor(Qt.CursorShape.IBeamCursor)
        super().mouseMoveEvent(event)

    def hideEvent(self, event) -> None:
        self._controller.close()
        super().hideEvent(event)

    def insertFromMimeData(self, source: QMimeData) -> None:
        # Pasted reference spans become nodes again; other rich text pastes plain
        if source.hasHtml() and NODE_TYPE in source.html():
            cursor = self.textCursor()
            cursor.beginEditBlock()
            cursor.removeSelectedText()
            self._insert_segments(cursor, parse_segments(source.html()))
            cursor.endEditBlock()
            self.setTextCursor(cursor)
            return
        if source.hasText():
            self.textCursor().insertText(source.text())
            return
        super().insertFromMimeData(source)

    def createMimeDataFromSelection(self) -> QMimeData:
        cursor = self.textCursor()
        segments = self.segments(cursor.selectionStart(), cursor.selectionEnd())
        mime = QMimeData()
        mime.setHtml(serialize_segments(segments))
        mime.setText("".join(
            s.display_text if isinstance(s, ReferenceNode) else s for s in segments
        ))
        return mime

    # ------------------------------------------------------------------
    # Clicks
    # ------------------------------------------------------------------

    def _reference_under(self, point) -> Optional[ReferenceNode]:
        position = self.cursorForPosition(point).position()
        for candidate in (position, position - 1):
            if candidate < 0:
                continue
            node = self.reference_at(candidate)
            if node is not None:
                return node
        return None

    def _activate(self, node: ReferenceNode) -> None:
        command = node.click()
        logger.debug("Reference clicked: %s %s", command.category, command.id)
        self.reference_clicked.emit(command)
        self._bus.reference_activated.emit(command.model_dump())
        if self._dispatcher is not None:
            self._dispatcher.dispatch(command)
