"""
codex_app/widgets/suggestion_overlay.py -- Candidate list shown at the caret.

A frameless child of the editor viewport listing ranked candidates (label
plus a small type caption), with the controller's selection highlighted.
It never takes keyboard focus: the editor keeps typing and forwards the
navigation keys to the suggestion controller.  One overlay lives for exactly
one suggestion session; :meth:`SuggestionOverlay.close` destroys it.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from PySide6.QtCore import QPoint, Qt, Signal
from PySide6.QtWidgets import (
    QFrame,
    QListWidget,
    QListWidgetItem,
    QVBoxLayout,
    QWidget,
)

from codex.models import EntityRecord

logger = logging.getLogger(__name__)

# Custom role for the candidate index in list items
CANDIDATE_INDEX_ROLE = Qt.ItemDataRole.UserRole + 1

EMPTY_PRIMARY = "No matches found"
EMPTY_SECONDARY = "Type to search for entities"

_MIN_WIDTH = 250
_MAX_WIDTH = 400
_MAX_HEIGHT = 300
_CARET_GAP = 2


class SuggestionOverlay(QFrame):
    """Keyboard-driven candidate list anchored below the caret.

    Signals
    -------
    activated(int)
        A candidate was clicked.  Payload is its index.
    """

    activated = Signal(int)

    def __init__(self, parent: QWidget):
        super().__init__(parent)
        self.setObjectName("suggestionOverlay")
        self.setFrameShape(QFrame.Shape.StyledPanel)
        self.setFocusPolicy(Qt.FocusPolicy.NoFocus)
        self.setMinimumWidth(_MIN_WIDTH)
        self.setMaximumWidth(_MAX_WIDTH)
        self.setMaximumHeight(_MAX_HEIGHT)
        self.setVisible(False)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(2, 2, 2, 2)

        self._list = QListWidget(self)
        self._list.setFocusPolicy(Qt.FocusPolicy.NoFocus)
        self._list.setSelectionMode(QListWidget.SelectionMode.SingleSelection)
        self._list.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAsNeeded)
        self._list.itemClicked.connect(self._on_item_clicked)
        layout.addWidget(self._list)

        self._closed = False
        self._count = 0

    # ------------------------------------------------------------------
    # SuggestionView
    # ------------------------------------------------------------------

    def show_candidates(
        self,
        candidates: list[EntityRecord],
        selected_index: Optional[int],
        caret_rect: Any,
    ) -> None:
        """Replace the list contents and move below *caret_rect*."""
        if self._closed:
            return
        self._list.clear()
        self._count = len(candidates)

        if not candidates:
            item = QListWidgetItem(f"{EMPTY_PRIMARY}\n{EMPTY_SECONDARY}")
            item.setFlags(Qt.ItemFlag.NoItemFlags)
            self._list.addItem(item)
        else:
            for idx, record in enumerate(candidates):
                text = record.label
                if record.type_label:
                    text = f"{record.label}\n{record.type_label}"
                item = QListWidgetItem(text)
                item.setData(CANDIDATE_INDEX_ROLE, idx)
                item.setToolTip(record.type_label or record.category.value)
                self._list.addItem(item)

        self.set_selected(selected_index)
        self._reposition(caret_rect)
        self.setVisible(True)
        self.raise_()

    def set_selected(self, index: Optional[int]) -> None:
        if self._closed:
            return
        if index is None or not 0 <= index < self._count:
            self._list.clearSelection()
            return
        self._list.setCurrentRow(index)
        self._list.scrollToItem(self._list.item(index))

    def close(self) -> bool:
        """Hide and schedule destruction.  Safe to call more than once."""
        if self._closed:
            return True
        self._closed = True
        self.setVisible(False)
        self.deleteLater()
        return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_placeholder(self) -> bool:
        return self._count == 0

    def row_count(self) -> int:
        return self._list.count()

    def row_text(self, row: int) -> str:
        item = self._list.item(row)
        return item.text() if item else ""

    def selected_row(self) -> int:
        return self._list.currentRow()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_item_clicked(self, item: QListWidgetItem) -> None:
        index = item.data(CANDIDATE_INDEX_ROLE)
        if index is not None:
            self.activated.emit(int(index))

    def _reposition(self, caret_rect: Any) -> None:
        """Place the overlay under the caret, flipping above when out of room."""
        self.adjustSize()
        parent = self.parentWidget()
        if caret_rect is None or parent is None:
            return

        x, y, _w, h = caret_rect
        width = max(_MIN_WIDTH, min(_MAX_WIDTH, self.sizeHint().width()))
        height = min(_MAX_HEIGHT, self.sizeHint().height())
        self.resize(width, height)

        pos = QPoint(x, y + h + _CARET_GAP)
        bounds = parent.rect()
        if pos.y() + height > bounds.bottom() and y - height - _CARET_GAP >= 0:
            pos.setY(y - height - _CARET_GAP)
        pos.setX(max(0, min(pos.x(), bounds.right() - width)))
        self.move(pos)
