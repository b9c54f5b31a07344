"""
codex_app/panels/entity_panel.py -- Entity list dock panel.

Shows the live entity snapshot as a searchable table filtered by category.
The category filter doubles as the "destination view" for reference clicks:
a navigation payload switches the filter to the view that accepts it and
selects the target row, so clicking ``[[Longsword]]`` in a note opens its
owning character.  Double-clicking a row links that entity at the editor's
caret.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from PySide6.QtCore import QModelIndex, QSortFilterProxyModel, Qt, QTimer, Signal
from PySide6.QtGui import QStandardItem, QStandardItemModel
from PySide6.QtWidgets import (
    QComboBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QTableView,
    QVBoxLayout,
    QWidget,
)

from codex.models import CATEGORY_ORDER, EntityCategory, EntityRecord, EntitySnapshot
from codex.navigation import accepts

logger = logging.getLogger(__name__)

COL_NAME = 0
COL_TYPE = 1

# Custom roles on the name item
RECORD_ROLE = Qt.ItemDataRole.UserRole + 1
CATEGORY_ROLE = Qt.ItemDataRole.UserRole + 2

# Categories that have a view of their own (equipment opens in characters)
VIEW_CATEGORIES = [c for c in CATEGORY_ORDER if c is not EntityCategory.EQUIPMENT]

_CATEGORY_TITLES = {
    EntityCategory.CHARACTER: "Characters",
    EntityCategory.LOCATION: "Locations",
    EntityCategory.FACTION: "Factions",
    EntityCategory.WORLD_INFO: "World Info",
    EntityCategory.QUEST: "Quests",
    EntityCategory.EQUIPMENT: "Equipment",
}


class CategoryFilterProxy(QSortFilterProxyModel):
    """Filters rows by free-text search and by entity category."""

    def __init__(self, parent: QWidget | None = None):
        super().__init__(parent)
        self._category: str = ""
        self.setFilterCaseSensitivity(Qt.CaseSensitivity.CaseInsensitive)
        self.setFilterKeyColumn(COL_NAME)

    def set_category(self, category: str) -> None:
        self._category = category
        self.invalidateFilter()

    def filterAcceptsRow(self, source_row: int, source_parent: QModelIndex) -> bool:
        if not super().filterAcceptsRow(source_row, source_parent):
            return False
        if not self._category:
            return True
        model = self.sourceModel()
        index = model.index(source_row, COL_NAME, source_parent)
        return model.data(index, CATEGORY_ROLE) == self._category


class EntityPanel(QWidget):
    """Searchable list of the entities suggestions are drawn from.

    Signals
    -------
    entity_activated(object)
        A row was double-clicked.  Payload is the :class:`EntityRecord`.
    """

    entity_activated = Signal(object)

    def __init__(self, parent: QWidget | None = None):
        super().__init__(parent)
        self._setup_ui()
        self._connect_signals()

    # ------------------------------------------------------------------
    # UI setup
    # ------------------------------------------------------------------

    def _setup_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(4, 4, 4, 4)
        layout.setSpacing(4)

        self._search = QLineEdit()
        self._search.setPlaceholderText("Search entities...")
        self._search.setClearButtonEnabled(True)
        layout.addWidget(self._search)

        filter_row = QHBoxLayout()
        filter_row.setSpacing(4)
        filter_row.addWidget(QLabel("Show:"))
        self._category_combo = QComboBox()
        self._category_combo.addItem("All", "")
        for category in CATEGORY_ORDER:
            self._category_combo.addItem(_CATEGORY_TITLES[category], category.value)
        filter_row.addWidget(self._category_combo)
        filter_row.addStretch()

        self._count_label = QLabel("0 entities")
        self._count_label.setStyleSheet("color: #888; font-size: 11px;")
        filter_row.addWidget(self._count_label)
        layout.addLayout(filter_row)

        self._model = QStandardItemModel(0, 2, self)
        self._model.setHorizontalHeaderLabels(["Name", "Type"])

        self._proxy = CategoryFilterProxy(self)
        self._proxy.setSourceModel(self._model)

        self._table = QTableView()
        self._table.setModel(self._proxy)
        self._table.setSelectionBehavior(QTableView.SelectionBehavior.SelectRows)
        self._table.setSelectionMode(QTableView.SelectionMode.SingleSelection)
        self._table.setAlternatingRowColors(True)
        self._table.setEditTriggers(QTableView.EditTrigger.NoEditTriggers)
        self._table.verticalHeader().setVisible(False)
        header = self._table.horizontalHeader()
        header.setSectionResizeMode(COL_NAME, QHeaderView.ResizeMode.Stretch)
        header.setSectionResizeMode(COL_TYPE, QHeaderView.ResizeMode.ResizeToContents)
        layout.addWidget(self._table, 1)

    def _connect_signals(self) -> None:
        self._search_timer = QTimer(self)
        self._search_timer.setSingleShot(True)
        self._search_timer.setInterval(200)
        self._search_timer.timeout.connect(self._apply_search)
        self._search.textChanged.connect(lambda _: self._search_timer.start())

        self._category_combo.currentIndexChanged.connect(self._on_category_changed)
        self._table.doubleClicked.connect(self._on_row_double_clicked)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def show_snapshot(self, snapshot: EntitySnapshot) -> None:
        """Replace the table contents with *snapshot* (category order kept)."""
        self._model.removeRows(0, self._model.rowCount())
        for record in snapshot.iter_records():
            name_item = QStandardItem(record.label)
            name_item.setData(record, RECORD_ROLE)
            name_item.setData(record.category.value, CATEGORY_ROLE)
            type_item = QStandardItem(record.type_label or _CATEGORY_TITLES[record.category])
            self._model.appendRow([name_item, type_item])
        self._update_count_label()

    def record_at(self, row: int) -> Optional[EntityRecord]:
        """Return the record in visible *row*."""
        index = self._proxy.index(row, COL_NAME)
        if not index.isValid():
            return None
        return self._proxy.data(index, RECORD_ROLE)

    def selected_record(self) -> Optional[EntityRecord]:
        rows = self._table.selectionModel().selectedRows(COL_NAME)
        if not rows:
            return None
        return self._proxy.data(rows[0], RECORD_ROLE)

    @property
    def current_category(self) -> str:
        return self._category_combo.currentData() or ""

    def visible_count(self) -> int:
        return self._proxy.rowCount()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def open_payload(self, payload: dict[str, Any]) -> bool:
        """Switch to the view that accepts *payload* and select its target.

        Returns ``True`` if the target row was found.
        """
        view = next((c for c in VIEW_CATEGORIES if accepts(c, payload)), None)
        if view is None:
            logger.debug("No view accepts navigation payload %r", payload)
            return False

        self._search.clear()
        self._apply_search()
        self._category_combo.setCurrentIndex(self._category_combo.findData(view.value))

        target_id = str(payload["openEntityId"])
        for row in range(self._proxy.rowCount()):
            record = self.record_at(row)
            if record is not None and record.id == target_id:
                self._table.selectRow(row)
                self._table.scrollTo(self._proxy.index(row, COL_NAME))
                return True
        logger.info("Navigation target %s not found in %s", target_id, view.value)
        return False

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _apply_search(self) -> None:
        self._proxy.setFilterFixedString(self._search.text())
        self._update_count_label()

    def _on_category_changed(self, _index: int) -> None:
        self._proxy.set_category(self.current_category)
        self._update_count_label()

    def _on_row_double_clicked(self, index: QModelIndex) -> None:
        record = self._proxy.data(index.siblingAtColumn(COL_NAME), RECORD_ROLE)
        if record is not None:
            self.entity_activated.emit(record)

    def _update_count_label(self) -> None:
        visible = self._proxy.rowCount()
        total = self._model.rowCount()
        if visible == total:
            self._count_label.setText(f"{total} entities")
        else:
            self._count_label.setText(f"{visible} / {total} entities")
