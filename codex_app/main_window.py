"""
codex_app/main_window.py -- Main application window.

The notes editor fills the centre; the entity list docks on the left.  A
status bar shows the refresh state and the last navigation route.  Window
geometry and dock layout persist via QSettings.  Entity refreshes, reference
clicks and errors flow through the EventBus.
"""

from __future__ import annotations

import logging
import os

from PySide6.QtCore import QSettings, Qt
from PySide6.QtGui import QAction, QCloseEvent, QKeySequence
from PySide6.QtWidgets import QDockWidget, QMainWindow, QStatusBar, QWidget

from codex.errors import MarkupError
from codex.markup import parse_segments
from codex.models import EntityRecord, EntitySnapshot, NavigationTarget, ReferenceNode
from codex.navigation import NavigationDispatcher
from codex.settings import CodexSettings
from codex.utils import safe_write_text
from codex_app.panels.entity_panel import EntityPanel
from codex_app.services.event_bus import EventBus
from codex_app.services.index_service import IndexService
from codex_app.widgets.reference_editor import ReferenceTextEdit
from codex_app.widgets.refresh_indicator import RefreshIndicator
from codex_app.widgets.toast import ToastManager

logger = logging.getLogger(__name__)

_ORG_NAME = "TabletopCodex"
_APP_NAME = "TabletopCodex"


class MainWindow(QMainWindow):
    """Notes editor with entity linking and an entity list dock.

    Parameters
    ----------
    index_service : IndexService
        Source of the live snapshot and background refreshes.
    settings : CodexSettings
        Campaign id, trigger character and result limit.
    notes_path : str | None
        File the notes are loaded from and saved to (markup).
    """

    def __init__(
        self,
        index_service: IndexService,
        settings: CodexSettings,
        notes_path: str | None = None,
        parent: QWidget | None = None,
    ):
        super().__init__(parent)
        self._index_service = index_service
        self._codex_settings = settings
        self._notes_path = notes_path
        self._qsettings = QSettings(_ORG_NAME, _APP_NAME)

        self.setWindowTitle("Tabletop Codex")
        self.setMinimumSize(900, 600)

        self._bus = bus = EventBus.instance()
        self._dispatcher = NavigationDispatcher(
            settings.campaign_id or "",
            on_navigate=self._publish_navigation,
        )

        # Central notes editor; reads the snapshot through the service on every ranking
        self._editor = ReferenceTextEdit(
            index_service.current,
            dispatcher=self._dispatcher,
            trigger_char=settings.trigger_char,
            max_results=settings.max_results,
        )
        self.setCentralWidget(self._editor)

        self._entity_panel = EntityPanel()
        self._entity_dock = QDockWidget("Entities", self)
        self._entity_dock.setObjectName("dock_entities")
        self._entity_dock.setWidget(self._entity_panel)
        self.addDockWidget(Qt.DockWidgetArea.LeftDockWidgetArea, self._entity_dock)

        self._build_menus()

        self._status_bar = QStatusBar()
        self.setStatusBar(self._status_bar)
        self._refresh_indicator = RefreshIndicator()
        self._status_bar.addPermanentWidget(self._refresh_indicator)
        self._status_bar.showMessage("Ready")

        self._toast = ToastManager(self)

        # Service and bus wiring
        index_service.refresh_started.connect(lambda _: self._refresh_indicator.start())
        index_service.snapshot_changed.connect(self._on_snapshot_changed)
        index_service.collections_failed.connect(self._toast.show_refresh_failures)
        bus.navigation_requested.connect(self._on_navigation_requested)
        bus.status_message.connect(self._on_status_message)
        bus.error_occurred.connect(self._on_error)

        self._entity_panel.entity_activated.connect(self._link_entity)

        self._restore_layout()
        self.load_notes()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def editor(self) -> ReferenceTextEdit:
        return self._editor

    @property
    def entity_panel(self) -> EntityPanel:
        return self._entity_panel

    @property
    def dispatcher(self) -> NavigationDispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------
    # Menus
    # ------------------------------------------------------------------

    def _build_menus(self) -> None:
        menubar = self.menuBar()

        file_menu = menubar.addMenu("&File")
        save_action = QAction("Save Notes", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.triggered.connect(self.save_notes)
        file_menu.addAction(save_action)

        file_menu.addSeparator()
        quit_action = QAction("Quit", self)
        quit_action.setShortcut(QKeySequence.StandardKey.Quit)
        quit_action.triggered.connect(self.close)
        file_menu.addAction(quit_action)

        entities_menu = menubar.addMenu("&Entities")
        refresh_action = QAction("Refresh Entities", self)
        refresh_action.setShortcut(QKeySequence("F5"))
        refresh_action.triggered.connect(self.refresh_entities)
        entities_menu.addAction(refresh_action)

        view_menu = menubar.addMenu("&View")
        view_menu.addAction(self._entity_dock.toggleViewAction())

        help_menu = menubar.addMenu("&Help")
        about_action = QAction("About", self)
        about_action.triggered.connect(self._show_about)
        help_menu.addAction(about_action)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def refresh_entities(self) -> bool:
        """Start a background refresh for the configured campaign."""
        campaign_id = self._codex_settings.campaign_id
        if not campaign_id:
            self._toast.show_warning("No campaign selected. Set campaign_id in settings.json.")
            return False
        return self._index_service.refresh(campaign_id)

    def _on_snapshot_changed(self, snapshot: EntitySnapshot) -> None:
        self._refresh_indicator.finish(snapshot.total, len(snapshot.failed))
        self._entity_panel.show_snapshot(snapshot)
        self._editor.refresh_suggestions()

    def _link_entity(self, record: EntityRecord) -> None:
        self._editor.setFocus()
        self._editor.insert_reference(ReferenceNode.from_record(record))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _publish_navigation(self, target: NavigationTarget) -> None:
        self._bus.navigation_requested.emit(target.route, dict(target.payload))

    def _on_navigation_requested(self, route: str, payload: dict) -> None:
        self._status_bar.showMessage(route, 5000)
        self._entity_dock.setVisible(True)
        self._entity_dock.raise_()
        if not self._entity_panel.open_payload(payload):
            self._toast.show_info("That entity is not in the current campaign data.")

    # ------------------------------------------------------------------
    # Notes persistence
    # ------------------------------------------------------------------

    def load_notes(self) -> None:
        if not self._notes_path or not os.path.exists(self._notes_path):
            return
        try:
            with open(self._notes_path, "r", encoding="utf-8") as f:
                markup = f.read()
            # Validate up front so a damaged file is reported, not silently flattened
            parse_segments(markup, strict=True)
        except MarkupError as e:
            logger.warning("Notes file %s has malformed references: %s", self._notes_path, e)
            self._toast.show_warning("Some links in your notes could not be read and were kept as text.")
        except OSError as e:
            logger.error("Could not read notes from %s: %s", self._notes_path, e)
            self._toast.show_error(f"Could not read notes: {e}")
            return
        self._editor.set_markup(markup)
        logger.info("Loaded notes from %s", self._notes_path)

    def save_notes(self) -> bool:
        if not self._notes_path:
            return False
        try:
            safe_write_text(self._notes_path, self._editor.to_markup())
        except OSError as e:
            logger.error("Could not save notes to %s: %s", self._notes_path, e)
            self._toast.show_error(f"Could not save notes: {e}")
            return False
        self._status_bar.showMessage("Notes saved", 3000)
        return True

    # ------------------------------------------------------------------
    # Layout save / restore
    # ------------------------------------------------------------------

    def _save_layout(self) -> None:
        self._qsettings.setValue("geometry", self.saveGeometry())
        self._qsettings.setValue("windowState", self.saveState())

    def _restore_layout(self) -> None:
        geometry = self._qsettings.value("geometry")
        if geometry:
            self.restoreGeometry(geometry)
        state = self._qsettings.value("windowState")
        if state:
            self.restoreState(state)

    # ------------------------------------------------------------------
    # EventBus handlers
    # ------------------------------------------------------------------

    def _on_status_message(self, message: str) -> None:
        self._status_bar.showMessage(message, 5000)

    def _on_error(self, message: str) -> None:
        self._status_bar.showMessage(f"Error: {message}", 10000)
        self._toast.show_error(message)

    def _show_about(self) -> None:
        from PySide6.QtWidgets import QMessageBox
        QMessageBox.about(
            self,
            "Tabletop Codex",
            "Campaign notes with linked characters, places and quests.\n\n"
            "Type [[ in your notes to link an entity; click a link to open it.",
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def closeEvent(self, event: QCloseEvent) -> None:
        """Save notes and layout, then tear down the editor session."""
        self.save_notes()
        self._save_layout()
        self._editor.dispose()
        logger.info("Main window closing, layout saved")
        super().closeEvent(event)
