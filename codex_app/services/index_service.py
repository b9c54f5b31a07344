"""
codex_app/services/index_service.py -- Background entity-index refresh.

Runs :meth:`codex.entity_index.EntityIndex.refresh` on a QThread so that
network fetches never block typing, then announces the new snapshot on the
UI thread.  Editors never hold the snapshot: they call
:meth:`IndexService.current` on every ranking, and re-rank an open
suggestion list when :attr:`IndexService.snapshot_changed` fires.

Usage::

    service = IndexService(EntityIndex(source))
    service.snapshot_changed.connect(on_snapshot)
    service.refresh("42")
"""

from __future__ import annotations

import logging

from PySide6.QtCore import QObject, QThread, Signal

from codex.entity_index import EntityIndex
from codex.models import EntitySnapshot
from codex_app.services.event_bus import EventBus

logger = logging.getLogger(__name__)


class _RefreshWorker(QThread):
    """Background thread performing one refresh cycle."""

    refreshed = Signal(object)
    failed = Signal(str)

    def __init__(self, index: EntityIndex, campaign_id: str, parent: QObject | None = None):
        super().__init__(parent)
        self._index = index
        self._campaign_id = campaign_id

    def run(self) -> None:
        try:
            snapshot = self._index.refresh(self._campaign_id)
        except Exception as e:
            logger.exception("Entity index refresh failed")
            self.failed.emit(str(e))
            return
        self.refreshed.emit(snapshot)


class IndexService(QObject):
    """Owns the refresh worker and relays snapshot swaps as Qt signals.

    Signals
    -------
    refresh_started(str)
        A refresh began for the given campaign id.
    snapshot_changed(object)
        A new :class:`EntitySnapshot` is live.
    collections_failed(list)
        Names of collections that could not be fetched in the last refresh.
    """

    refresh_started = Signal(str)
    snapshot_changed = Signal(object)
    collections_failed = Signal(list)

    def __init__(self, index: EntityIndex, parent: QObject | None = None):
        super().__init__(parent)
        self._index = index
        self._worker: _RefreshWorker | None = None
        self._bus = EventBus.instance()

    @property
    def index(self) -> EntityIndex:
        return self._index

    def current(self) -> EntitySnapshot:
        """Return the live snapshot (use as a snapshot provider)."""
        return self._index.current()

    @property
    def is_refreshing(self) -> bool:
        return self._worker is not None and self._worker.isRunning()

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, campaign_id: str) -> bool:
        """Start a background refresh.  Returns ``False`` if one is running."""
        if self.is_refreshing:
            logger.debug("Refresh already in progress; ignoring request")
            return False

        campaign_id = str(campaign_id)
        self._worker = _RefreshWorker(self._index, campaign_id, self)
        self._worker.refreshed.connect(self._on_refreshed)
        self._worker.failed.connect(self._on_failed)
        self._worker.finished.connect(self._on_worker_finished)
        self.refresh_started.emit(campaign_id)
        self._worker.start()
        return True

    def shutdown(self, timeout_ms: int = 5000) -> None:
        """Wait for a running refresh to finish (called on app exit)."""
        if self._worker is not None and self._worker.isRunning():
            self._worker.wait(timeout_ms)

    # ------------------------------------------------------------------
    # Worker callbacks (UI thread)
    # ------------------------------------------------------------------

    def _on_refreshed(self, snapshot: EntitySnapshot) -> None:
        self.snapshot_changed.emit(snapshot)
        self._bus.index_refreshed.emit(snapshot.total)
        if snapshot.failed:
            self.collections_failed.emit(list(snapshot.failed))

    def _on_failed(self, message: str) -> None:
        self._bus.error_occurred.emit(f"Could not refresh entities: {message}")

    def _on_worker_finished(self) -> None:
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.deleteLater()
