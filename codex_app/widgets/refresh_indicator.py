"""
codex_app/widgets/refresh_indicator.py -- Status-bar label for entity refreshes.

Animates while a refresh is running, then settles on the entity count of the
live snapshot.
"""

from __future__ import annotations

from PySide6.QtCore import QTimer
from PySide6.QtWidgets import QLabel, QWidget


class RefreshIndicator(QLabel):
    """Small label showing refresh progress and the loaded entity count.

    Usage::

        indicator = RefreshIndicator()
        status_bar.addPermanentWidget(indicator)
        indicator.start()
        indicator.finish(42)
    """

    _FRAMES = [".", "..", "...", ".."]

    def __init__(self, parent: QWidget | None = None):
        super().__init__("No entities loaded", parent)
        self.setStyleSheet("color: #888; font-size: 11px;")
        self._frame = 0
        self._timer = QTimer(self)
        self._timer.setInterval(400)
        self._timer.timeout.connect(self._tick)

    @property
    def is_running(self) -> bool:
        return self._timer.isActive()

    def start(self) -> None:
        self._frame = 0
        self._tick()
        self._timer.start()

    def finish(self, total: int, failed: int = 0) -> None:
        self._timer.stop()
        text = f"{total} entities"
        if failed:
            text += f" ({failed} collection{'s' if failed != 1 else ''} unavailable)"
        self.setText(text)

    def _tick(self) -> None:
        self._frame = (self._frame + 1) % len(self._FRAMES)
        self.setText(f"Refreshing entities{self._FRAMES[self._frame]}")
