"""
codex_app/widgets/toast.py -- Transient notifications over the main window.

Toasts stack in the bottom-right corner of their parent and dismiss
themselves.  The manager also knows how to summarise an entity refresh:
which collections loaded and which failed.
"""

from __future__ import annotations

import logging
from enum import Enum

from PySide6.QtCore import QEasingCurve, QPoint, QPropertyAnimation, Qt, QTimer
from PySide6.QtWidgets import QLabel, QWidget

logger = logging.getLogger(__name__)


class ToastSeverity(Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# severity -> (accent colour, background, auto-dismiss ms)
_SEVERITY_STYLE = {
    ToastSeverity.INFO: ("#2196F3", "#263238", 4000),
    ToastSeverity.SUCCESS: ("#4CAF50", "#1b3a1b", 3000),
    ToastSeverity.WARNING: ("#FFC107", "#3a351b", 6000),
    ToastSeverity.ERROR: ("#F44336", "#3a1b1b", 8000),
}

_MARGIN = 12
_SPACING = 6


class Toast(QLabel):
    """One notification label.  Click to dismiss early."""

    def __init__(self, message: str, severity: ToastSeverity, parent: QWidget):
        super().__init__(message, parent)
        accent, background, _ = _SEVERITY_STYLE[severity]
        self.setObjectName("toast")
        self.setStyleSheet(
            f"background-color: {background}; color: #ddd; "
            f"border-left: 4px solid {accent}; "
            "padding: 10px 16px; border-radius: 4px; font-size: 12px;"
        )
        self.setWordWrap(True)
        self.setMinimumWidth(260)
        self.setMaximumWidth(380)
        self.setAttribute(Qt.WidgetAttribute.WA_ShowWithoutActivating)
        self.adjustSize()
        self.severity = severity

    def mousePressEvent(self, event) -> None:
        self.hide()
        self.deleteLater()


class ToastManager:
    """Show and stack toasts on *parent*.

    Usage::

        toasts = ToastManager(window)
        toasts.show_error("Could not reach the campaign server")
    """

    def __init__(self, parent: QWidget):
        self._parent = parent
        self._active: list[Toast] = []

    @property
    def active(self) -> list[Toast]:
        return list(self._active)

    def show_info(self, message: str) -> Toast:
        return self._show(message, ToastSeverity.INFO)

    def show_success(self, message: str) -> Toast:
        return self._show(message, ToastSeverity.SUCCESS)

    def show_warning(self, message: str) -> Toast:
        return self._show(message, ToastSeverity.WARNING)

    def show_error(self, message: str) -> Toast:
        return self._show(message, ToastSeverity.ERROR)

    def show_refresh_failures(self, collections: list[str]) -> Toast | None:
        """Warn that some entity collections are missing from suggestions."""
        if not collections:
            return None
        names = ", ".join(collections)
        return self.show_warning(f"Some entities could not be loaded ({names}). Suggestions may be incomplete.")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _show(self, message: str, severity: ToastSeverity) -> Toast:
        toast = Toast(message, severity, self._parent)
        toast.destroyed.connect(lambda *_: self._forget(toast))
        self._active.append(toast)
        self._reposition()
        toast.show()
        toast.raise_()

        # Fade in by sliding up from just below the final spot
        end = toast.pos()
        anim = QPropertyAnimation(toast, b"pos", toast)
        anim.setStartValue(QPoint(end.x(), end.y() + 20))
        anim.setEndValue(end)
        anim.setDuration(250)
        anim.setEasingCurve(QEasingCurve.Type.OutCubic)
        anim.start()
        toast._slide_anim = anim  # keep alive until finished

        _, _, duration = _SEVERITY_STYLE[severity]
        QTimer.singleShot(duration, toast, lambda: self._dismiss(toast))
        logger.debug("Toast (%s): %s", severity.value, message)
        return toast

    def _dismiss(self, toast: Toast) -> None:
        if toast in self._active:
            self._active.remove(toast)
            toast.hide()
            toast.deleteLater()
            self._reposition()

    def _forget(self, toast: Toast) -> None:
        if toast in self._active:
            self._active.remove(toast)

    def _reposition(self) -> None:
        """Stack active toasts upward from the parent's bottom-right corner."""
        rect = self._parent.rect()
        y = rect.bottom() - _MARGIN
        for toast in reversed(self._active):
            toast.adjustSize()
            y -= toast.height()
            toast.move(QPoint(max(0, rect.right() - toast.width() - _MARGIN), max(0, y)))
            y -= _SPACING
