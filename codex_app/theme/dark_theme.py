"""
codex_app/theme/dark_theme.py -- Dark theme configuration.

Applies qt-material's dark_amber theme, then layers the overrides for the
notes editor, the suggestion overlay and the status bar.

Usage::

    from codex_app.theme.dark_theme import apply_theme
    apply_theme(app)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from PySide6.QtWidgets import QApplication

logger = logging.getLogger(__name__)

MATERIAL_THEME = "dark_amber.xml"

_CUSTOM_QSS = """
/* Notes editor */
QTextEdit#referenceEditor {
    font-size: 14px;
    padding: 8px;
}

/* Suggestion overlay */
QFrame#suggestionOverlay {
    background-color: #1e1e1e;
    border: 1px solid #444;
    border-radius: 6px;
}
QFrame#suggestionOverlay QListWidget {
    background-color: transparent;
    border: none;
    font-size: 13px;
}
QFrame#suggestionOverlay QListWidget::item {
    padding: 6px 10px;
}
QFrame#suggestionOverlay QListWidget::item:selected {
    background-color: #3a3a3a;
    color: #ffd700;
}

/* Status bar */
QStatusBar {
    font-size: 12px;
}

/* Tool tips */
QToolTip {
    padding: 4px 8px;
    font-size: 12px;
}
"""


def apply_theme(app: "QApplication") -> None:
    """Apply the material theme with the codex overrides.

    Parameters
    ----------
    app : QApplication
        The application instance to theme.
    """
    try:
        from qt_material import apply_stylesheet
        apply_stylesheet(app, theme=MATERIAL_THEME)
        logger.info("Applied qt-material %s theme", MATERIAL_THEME)
    except Exception:
        logger.warning("qt-material theme failed, falling back to Fusion", exc_info=True)
        from PySide6.QtWidgets import QApplication
        QApplication.setStyle("Fusion")

    existing = app.styleSheet() or ""
    app.setStyleSheet(existing + _CUSTOM_QSS)
