"""
codex_app/main.py -- Application entry point.

Loads settings, builds the entity source and index, applies the dark theme,
creates the MainWindow and runs the event loop.  The first entity refresh
starts as soon as the window is up.

Usage::

    python -m codex_app.main
    # or, once installed
    codex-app
"""

from __future__ import annotations

import os
os.environ.setdefault("QT_ENABLE_HIGHDPI_SCALING", "1")

import logging
import sys
import traceback

# Ensure project root is on sys.path
_THIS_DIR = os.path.dirname(os.path.abspath(__file__))
_PROJECT_ROOT = os.path.dirname(_THIS_DIR)
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from codex.entity_index import EntityIndex
from codex.settings import CodexSettings, load_settings
from codex.sources import EntitySource, HttpEntitySource, JsonFileEntitySource
from codex_app.paths import get_settings_path, get_user_data_dir, is_frozen

NOTES_FILENAME = "notes.html"


def _setup_logging() -> None:
    """Configure logging for the desktop application."""
    level = logging.DEBUG if os.environ.get("CODEX_DEBUG") else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _global_exception_hook(exc_type, exc_value, exc_tb):
    """Last-resort handler for uncaught exceptions.

    Logs the traceback and shows a message box (if a QApplication exists).
    """
    logger = logging.getLogger("codex_app")
    logger.critical(
        "Uncaught exception: %s",
        "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
    )

    try:
        from PySide6.QtWidgets import QApplication, QMessageBox
        app = QApplication.instance()
        if app is not None:
            QMessageBox.critical(
                None,
                "Unexpected Error",
                f"An unexpected error occurred:\n\n{exc_value}\n\n"
                "The application will attempt to continue.\n"
                "Please check the logs for details.",
            )
    except Exception:
        logger.debug("Could not show the error dialog", exc_info=True)


def build_source(settings: CodexSettings) -> EntitySource:
    """Return the entity source the settings point at.

    A configured ``export_path`` (a JSON export of the campaign) wins over
    the HTTP API, which lets the app work offline.
    """
    if settings.export_path:
        return JsonFileEntitySource(settings.export_path)
    return HttpEntitySource(
        settings.api_base_url,
        token=settings.api_token,
        timeout=settings.request_timeout,
    )


def main() -> int:
    """Launch Tabletop Codex."""
    _setup_logging()
    logger = logging.getLogger("codex_app")
    logger.info("Starting Tabletop Codex (frozen=%s)", is_frozen())

    sys.excepthook = _global_exception_hook

    settings_path = get_settings_path()
    settings = load_settings(settings_path)
    logger.info("Settings loaded from %s (campaign=%s)", settings_path, settings.campaign_id)

    # Must create QApplication before anything else Qt-related
    from PySide6.QtWidgets import QApplication
    app = QApplication.instance() or QApplication(sys.argv)

    from codex_app.theme.dark_theme import apply_theme
    apply_theme(app)

    from codex_app.services.index_service import IndexService
    index_service = IndexService(EntityIndex(build_source(settings)))

    from codex_app.main_window import MainWindow
    notes_path = os.path.join(get_user_data_dir(), NOTES_FILENAME)
    window = MainWindow(index_service, settings, notes_path=notes_path)
    window.show()
    logger.info("Main window displayed")

    if settings.campaign_id:
        index_service.refresh(settings.campaign_id)
    else:
        logger.warning("No campaign_id configured; suggestions will be empty")

    exit_code = app.exec()

    logger.info("Shutting down...")
    index_service.shutdown()
    logger.info("Goodbye!")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
