"""
codex_app/paths.py -- Path resolution for frozen and development modes.

Detects PyInstaller bundles and uses platformdirs for the user data
directory holding ``settings.json`` and the notes file.
"""

from __future__ import annotations

import os
import sys

from platformdirs import user_data_dir

_APP_NAME = "TabletopCodex"
_APP_AUTHOR = "TabletopCodex"

SETTINGS_FILENAME = "settings.json"


def is_frozen() -> bool:
    """Return True if running from a PyInstaller bundle."""
    return getattr(sys, "frozen", False) and hasattr(sys, "_MEIPASS")


def get_user_data_dir() -> str:
    """Return the platform-appropriate user data directory."""
    path = user_data_dir(_APP_NAME, _APP_AUTHOR)
    os.makedirs(path, exist_ok=True)
    return path


def get_settings_path() -> str:
    """Return the location of ``settings.json``.

    ``CODEX_SETTINGS`` overrides the default so that several campaigns can
    be worked on side by side.
    """
    override = os.environ.get("CODEX_SETTINGS")
    if override:
        return override
    return os.path.join(get_user_data_dir(), SETTINGS_FILENAME)
