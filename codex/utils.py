"""
Shared file and JSON helpers for the codex package.

All writes use atomic temp-file-then-os.replace() so that a crash
mid-write never leaves a truncated settings or notes file behind.
"""

import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# File I/O (atomic writes)
# ---------------------------------------------------------------------------

def safe_read_json(path, default=None):
    """Read a JSON file, returning *default* if the file is missing or corrupt.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the JSON file.
    default
        Value returned when the file cannot be read (default ``None``).

    Returns
    -------
    object
        Parsed JSON content, or *default* on failure.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return default


def safe_write_text(path, text):
    """Atomically write *text* to *path*.

    Uses a temporary file in the same directory followed by
    ``os.replace()`` so that readers never see a partially-written file.
    The temporary file is removed if the write fails.  Parent directories
    are created if they do not exist.
    """
    path = os.path.abspath(str(path))
    parent = os.path.dirname(path)
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def safe_write_json(path, data, *, indent=2):
    """Atomically write *data* as JSON to *path* (see :func:`safe_write_text`)."""
    safe_write_text(path, json.dumps(data, indent=indent, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Embedded JSON payloads
# ---------------------------------------------------------------------------

def decode_json_payload(value):
    """Return *value* as a parsed JSON object.

    Character sheets arrive either already decoded (a dict) or as the raw
    JSON text stored in the database column.  Strings are decoded; anything
    that is not a dict afterwards yields ``None``.
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.debug("Ignoring undecodable JSON payload (%d chars)", len(value))
            return None
    if not isinstance(value, dict):
        return None
    return value
