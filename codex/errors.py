"""
codex/errors.py -- Exception hierarchy for the cross-reference engine.

Only failures that a caller can meaningfully react to get their own type.
Per-collection fetch failures are caught by the entity index and never
escape a refresh; the types exist so that sources can signal them precisely.
"""

from __future__ import annotations


class CodexError(Exception):
    """Base class for all errors raised by the codex package."""


class EntitySourceError(CodexError):
    """A collection could not be fetched or decoded.

    Parameters
    ----------
    collection : str
        Name of the collection being fetched (e.g. ``"factions"``).
    message : str
        Human-readable description of the failure.
    """

    def __init__(self, collection: str, message: str):
        super().__init__(f"{collection}: {message}")
        self.collection = collection


class MarkupError(CodexError):
    """Document markup could not be parsed into segments."""
