"""
codex_app/services/event_bus.py -- Application-wide event bus using Qt signals.

Singleton that provides typed signals for cross-widget communication.
Editors, the main window and the index service connect to the EventBus
rather than directly to each other.

Usage::

    from codex_app.services.event_bus import EventBus

    bus = EventBus.instance()
    bus.navigation_requested.connect(my_handler)
"""

from __future__ import annotations

import threading

from PySide6.QtCore import QObject, Signal


class EventBus(QObject):
    """Application-wide signal bus.

    Signals
    -------
    reference_activated(dict)
        A reference node was clicked.  Payload is the navigation command
        (``id``, ``category``, ``secondary_owner_id``).
    reference_inserted(dict)
        A reference node was committed into a document.
    navigation_requested(str, dict)
        The dispatcher resolved a click: (route, payload).
    index_refreshed(int)
        A new entity snapshot is live.  Payload is the record count.
    error_occurred(str)
        Fired when an error needs to be shown to the user.
    status_message(str)
        Fired to update the status bar message.
    """

    # Reference lifecycle
    reference_activated = Signal(dict)
    reference_inserted = Signal(dict)

    # Navigation
    navigation_requested = Signal(str, dict)

    # Entity index
    index_refreshed = Signal(int)

    # Error and status
    error_occurred = Signal(str)
    status_message = Signal(str)

    # Singleton
    _instance: EventBus | None = None
    _lock = threading.Lock()

    @classmethod
    def instance(cls) -> EventBus:
        """Return the singleton EventBus instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton (for testing)."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.deleteLater()
            cls._instance = None
