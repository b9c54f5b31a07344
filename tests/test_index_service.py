"""
Tests for codex_app/services/index_service.py -- background refresh on a QThread.
"""

import threading
from unittest.mock import MagicMock

import pytest

from codex.entity_index import EntityIndex
from codex.models import EntitySnapshot
from codex_app.services.event_bus import EventBus
from codex_app.services.index_service import IndexService


@pytest.fixture(autouse=True)
def _reset_event_bus():
    EventBus.reset()
    yield
    EventBus.reset()


class _BlockingSource:
    """Source whose first fetch waits until released."""

    def __init__(self, inner):
        self._inner = inner
        self.release = threading.Event()

    def fetch_characters(self, campaign_id, kind):
        self.release.wait(5)
        return self._inner.fetch_characters(campaign_id, kind)

    def __getattr__(self, name):
        return getattr(self._inner, name)


class TestIndexService:
    def test_background_refresh_emits_snapshot(self, qtbot, fake_source):
        service = IndexService(EntityIndex(fake_source))
        with qtbot.waitSignal(service.snapshot_changed, timeout=5000) as blocker:
            assert service.refresh("42") is True
        snapshot = blocker.args[0]
        assert isinstance(snapshot, EntitySnapshot)
        assert snapshot.total == 11
        assert service.current() is snapshot
        service.shutdown()

    def test_refresh_announced_on_bus(self, qtbot, fake_source):
        service = IndexService(EntityIndex(fake_source))
        with qtbot.waitSignal(EventBus.instance().index_refreshed, timeout=5000) as blocker:
            service.refresh("42")
        assert blocker.args == [11]
        service.shutdown()

    def test_refresh_started_carries_campaign(self, qtbot, fake_source):
        service = IndexService(EntityIndex(fake_source))
        with qtbot.waitSignal(service.refresh_started, timeout=1000) as blocker:
            service.refresh(7)
        assert blocker.args == ["7"]
        qtbot.waitUntil(lambda: not service.is_refreshing, timeout=5000)

    def test_second_refresh_ignored_while_running(self, qtbot, fake_source):
        source = _BlockingSource(fake_source)
        service = IndexService(EntityIndex(source))
        assert service.refresh("1") is True
        assert service.is_refreshing
        assert service.refresh("1") is False
        with qtbot.waitSignal(service.snapshot_changed, timeout=5000):
            source.release.set()
        service.shutdown()

    def test_failed_collections_reported(self, qtbot, failing_source_factory):
        service = IndexService(EntityIndex(failing_source_factory("quests", "factions")))
        with qtbot.waitSignal(service.collections_failed, timeout=5000) as blocker:
            service.refresh("1")
        assert blocker.args == [["factions", "quests"]]
        service.shutdown()

    def test_unexpected_failure_goes_to_error_bus(self, qtbot):
        index = MagicMock()
        index.refresh.side_effect = RuntimeError("kaboom")
        service = IndexService(index)
        with qtbot.waitSignal(EventBus.instance().error_occurred, timeout=5000) as blocker:
            service.refresh("1")
        assert "kaboom" in blocker.args[0]
        service.shutdown()

