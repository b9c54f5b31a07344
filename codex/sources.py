"""
codex/sources.py -- Entity sources feeding the entity index.

An entity source returns raw record dicts (straight from the campaign API)
for one collection at a time.  Each record carries at least an ``id`` and
either a ``name`` or a ``title``; normalization happens in the entity index,
not here.

Two implementations are provided:

    HttpEntitySource      Talks to the campaign server REST API.
    JsonFileEntitySource  Reads a campaign export file (offline work, tests).

Both raise :class:`~codex.errors.EntitySourceError` for any failure so the
index can treat every collection uniformly.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Protocol, runtime_checkable

from codex.errors import EntitySourceError
from codex.utils import safe_read_json

logger = logging.getLogger(__name__)

CHARACTER_KINDS: tuple[str, ...] = ("player", "npc", "antagonist")


@runtime_checkable
class EntitySource(Protocol):
    """The seven fetchers the entity index needs (characters count three times)."""

    def fetch_characters(self, campaign_id: str, kind: str) -> list[dict[str, Any]]: ...

    def fetch_locations(self, campaign_id: str) -> list[dict[str, Any]]: ...

    def fetch_factions(self, campaign_id: str) -> list[dict[str, Any]]: ...

    def fetch_world_info(self, campaign_id: str) -> list[dict[str, Any]]: ...

    def fetch_quests(self, campaign_id: str) -> list[dict[str, Any]]: ...


# ------------------------------------------------------------------
# HTTP
# ------------------------------------------------------------------

class HttpEntitySource:
    """Fetch collections from the campaign REST API.

    Parameters
    ----------
    base_url : str
        Server root, e.g. ``http://localhost:3000``.  Endpoints are prefixed
        with ``/api`` unless the base URL already ends with it.
    token : str | None
        Bearer token sent in the ``Authorization`` header.
    timeout : float
        Per-request timeout in seconds.
    """

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    def fetch_characters(self, campaign_id: str, kind: str) -> list[dict[str, Any]]:
        return self._get_list(f"/campaigns/{campaign_id}/characters", f"characters:{kind}", {"type": kind})

    def fetch_locations(self, campaign_id: str) -> list[dict[str, Any]]:
        return self._get_list(f"/campaigns/{campaign_id}/locations", "locations")

    def fetch_factions(self, campaign_id: str) -> list[dict[str, Any]]:
        return self._get_list(f"/campaigns/{campaign_id}/factions", "factions")

    def fetch_world_info(self, campaign_id: str) -> list[dict[str, Any]]:
        return self._get_list(f"/campaigns/{campaign_id}/world-info", "world-info")

    def fetch_quests(self, campaign_id: str) -> list[dict[str, Any]]:
        return self._get_list(f"/campaigns/{campaign_id}/quests", "quests")

    # ------------------------------------------------------------------

    def build_url(self, endpoint: str, params: dict[str, str] | None = None) -> str:
        """Join *endpoint* onto the base URL, adding the ``/api`` prefix once."""
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        base = self._base_url
        if not base.endswith("/api") and not endpoint.startswith("/api/"):
            endpoint = "/api" + endpoint
        url = base + endpoint
        if params:
            url += "?" + urllib.parse.urlencode(params)
        return url

    def _get_list(self, endpoint: str, collection: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        url = self.build_url(endpoint, params)
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        req = urllib.request.Request(url, headers=headers, method="GET")
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            raise EntitySourceError(collection, f"HTTP {e.code}: {_error_detail(e)}") from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise EntitySourceError(collection, f"request failed: {e}") from e

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise EntitySourceError(collection, "response is not valid JSON") from e
        if not isinstance(data, list):
            raise EntitySourceError(collection, f"expected a list, got {type(data).__name__}")
        logger.debug("Fetched %d %s from %s", len(data), collection, url)
        return data


def _error_detail(error: urllib.error.HTTPError) -> str:
    """Pull the server's ``error``/``details`` message out of an error body."""
    try:
        payload = json.loads(error.read().decode("utf-8"))
    except (ValueError, OSError):
        return error.reason or "request failed"
    if isinstance(payload, dict):
        message = payload.get("error") or payload.get("details")
        if message:
            return str(message)
    return error.reason or "request failed"


# ------------------------------------------------------------------
# Campaign export file
# ------------------------------------------------------------------

class JsonFileEntitySource:
    """Read collections from a campaign export JSON file.

    The file holds one top-level list per collection: ``characters`` (each
    with a ``type`` of player/npc/antagonist), ``locations``, ``factions``,
    ``world_info`` (``worldInfo`` is accepted too) and ``quests``.  The
    ``campaign_id`` argument is accepted for interface parity and ignored.
    """

    def __init__(self, path: str):
        self._path = path

    def fetch_characters(self, campaign_id: str, kind: str) -> list[dict[str, Any]]:
        characters = self._collection("characters", f"characters:{kind}")
        return [c for c in characters if isinstance(c, dict) and c.get("type") == kind]

    def fetch_locations(self, campaign_id: str) -> list[dict[str, Any]]:
        return self._collection("locations")

    def fetch_factions(self, campaign_id: str) -> list[dict[str, Any]]:
        return self._collection("factions")

    def fetch_world_info(self, campaign_id: str) -> list[dict[str, Any]]:
        return self._collection("world_info", "world-info", aliases=("worldInfo",))

    def fetch_quests(self, campaign_id: str) -> list[dict[str, Any]]:
        return self._collection("quests")

    def _collection(self, key: str, collection: str | None = None, aliases: tuple[str, ...] = ()) -> list:
        collection = collection or key
        data = safe_read_json(self._path)
        if not isinstance(data, dict):
            raise EntitySourceError(collection, f"cannot read export file {self._path}")
        for name in (key, *aliases):
            if name in data:
                value = data[name]
                if not isinstance(value, list):
                    raise EntitySourceError(collection, f"'{name}' is not a list")
                return value
        return []
