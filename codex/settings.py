"""
codex/settings.py -- User-editable settings for the linking engine.

Settings live in ``settings.json`` inside the user data directory (see
``codex_app/paths.py``).  A missing or corrupt file yields defaults; a file
with invalid values is logged and replaced by defaults rather than aborting
start-up.  A handful of environment variables override the file so that the
app can be pointed at another server without editing JSON.

Usage::

    from codex.settings import load_settings

    settings = load_settings("/path/to/settings.json")
    settings.max_results   # 20
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from codex.utils import safe_read_json, safe_write_json

logger = logging.getLogger(__name__)

# Environment variable -> settings field
ENV_OVERRIDES = {
    "CODEX_API_URL": "api_base_url",
    "CODEX_API_TOKEN": "api_token",
    "CODEX_CAMPAIGN_ID": "campaign_id",
}


class CodexSettings(BaseModel):
    """Validated settings.  Unknown keys in the file are ignored."""

    model_config = ConfigDict(extra="ignore")

    api_base_url: str = "http://localhost:3000"
    api_token: Optional[str] = None
    request_timeout: float = Field(default=10.0, gt=0)
    campaign_id: Optional[str] = None
    trigger_char: str = "["
    max_results: int = Field(default=20, ge=1)
    export_path: Optional[str] = None

    @field_validator("trigger_char")
    @classmethod
    def _single_character(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("trigger_char must be exactly one character")
        return value

    @field_validator("campaign_id", mode="before")
    @classmethod
    def _campaign_as_str(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


def load_settings(path: str | None = None, environ: Mapping[str, str] | None = None) -> CodexSettings:
    """Load settings from *path*, then apply environment overrides.

    Parameters
    ----------
    path : str | None
        Location of ``settings.json``.  ``None`` skips the file entirely.
    environ : Mapping[str, str] | None
        Environment to read overrides from (defaults to ``os.environ``).
    """
    data: dict = {}
    if path:
        raw = safe_read_json(path, default={})
        if isinstance(raw, dict):
            data = dict(raw)
        else:
            logger.warning("Ignoring settings file %s: top-level value is not an object", path)

    env = os.environ if environ is None else environ
    for var, field_name in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            data[field_name] = value

    try:
        return CodexSettings.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid settings in %s, using defaults: %s", path or "<environment>", e)
        return CodexSettings()


def save_settings(path: str, settings: CodexSettings) -> None:
    """Atomically write *settings* to *path*."""
    safe_write_json(path, settings.model_dump(exclude_none=True))
