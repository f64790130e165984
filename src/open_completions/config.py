"""Configuration for open-completions.

Config discovery (first match wins):
  1. explicit path (``--config`` flag)
  2. ``./open_completions.yaml``
  3. ``~/.config/open-completions/config.yaml``
  4. Built-in defaults

``api_key`` falls back to the ``OPENAI_API_KEY`` environment variable.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from open_completions.llm.backoff import RetryPolicy

_logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
_API_KEY_ENV = "OPENAI_API_KEY"


@dataclass
class ClientConfig:
    """Connection, timeout and retry settings for one provider endpoint."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    model: str = "gpt-4o-mini"
    timeout: float = 30
    connect_timeout: float = 10
    # Chunks arrive frequently once generation starts, so a long gap
    # between them means the stream is stuck.
    stream_read_timeout: float = 60
    extra_headers: dict[str, str] = field(default_factory=dict)
    retry: RetryPolicy = field(default_factory=RetryPolicy)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./open_completions.yaml"),
    Path.home() / ".config" / "open-completions" / "config.yaml",
]


def _parse_retry(raw: dict[str, Any] | None) -> RetryPolicy:
    if not raw:
        return RetryPolicy()
    known = {f.name for f in fields(RetryPolicy)}
    return RetryPolicy(**{k: v for k, v in raw.items() if k in known and v is not None})


def _with_env(config: ClientConfig) -> ClientConfig:
    if not config.api_key:
        config.api_key = os.environ.get(_API_KEY_ENV, "")
    return config


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ClientConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return _with_env(ClientConfig())
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return _with_env(ClientConfig())

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    defaults = ClientConfig()
    config = ClientConfig(
        base_url=raw.get("base_url", defaults.base_url),
        api_key=raw.get("api_key", defaults.api_key) or "",
        model=raw.get("model", defaults.model),
        timeout=raw.get("timeout", defaults.timeout),
        connect_timeout=raw.get("connect_timeout", defaults.connect_timeout),
        stream_read_timeout=raw.get(
            "stream_read_timeout", defaults.stream_read_timeout,
        ),
        extra_headers=dict(raw.get("extra_headers") or {}),
        retry=_parse_retry(raw.get("retry")),
    )
    return _with_env(config)
