"""
Persistent user settings in ``~/.speedprobe/config.json``.

The file only needs the keys a user wants to change; everything else
comes from ``DEFAULTS``.  Unknown keys are dropped and a file that cannot
be read or parsed is ignored with a warning.

Keys::

    plan = 100                  # provisioned bandwidth in Mbps (0 = none)
    ping_url = "https://..."    # latency endpoint
    download_url = "https://..."
    upload_url = "https://..."
    download_duration = 8.0     # seconds
    upload_duration = 6.0
    download_bytes = 10485760   # size requested from the download endpoint
    upload_chunk_bytes = 1048576
    upload_iterations = 10
    log_level = "WARNING"
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from .constants import (
    DEFAULT_DOWNLOAD_URL,
    DEFAULT_PING_URL,
    DEFAULT_UPLOAD_URL,
    DOWNLOAD_DURATION,
    DOWNLOAD_REQUEST_BYTES,
    UPLOAD_DURATION,
    UPLOAD_MAX_ITERATIONS,
    UPLOAD_PAYLOAD_SIZE,
)

logger = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".speedprobe" / "config.json"

DEFAULTS: Dict[str, Any] = {
    "plan": 0.0,
    "ping_url": DEFAULT_PING_URL,
    "download_url": DEFAULT_DOWNLOAD_URL,
    "upload_url": DEFAULT_UPLOAD_URL,
    "download_duration": DOWNLOAD_DURATION,
    "upload_duration": UPLOAD_DURATION,
    "download_bytes": DOWNLOAD_REQUEST_BYTES,
    "upload_chunk_bytes": UPLOAD_PAYLOAD_SIZE,
    "upload_iterations": UPLOAD_MAX_ITERATIONS,
    "log_level": "WARNING",
}


def _config_path() -> Path:
    return CONFIG_FILE


def config_path() -> str:
    return str(_config_path())


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """``DEFAULTS`` overlaid with whatever the config file provides."""
    config = dict(DEFAULTS)
    path = Path(_config_path())

    try:
        stored = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return config
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return config

    if not isinstance(stored, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", path)
        return config

    for key, value in stored.items():
        if key in DEFAULTS:
            config[key] = value
        else:
            logger.debug("Dropping unknown config key %r", key)
    return config


def save_config(config: Dict[str, Any]) -> str:
    path = Path(_config_path())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return str(path)


def get_config_value(key: str) -> Any:
    return load_config().get(key)


def set_config_value(key: str, value: Any) -> str:
    """Persist one known setting; returns the file path."""
    _require_known(key)
    config = load_config()
    config[key] = value
    return save_config(config)


# ---------------------------------------------------------------------------
# Command-line values
# ---------------------------------------------------------------------------

def _require_known(key: str) -> None:
    if key not in DEFAULTS:
        raise KeyError(f"Unknown config key: {key}")


def coerce_value(key: str, raw: str) -> Any:
    """Parse *raw* into the type ``DEFAULTS[key]`` holds."""
    _require_known(key)
    kind = type(DEFAULTS[key])
    if kind is str:
        return raw
    return kind(raw)
