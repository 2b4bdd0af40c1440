# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Shared configuration loader.

Loads a single JSON config file.  Search order:
  1. $DUET_CONFIG                                  (explicit override)
  2. $XDG_CONFIG_HOME/duet/config.json              (~/.config/duet/config.json)
  3. config.json                                   (CWD — handy for local dev)

Environment variables (DUET_SPOTIFY_CLIENT_ID, DUET_LOG_LEVEL, ...) are
applied on top of whatever the file says.

Usage:
    from duet.lib.config import cfg

    client_id = cfg("spotify", "client_id")
    interval  = cfg("tail", "interval", default=1000)
    sonos     = cfg("sonos")  # returns the whole dict
"""

import json
import logging
import os
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_config: dict | None = None

DEFAULTS = {
    "spotify": {
        "redirect_uri": "http://127.0.0.1:8888/callback",
    },
    "sonos": {
        "discovery_timeout": 3,
    },
    "tail": {
        "interval": 1000,
    },
    "log": {
        "level": "info",
    },
}

# env var -> (section, key, converter)
_ENV_OVERRIDES = {
    "DUET_SPOTIFY_CLIENT_ID": ("spotify", "client_id", str),
    "DUET_SPOTIFY_REDIRECT_URI": ("spotify", "redirect_uri", str),
    "DUET_SONOS_DEFAULT_ROOM": ("sonos", "default_room", str),
    "DUET_SONOS_DISCOVERY_TIMEOUT": ("sonos", "discovery_timeout", int),
    "DUET_LOG_LEVEL": ("log", "level", str),
    "DUET_LOG_FILE": ("log", "file", str),
}

LOG_LEVELS = ("debug", "info", "warn", "warning", "error")


def config_dir() -> str:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "duet")


def cache_dir() -> str:
    base = os.environ.get("XDG_CACHE_HOME") or os.path.join(os.path.expanduser("~"), ".cache")
    return os.path.join(base, "duet")


def _search_paths() -> list[str]:
    paths = []
    explicit = os.environ.get("DUET_CONFIG")
    if explicit:
        paths.append(explicit)
    paths.append(os.path.join(config_dir(), "config.json"))
    paths.append("config.json")
    return paths


def validate_config(config: dict) -> list[str]:
    """Return a list of human-readable problems with *config* (empty if fine)."""
    problems = []

    redirect = (config.get("spotify") or {}).get("redirect_uri")
    if redirect:
        parsed = urlparse(redirect)
        if not parsed.scheme or not parsed.netloc:
            problems.append(f"spotify.redirect_uri is not a valid URL: {redirect!r}")

    timeout = (config.get("sonos") or {}).get("discovery_timeout")
    if isinstance(timeout, (int, float)) and timeout < 0:
        problems.append("sonos.discovery_timeout must be non-negative")

    interval = (config.get("tail") or {}).get("interval")
    if isinstance(interval, (int, float)) and interval < 0:
        problems.append("tail.interval must be non-negative")

    level = (config.get("log") or {}).get("level")
    if level and str(level).lower() not in LOG_LEVELS:
        problems.append(f"log.level must be one of debug, info, warn, error (got {level!r})")

    return problems


def _apply_defaults(config: dict) -> dict:
    for section, values in DEFAULTS.items():
        current = config.setdefault(section, {})
        if not isinstance(current, dict):
            continue
        for key, value in values.items():
            current.setdefault(key, value)
    return config


def _apply_env_overrides(config: dict) -> dict:
    for var, (section, key, convert) in _ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if not raw:
            continue
        try:
            value = convert(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: not a valid %s", var, raw, convert.__name__)
            continue
        config.setdefault(section, {})[key] = value
    return config


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    loaded = None
    for path in _search_paths():
        try:
            with open(path) as f:
                loaded = json.load(f)
                logger.info("Config loaded from %s", path)
                break
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    if loaded is None:
        logger.debug("No config.json found — using defaults")
        loaded = {}

    _config = _apply_env_overrides(_apply_defaults(loaded))
    for problem in validate_config(_config):
        logger.warning("Config: %s", problem)
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("spotify")                    → config["spotify"]
    cfg("spotify", "client_id")       → config["spotify"]["client_id"]
    cfg("tail", "interval", default=1000)  → config["tail"]["interval"] or 1000
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        found = val.get(key)
        return found if found is not None else default
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


def setup_logging(level: str | None = None, log_file: str | None = None):
    """Configure the root logger from the ``log`` section (or explicit args)."""
    level = (level or cfg("log", "level", default="info")).upper()
    if level == "WARN":
        level = "WARNING"
    log_file = log_file or cfg("log", "file")
    kwargs = {}
    if log_file:
        kwargs["filename"] = log_file
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        **kwargs,
    )
