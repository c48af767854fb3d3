"""Configuration loading from the environment and an optional .env file."""

import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from loguru import logger

from gitvis.errors import ConfigurationError

DEFAULTS: Dict[str, Any] = {
    "host": "127.0.0.1",
    "port": 8000,
    "chunk_size": 500,
    "page_size": 500,
    "clone_depth": 500,
    "log_level": "INFO",
}


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def load_config(env_file: Optional[str] = None) -> Dict[str, Any]:
    """Build the runtime configuration.

    Values from ``env_file`` (or a ``.env`` in the working directory) are
    loaded first; variables already present in the environment win.
    """
    load_dotenv(env_file)

    config = {
        "host": os.getenv("GITVIS_HOST", DEFAULTS["host"]),
        "port": _read_int("GITVIS_PORT", DEFAULTS["port"]),
        "chunk_size": _read_int("GITVIS_CHUNK_SIZE", DEFAULTS["chunk_size"]),
        "page_size": _read_int("GITVIS_PAGE_SIZE", DEFAULTS["page_size"]),
        "clone_depth": _read_int("GITVIS_CLONE_DEPTH", DEFAULTS["clone_depth"]),
        "log_level": os.getenv("GITVIS_LOG_LEVEL", DEFAULTS["log_level"]).upper(),
    }
    logger.debug(f"Loaded configuration: {config}")
    return config
