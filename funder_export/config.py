"""Configuration management for funder-export.

This module centralizes file-system paths, environment variables, and the
JSON configuration loaders used by the export pipeline.

Configuration files
-------------------
* ``config.json``: shared project config (output defaults, pipeline and
  scheduling settings)
* ``templates/<export_type>.json``: predefined funder templates (field
  mappings, code tables, validation rules, field length limits)

Environment variables
---------------------
``DATA_DIR`` and ``LOGS_DIR`` override default directories. ``EXPORT_TIMEZONE``
sets the fallback schedule timezone and ``EXPORT_BATCH_SIZE`` the number of
subjects mapped per batch. Directories are created eagerly on import so
downstream callers can rely on their existence.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
TEMPLATES_CONFIG_DIR = CONFIG_DIR / "templates"
DATA_DIR = Path(os.getenv("DATA_DIR", PROJECT_ROOT / "data"))
LOGS_DIR = Path(os.getenv("LOGS_DIR", PROJECT_ROOT / "logs"))

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

DEFAULT_TIMEZONE = os.getenv("EXPORT_TIMEZONE", "America/Los_Angeles")
DEFAULT_BATCH_SIZE = int(os.getenv("EXPORT_BATCH_SIZE", "500"))


def get_config() -> dict[str, Any]:
    """Load the primary project configuration.

    Returns
    -------
    dict[str, Any]
        Parsed contents of ``config/config.json``.

    Raises
    ------
    FileNotFoundError
        If ``config/config.json`` is missing.
    json.JSONDecodeError
        If the file exists but is not valid JSON.
    """
    config_path = CONFIG_DIR / "config.json"
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    with Path(config_path).open(encoding="utf-8") as f:
        return json.load(f)  # type: ignore[no-any-return]


def get_template_config(name: str) -> dict[str, Any]:
    """Load a predefined template definition from ``config/templates``.

    Parameters
    ----------
    name : str
        File stem, e.g. ``"hud_hmis"``.

    Returns
    -------
    dict[str, Any]
        Raw template definition using the camelCase wire keys.

    Raises
    ------
    FileNotFoundError
        If the template file does not exist.
    """
    template_path = TEMPLATES_CONFIG_DIR / f"{name}.json"
    if not template_path.exists():
        msg = f"Template config not found: {template_path}"
        raise FileNotFoundError(msg)

    with Path(template_path).open(encoding="utf-8") as f:
        return json.load(f)  # type: ignore[no-any-return]


def get_output_defaults() -> dict[str, Any]:
    """Return default ``OutputConfig`` values from ``config.json``."""
    config = get_config()
    return cast("dict[str, Any]", config.get("output_defaults", {}))


def get_scheduling_config() -> dict[str, Any]:
    """Return scheduling settings with built-in fallbacks.

    Returns
    -------
    dict[str, Any]
        Keys ``default_timezone``, ``max_consecutive_failures`` and
        ``search_horizon_years``.
    """
    defaults: dict[str, Any] = {
        "default_timezone": DEFAULT_TIMEZONE,
        "max_consecutive_failures": 3,
        "search_horizon_years": 2,
    }
    try:
        config = get_config()
    except FileNotFoundError:
        return defaults
    return {**defaults, **config.get("scheduling", {})}


def get_pipeline_config() -> dict[str, Any]:
    """Return pipeline settings (batch size, preview limit) with fallbacks."""
    defaults: dict[str, Any] = {"batch_size": DEFAULT_BATCH_SIZE, "preview_limit": 10}
    try:
        config = get_config()
    except FileNotFoundError:
        return defaults
    return {**defaults, **config.get("pipeline", {})}


def setup_logging(name: str = "funder_export") -> logging.Logger:
    """Configure a console+file logger if not already present.

    Parameters
    ----------
    name : str, optional
        Logger namespace; reused to avoid duplicate handlers.

    Returns
    -------
    logging.Logger
        Logger with INFO-level console handler and DEBUG-level daily file
        handler under ``LOGS_DIR``.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(logging.DEBUG)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_format = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        console_handler.setFormatter(console_format)
        logger.addHandler(console_handler)

        # File handler
        log_filename = f"{datetime.now(UTC).strftime('%Y-%m-%d')}_run.log"
        file_handler = logging.FileHandler(LOGS_DIR / log_filename)
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)

    return logger
