"""
smsbr/config.py
JSON config persisted to smsbr_config.json, merged over DEFAULT_CONFIG.
Missing or unreadable files fall back to defaults.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from smsbr.models.conversations import Order
from smsbr.parsers.phone import host_region

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "smsbr_config.json"

DEFAULT_CONFIG = {
    "default_region": None,       # None: use the host locale's country
    "last_file": None,
    "load_last_file": False,
    "db_path": "smsbr.db",
    "api_host": "127.0.0.1",
    "api_port": 8765,
    "contact_order_by": "date",   # date / name
    "contact_order": "desc",
    "message_order": "asc",
}


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILENAME


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from smsbr_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to smsbr_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def ensure_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load config and drop a last_file that no longer exists, so
    startup_file() never points the loader at a missing backup.
    """
    config = load_config(project_root)
    last_file = config.get("last_file")
    if last_file and not Path(last_file).exists():
        logger.info(f"Last backup file is gone, forgetting it: {last_file}")
        config["last_file"] = None
    return config


def resolve_region(config: Dict[str, Any]) -> str:
    """Region used to parse local phone numbers: config, else host locale."""
    region = config.get("default_region")
    if region:
        return str(region).upper()
    return host_region()


def resolve_order(config: Dict[str, Any], key: str) -> Order:
    value = str(config.get(key) or DEFAULT_CONFIG[key]).lower()
    try:
        return Order(value)
    except ValueError:
        logger.warning(f"Invalid {key} {value!r}, using {DEFAULT_CONFIG[key]}")
        return Order(DEFAULT_CONFIG[key])


def startup_file(config: Dict[str, Any], requested: bool = False) -> Optional[Path]:
    """
    Backup file to open when none is named: last_file, when either the
    caller asks for it or load_last_file is set. None otherwise.
    """
    last_file = config.get("last_file")
    if not last_file:
        return None
    if requested or config.get("load_last_file"):
        return Path(last_file)
    return None


def resolve_db_path(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """SQLite export target from db_path; relative paths sit next to the config file."""
    path = Path(config.get("db_path") or DEFAULT_CONFIG["db_path"])
    if path.is_absolute():
        return path
    return (project_root or Path.cwd()) / path
