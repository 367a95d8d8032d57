"""Access to the optional ``config.json`` file.

The file lives at the repository root unless ``GAVEL_CONFIG`` points
elsewhere. Relevant keys::

    {
      "paths": {"db_path": "gavel.db"},
      "db": {"enable_wal": true, "foreign_keys": true},
      "db_timeout_seconds": 30,
      "auctions": {"min_increment_ratio": 0.01, "anti_sniping_window_seconds": 300}
    }
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

DEFAULT_DB_TIMEOUT = 30.0
DEFAULT_DB_FILENAME = "gavel.db"

_REPO_ROOT = Path(__file__).resolve().parents[3]


def config_file(config_path: Path | str | None = None) -> Path:
    """Resolve which config file to read."""
    if config_path is not None:
        return Path(config_path)
    return Path(os.environ.get("GAVEL_CONFIG", _REPO_ROOT / "config.json"))


def load_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Return the parsed config file, or an empty dict when it is absent."""
    path = config_file(config_path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, dict) else {}


def get_path_config(config_path: Path | str | None = None) -> Dict[str, Path]:
    """Return ``db_path``, resolved relative to the config file's directory."""
    path = config_file(config_path)
    paths_cfg = load_config(path).get("paths")
    raw = paths_cfg.get("db_path") if isinstance(paths_cfg, dict) else None
    db_path = Path(raw) if raw else Path(DEFAULT_DB_FILENAME)
    if not db_path.is_absolute():
        db_path = (path.parent / db_path).resolve()
    return {"db_path": db_path}


def get_default_timeout(config_path: Path | str | None = None) -> float:
    try:
        return float(load_config(config_path).get("db_timeout_seconds", DEFAULT_DB_TIMEOUT))
    except (TypeError, ValueError):
        return DEFAULT_DB_TIMEOUT
