import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

CONFIG_DIR = Path.home() / ".config" / "time-archive"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "data_root": str(Path.home() / "time-archive" / "data"),
    "db_path": str(CONFIG_DIR / "archive.db"),
    "locks_dir": str(CONFIG_DIR / "locks"),
    "protected_folders": "",
    "excluded_users": [],
    "exclude_paths": [],
    "page_size": 1000,
    "max_attempts": 3,
    "base_delay_seconds": 2.0,
    "shared_base_delay_seconds": 5.0,
    "job_interval_seconds": 86400,
    "report_path": "",
    "log_level": "INFO",
    "log_path": "",
}

ENV_OVERRIDES = {
    "TIME_ARCHIVE_DATA_ROOT": "data_root",
    "TIME_ARCHIVE_DB_PATH": "db_path",
    "TIME_ARCHIVE_LOCKS_DIR": "locks_dir",
    "TIME_ARCHIVE_PROTECTED_FOLDERS": "protected_folders",
    "TIME_ARCHIVE_REPORT_PATH": "report_path",
    "TIME_ARCHIVE_LOG_LEVEL": "log_level",
    "TIME_ARCHIVE_LOG_PATH": "log_path",
}


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    updated = dict(cfg)
    for env_key, cfg_key in ENV_OVERRIDES.items():
        value = os.environ.get(env_key)
        if value:
            updated[cfg_key] = value
    return updated


def config_path() -> Path:
    override = os.environ.get("TIME_ARCHIVE_CONFIG")
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or config_path()
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(DEFAULT_CONFIG, indent=2), encoding="utf-8")
    cfg = json.loads(path.read_text(encoding="utf-8"))
    merged = dict(DEFAULT_CONFIG)
    merged.update(cfg)
    if merged != cfg:
        path.write_text(json.dumps(merged, indent=2), encoding="utf-8")
    return _apply_env_overrides(merged)


def resolve_path(cfg: Dict[str, Any], key: str) -> Optional[Path]:
    raw = cfg.get(key)
    if not raw:
        return None
    return Path(str(raw)).expanduser()
