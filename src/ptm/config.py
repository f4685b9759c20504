"""Configuration management for PTM."""

import os
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG = {
    "db_path": "~/.ptm/brain.db",
    "chroma_path": "~/.ptm/chroma",
    "storage_backend": "sqlite",
    "embedding_dim": None,
    "scan_timeout": 30.0,
    "max_workers": 4,
    "drift_range_days": 30,
    "dynamics_range_days": 7,
    "history_limit": 7,
    "claude_model": "claude-sonnet-4-20250514",
    "chroma": {"collection": "notes"},
    "bigquery": {"project": "", "dataset": "ptm"},
}


def _find_config_file() -> Path | None:
    """Look for config.yaml in standard locations."""
    candidates = [
        Path.cwd() / "config" / "config.yaml",
        Path.cwd() / "config.yaml",
        Path.home() / ".ptm" / "config.yaml",
    ]
    for p in candidates:
        if p.exists():
            return p
    return None


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration, merging defaults with file and env vars."""
    cfg = _copy(DEFAULT_CONFIG)

    path = Path(config_path) if config_path else _find_config_file()
    if path and path.exists():
        with open(path) as f:
            file_cfg = yaml.safe_load(f) or {}
        _deep_merge(cfg, file_cfg)

    # Env overrides
    if api_key := os.environ.get("ANTHROPIC_API_KEY"):
        cfg["claude_api_key"] = api_key
    if db_path := os.environ.get("PTM_DB_PATH"):
        cfg["db_path"] = db_path

    for key in ("db_path", "chroma_path"):
        cfg[key] = str(Path(cfg[key]).expanduser().resolve())

    return cfg


def _copy(cfg: dict) -> dict:
    return {k: _copy(v) if isinstance(v, dict) else v for k, v in cfg.items()}


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in-place."""
    for k, v in override.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
