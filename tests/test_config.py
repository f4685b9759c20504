"""Tests for configuration loading."""

import tempfile
from pathlib import Path

import yaml

from ptm.config import DEFAULT_CONFIG, load_config


def _write_config(tmpdir, data):
    path = Path(tmpdir) / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def test_defaults_without_file(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("PTM_DB_PATH", raising=False)
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = load_config(_write_config(tmpdir, {}))

    assert cfg["max_workers"] == DEFAULT_CONFIG["max_workers"]
    assert cfg["history_limit"] == 7
    assert "claude_api_key" not in cfg
    assert Path(cfg["db_path"]).is_absolute()


def test_file_values_deep_merge(monkeypatch):
    monkeypatch.delenv("PTM_DB_PATH", raising=False)
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = load_config(_write_config(tmpdir, {
            "drift_range_days": 14,
            "bigquery": {"project": "my-project"},
        }))

    assert cfg["drift_range_days"] == 14
    assert cfg["bigquery"] == {"project": "my-project", "dataset": "ptm"}
    assert cfg["chroma"] == {"collection": "notes"}


def test_defaults_are_not_mutated():
    with tempfile.TemporaryDirectory() as tmpdir:
        load_config(_write_config(tmpdir, {"bigquery": {"dataset": "other"}}))

    assert DEFAULT_CONFIG["bigquery"]["dataset"] == "ptm"


def test_env_overrides(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = str(Path(tmpdir) / "env.db")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        monkeypatch.setenv("PTM_DB_PATH", db_path)

        cfg = load_config(_write_config(tmpdir, {"db_path": "/somewhere/else.db"}))

    assert cfg["claude_api_key"] == "sk-test"
    assert cfg["db_path"] == str(Path(db_path).resolve())
