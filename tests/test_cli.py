"""Smoke tests for the command line interface."""

import tempfile
from pathlib import Path

from click.testing import CliRunner

from ptm.cli import cli


def test_init_capture_history(monkeypatch):
    monkeypatch.delenv("PTM_DB_PATH", raising=False)
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        result = runner.invoke(cli, ["init", "--path", tmpdir])
        assert result.exit_code == 0, result.output
        config_file = Path(tmpdir) / "config.yaml"
        assert config_file.exists()
        assert (Path(tmpdir) / "brain.db").exists()

        result = runner.invoke(cli, ["--config", str(config_file), "capture", "--date", "2024-06-01"])
        assert result.exit_code == 0, result.output
        assert "Captured snapshot for 2024-06-01" in result.output

        result = runner.invoke(cli, ["--config", str(config_file), "history", "--json"])
        assert result.exit_code == 0, result.output
        assert '"2024-06-01"' in result.output


def test_persona_without_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("PTM_DB_PATH", raising=False)
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        runner.invoke(cli, ["init", "--path", tmpdir])
        result = runner.invoke(cli, ["--config", str(Path(tmpdir) / "config.yaml"), "persona"])

    assert result.exit_code == 0
    assert "API key required" in result.output
