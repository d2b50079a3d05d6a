"""Basic smoke tests for configuration and the CLI wiring."""
from __future__ import annotations

from typer.testing import CliRunner

from finanalyzer.cli.commands import app
from finanalyzer.infrastructure.db.kv_store import SQLiteKeyValueStore
from finanalyzer.library.store import ReportLibrary
from finanalyzer.settings.config import Config
from finanalyzer.settings.loader import load_settings

from factories import make_report


def _isolate(monkeypatch, tmp_path):
    monkeypatch.delenv("POE_API_KEY", raising=False)
    monkeypatch.setenv("LIBRARY_PATH", str(tmp_path / "data" / "library.db"))
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "exports"))


def test_config_defaults(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    monkeypatch.setenv("POE_THINKING_BUDGET", "not-a-number")
    cfg = Config.from_env()
    assert cfg.api_key is None
    assert cfg.thinking_budget == 8192
    assert cfg.temperature == 0.1
    assert cfg.base_url == "https://api.poe.com/v1"
    assert cfg.library_path == tmp_path / "data" / "library.db"


def test_load_settings_creates_directories(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    cfg = load_settings(debug_override=True)
    assert cfg.debug is True
    assert cfg.library_path.parent.exists()
    assert cfg.output_dir.exists()


def test_cli_stages_and_empty_list(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    runner = CliRunner()

    result = runner.invoke(app, ["stages"])
    assert result.exit_code == 0
    assert "read_document" in result.output

    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No reports match" in result.output


def test_cli_compare_unknown_report_exits_nonzero(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    result = CliRunner().invoke(app, ["compare", "missing-a", "missing-b"])
    assert result.exit_code == 1
    assert "UnknownReport" in result.output


def test_cli_show_and_list_render_company(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    (tmp_path / "data").mkdir()
    store = SQLiteKeyValueStore(f"sqlite:///{tmp_path / 'data' / 'library.db'}")
    ReportLibrary(store).add(make_report("r1"))
    store.dispose()
    runner = CliRunner()

    result = runner.invoke(app, ["show", "r1"])
    assert result.exit_code == 0
    assert "Acme Corp (ACME - Q3 2024)" in result.output
    assert "Q3 2024 Q3 2024" not in result.output

    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "Acme Corp" in result.output
    assert "ACME - Q3" not in result.output
