"""Integration tests for the speakdrill command line."""

import json

import pytest

from speakdrill.cli.main import (
    EXIT_CONFIG_ERROR,
    EXIT_SUCCESS,
    EXIT_USAGE_ERROR,
    EXIT_VALIDATION_ERROR,
    main,
)
from speakdrill.services.catalog.merge import REQUIRED_HEADERS

FAST_RECORDS = [
    {"id": "a-01", "date": 20240301, "set": "a", "num": 1, "timeSec": 0.2, "scene": "Cafe",
     "audio": "", "picture": "", "type": "simple", "length": 4, "difficulty": 1},
    {"id": "a-02", "date": 20240301, "set": "a", "num": 2, "timeSec": 0.2, "scene": "Cafe",
     "audio": "", "picture": "", "type": "compound", "length": 8, "difficulty": 2},
    {"id": "a-03", "date": 20240301, "set": "a", "num": 3, "timeSec": 0, "scene": "Bank",
     "audio": "", "picture": "", "type": "complex", "length": 12, "difficulty": 4},
]


@pytest.fixture
def cli_env(tmp_path, monkeypatch, sample_records):
    """Point every config at a temporary workspace."""
    catalog = tmp_path / "TestData.json"
    catalog.write_text(json.dumps({"version": "v1", "items": sample_records}), encoding="utf-8")
    monkeypatch.setenv("CATALOG_SOURCE", str(catalog))
    monkeypatch.setenv("CATALOG_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("CATALOG_SELECTION_FILE", str(tmp_path / "cache" / "selected.json"))
    monkeypatch.setenv("PRACTICE_POST_PROMPT_DELAY", "0.01")
    monkeypatch.setenv("PRACTICE_COUNTDOWN_TICK", "0.05")
    monkeypatch.setenv("PRACTICE_EXPORT_DIR", str(tmp_path / "exports"))
    return tmp_path


class TestUsage:
    """Tests for argument handling."""

    def test_command_required(self, capsys):
        assert main([]) == EXIT_USAGE_ERROR
        assert "command is required" in capsys.readouterr().err

    def test_select_add_requires_ids(self, cli_env):
        assert main(["select", "add"]) == EXIT_USAGE_ERROR

    def test_invalid_config(self, cli_env, monkeypatch, capsys):
        monkeypatch.setenv("CATALOG_FETCH_TIMEOUT", "forever")

        assert main(["catalog"]) == EXIT_CONFIG_ERROR
        assert "Invalid configuration" in capsys.readouterr().err


class TestCatalogCommands:
    """Tests for catalog and select."""

    def test_catalog_lists_filtered(self, cli_env, capsys):
        assert main(["catalog", "--scene", "Airport"]) == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert "Loaded 3 items (fetch)." in out
        assert "Showing 2 / 3" in out
        assert "01-02" not in out

    def test_catalog_facets(self, cli_env, capsys):
        assert main(["catalog", "--facets"]) == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert "scene: Airport, Hotel" in out
        assert "time: 30 - 60" in out

    def test_need_import(self, cli_env, monkeypatch, capsys):
        monkeypatch.setenv("CATALOG_SOURCE", str(cli_env / "missing.json"))

        assert main(["catalog"]) == EXIT_VALIDATION_ERROR
        assert "Please import it" in capsys.readouterr().err

    def test_import_then_cached(self, cli_env, monkeypatch, capsys):
        imported = cli_env / "manual.json"
        imported.write_text(json.dumps(FAST_RECORDS[:2]), encoding="utf-8")
        monkeypatch.setenv("CATALOG_SOURCE", str(cli_env / "missing.json"))

        assert main(["catalog", "--import", str(imported)]) == EXIT_SUCCESS
        assert main(["catalog"]) == EXIT_SUCCESS
        assert "Loaded 2 items (cache)." in capsys.readouterr().out

    def test_select_flow(self, cli_env, capsys):
        assert main(["select", "filtered", "--type", "simple"]) == EXIT_SUCCESS
        assert main(["select", "add", "02-01"]) == EXIT_SUCCESS
        capsys.readouterr()

        assert main(["select", "show"]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert out.splitlines()[:2] == ["01-01", "02-01"]
        assert "Practice selected (2)" in out


class TestPracticeCommand:
    """Tests for the unattended practice run."""

    def test_empty_selection(self, cli_env, capsys):
        assert main(["practice", "--auto", "--mock-device"]) == EXIT_VALIDATION_ERROR
        assert "No items selected" in capsys.readouterr().err

    def test_auto_run_exports_each_item(self, cli_env, monkeypatch, capsys):
        catalog = cli_env / "fast.json"
        catalog.write_text(json.dumps({"items": FAST_RECORDS}), encoding="utf-8")
        monkeypatch.setenv("CATALOG_SOURCE", str(catalog))
        out_dir = cli_env / "out"

        assert main(["select", "add", "a-01", "a-02", "a-03"]) == EXIT_SUCCESS
        assert main(["practice", "--auto", "--mock-device", "-o", str(out_dir)]) == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert sorted(p.name for p in out_dir.iterdir()) == ["LR_20240301_a_1.ogg", "LR_20240301_a_2.ogg"]
        assert "Invalid timeSec in data" in out
        assert "All questions complete." in out


class TestMergeCommand:
    """Tests for the merge subcommand."""

    def test_merge(self, cli_env, capsys):
        sheet = cli_env / "new.tsv"
        row = ["20240115", "03", "1", "40", "Office", "Ask", "03-01.mp3", "", "", "simple", "5", "2"]
        sheet.write_text("\t".join(REQUIRED_HEADERS) + "\n" + "\t".join(row) + "\n", encoding="utf-8")

        assert main(["merge", str(cli_env / "TestData.json"), str(sheet)]) == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert "Merged items: 4" in out
        assert (cli_env / "TestData_merged.json").exists()

    def test_merge_error_exit_code(self, cli_env, capsys):
        sheet = cli_env / "new.tsv"
        sheet.write_text("date\tset\n", encoding="utf-8")

        assert main(["merge", str(cli_env / "TestData.json"), str(sheet)]) == EXIT_VALIDATION_ERROR
        assert "Missing required column" in capsys.readouterr().err
