"""Unit tests for merging spreadsheet rows into a catalogue."""

import json

import pytest
from openpyxl import Workbook

from speakdrill.lib.exceptions import MergeError
from speakdrill.services.catalog.merge import (
    REQUIRED_HEADERS,
    item_id_for,
    merge_documents,
    merge_files,
    parse_new_rows,
    read_rows,
)


def sheet_row(**overrides) -> list:
    values = {
        "date": "20240115",
        "set": "03",
        "num": "1",
        "timeSec": "40",
        "scene": "Office",
        "prompt": "Ask for a day off",
        "audio": "03-01.mp3",
        "picture": "",
        "script": "Could I take Friday off?",
        "type": "simple",
        "length": "5",
        "difficulty": "2",
    }
    values.update(overrides)
    return [values[name] for name in REQUIRED_HEADERS]


def write_tsv(path, rows):
    lines = ["\t".join(REQUIRED_HEADERS)] + ["\t".join(str(cell) for cell in row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestParseRows:
    """Tests for row validation."""

    def test_numeric_columns_converted(self):
        records = parse_new_rows([list(REQUIRED_HEADERS), sheet_row()], set())

        record = records[0]
        assert record["id"] == "03-01"
        assert record["date"] == 20240115
        assert record["timeSec"] == 40
        assert isinstance(record["num"], int)

    def test_blank_rows_skipped(self):
        rows = [list(REQUIRED_HEADERS), ["", ""], sheet_row()]

        assert len(parse_new_rows(rows, set())) == 1

    def test_missing_header(self):
        with pytest.raises(MergeError, match="difficulty"):
            parse_new_rows([list(REQUIRED_HEADERS[:-1])], set())

    def test_invalid_type_reports_row(self):
        with pytest.raises(MergeError) as exc_info:
            parse_new_rows([list(REQUIRED_HEADERS), sheet_row(), sheet_row(audio="x.mp3", type="long")], set())

        assert exc_info.value.row == 3

    @pytest.mark.parametrize("difficulty", ["0", "6", "2.5"])
    def test_invalid_difficulty(self, difficulty):
        with pytest.raises(MergeError, match="difficulty"):
            parse_new_rows([list(REQUIRED_HEADERS), sheet_row(difficulty=difficulty)], set())

    def test_non_numeric_value(self):
        with pytest.raises(MergeError, match="timeSec"):
            parse_new_rows([list(REQUIRED_HEADERS), sheet_row(timeSec="forty")], set())

    def test_duplicate_against_original(self):
        with pytest.raises(MergeError, match="vs original at row 2"):
            parse_new_rows([list(REQUIRED_HEADERS), sheet_row()], {"03-01"})

    def test_duplicate_within_new_rows(self):
        with pytest.raises(MergeError, match="within new rows at row 3"):
            parse_new_rows([list(REQUIRED_HEADERS), sheet_row(), sheet_row(num="2")], set())

    def test_id_without_audio(self):
        assert item_id_for("", "03", 7) == "03-07"
        assert item_id_for("Audio/03-07.mp3".split("/")[-1], "03", 7) == "03-07"


class TestMergeDocuments:
    """Tests for merging into a base document."""

    def test_base_untouched_and_sorted(self, sample_records):
        base = {"version": "v1", "items": list(sample_records)}
        rows = [list(REQUIRED_HEADERS), sheet_row(set="01", num="3", audio="01-03.mp3")]

        result = merge_documents(base, rows, "test")

        assert len(base["items"]) == 3
        assert result.base_count == 3
        assert result.new_count == 1
        assert [item["id"] for item in result.document["items"]] == ["01-01", "01-02", "01-03", "02-01"]
        assert result.document["source"] == "test"
        assert result.document["version"] != "v1"

    def test_base_without_items(self):
        with pytest.raises(MergeError):
            merge_documents({"rows": []}, [list(REQUIRED_HEADERS)], "test")


class TestMergeFiles:
    """Tests for file-level merges."""

    def test_tsv_merge_writes_outputs(self, catalog_file):
        original = catalog_file.read_text(encoding="utf-8")
        sheet = write_tsv(catalog_file.parent / "new.tsv", [sheet_row()])

        result = merge_files(catalog_file, sheet)

        assert catalog_file.read_text(encoding="utf-8") == original
        assert result.copy_path.name == "TestData_copy.json"
        assert json.loads(result.copy_path.read_text()) == json.loads(original)
        merged = json.loads(result.merged_path.read_text())
        assert result.merged_count == 4
        assert merged["items"][-1]["id"] == "03-01"

    def test_xlsx_merge(self, catalog_file):
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(list(REQUIRED_HEADERS))
        sheet.append([20240115, "03", 1, 40, "Office", "Ask", "03-01.mp3", "", "", "compound", 5, 4])
        path = catalog_file.parent / "new.xlsx"
        workbook.save(path)

        result = merge_files(catalog_file, path)

        added = result.document["items"][-1]
        assert added["id"] == "03-01"
        assert added["difficulty"] == 4
        assert added["type"] == "compound"

    def test_unreadable_sheet(self, catalog_file):
        bad = catalog_file.parent / "bad.xlsx"
        bad.write_bytes(b"not a workbook")

        with pytest.raises(MergeError):
            read_rows(bad)

    def test_missing_base(self, tmp_path):
        sheet = write_tsv(tmp_path / "new.tsv", [sheet_row()])

        with pytest.raises(MergeError):
            merge_files(tmp_path / "missing.json", sheet)
