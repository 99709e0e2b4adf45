"""Offline merge of new spreadsheet rows into a catalogue document.

The base document is never modified. The merge writes an untouched copy of
the base and the merged document next to it.
"""

import copy
import csv
import json
import logging
import math
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from speakdrill.lib.exceptions import MergeError
from speakdrill.lib.timestamps import format_timestamp, generate_timestamp

logger = logging.getLogger(__name__)

REQUIRED_HEADERS = (
    "date",
    "set",
    "num",
    "timeSec",
    "scene",
    "prompt",
    "audio",
    "picture",
    "script",
    "type",
    "length",
    "difficulty",
)

NUMERIC_COLUMNS = ("date", "num", "timeSec", "length", "difficulty")

ALLOWED_TYPES = ("simple", "compound", "complex")

_EXTENSION = re.compile(r"\.[^./\\]+$")


@dataclass
class MergeResult:
    """
    Outcome of a merge.

    Attributes:
        document: The merged catalogue document
        base_count: Items in the base document
        new_count: Rows added
        copy_path: Where the base copy was written
        merged_path: Where the merged document was written
    """

    document: dict
    base_count: int
    new_count: int
    copy_path: Optional[Path] = None
    merged_path: Optional[Path] = None

    @property
    def merged_count(self) -> int:
        return len(self.document["items"])


def read_rows(path: Path) -> list[list[Any]]:
    """
    Read a sheet as rows of cells.

    ``.xlsx`` files are read from their first sheet; anything else is read
    as tab-separated text.

    Raises:
        MergeError: If the file cannot be read
    """
    path = Path(path)
    try:
        if path.suffix.lower() == ".xlsx":
            workbook = load_workbook(path, read_only=True, data_only=True)
            try:
                sheet = workbook.worksheets[0] if workbook.worksheets else None
                if sheet is None:
                    raise MergeError("Workbook has no sheets")
                return [list(row) for row in sheet.iter_rows(values_only=True)]
            finally:
                workbook.close()
        with open(path, newline="", encoding="utf-8") as f:
            return [row for row in csv.reader(f, delimiter="\t")]
    except (OSError, ValueError, KeyError, InvalidFileException, zipfile.BadZipFile) as e:
        raise MergeError(f"Failed to read {path.name}: {e}") from e


def _is_empty(row: list[Any]) -> bool:
    return all(cell is None or str(cell).strip() == "" for cell in row)


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _number(value: Any, row_num: int, column: str) -> int | float:
    if value is None or _text(value) == "":
        raise MergeError(f"Empty value at row {row_num}, column {column}", row=row_num)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MergeError(f"Not a number at row {row_num}, column {column}: {value}", row=row_num) from None
    if math.isnan(number):
        raise MergeError(f"Not a number at row {row_num}, column {column}", row=row_num)
    return int(number) if number.is_integer() else number


def item_id_for(audio: str, set_name: str, num: int | float) -> str:
    """Derive an id from the audio file stem, or ``<set>-<num:02>`` without audio."""
    stem = _EXTENSION.sub("", audio)
    if stem:
        return stem
    num_text = f"{num:02d}" if isinstance(num, int) else str(num)
    return f"{set_name}-{num_text}"


def _sort_key(item: dict) -> tuple[str, float]:
    num = item.get("num")
    return (str(item.get("set") or ""), num if isinstance(num, (int, float)) else 0)


def parse_new_rows(rows: list[list[Any]], existing_ids: set[str]) -> list[dict]:
    """
    Validate sheet rows and turn them into catalogue records.

    Row numbers in errors are 1-indexed and count the header row.

    Raises:
        MergeError: On missing headers, invalid cells or duplicate ids
    """
    if not rows:
        raise MergeError("Sheet is empty")

    header = [_text(cell) for cell in rows[0]]
    index = {name: position for position, name in enumerate(header)}
    for column in REQUIRED_HEADERS:
        if column not in index:
            raise MergeError(f"Missing required column: {column}")

    new_ids: set[str] = set()
    records: list[dict] = []

    for offset, row in enumerate(rows[1:], 2):
        if not row or _is_empty(row):
            continue

        def cell(name: str) -> Any:
            position = index[name]
            return row[position] if position < len(row) else None

        values: dict[str, Any] = {}
        for column in REQUIRED_HEADERS:
            if column in NUMERIC_COLUMNS:
                values[column] = _number(cell(column), offset, column)
            else:
                values[column] = _text(cell(column))

        if values["type"] not in ALLOWED_TYPES:
            raise MergeError(f"Invalid type at row {offset}: {values['type']}", row=offset)
        difficulty = values["difficulty"]
        if not isinstance(difficulty, int) or not 1 <= difficulty <= 5:
            raise MergeError(f"Invalid difficulty at row {offset}: {difficulty}", row=offset)

        item_id = item_id_for(values["audio"], values["set"], values["num"])
        if item_id in existing_ids:
            raise MergeError(f"Duplicate id vs original at row {offset}: {item_id}", row=offset)
        if item_id in new_ids:
            raise MergeError(f"Duplicate id within new rows at row {offset}: {item_id}", row=offset)
        new_ids.add(item_id)

        records.append({"id": item_id, **values})

    return records


def merge_documents(base: dict, rows: list[list[Any]], source: str) -> MergeResult:
    """
    Merge validated rows into a copy of ``base``.

    Raises:
        MergeError: If the base has no items array or a row is invalid
    """
    if not isinstance(base, dict) or not isinstance(base.get("items"), list):
        raise MergeError("Base catalogue has no items array")

    merged = copy.deepcopy(base)
    existing_ids = {item.get("id") for item in merged["items"] if isinstance(item, dict)}
    new_items = parse_new_rows(rows, existing_ids)

    merged["items"].extend(new_items)
    merged["items"].sort(key=_sort_key)
    merged["version"] = format_timestamp(generate_timestamp())
    merged["source"] = source

    return MergeResult(document=merged, base_count=len(base["items"]), new_count=len(new_items))


def merge_files(
    base_path: Path,
    sheet_path: Path,
    copy_path: Optional[Path] = None,
    merged_path: Optional[Path] = None,
) -> MergeResult:
    """
    Merge a sheet into a catalogue file.

    Writes ``<base>_copy.json`` and ``<base>_merged.json`` beside the base
    unless other paths are given. The base file is left untouched.

    Raises:
        MergeError: If any input is unreadable or invalid
    """
    base_path = Path(base_path)
    sheet_path = Path(sheet_path)
    copy_path = copy_path or base_path.with_name(f"{base_path.stem}_copy.json")
    merged_path = merged_path or base_path.with_name(f"{base_path.stem}_merged.json")

    try:
        base = json.loads(base_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise MergeError(f"Failed to read {base_path.name}: {e}") from e

    result = merge_documents(base, read_rows(sheet_path), f"{base_path.name} + {sheet_path.name} merged")

    try:
        copy_path.write_text(json.dumps(base, ensure_ascii=False, indent=2), encoding="utf-8")
        merged_path.write_text(
            json.dumps(result.document, ensure_ascii=False, indent=2), encoding="utf-8"
        )
    except OSError as e:
        raise MergeError(f"Failed to write merge output: {e}") from e

    result.copy_path = copy_path
    result.merged_path = merged_path
    logger.info(
        f"Merged {result.new_count} rows into {result.base_count} items -> {merged_path}"
    )
    return result
