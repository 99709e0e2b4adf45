"""Catalogue filtering and the persisted practice selection."""

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

from speakdrill.lib.config import CatalogConfig, get_catalog_config
from speakdrill.lib.exceptions import NavigationError
from speakdrill.models.item import PracticeItem
from speakdrill.models.session import SessionQueue

logger = logging.getLogger(__name__)

# Multi-value filter fields (exact string match)
CHOICE_FIELDS = ("date", "set", "scene", "type")

# Range filter fields
RANGE_FIELDS = ("time", "length", "difficulty")


def _number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def field_value(item: PracticeItem, name: str) -> Any:
    """Read a filterable field from an item."""
    if name == "time":
        return item.duration_seconds
    return item.metadata.get(name)


@dataclass
class FilterCriteria:
    """
    Catalogue filter.

    Empty choice lists match everything. A row missing a ranged value is
    excluded as soon as that range has a bound.
    """

    date: list[str] = field(default_factory=list)
    set: list[str] = field(default_factory=list)
    scene: list[str] = field(default_factory=list)
    type: list[str] = field(default_factory=list)
    time_min: Optional[float] = None
    time_max: Optional[float] = None
    length_min: Optional[float] = None
    length_max: Optional[float] = None
    difficulty_min: Optional[float] = None
    difficulty_max: Optional[float] = None

    def matches(self, item: PracticeItem) -> bool:
        for name in CHOICE_FIELDS:
            wanted = getattr(self, name)
            if wanted and str(field_value(item, name)) not in wanted:
                return False
        for name in RANGE_FIELDS:
            low = getattr(self, f"{name}_min")
            high = getattr(self, f"{name}_max")
            if low is None and high is None:
                continue
            value = _number(field_value(item, name))
            if value is None:
                return False
            if low is not None and value < low:
                return False
            if high is not None and value > high:
                return False
        return True

    def apply(self, items: Iterable[PracticeItem]) -> list[PracticeItem]:
        """Return matching items in catalogue order."""
        return [item for item in items if self.matches(item)]


@dataclass
class Facets:
    """
    Filter options available in a catalogue.

    Attributes:
        choices: Field name -> distinct values in first-seen order
        ranges: Field name -> (min, max), omitted when no row has a value
    """

    choices: dict[str, list[str]]
    ranges: dict[str, tuple[float, float]]


def facets(items: Iterable[PracticeItem]) -> Facets:
    """Collect distinct choice values and numeric ranges."""
    items = list(items)
    choices: dict[str, list[str]] = {}
    for name in CHOICE_FIELDS:
        seen: dict[str, None] = {}
        for item in items:
            value = field_value(item, name)
            if value is None or value == "":
                continue
            seen.setdefault(str(value), None)
        choices[name] = list(seen)

    ranges: dict[str, tuple[float, float]] = {}
    for name in RANGE_FIELDS:
        values = [v for v in (_number(field_value(item, name)) for item in items) if v is not None]
        if values:
            ranges[name] = (min(values), max(values))
    return Facets(choices=choices, ranges=ranges)


class SelectionStore:
    """
    Persisted set of selected item identifiers.

    The selection file holds a JSON list of ids in selection order.
    """

    def __init__(self, config: Optional[CatalogConfig] = None, path: Optional[Path] = None):
        self.config = config or get_catalog_config()
        self.path = Path(path) if path is not None else self.config.selection_path
        self._ids: list[str] = self._read()

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._ids

    def add(self, item_ids: Iterable[str]) -> int:
        """Select ids. Returns how many were newly added."""
        added = 0
        for item_id in item_ids:
            if item_id not in self._ids:
                self._ids.append(item_id)
                added += 1
        self._write()
        return added

    def remove(self, item_ids: Iterable[str]) -> int:
        """Deselect ids. Returns how many were removed."""
        drop = set(item_ids)
        before = len(self._ids)
        self._ids = [item_id for item_id in self._ids if item_id not in drop]
        self._write()
        return before - len(self._ids)

    def clear(self) -> None:
        self._ids = []
        self._write()

    def prune(self, items: Iterable[PracticeItem]) -> list[str]:
        """Drop ids no longer in the catalogue. Returns the dropped ids."""
        known = {item.id for item in items}
        dropped = [item_id for item_id in self._ids if item_id not in known]
        if dropped:
            self._ids = [item_id for item_id in self._ids if item_id in known]
            self._write()
            logger.info(f"Pruned {len(dropped)} stale selections")
        return dropped

    def selected_items(self, items: Iterable[PracticeItem]) -> list[PracticeItem]:
        """Selected items in catalogue order."""
        chosen = set(self._ids)
        return [item for item in items if item.id in chosen]

    def build_queue(self, items: Iterable[PracticeItem]) -> SessionQueue:
        """
        Build the practice queue from the selection.

        Raises:
            NavigationError: If nothing selected is in the catalogue
        """
        selected = self.selected_items(items)
        if not selected:
            raise NavigationError("No selected items are in the catalogue")
        return SessionQueue(selected)

    def _read(self) -> list[str]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable selection file {self.path}: {e}")
            return []
        if not isinstance(data, list):
            return []
        return [str(item_id) for item_id in data]

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._ids, indent=2), encoding="utf-8")
