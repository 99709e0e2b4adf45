"""Unit tests for catalogue filters and the practice selection."""

import json

import pytest

from speakdrill.lib.exceptions import NavigationError
from speakdrill.models.item import PracticeItem
from speakdrill.services.catalog.selection import FilterCriteria, SelectionStore, facets


@pytest.fixture
def items(sample_records) -> list[PracticeItem]:
    return [PracticeItem.from_record(record) for record in sample_records]


@pytest.fixture
def selection(catalog_config) -> SelectionStore:
    return SelectionStore(catalog_config)


class TestFilterCriteria:
    """Tests for catalogue filtering."""

    def test_empty_criteria_match_all(self, items):
        assert FilterCriteria().apply(items) == items

    def test_choice_fields(self, items):
        found = FilterCriteria(scene=["Airport"], type=["complex", "simple"]).apply(items)

        assert [item.id for item in found] == ["01-01", "02-01"]

    def test_numeric_choice_compared_as_text(self, items):
        found = FilterCriteria(date=["20240108"]).apply(items)

        assert [item.id for item in found] == ["02-01"]

    def test_ranges(self, items):
        found = FilterCriteria(time_min=40, difficulty_max=4).apply(items)

        assert [item.id for item in found] == ["01-02"]

    def test_missing_value_excluded_by_bound(self):
        item = PracticeItem(id="x", duration_seconds=30, metadata={})

        assert FilterCriteria().matches(item)
        assert not FilterCriteria(length_min=1).matches(item)


class TestFacets:
    """Tests for filter option discovery."""

    def test_choices_and_ranges(self, items):
        found = facets(items)

        assert found.choices["scene"] == ["Airport", "Hotel"]
        assert found.choices["set"] == ["01", "02"]
        assert found.ranges["time"] == (30.0, 60.0)
        assert found.ranges["difficulty"] == (1.0, 5.0)

    def test_no_values_no_range(self):
        found = facets([PracticeItem(id="x")])

        assert "time" not in found.ranges
        assert found.choices["type"] == []


class TestSelectionStore:
    """Tests for the persisted selection."""

    def test_add_persists(self, selection, catalog_config):
        assert selection.add(["01-02", "01-01", "01-02"]) == 2

        assert json.loads(catalog_config.selection_path.read_text()) == ["01-02", "01-01"]
        assert SelectionStore(catalog_config).ids == ["01-02", "01-01"]

    def test_remove_and_clear(self, selection):
        selection.add(["a", "b", "c"])

        assert selection.remove(["b", "z"]) == 1
        assert "b" not in selection
        selection.clear()
        assert len(selection) == 0

    def test_prune_drops_unknown(self, selection, items):
        selection.add(["01-01", "gone"])

        assert selection.prune(items) == ["gone"]
        assert selection.ids == ["01-01"]

    def test_queue_in_catalogue_order(self, selection, items):
        selection.add(["02-01", "01-01"])

        queue = selection.build_queue(items)

        assert queue.item_ids == ["01-01", "02-01"]

    def test_empty_queue_rejected(self, selection, items):
        with pytest.raises(NavigationError):
            selection.build_queue(items)

    def test_unreadable_file_ignored(self, catalog_config):
        catalog_config.selection_path.parent.mkdir(parents=True)
        catalog_config.selection_path.write_text("{oops", encoding="utf-8")

        assert SelectionStore(catalog_config).ids == []
