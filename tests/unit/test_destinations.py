from __future__ import annotations

import pytest

from shelf_import.models.records import DestinationDescriptor
from shelf_import.models.request import ImportMode
from shelf_import.services.destinations import DestinationResolver, candidate_labels, is_shake
from shelf_import.services.id_pool import IdPool


def _resolver(shelves, mode, allow_create=False):
    return DestinationResolver(shelves, mode, IdPool(10), allow_create=allow_create)


def test_is_shake_substring_case_insensitive():
    assert is_shake("Blue Dream SHAKE") is True
    assert is_shake("Shakedown Kush") is True
    assert is_shake("Blue Dream") is False


def test_candidate_labels_bulk_is_single_exact_label():
    assert candidate_labels("Top Shelf", ImportMode.BULK) == ["Top Shelf"]


def test_candidate_labels_prepackaged_without_g():
    assert candidate_labels("3.5", ImportMode.PREPACKAGED) == ["3.5g Flower", "3.5", "3.5g"]
    assert candidate_labels("3.5", ImportMode.PREPACKAGED, shake=True) == ["3.5g Shake", "3.5", "3.5g"]


def test_candidate_labels_prepackaged_with_g():
    assert candidate_labels("7g", ImportMode.PREPACKAGED) == ["7g Flower", "7g", "7"]


def test_bulk_match_is_case_insensitive(bulk_shelves):
    r = _resolver(bulk_shelves, ImportMode.BULK)
    assert r.resolve("top shelf").destination_id == "top"
    assert r.resolve("TOP SHELF").destination_id == "top"


def test_bulk_unresolved_reports_attempted(bulk_shelves):
    r = _resolver(bulk_shelves, ImportMode.BULK)
    res = r.resolve("Bottom Shelf")
    assert res.resolved is False
    assert res.attempted == ("Bottom Shelf",)
    assert r.created == []


def test_prepackaged_flower_and_shake_canonical(prepackaged_shelves):
    r = _resolver(prepackaged_shelves, ImportMode.PREPACKAGED)
    assert r.resolve("3.5", "Blue Dream").destination_id == "d1"
    assert r.resolve("3.5", "Blue Dream Shake").destination_id == "d2"


def test_prepackaged_raw_label_fallbacks():
    shelves = [DestinationDescriptor("s7", "7"), DestinationDescriptor("s14", "14g")]
    r = _resolver(shelves, ImportMode.PREPACKAGED)
    # raw minus "g"
    assert r.resolve("7g", "Gelato").destination_id == "s7"
    # raw plus "g"
    assert r.resolve("14", "Gelato").destination_id == "s14"


@pytest.mark.parametrize("flower_first", [True, False])
def test_shake_without_shake_shelf_is_unresolved_in_any_row_order(flower_first):
    r = _resolver([DestinationDescriptor("d1", "3.5g Flower")], ImportMode.PREPACKAGED)
    if flower_first:
        assert r.resolve("3.5", "Blue Dream").destination_id == "d1"
    shake = r.resolve("3.5", "Blue Dream Shake")
    assert shake.resolved is False
    assert shake.attempted == ("3.5g Shake", "3.5", "3.5g")
    assert r.resolve("3.5", "Blue Dream").destination_id == "d1"
    assert r.created == []


def test_created_shelf_does_not_move_resolved_label():
    r = _resolver([DestinationDescriptor("s7", "7g")], ImportMode.PREPACKAGED, allow_create=True)
    assert r.resolve("7", "OG").destination_id == "s7"
    created = r.resolve("7g Flower", "OG").created
    assert created is not None
    assert created.name == "7g Flower"
    # "7g Flower" is now the canonical candidate for "7", but "7" keeps its shelf.
    assert r.resolve("7", "Gelato").destination_id == "s7"
    assert r.resolve("7", "Gelato Shake").destination_id == "s7"


def test_create_registers_once_per_label():
    r = _resolver([], ImportMode.BULK, allow_create=True)
    first = r.resolve("New Shelf")
    second = r.resolve("new shelf")
    assert first.created is not None
    assert first.created.name == "New Shelf"
    assert second.created is None
    assert first.destination_id == second.destination_id
    assert r.created == [first.created]
    assert "NEW SHELF" in r


def test_first_existing_name_wins_on_duplicates():
    shelves = [DestinationDescriptor("a", "Top"), DestinationDescriptor("b", "top")]
    r = _resolver(shelves, ImportMode.BULK)
    assert r.resolve("Top").destination_id == "a"
