from __future__ import annotations

import pickle

import pytest

from shelf_import.errors import RequestError
from shelf_import.models.messages import (
    CancelMessage,
    CompleteMessage,
    ErrorMessage,
    ImportProgress,
    ProcessMessage,
    ProgressMessage,
    message_from_payload,
)
from shelf_import.models.records import (
    DestinationDescriptor,
    ImportStats,
    Product,
    RunResult,
    SkippedRow,
    Strain,
)
from shelf_import.models.request import ImportMode, ImportRequest


def test_import_mode_parse():
    assert ImportMode.parse("Bulk") is ImportMode.BULK
    assert ImportMode.parse(" prepackaged ") is ImportMode.PREPACKAGED
    assert ImportMode.parse(ImportMode.BULK) is ImportMode.BULK
    with pytest.raises(RequestError):
        ImportMode.parse("edibles")


def test_request_create_coerces_cells_and_destinations():
    req = ImportRequest.create(
        [{"Category": "Top", "THC": None, "Qty": 3}],
        {"Category": "shelf"},
        "bulk",
        [{"id": "a", "name": "Top"}, DestinationDescriptor("b", "Mid")],
        1,
    )
    assert req.rows == [{"Category": "Top", "THC": "", "Qty": "3"}]
    assert req.existing_destinations == [DestinationDescriptor("a", "Top"), DestinationDescriptor("b", "Mid")]
    assert req.allow_create_destinations is True
    assert req.total == 1


@pytest.mark.parametrize(
    "rows, mapping, destinations",
    [
        ("not a list", {}, []),
        ([1, 2], {}, []),
        ([], ["shelf"], []),
        ([], {}, [{"id": "x"}]),
    ],
)
def test_request_create_rejects_bad_shapes(rows, mapping, destinations):
    with pytest.raises(RequestError):
        ImportRequest.create(rows, mapping, "bulk", destinations)


def test_request_payload_round_trip():
    req = ImportRequest.create([{"A": "1"}], {"A": "shelf"}, "prepackaged", [{"id": "d", "name": "1g Flower"}], True)
    assert ImportRequest.from_payload(req.to_payload()) == req


def test_request_from_payload_requires_keys():
    with pytest.raises(RequestError, match="columnMapping"):
        ImportRequest.from_payload({"rows": [], "mode": "bulk"})


def test_run_result_payload_uses_wire_keys():
    strain = Strain(id="s1", name="Gelato", thc=21.0, is_last_jar=True)
    result = RunResult(
        shelf_assignments={"top": [strain]},
        created_shelves=[DestinationDescriptor("n1", "New")],
        skipped_rows=[SkippedRow(3, {"Category": ""}, "Missing required data: shelf/category")],
        stats=ImportStats(total_processed=1, total_skipped=1),
    )
    payload = result.to_payload()
    assert set(payload) == {"shelfAssignments", "createdShelves", "skippedRows", "stats"}
    assert payload["shelfAssignments"]["top"][0]["isLastJar"] is True
    assert payload["shelfAssignments"]["top"][0]["originalShelf"] == ""
    assert payload["skippedRows"][0] == {
        "rowIndex": 3,
        "rowData": {"Category": ""},
        "reason": "Missing required data: shelf/category",
    }
    assert payload["stats"] == {"totalProcessed": 1, "totalSkipped": 1}


def test_stats_payload_includes_shake_counts_when_set():
    stats = ImportStats(total_processed=2, total_skipped=0, shake_count=1, flower_count=1)
    assert stats.to_payload() == {"totalProcessed": 2, "totalSkipped": 0, "shakeCount": 1, "flowerCount": 1}


def test_product_payload():
    p = Product(id="p", name="OG", price=35.0, net_weight="3.5g", is_low_stock=True)
    payload = p.to_payload()
    assert payload["price"] == 35.0
    assert payload["netWeight"] == "3.5g"
    assert payload["isLowStock"] is True
    assert payload["terpenes"] is None


def test_progress_percentage():
    assert ImportProgress(50, 200, "x").percentage == 25
    assert ImportProgress(0, 0, "x").percentage == 0


def test_message_payloads():
    assert ProgressMessage(100, 250, "Processing rows 1-100...").to_payload() == {
        "type": "PROGRESS",
        "payload": {"processed": 100, "total": 250, "stage": "Processing rows 1-100..."},
    }
    assert ErrorMessage.cancellation().to_payload() == {"type": "ERROR", "payload": {"message": "Import cancelled"}}
    assert CancelMessage().to_payload() == {"type": "CANCEL"}


def test_message_from_payload():
    assert isinstance(message_from_payload({"type": "CANCEL"}), CancelMessage)
    msg = message_from_payload(
        {"type": "PROCESS", "payload": {"rows": [], "columnMapping": {}, "mode": "bulk"}}
    )
    assert isinstance(msg, ProcessMessage)
    assert msg.request.mode is ImportMode.BULK
    with pytest.raises(RequestError):
        message_from_payload("CANCEL")
    with pytest.raises(RequestError):
        message_from_payload({"type": "COMPLETE"})


def test_messages_survive_pickling():
    result = RunResult({"d": [Product(id="p", name="OG")]}, [], [], ImportStats(1, 0, 0, 1), mode="prepackaged")
    for msg in (CompleteMessage(result), ProgressMessage(1, 2, "s"), ErrorMessage.cancellation()):
        clone = pickle.loads(pickle.dumps(msg))
        assert clone == msg
    assert pickle.loads(pickle.dumps(result)).mode == "prepackaged"
