from __future__ import annotations

import pytest

from eztag import kinds
from eztag.errors import CollectionInvariantViolation
from eztag.record import Record, RecordCollection


def _layers(*names: str) -> list[Record]:
    return [Record.new(kinds.LAYER, name=name) for name in names]


def test_allocate_then_initialize() -> None:
    record = Record.allocate(kinds.LAYER)
    assert set(record.dxf) == set(kinds.LAYER.field_names)
    assert all(value is None for value in record.dxf.values())

    record.initialize(kinds.LAYER)
    assert record["name"] == ""
    assert record["color"] == 7
    assert record["linetype"] == "CONTINUOUS"
    assert record["plot"] is True
    assert record["true_color"] is None
    assert record.handle == ""


def test_record_slots_are_closed() -> None:
    record = Record.new(kinds.APPID, name="ACAD")

    with pytest.raises(KeyError, match="no field 'color'"):
        record["color"] = 1
    with pytest.raises(KeyError):
        Record.new(kinds.APPID, name="ACAD", color=1)


def test_append_links_at_tail() -> None:
    collection = RecordCollection("LAYER")
    assert collection.head is None
    assert collection.tail() is None

    first, second, third = _layers("0", "Walls", "Doors")
    collection.append(first)
    assert collection.head is first
    assert collection.tail() is first

    collection.append(second)
    collection.append(third)
    assert collection.head is first
    assert collection.tail() is third
    assert collection.successor(first) is second
    assert collection.successor(third) is None
    assert [record["name"] for record in collection] == ["0", "Walls", "Doors"]
    assert len(collection) == 3
    assert collection[1] is second


def test_find_is_case_insensitive() -> None:
    collection = RecordCollection("LAYER", _layers("0", "Walls"))

    assert collection.find("walls") is collection[1]
    assert collection.find("missing") is None


def test_append_enforces_kind_and_ownership() -> None:
    collection = RecordCollection("LAYER")
    other = RecordCollection("LAYER")
    record = _layers("0")[0]
    collection.append(record)

    with pytest.raises(ValueError, match="cannot append a STYLE record"):
        collection.append(Record.new(kinds.STYLE, name="Standard"))
    with pytest.raises(CollectionInvariantViolation, match="already belongs"):
        other.append(record)

    released = _layers("x")[0]
    released.release()
    with pytest.raises(CollectionInvariantViolation, match="released"):
        collection.append(released)


def test_release_all_releases_each_record_once() -> None:
    records = _layers("0", "Walls", "Doors")
    collection = RecordCollection("LAYER", records)

    assert collection.release_all() == 3

    assert len(collection) == 0
    assert collection.head is None
    assert all(record.released for record in records)
    assert all(record.dxf == {} for record in records)
    assert collection.release_all() == 0


def test_linked_record_cannot_be_released() -> None:
    record = _layers("0")[0]
    collection = RecordCollection("LAYER", [record])

    with pytest.raises(CollectionInvariantViolation, match="still linked"):
        record.release()
    assert not record.released

    collection.release_all()
    with pytest.raises(CollectionInvariantViolation, match="already released"):
        record.release()


def test_release_all_stops_on_record_relinked_elsewhere() -> None:
    first, second, third = _layers("0", "Walls", "Doors")
    collection = RecordCollection("LAYER", [first, second, third])
    second._owner = RecordCollection("LAYER")

    with pytest.raises(CollectionInvariantViolation, match="relinked"):
        collection.release_all()

    assert first.released
    assert not second.released
    assert list(collection) == [second, third]


def test_copy_is_detached() -> None:
    record = _layers("0")[0]
    RecordCollection("LAYER", [record])

    duplicate = record.copy()
    duplicate["name"] = "1"

    assert record["name"] == "0"
    RecordCollection("LAYER", [duplicate])
