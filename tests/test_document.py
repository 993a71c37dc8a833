from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

import eztag
from eztag import kinds
from eztag.errors import DecodeError, SourceFailure
from eztag.record import Record
from eztag.tags import Tag, TagReader
from tests._dxf_helpers import (
    dxf_records_of_type,
    dxf_text,
    entity_drawing_pairs,
    group_value,
    group_values,
    iter_dxf_pairs,
    sample_drawing_pairs,
    write_dxf_file,
)


def _sample(tmp_path: Path, acadver: str = "AC1015") -> Path:
    return write_dxf_file(tmp_path / "sample.dxf", sample_drawing_pairs(acadver))


def test_read_collects_known_sections(tmp_path: Path) -> None:
    doc = eztag.read(_sample(tmp_path))

    assert doc.version.acadver == "AC1015"
    assert doc.header["$HANDSEED"] == [Tag(5, "FF")]
    assert doc.record_counts() == {
        "CLASS": 1,
        "LAYER": 2,
        "STYLE": 1,
        "DICTIONARY": 2,
        "IMAGEDEF_REACTOR": 1,
    }
    assert doc.skipped_by_kind == {"LTYPE": 1, "BLOCK": 1, "ENDBLK": 1, "LAYOUT": 1}
    assert doc.diagnostics == []

    walls = doc.tables["LAYER"].find("Walls")
    assert walls is not None
    assert walls["handle"] == "11"
    assert walls["owner"] == "2"
    assert walls["color"] == 1
    assert walls["linetype"] == "DASHED"
    assert walls["plot"] is False
    assert walls["lineweight"] == 25
    assert walls["plotstyle_handle"] == "F"
    assert doc.table_headers["LAYER"]["max_entries"] == 2

    style = doc.tables["STYLE"].head
    assert style["dictionary_owner_soft"] == "A1"
    assert style["owner"] == "3"

    root, group = doc.objects["DICTIONARY"]
    assert root["owner"] == "0"
    assert root["dictionary_owner_soft"] == ""
    assert root["entries"] == (("ACAD_GROUP", "D", ""),)
    assert (group["dictionary_owner_soft"], group["owner"]) == ("C", "C")

    reactor = doc.objects["IMAGEDEF_REACTOR"].head
    assert (reactor["dictionary_owner_soft"], reactor["image_handle"]) == ("2F", "2E")
    assert doc.classes.head["cpp_class_name"] == "AcDbRasterVariables"


def test_read_stream_uses_stream_source_name() -> None:
    reader = TagReader(io.StringIO(dxf_text(sample_drawing_pairs())), source="memory.dxf")

    doc = eztag.read_stream(reader)

    assert doc.path == "memory.dxf"
    assert [record["name"] for record in doc.query("LAYER")] == ["0", "Walls"]


def test_read_without_header_defaults_to_r12(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING)
    path = write_dxf_file(
        tmp_path / "r12.dxf",
        [
            (0, "SECTION"),
            (2, "TABLES"),
            (0, "TABLE"),
            (2, "LAYER"),
            (70, "1"),
            (0, "LAYER"),
            (2, "0"),
            (70, "0"),
            (62, "7"),
            (6, "CONTINUOUS"),
            (370, "25"),
            (0, "ENDTAB"),
            (0, "ENDSEC"),
        ],
    )

    doc = eztag.read(path)

    assert doc.version.acadver == "AC1009"
    layer = doc.tables["LAYER"].head
    assert layer["lineweight"] == -3
    assert "missing EOF marker" in caplog.text


def test_read_skips_records_missing_mandatory_fields(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING)
    path = write_dxf_file(
        tmp_path / "nameless.dxf",
        [
            (0, "SECTION"),
            (2, "TABLES"),
            (0, "TABLE"),
            (2, "LAYER"),
            (70, "2"),
            (0, "LAYER"),
            (70, "0"),
            (62, "3"),
            (0, "LAYER"),
            (2, "Kept"),
            (0, "ENDTAB"),
            (0, "ENDSEC"),
            (0, "EOF"),
        ],
    )

    doc = eztag.read(path)

    assert [record["name"] for record in doc.tables["LAYER"]] == ["Kept"]
    assert doc.skipped_by_kind == {"LAYER": 1}
    assert "skipping record: LAYER record is missing mandatory field(s): name" in caplog.text


def test_read_skips_object_kinds_newer_than_the_drawing(tmp_path: Path) -> None:
    pairs = sample_drawing_pairs("AC1015")
    insert_at = pairs.index((0, "LAYOUT"))
    pairs[insert_at:insert_at] = [
        (0, "MLEADERSTYLE"),
        (5, "50"),
        (100, "AcDbMLeaderStyle"),
        (170, "2"),
    ]

    doc = eztag.read(write_dxf_file(tmp_path / "mleader.dxf", pairs))

    assert "MLEADERSTYLE" not in doc.objects
    assert doc.skipped_by_kind["MLEADERSTYLE"] == 1


def test_read_rejects_unsupported_version(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="unsupported DXF version: AC1001"):
        eztag.read(_sample(tmp_path, "AC1001"))


def test_read_reports_truncated_file(tmp_path: Path) -> None:
    text = dxf_text(sample_drawing_pairs())
    path = tmp_path / "truncated.dxf"
    path.write_text(text[: len(text) // 2], encoding="utf-8")

    with pytest.raises(SourceFailure):
        eztag.read(path)


def test_read_rejects_unnamed_section(tmp_path: Path) -> None:
    path = write_dxf_file(tmp_path / "unnamed.dxf", [(0, "SECTION"), (70, "1"), (0, "ENDSEC"), (0, "EOF")])

    with pytest.raises(DecodeError, match="section without a name"):
        eztag.read(path)


def test_write_dxf_round_trips_records(tmp_path: Path) -> None:
    source = eztag.read(_sample(tmp_path))
    output = tmp_path / "out" / "rewritten.dxf"

    result = eztag.write_dxf(source, str(output))

    assert result.target_version == "AC1015"
    assert result.total_records == 7
    assert result.written_records == 7
    assert result.skipped_records == 0
    assert result.skipped_by_kind == {}
    assert result.unread_records == 4
    assert result.unread_by_kind == {"BLOCK": 1, "ENDBLK": 1, "LAYOUT": 1, "LTYPE": 1}
    assert output.read_text(encoding="utf-8").startswith("  0\nSECTION\n  2\nHEADER\n  9\n$ACADVER\n  1\nAC1015\n")
    assert ("9", "$HANDSEED") in list(iter_dxf_pairs(output))

    rewritten = eztag.read(output)
    assert rewritten.record_counts() == source.record_counts()
    assert rewritten.skipped_by_kind == {}
    assert rewritten.diagnostics == []
    for kind in ("CLASS", "LAYER", "STYLE", "DICTIONARY", "IMAGEDEF_REACTOR"):
        assert [record.dxf for record in rewritten.query(kind)] == [record.dxf for record in source.query(kind)]
    assert rewritten.table_headers["LAYER"].dxf == source.table_headers["LAYER"].dxf


def test_write_dxf_terminators_name_the_next_record(tmp_path: Path) -> None:
    output = tmp_path / "terminators.dxf"
    eztag.write_dxf(str(_sample(tmp_path)), str(output))

    terminators = [value for code, value in iter_dxf_pairs(output) if code == "0"]

    assert terminators[-1] == "EOF"
    layer_table = terminators.index("TABLE")
    assert terminators[layer_table : layer_table + 4] == ["TABLE", "LAYER", "LAYER", "ENDTAB"]
    assert terminators.count("ENDSEC") == 5
    assert "ENTITIES" in [value for code, value in iter_dxf_pairs(output) if code == "2"]


def test_write_dxf_downgrade_drops_newer_records(tmp_path: Path) -> None:
    output = tmp_path / "r12.dxf"

    result = eztag.write_dxf(str(_sample(tmp_path)), str(output), version="R12")

    assert result.target_version == "AC1009"
    assert result.total_records == 7
    assert result.written_records == 3
    assert result.skipped_by_kind == {"CLASS": 1, "DICTIONARY": 2, "IMAGEDEF_REACTOR": 1}
    text = output.read_text(encoding="utf-8")
    assert "AcDbSymbolTableRecord" not in text
    assert "CLASSES" not in text

    layers = dxf_records_of_type(output, "LAYER")
    assert [group_value(layer, "2") for layer in layers] == ["0", "Walls"]
    assert group_values(layers[1], "370") == []

    downgraded = eztag.read(output)
    assert downgraded.version.acadver == "AC1009"
    assert downgraded.tables["LAYER"].find("Walls")["lineweight"] == -3


def test_write_dxf_strict_fails_before_writing(tmp_path: Path) -> None:
    output = tmp_path / "strict.dxf"

    with pytest.raises(ValueError, match="failed to write 4 records"):
        eztag.write_dxf(str(_sample(tmp_path)), str(output), version="R12", strict=True)

    assert not output.exists()


def test_write_dxf_kind_filter(tmp_path: Path) -> None:
    output = tmp_path / "layers.dxf"

    result = eztag.write_dxf(str(_sample(tmp_path)), str(output), kinds="layer")

    assert result.total_records == 2
    assert result.unread_records == 0
    assert dxf_records_of_type(output, "STYLE") == []
    assert len(dxf_records_of_type(output, "LAYER")) == 2

    with pytest.raises(ValueError, match="unsupported record kind: LTYPE"):
        eztag.write_dxf(str(_sample(tmp_path)), str(output), kinds=["LTYPE"])


def test_new_document_skips_kinds_missing_in_target_version(tmp_path: Path) -> None:
    doc = eztag.Document.new("R2000")
    doc.add(Record.new(kinds.APPID, name="EZTAG", flags=0))
    doc.add(Record.new(kinds.MLEADERSTYLE, handle="40"))

    old = doc.write_dxf(str(tmp_path / "r2000.dxf"))
    new = doc.write_dxf(str(tmp_path / "r2018.dxf"), version="AC1032")

    assert old.skipped_by_kind == {"MLEADERSTYLE": 1}
    assert new.skipped_by_kind == {}
    assert new.written_records == 2
    reread = eztag.read(tmp_path / "r2018.dxf")
    assert reread.objects["MLEADERSTYLE"].head["handle"] == "40"
    assert reread.tables["APPID"].find("eztag") is not None
    assert reread.table_headers["APPID"]["max_entries"] == 1


def test_document_collection_rejects_unknown_kinds() -> None:
    doc = eztag.Document.new()

    with pytest.raises(ValueError, match="unsupported record kind"):
        doc.collection("LTYPE")


def test_document_release_tears_down_every_collection(tmp_path: Path) -> None:
    doc = eztag.read(_sample(tmp_path))
    layers = list(doc.tables["LAYER"])

    assert doc.release() == 7

    assert doc.record_counts() == {}
    assert doc.table_headers == {}
    assert all(layer.released for layer in layers)


def test_read_collects_entities_and_counts_skipped_sections(tmp_path: Path) -> None:
    doc = eztag.read(write_dxf_file(tmp_path / "entities.dxf", entity_drawing_pairs()))

    assert doc.record_counts() == {"LINE": 1, "POINT": 1, "CIRCLE": 1, "ARC": 1, "TEXT": 1}
    assert doc.skipped_by_kind == {"BLOCK": 1, "ENDBLK": 1, "LWPOLYLINE": 1}
    assert doc.diagnostics == []

    line = doc.entities["LINE"].head
    assert (line["handle"], line["owner"], line["layer"], line["color"]) == ("100", "1F", "Walls", 1)
    assert (line["end_x"], line["end_y"], line["extrusion_z"]) == (10.0, 5.0, 1.0)
    arc = doc.entities["ARC"].head
    assert (arc["radius"], arc["start_angle"], arc["end_angle"]) == (4.0, 0.0, 90.0)
    text = doc.entities["TEXT"].head
    assert (text["text"], text["height"], text["rotation"], text["style"]) == ("Room 101", 0.25, 30.0, "STANDARD")


def test_write_dxf_rewrites_entities(tmp_path: Path) -> None:
    source = eztag.read(write_dxf_file(tmp_path / "entities.dxf", entity_drawing_pairs()))
    output = tmp_path / "entities-out.dxf"

    result = eztag.write_dxf(source, str(output))

    assert result.total_records == 5
    assert result.written_records == 5
    assert result.skipped_records == 0
    assert result.unread_records == 3
    assert result.unread_by_kind == {"BLOCK": 1, "ENDBLK": 1, "LWPOLYLINE": 1}

    lines = dxf_records_of_type(output, "LINE")
    assert len(lines) == 1
    assert lines[0]["section"] == "ENTITIES"
    assert group_value(lines[0], "8") == "Walls"
    assert group_value(lines[0], "11") == "10.000000"
    assert group_values(lines[0], "100") == ["AcDbEntity", "AcDbLine"]
    assert group_value(dxf_records_of_type(output, "TEXT")[0], "1") == "Room 101"

    rewritten = eztag.read(output)
    assert rewritten.skipped_by_kind == {}
    for kind in ("LINE", "POINT", "CIRCLE", "ARC", "TEXT"):
        assert [record.dxf for record in rewritten.query(kind)] == [record.dxf for record in source.query(kind)]


def test_write_dxf_entities_for_r12_drop_entity_subclass_data(tmp_path: Path) -> None:
    output = tmp_path / "entities-r12.dxf"

    eztag.write_dxf(str(write_dxf_file(tmp_path / "entities.dxf", entity_drawing_pairs())), str(output), version="R12")

    circle = dxf_records_of_type(output, "CIRCLE")[0]
    assert group_values(circle, "100") == []
    assert group_values(circle, "330") == []
    assert group_value(circle, "40") == "1.500000"


def test_write_dxf_strict_fails_on_unread_records(tmp_path: Path) -> None:
    path = write_dxf_file(tmp_path / "entities.dxf", entity_drawing_pairs())
    output = tmp_path / "strict-entities.dxf"

    with pytest.raises(ValueError, match=r"3 source records were not read \(BLOCK:1, ENDBLK:1, LWPOLYLINE:1\)"):
        eztag.write_dxf(str(path), str(output), strict=True)

    assert not output.exists()
    result = eztag.write_dxf(str(path), str(output), kinds="LINE", strict=True)
    assert result.written_records == 1


def test_read_with_legacy_encoding(tmp_path: Path) -> None:
    pairs = sample_drawing_pairs()
    pairs[pairs.index((2, "Walls"))] = (2, "Wände")
    path = write_dxf_file(tmp_path / "cp1252.dxf", pairs, encoding="cp1252")

    with pytest.raises(SourceFailure, match="read error"):
        eztag.read(path)

    doc = eztag.read(path, encoding="cp1252")
    assert doc.tables["LAYER"].find("Wände") is not None

    output = tmp_path / "cp1252-out.dxf"
    eztag.write_dxf(doc, str(output), encoding="cp1252")
    assert ("2", "Wände") in list(iter_dxf_pairs(output, encoding="cp1252"))
