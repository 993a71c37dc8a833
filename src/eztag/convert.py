from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .document import Document, DocumentWriter, read
from .kinds import ENTITY_KINDS, schema_for
from .record import Record
from .schema import Field
from .tags import TagWriter, ValueType
from .version import AcadVersion, VersionContext

logger = logging.getLogger(__name__)

_EZDXF_TABLES = {
    "LAYER": "layers",
    "STYLE": "styles",
    "APPID": "appids",
    "DIMSTYLE": "dimstyles",
}
_EZDXF_SKIP_FIELDS = {"name"}
_EZDXF_ENTITY_ATTRIBS = {
    "layer": "layer",
    "linetype": "linetype",
    "lineweight": "lineweight",
    "linetype_scale": "ltscale",
    "thickness": "thickness",
}


@dataclass(frozen=True)
class WriteResult:
    source_path: str
    output_path: str
    target_version: str
    total_records: int
    written_records: int
    skipped_records: int
    skipped_by_kind: dict[str, int]
    unread_records: int = 0
    unread_by_kind: dict[str, int] | None = None


@dataclass(frozen=True)
class ConvertResult:
    source_path: str
    output_path: str
    total_records: int
    written_records: int
    skipped_records: int
    skipped_by_kind: dict[str, int]


def write_dxf(
    source: str | Path | Document,
    output_path: str,
    *,
    version: str | AcadVersion | VersionContext | None = None,
    kinds: str | Iterable[str] | None = None,
    strict: bool = False,
    encoding: str = "utf-8",
) -> WriteResult:
    """Re-encode ``source`` with the native tag writer.

    The output is written in the same ``encoding`` the source is read with.
    Records the source reader could not decode are reported as
    ``unread_records`` unless a ``kinds`` filter selects a subset. With
    ``strict`` any skipped or unread record is a ``ValueError`` and no file is
    written.
    """
    source_path, doc = _resolve_document(source, encoding=encoding)
    buffer = io.StringIO()
    doc_writer = DocumentWriter(doc, TagWriter(buffer, source=output_path), version=version, kinds=kinds)
    doc_writer.write()

    skipped = doc_writer.total - doc_writer.written
    skipped_by_kind = dict(sorted(doc_writer.skipped_by_kind.items()))
    unread_by_kind = dict(sorted(doc.skipped_by_kind.items())) if kinds is None else {}
    unread = sum(unread_by_kind.values())
    if strict and (skipped > 0 or unread > 0):
        problems = []
        if skipped > 0:
            problems.append(f"failed to write {skipped} records ({_summary(skipped_by_kind)})")
        if unread > 0:
            problems.append(f"{unread} source records were not read ({_summary(unread_by_kind)})")
        raise ValueError("; ".join(problems))

    with TagWriter.open(output_path, encoding=encoding) as writer:
        writer.write_text(buffer.getvalue())

    return WriteResult(
        source_path=source_path,
        output_path=str(Path(output_path)),
        target_version=doc_writer.version.acadver,
        total_records=doc_writer.total,
        written_records=doc_writer.written,
        skipped_records=skipped,
        skipped_by_kind=skipped_by_kind,
        unread_records=unread,
        unread_by_kind=unread_by_kind,
    )


def to_ezdxf(
    source: str | Path | Document,
    output_path: str,
    *,
    dxf_version: str = "R2010",
    kinds: str | Iterable[str] | None = None,
    strict: bool = False,
    encoding: str = "utf-8",
) -> ConvertResult:
    ezdxf = _require_ezdxf()
    source_path, doc = _resolve_document(source, encoding=encoding)

    dxf_doc = ezdxf.new(dxfversion=dxf_version)

    total = 0
    written = 0
    skipped_by_kind: dict[str, int] = {}

    for record in doc.query(kinds):
        total += 1
        if _write_record_to_doc(dxf_doc, record):
            written += 1
            continue
        skipped_by_kind[record.kind] = skipped_by_kind.get(record.kind, 0) + 1

    skipped = total - written
    if strict and skipped > 0:
        raise ValueError(f"failed to convert {skipped} records ({_summary(skipped_by_kind)})")

    out_path = Path(output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    dxf_doc.saveas(str(out_path))

    return ConvertResult(
        source_path=source_path,
        output_path=str(out_path),
        total_records=total,
        written_records=written,
        skipped_records=skipped,
        skipped_by_kind=dict(sorted(skipped_by_kind.items())),
    )


def _summary(counts: dict[str, int]) -> str:
    return ", ".join(f"{kind}:{count}" for kind, count in sorted(counts.items()))


def _require_ezdxf():
    try:
        import ezdxf
    except Exception as exc:
        raise ImportError(
            "ezdxf is required for exporting through ezdxf. "
            'Install it with `pip install "eztag[dxf]"`.'
        ) from exc
    return ezdxf


def _resolve_document(source: str | Path | Document, *, encoding: str = "utf-8") -> tuple[str, Document]:
    if isinstance(source, Document):
        return source.path, source
    return str(source), read(source, encoding=encoding)


def _write_record_to_doc(dxf_doc: Any, record: Record) -> bool:
    try:
        if record.kind in ENTITY_KINDS:
            return _write_entity_to_modelspace_unsafe(dxf_doc.modelspace(), record)
        return _write_record_to_doc_unsafe(dxf_doc, record)
    except Exception:
        logger.debug("ezdxf rejected %s record %r", record.kind, record.handle, exc_info=True)
        return False


def _write_record_to_doc_unsafe(dxf_doc: Any, record: Record) -> bool:
    table_name = _EZDXF_TABLES.get(record.kind)
    if table_name is None:
        return False
    name = str(record.get("name") or "").strip()
    if not name:
        return False
    table = getattr(dxf_doc, table_name)
    if name in table:
        entry = table.get(name)
    else:
        entry = table.new(name)
    for key, value in _record_dxfattribs(entry, record).items():
        entry.dxf.set(key, value)
    return True


def _write_entity_to_modelspace_unsafe(modelspace: Any, record: Record) -> bool:
    kind = record.kind
    dxfattribs = _entity_dxfattribs(record)

    if kind == "LINE":
        modelspace.add_line(_point3(record, "start"), _point3(record, "end"), dxfattribs=dxfattribs)
        return True

    if kind == "POINT":
        dxfattribs["angle"] = float(record["angle"])
        modelspace.add_point(_point3(record, "location"), dxfattribs=dxfattribs)
        return True

    if kind == "CIRCLE":
        modelspace.add_circle(_point3(record, "center"), float(record["radius"]), dxfattribs=dxfattribs)
        return True

    if kind == "ARC":
        modelspace.add_arc(
            _point3(record, "center"),
            float(record["radius"]),
            float(record["start_angle"]),
            float(record["end_angle"]),
            dxfattribs=dxfattribs,
        )
        return True

    if kind == "TEXT":
        dxfattribs.update(
            insert=_point3(record, "insert"),
            height=float(record["height"]),
            rotation=float(record["rotation"]),
            width=float(record["width"]),
            oblique=float(record["oblique"]),
            halign=int(record["halign"]),
            valign=int(record["valign"]),
            text_generation_flag=int(record["text_generation_flag"]),
        )
        if record["halign"] or record["valign"]:
            dxfattribs["align_point"] = _point3(record, "align_point")
        modelspace.add_text(str(record["text"]), dxfattribs=dxfattribs)
        return True

    return False


def _entity_dxfattribs(record: Record) -> dict[str, Any]:
    attribs: dict[str, Any] = {}
    for key, name in _EZDXF_ENTITY_ATTRIBS.items():
        value = record.get(key)
        if value is None or value == "":
            continue
        attribs[name] = value
    color = _to_valid_aci(record.get("color"))
    if color is not None:
        attribs["color"] = color
    if record.get("paperspace"):
        attribs["paperspace"] = 1
    if record.get("invisible"):
        attribs["invisible"] = 1
    extrusion = _point3(record, "extrusion")
    if extrusion != (0.0, 0.0, 1.0):
        attribs["extrusion"] = extrusion
    return attribs


def _record_dxfattribs(entry: Any, record: Record) -> dict[str, Any]:
    fields = schema_for(record.kind).fields
    attribs: dict[str, Any] = {}
    for key, value in record.dxf.items():
        if key in _EZDXF_SKIP_FIELDS or value is None or value == "":
            continue
        field = fields[key]
        # Handles are file-local; ezdxf assigns its own.
        if not isinstance(field, Field) or field.type is ValueType.HANDLE:
            continue
        if not entry.dxf.is_supported(key):
            continue
        if isinstance(value, bool):
            value = int(value)
        attribs[key] = value
    return attribs


def _to_valid_aci(value: Any) -> int | None:
    try:
        aci = int(value)
    except Exception:
        return None
    if 0 <= aci <= 256:
        return aci
    return None


def _point3(record: Record, prefix: str) -> tuple[float, float, float]:
    return (
        float(record[f"{prefix}_x"]),
        float(record[f"{prefix}_y"]),
        float(record[f"{prefix}_z"]),
    )
