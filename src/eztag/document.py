from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from .codec import Diagnostic, decode, encode_tags
from .errors import DecodeError, EncodeError, MandatoryFieldMissing
from .kinds import CLASS, ENTITY_KINDS, OBJECT_KINDS, TABLE, TABLE_KINDS
from .record import Record, RecordCollection
from .schema import RecordSchema
from .tags import EndOfRecord, Tag, TagReader, TagWriter
from .version import AcadVersion, VersionContext

logger = logging.getLogger(__name__)

SUPPORTED_RECORD_KINDS = ("CLASS", *TABLE_KINDS, *ENTITY_KINDS, *OBJECT_KINDS)

_VERSION_VARIABLE = "$ACADVER"


def read(path: str | Path, *, encoding: str = "utf-8") -> "Document":
    with TagReader.open(path, encoding=encoding) as reader:
        return read_stream(reader)


def read_stream(reader: TagReader) -> "Document":
    """Read a whole drawing from ``reader``.

    Raises :class:`SourceFailure` when the stream breaks and ``ValueError``
    for an unsupported ``$ACADVER``. Records that are not decoded, including
    every record of a skipped section such as BLOCKS, are counted in
    ``Document.skipped_by_kind``.
    """
    return _DocumentReader(reader).run()


@dataclass
class Document:
    path: str
    version: VersionContext = field(default_factory=VersionContext)
    header: dict[str, list[Tag]] = field(default_factory=dict)
    classes: RecordCollection = field(default_factory=lambda: RecordCollection(CLASS.kind))
    tables: dict[str, RecordCollection] = field(default_factory=dict)
    table_headers: dict[str, Record] = field(default_factory=dict)
    entities: dict[str, RecordCollection] = field(default_factory=dict)
    objects: dict[str, RecordCollection] = field(default_factory=dict)
    skipped_by_kind: dict[str, int] = field(default_factory=dict)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @classmethod
    def new(cls, version: str | AcadVersion | VersionContext | None = None, *, path: str = "<new>") -> "Document":
        context = VersionContext.of(version)
        return cls(path=path, version=context, header={_VERSION_VARIABLE: [Tag(1, context.acadver)]})

    def add(self, record: Record) -> None:
        self.collection(record.kind).append(record)

    def collection(self, kind: str) -> RecordCollection:
        key = kind.upper()
        if key == CLASS.kind:
            return self.classes
        if key in TABLE_KINDS:
            return self.tables.setdefault(key, RecordCollection(key))
        if key in ENTITY_KINDS:
            return self.entities.setdefault(key, RecordCollection(key))
        if key in OBJECT_KINDS:
            return self.objects.setdefault(key, RecordCollection(key))
        raise ValueError(f"unsupported record kind: {kind}")

    def query(self, kinds: str | Iterable[str] | None = None) -> Iterator[Record]:
        for kind in normalize_kinds(kinds):
            collection = self._existing(kind)
            if collection is not None:
                yield from collection

    def record_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for kind in SUPPORTED_RECORD_KINDS:
            collection = self._existing(kind)
            if collection is not None and len(collection):
                counts[kind] = len(collection)
        return counts

    def release(self) -> int:
        released = self.classes.release_all()
        for collection in (*self.tables.values(), *self.entities.values(), *self.objects.values()):
            released += collection.release_all()
        for record in self.table_headers.values():
            record.release()
        self.table_headers.clear()
        return released

    def write_dxf(self, output_path: str, **kwargs):
        from .convert import write_dxf

        return write_dxf(self, output_path, **kwargs)

    def export_dxf(self, output_path: str, **kwargs):
        from .convert import to_ezdxf

        return to_ezdxf(self, output_path, **kwargs)

    def _existing(self, kind: str) -> RecordCollection | None:
        if kind == CLASS.kind:
            return self.classes
        if kind in TABLE_KINDS:
            return self.tables.get(kind)
        if kind in ENTITY_KINDS:
            return self.entities.get(kind)
        return self.objects.get(kind)


def normalize_kinds(kinds: str | Iterable[str] | None) -> list[str]:
    if kinds is None:
        return list(SUPPORTED_RECORD_KINDS)
    if isinstance(kinds, str):
        tokens = kinds.replace(",", " ").split()
    else:
        tokens = [str(kind) for kind in kinds]
    out: list[str] = []
    for token in tokens:
        kind = token.strip().upper()
        if not kind:
            continue
        if kind not in SUPPORTED_RECORD_KINDS:
            raise ValueError(f"unsupported record kind: {token}")
        if kind not in out:
            out.append(kind)
    return out


class _DocumentReader:
    def __init__(self, reader: TagReader) -> None:
        self.reader = reader
        self.doc = Document(path=reader.source)
        self.version = self.doc.version

    def run(self) -> Document:
        found_eof = False
        while not self.reader.at_end():
            item = self.reader.next_tag()
            if isinstance(item, EndOfRecord):
                if item.name == "EOF":
                    found_eof = True
                    break
                if item.name == "SECTION":
                    self._read_section()
                    continue
            logger.warning(
                "unexpected %r outside of a section (%s, line %d)",
                item,
                self.reader.source,
                self.reader.line_number,
            )
        if not found_eof:
            logger.warning("missing EOF marker in %s", self.reader.source)
        return self.doc

    def _read_section(self) -> None:
        item = self.reader.next_tag()
        if not isinstance(item, Tag) or item.code != 2:
            raise DecodeError(
                f"section without a name ({self.reader.source}, line {self.reader.line_number})"
            )
        name = item.value.strip().upper()
        logger.debug("reading %s section", name)
        if name == "HEADER":
            self._read_header()
        elif name == "CLASSES":
            self._read_records(self.reader.next_tag(), {CLASS.kind: CLASS}, "ENDSEC")
        elif name == "TABLES":
            self._read_tables()
        elif name == "ENTITIES":
            self._read_records(self.reader.next_tag(), ENTITY_KINDS, "ENDSEC")
        elif name == "OBJECTS":
            self._read_records(self.reader.next_tag(), OBJECT_KINDS, "ENDSEC")
        else:
            self._skip_section(name)

    def _read_header(self) -> None:
        header = self.doc.header
        variable: str | None = None
        while True:
            item = self.reader.next_tag()
            if isinstance(item, EndOfRecord):
                if item.name == "ENDSEC":
                    break
                logger.warning("unexpected %r in HEADER section (line %d)", item.name, self.reader.line_number)
                continue
            if item.code == 9:
                variable = item.value.strip()
                header[variable] = []
            elif variable is not None:
                header[variable].append(item)
        acadver = header.get(_VERSION_VARIABLE)
        if acadver:
            self.version = VersionContext(AcadVersion.parse(acadver[0].value))
            self.doc.version = self.version
        logger.debug("%s: version %s", self.reader.source, self.version)

    def _read_tables(self) -> None:
        item = self.reader.next_tag()
        while True:
            if not isinstance(item, EndOfRecord):
                item = self._stray(item)
                continue
            if item.name == "ENDSEC":
                return
            if item.name != TABLE.kind:
                logger.warning("unexpected %r in TABLES section (line %d)", item.name, self.reader.line_number)
                item = self.reader.next_tag()
                continue
            header = self._decode(TABLE)
            item = self.reader.current
            if header is None:
                item = self._skip_table()
                continue
            kind = str(header["name"]).strip().upper()
            schema = TABLE_KINDS.get(kind)
            if schema is None:
                logger.debug("skipping %s table", kind)
                header.release()
                item = self._skip_table()
                continue
            self.doc.table_headers[kind] = header
            self._read_records(item, {kind: schema}, "ENDTAB")
            item = self.reader.next_tag()

    def _read_records(self, item: Tag | EndOfRecord, schemas: dict[str, RecordSchema], closing: str) -> EndOfRecord:
        while True:
            if not isinstance(item, EndOfRecord):
                item = self._stray(item)
                continue
            if item.name == closing:
                return item
            schema = schemas.get(item.name)
            if schema is None or not schema.applies(self.version):
                self._skip_record(item.name)
            else:
                record = self._decode(schema)
                if record is not None:
                    self.doc.collection(schema.kind).append(record)
            item = self.reader.current

    def _decode(self, schema: RecordSchema) -> Record | None:
        try:
            return decode(schema, self.reader, self.version, diagnostics=self.doc.diagnostics)
        except MandatoryFieldMissing as exc:
            logger.warning("skipping record: %s (%s, line %d)", exc, self.reader.source, exc.line_number)
            self._count_skipped(schema.kind)
            return None

    def _skip_record(self, kind: str) -> None:
        logger.debug("skipping %s record (line %d)", kind, self.reader.line_number)
        self._count_skipped(kind)
        while not isinstance(self.reader.next_tag(), EndOfRecord):
            pass

    def _skip_table(self) -> EndOfRecord:
        item = self.reader.current
        while not (isinstance(item, EndOfRecord) and item.name == "ENDTAB"):
            if isinstance(item, EndOfRecord):
                self._count_skipped(item.name)
            item = self.reader.next_tag()
        return self.reader.next_tag()

    def _skip_section(self, name: str) -> None:
        logger.info("skipping %s section (%s, line %d)", name, self.reader.source, self.reader.line_number)
        while True:
            item = self.reader.next_tag()
            if not isinstance(item, EndOfRecord):
                continue
            if item.name == "ENDSEC":
                return
            self._count_skipped(item.name)

    def _stray(self, tag: Tag) -> Tag | EndOfRecord:
        logger.warning(
            "ignoring group code %d outside of a record (%s, line %d)",
            tag.code,
            self.reader.source,
            self.reader.line_number,
        )
        return self.reader.next_tag()

    def _count_skipped(self, kind: str) -> None:
        self.doc.skipped_by_kind[kind] = self.doc.skipped_by_kind.get(kind, 0) + 1


class DocumentWriter:
    """Writes a :class:`Document` as a tag stream for one target version.

    Records that fail to encode, or whose kind does not exist in the target
    version, are left out and counted in ``skipped_by_kind``.
    """

    def __init__(
        self,
        doc: Document,
        writer: TagWriter,
        *,
        version: str | AcadVersion | VersionContext | None = None,
        kinds: str | Iterable[str] | None = None,
    ) -> None:
        self.doc = doc
        self.writer = writer
        self.version = doc.version if version is None else VersionContext.of(version)
        self.kinds = normalize_kinds(kinds)
        self.total = 0
        self.written = 0
        self.skipped_by_kind: Counter[str] = Counter()

    def write(self) -> None:
        self._write_header()
        if self.version.at_least(AcadVersion.R13):
            self._write_section("CLASSES", self._encoded(CLASS, self._records(CLASS.kind)), "ENDSEC")
        else:
            self._drop(self._records(CLASS.kind), "not stored before R13")
        self._write_tables()
        entities: list[tuple[str, list[Tag]]] = []
        for kind, schema in ENTITY_KINDS.items():
            entities.extend(self._encoded(schema, self._records(kind)))
        self._write_section("ENTITIES", entities, "ENDSEC")
        if self.version.at_least(AcadVersion.R13):
            encoded: list[tuple[str, list[Tag]]] = []
            for kind, schema in OBJECT_KINDS.items():
                encoded.extend(self._encoded(schema, self._records(kind)))
            self._write_section("OBJECTS", encoded, "ENDSEC")
        else:
            for kind in OBJECT_KINDS:
                self._drop(self._records(kind), "not stored before R13")
        self.writer.write_terminator("EOF")

    def _write_header(self) -> None:
        self.writer.write_terminator("SECTION")
        self.writer.write_tag(2, "HEADER")
        variables = dict(self.doc.header)
        variables[_VERSION_VARIABLE] = [Tag(1, self.version.acadver)]
        self.writer.write_tag(9, _VERSION_VARIABLE)
        self.writer.write_tags(variables.pop(_VERSION_VARIABLE))
        for name, tags in variables.items():
            self.writer.write_tag(9, name)
            self.writer.write_tags(tags)
        self.writer.write_terminator("ENDSEC")

    def _write_tables(self) -> None:
        self.writer.write_terminator("SECTION")
        self.writer.write_tag(2, "TABLES")
        for kind, schema in TABLE_KINDS.items():
            records = self._records(kind)
            if kind not in self.kinds or (not records and kind not in self.doc.table_headers):
                continue
            encoded = self._encoded(schema, records)
            header = self.doc.table_headers.get(kind)
            header = header.copy() if header is not None else Record.new(TABLE, name=kind)
            header["max_entries"] = len(encoded)
            run = [(TABLE.kind, encode_tags(TABLE, header, self.version)), *encoded]
            self._write_run(run, "ENDTAB")
        self.writer.write_terminator("ENDSEC")

    def _write_section(self, name: str, encoded: list[tuple[str, list[Tag]]], closing: str) -> None:
        self.writer.write_terminator("SECTION")
        self.writer.write_tag(2, name)
        self._write_run(encoded, closing)

    def _write_run(self, encoded: list[tuple[str, list[Tag]]], closing: str) -> None:
        # Each terminator names the record that follows it.
        if encoded:
            self.writer.write_terminator(encoded[0][0])
        for index, (_, tags) in enumerate(encoded):
            self.writer.write_tags(tags)
            following = encoded[index + 1][0] if index + 1 < len(encoded) else closing
            self.writer.write_terminator(following)
        if not encoded:
            self.writer.write_terminator(closing)

    def _records(self, kind: str) -> list[Record]:
        if kind not in self.kinds:
            return []
        collection = self.doc._existing(kind)
        return list(collection) if collection is not None else []

    def _encoded(self, schema: RecordSchema, records: list[Record]) -> list[tuple[str, list[Tag]]]:
        if not schema.applies(self.version):
            self._drop(records, f"requires {schema.min_version.acadver}")
            return []
        out: list[tuple[str, list[Tag]]] = []
        for record in records:
            self.total += 1
            try:
                tags = encode_tags(schema, record, self.version)
            except EncodeError as exc:
                logger.warning("skipping record: %s", exc)
                self.skipped_by_kind[schema.kind] += 1
                continue
            self.written += 1
            out.append((schema.kind, tags))
        return out

    def _drop(self, records: list[Record], reason: str) -> None:
        for record in records:
            logger.debug("skipping %s record for %s: %s", record.kind, self.version, reason)
            self.total += 1
            self.skipped_by_kind[record.kind] += 1

