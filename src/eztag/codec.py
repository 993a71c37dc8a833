from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import EncodeError, MandatoryFieldMissing, SourceFailure
from .record import Record
from .schema import Field, Marker, RecordSchema, Repeated
from .tags import (
    APP_GROUP_CODE,
    COMMENT_CODE,
    SUBCLASS_MARKER_CODE,
    EndOfRecord,
    Tag,
    TagReader,
    TagWriter,
)
from .version import VersionContext

logger = logging.getLogger(__name__)

_MALFORMED = object()


class DiagnosticKind(Enum):
    UNKNOWN_CODE = "unknown-code"
    EXCLUDED_CODE = "excluded-code"
    EXTRA_OCCURRENCE = "extra-occurrence"
    MALFORMED_TAG = "malformed-tag"
    BAD_SUBCLASS_MARKER = "bad-subclass-marker"
    APP_GROUP = "app-group"


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    record_kind: str
    code: int
    line_number: int
    message: str


class DecodeState(Enum):
    START = "start"
    SCANNING = "scanning"
    TERMINATED = "terminated"
    FAILED = "failed"


class RecordDecoder:
    """Decodes one record from ``reader`` according to ``schema``.

    Unknown, version-excluded, surplus and malformed tags are logged and
    skipped. The decoder stops at the first code-0 tag, which stays available
    as ``reader.current``.
    """

    def __init__(
        self,
        schema: RecordSchema,
        reader: TagReader,
        version: VersionContext,
        diagnostics: list[Diagnostic] | None = None,
    ) -> None:
        self.schema = schema
        self.reader = reader
        self.version = version
        self.diagnostics = diagnostics
        self.state = DecodeState.START
        self.record: Record | None = None
        self._occurrences: Counter[tuple[int, str | None]] = Counter()
        self._group: str | None = None

    def run(self) -> Record:
        if self.state is not DecodeState.START:
            raise RuntimeError(f"decoder already ran (state: {self.state.value})")
        record = Record.allocate(self.schema).initialize(self.schema)
        self.record = record
        self.state = DecodeState.SCANNING
        try:
            while True:
                item = self.reader.next_tag()
                if isinstance(item, EndOfRecord):
                    break
                self._apply(record, item)
        except SourceFailure:
            self._fail(record)
            raise
        self.state = DecodeState.TERMINATED
        _apply_defaults(self.schema, record)
        missing = self.schema.missing_fields(record.dxf, self.version)
        if missing:
            self._fail(record)
            raise MandatoryFieldMissing(self.schema.kind, missing, line_number=self.reader.line_number)
        return record

    def _fail(self, record: Record) -> None:
        self.state = DecodeState.FAILED
        self.record = None
        record.release()

    def _apply(self, record: Record, tag: Tag) -> None:
        code = tag.code
        if code == COMMENT_CODE:
            logger.debug("comment in %s record: %s", self.schema.kind, tag.value)
            return
        if code == APP_GROUP_CODE:
            value = tag.value.strip()
            self._group = None if value == "}" else value
            return
        if code == SUBCLASS_MARKER_CODE and self.schema.markers:
            self._check_marker(tag)
            return
        entries = self.schema.entries_for(code)
        member = self.schema.member_for(code)
        if not entries and member is None:
            self._report(
                DiagnosticKind.UNKNOWN_CODE,
                code,
                "unknown group code %d in %s record (%s, line %d)",
                code,
                self.schema.kind,
                self.reader.source,
                self.reader.line_number,
            )
            return
        grouped = [entry for entry in entries if entry.app_group == self._group]
        if self._group is None and not grouped and member is not None:
            self._apply_member(record, member[0], member[1], tag)
            return
        if not grouped:
            if self._group is None:
                message = "group code %d outside its application group in %s record (line %d)"
                args: tuple[Any, ...] = (code, self.schema.kind, self.reader.line_number)
            else:
                message = "group code %d in application group %s is not stored for %s records (line %d)"
                args = (code, self._group, self.schema.kind, self.reader.line_number)
            self._report(DiagnosticKind.APP_GROUP, code, message, *args, level=logging.DEBUG)
            return
        applicable = [entry for entry in grouped if entry.applies(self.version)]
        if not applicable:
            self._report(
                DiagnosticKind.EXCLUDED_CODE,
                code,
                "group code %d does not apply to %s records in %s (line %d)",
                code,
                self.schema.kind,
                self.version,
                self.reader.line_number,
                level=logging.DEBUG,
            )
            return
        # Occurrences are counted per application group.
        self._occurrences[code, self._group] += 1
        occurrence = self._occurrences[code, self._group]
        entry = _select(applicable, occurrence)
        if entry is None:
            self._report(
                DiagnosticKind.EXTRA_OCCURRENCE,
                code,
                "discarding occurrence %d of group code %d in %s record (%s, line %d)",
                occurrence,
                code,
                self.schema.kind,
                self.reader.source,
                self.reader.line_number,
            )
            return
        value = self._convert(entry, entry.name, tag)
        if value is not _MALFORMED:
            record.dxf[entry.name] = value

    def _apply_member(self, record: Record, run: Repeated, index: int, tag: Tag) -> None:
        if not run.applies(self.version):
            self._report(
                DiagnosticKind.EXCLUDED_CODE,
                tag.code,
                "group code %d does not apply to %s records in %s (line %d)",
                tag.code,
                self.schema.kind,
                self.version,
                self.reader.line_number,
                level=logging.DEBUG,
            )
            return
        value = self._convert(run.members[index], run.name, tag)
        if value is _MALFORMED:
            return
        items = list(record.dxf.get(run.name) or ())
        if index == 0 or not items:
            items.append(run.blank())
        item = list(items[-1])
        item[index] = value
        items[-1] = tuple(item)
        record.dxf[run.name] = tuple(items)

    def _convert(self, entry: Field, name: str, tag: Tag) -> Any:
        try:
            return entry.convert(tag.value)
        except ValueError:
            self._report(
                DiagnosticKind.MALFORMED_TAG,
                tag.code,
                "malformed value %r for group code %d (%s.%s) (%s, line %d)",
                tag.value,
                tag.code,
                self.schema.kind,
                name,
                self.reader.source,
                self.reader.line_number,
            )
            return _MALFORMED

    def _check_marker(self, tag: Tag) -> None:
        if self.version.before(self.schema.marker_version):
            self._report(
                DiagnosticKind.EXCLUDED_CODE,
                tag.code,
                "subclass marker %r ignored for %s records in %s (line %d)",
                tag.value,
                self.schema.kind,
                self.version,
                self.reader.line_number,
                level=logging.DEBUG,
            )
            return
        if tag.value.strip() not in self.schema.markers:
            self._report(
                DiagnosticKind.BAD_SUBCLASS_MARKER,
                tag.code,
                "bad subclass marker %r in %s record (%s, line %d)",
                tag.value,
                self.schema.kind,
                self.reader.source,
                self.reader.line_number,
            )

    def _report(self, kind: DiagnosticKind, code: int, message: str, *args: Any, level: int = logging.WARNING) -> None:
        logger.log(level, message, *args)
        if self.diagnostics is not None:
            self.diagnostics.append(
                Diagnostic(kind, self.schema.kind, code, self.reader.line_number, message % args)
            )


def _select(entries: list[Field], occurrence: int) -> Field | None:
    fallback = None
    for entry in entries:
        if entry.occurrence == occurrence:
            return entry
        if entry.occurrence is None and fallback is None:
            fallback = entry
    return fallback


def _apply_defaults(schema: RecordSchema, record: Record) -> None:
    for name, entry in schema.fields.items():
        if record.dxf.get(name) is None and entry.default is not None:
            record.dxf[name] = entry.default


def decode(
    schema: RecordSchema,
    reader: TagReader,
    version: VersionContext,
    *,
    diagnostics: list[Diagnostic] | None = None,
) -> Record:
    """Decode the tags up to the next terminator into a new record.

    Raises :class:`SourceFailure` when the source breaks mid-record and
    :class:`MandatoryFieldMissing` when a required field was never supplied.
    """
    return RecordDecoder(schema, reader, version, diagnostics).run()


def encode_tags(schema: RecordSchema, record: Record, version: VersionContext) -> list[Tag]:
    """Return the canonical tag sequence for ``record`` without the terminator."""
    if record.kind != schema.kind:
        raise EncodeError(record.kind, f"schema is for {schema.kind} records")
    if record.released:
        raise EncodeError(record.kind, "record was released")
    missing = schema.missing_fields(record.dxf, version)
    if missing:
        raise EncodeError(record.kind, f"missing mandatory field(s) for {version}: {', '.join(missing)}")

    emitted = [entry for entry in schema.entries if entry.applies(version)]
    fields = [entry for entry in emitted if isinstance(entry, Field)]
    needed = _required_occurrences(fields, record)

    tags: list[Tag] = []
    for entry in emitted:
        if isinstance(entry, Marker):
            tags.append(Tag(entry.code, entry.value))
            continue
        if isinstance(entry, Repeated):
            tags.extend(_encode_run(record, entry))
            continue
        value = record.dxf.get(entry.name)
        if value is None:
            continue
        if _skippable(entry, value) and not _held_open(entry, needed):
            continue
        try:
            text = entry.format(value)
        except (TypeError, ValueError) as exc:
            raise EncodeError(record.kind, f"field {entry.name!r}: {exc}") from exc
        if entry.app_group:
            tags.append(Tag(APP_GROUP_CODE, entry.app_group))
            tags.append(Tag(entry.code, text))
            tags.append(Tag(APP_GROUP_CODE, "}"))
        else:
            tags.append(Tag(entry.code, text))
    return tags


def _encode_run(record: Record, run: Repeated) -> list[Tag]:
    tags: list[Tag] = []
    for item in record.dxf.get(run.name) or ():
        values = tuple(item) if isinstance(item, (tuple, list)) else (item,)
        if len(values) != len(run.members):
            raise EncodeError(record.kind, f"field {run.name!r}: expected {len(run.members)} values per entry")
        for position, (member, value) in enumerate(zip(run.members, values)):
            if position and (value is None or _skippable(member, value)):
                continue
            if value is None:
                raise EncodeError(record.kind, f"field {run.name!r}: entry without {member.name!r}")
            try:
                text = member.format(value)
            except (TypeError, ValueError) as exc:
                raise EncodeError(record.kind, f"field {run.name!r}: {exc}") from exc
            tags.append(Tag(member.code, text))
    return tags


def _skippable(entry: Field, value: Any) -> bool:
    return entry.optional and value == entry.default


def _held_open(entry: Field, needed: dict[int, int]) -> bool:
    return entry.occurrence is not None and entry.occurrence < needed.get(entry.code, 0)


def _required_occurrences(fields: list[Field], record: Record) -> dict[int, int]:
    # Highest occurrence index emitted per code; lower indices must be emitted too.
    needed: dict[int, int] = {}
    for entry in fields:
        if entry.occurrence is None:
            continue
        value = record.dxf.get(entry.name)
        if value is None or _skippable(entry, value):
            continue
        needed[entry.code] = max(needed.get(entry.code, 0), entry.occurrence)
    return needed


def encode(
    schema: RecordSchema,
    record: Record,
    writer: TagWriter,
    version: VersionContext,
    *,
    terminator: str | None = None,
) -> None:
    """Write ``record`` in canonical order followed by a terminator tag.

    The terminator names what follows (``schema.kind`` by default). Nothing is
    written when the record cannot be encoded.
    """
    tags = encode_tags(schema, record, version)
    writer.write_tags(tags)
    writer.write_terminator(terminator or schema.kind)
