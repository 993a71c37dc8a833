from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping

from .tags import (
    APP_GROUP_CODE,
    COMMENT_CODE,
    SUBCLASS_MARKER_CODE,
    TERMINATOR_CODE,
    ValueType,
    group_code_type,
)
from .version import AcadVersion, VersionContext

_RESERVED_CODES = {TERMINATOR_CODE, SUBCLASS_MARKER_CODE, APP_GROUP_CODE, COMMENT_CODE}
_TYPE_DEFAULTS: dict[ValueType, Any] = {
    ValueType.TEXT: "",
    ValueType.INT: 0,
    ValueType.FLOAT: 0.0,
    ValueType.BOOL: False,
    ValueType.HANDLE: "",
}


class _TypeDefault:
    def __repr__(self) -> str:
        return "<type default>"


TYPE_DEFAULT: Any = _TypeDefault()


def format_float(value: float) -> str:
    text = f"{value:.6f}"
    if float(text) == value:
        return text
    return format(Decimal(repr(value)), "f")


def _check_handle(text: str) -> str:
    if text:
        int(text, 16)
    return text


@dataclass(frozen=True)
class Field:
    """One schema entry: a group code mapped onto a named field slot.

    ``max_version`` is exclusive: the entry applies strictly before it.
    ``occurrence`` selects the n-th appearance (1-based) of ``code`` within one
    record; ``None`` matches every appearance. ``default=None`` declares that
    the field has no default and stays unset until a tag supplies it.
    """

    code: int
    name: str
    type: ValueType | None = None
    default: Any = TYPE_DEFAULT
    min_version: AcadVersion | None = None
    max_version: AcadVersion | None = None
    occurrence: int | None = None
    optional: bool = False
    required: bool = False
    app_group: str | None = None

    def __post_init__(self) -> None:
        if self.code in _RESERVED_CODES or self.code < 0:
            raise ValueError(f"group code {self.code} cannot be mapped to a field")
        if self.type is None:
            object.__setattr__(self, "type", group_code_type(self.code))
        if self.default is TYPE_DEFAULT:
            object.__setattr__(self, "default", _TYPE_DEFAULTS[self.type])
        if self.occurrence is not None and self.occurrence < 1:
            raise ValueError(f"occurrence index must start at 1, got {self.occurrence}")
        if self.required and self.optional:
            raise ValueError(f"field {self.name!r} cannot be both required and optional")

    def applies(self, version: VersionContext) -> bool:
        if self.min_version is not None and version.before(self.min_version):
            return False
        if self.max_version is not None and not version.before(self.max_version):
            return False
        return True

    def is_unset(self, value: Any) -> bool:
        if value is None:
            return True
        return self.type in (ValueType.TEXT, ValueType.HANDLE) and value == ""

    def convert(self, raw: str) -> Any:
        if self.type is ValueType.TEXT:
            return raw
        text = raw.strip()
        if self.type is ValueType.INT:
            return int(text)
        if self.type is ValueType.FLOAT:
            return float(text)
        if self.type is ValueType.BOOL:
            return int(text) != 0
        return _check_handle(text)

    def format(self, value: Any) -> str:
        if self.type is ValueType.TEXT:
            text = str(value)
            if "\n" in text or "\r" in text:
                raise ValueError(f"line break in text field {self.name!r}")
            return text
        if self.type is ValueType.INT:
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"non-integral value {value!r} for field {self.name!r}")
            return str(int(value))
        if self.type is ValueType.FLOAT:
            return format_float(float(value))
        if self.type is ValueType.BOOL:
            return "1" if value else "0"
        if isinstance(value, int) and not isinstance(value, bool):
            return f"{value:X}"
        return _check_handle(str(value).strip())


@dataclass(frozen=True)
class Marker:
    """A subclass-marker tag (code 100) emitted at its declared position."""

    value: str
    min_version: AcadVersion = AcadVersion.R13
    code: int = field(default=SUBCLASS_MARKER_CODE, init=False)

    def applies(self, version: VersionContext) -> bool:
        return version.at_least(self.min_version)


@dataclass(frozen=True)
class Repeated:
    """A run of tag groups kept in order as a tuple of tuples.

    A tag with the first member's code opens a new group; the other members
    fill in the most recent one. Optional members left at their default are
    not written.
    """

    name: str
    members: tuple[Field, ...]
    min_version: AcadVersion | None = None
    max_version: AcadVersion | None = None
    default: tuple = field(default=(), init=False)
    required: bool = field(default=False, init=False)
    optional: bool = field(default=True, init=False)
    app_group: str | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        members = tuple(self.members)
        if not members:
            raise ValueError(f"repeated field {self.name!r} needs at least one member")
        if len({member.code for member in members}) != len(members):
            raise ValueError(f"repeated field {self.name!r} uses a group code twice")
        object.__setattr__(self, "members", members)

    def applies(self, version: VersionContext) -> bool:
        if self.min_version is not None and version.before(self.min_version):
            return False
        if self.max_version is not None and not version.before(self.max_version):
            return False
        return True

    def blank(self) -> tuple:
        return tuple(member.default for member in self.members)


@dataclass(frozen=True)
class RecordSchema:
    """Static, ordered tag table for one record kind."""

    kind: str
    entries: tuple[Field | Repeated | Marker, ...]
    extra_markers: frozenset[str] = frozenset()
    min_version: AcadVersion | None = None
    fields: Mapping[str, Field | Repeated] = field(init=False, repr=False, compare=False)
    markers: frozenset[str] = field(init=False, repr=False, compare=False)
    marker_version: AcadVersion = field(init=False, repr=False, compare=False)
    _by_code: Mapping[int, tuple[Field, ...]] = field(init=False, repr=False, compare=False)
    _members: Mapping[int, tuple[Repeated, int]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        entries = tuple(self.entries)
        fields: dict[str, Field | Repeated] = {}
        by_code: dict[int, list[Field]] = {}
        members: dict[int, tuple[Repeated, int]] = {}
        markers = set(self.extra_markers)
        marker_versions: list[AcadVersion] = []
        for entry in entries:
            if isinstance(entry, Marker):
                markers.add(entry.value)
                marker_versions.append(entry.min_version)
                continue
            if isinstance(entry, Repeated):
                if entry.name in fields:
                    raise ValueError(f"{self.kind}: field {entry.name!r} declared twice")
                fields[entry.name] = entry
                for index, member in enumerate(entry.members):
                    if member.code in members:
                        raise ValueError(f"{self.kind}: group code {member.code} repeated in two runs")
                    members[member.code] = (entry, index)
                continue
            known = fields.get(entry.name)
            if isinstance(known, Repeated):
                raise ValueError(f"{self.kind}: field {entry.name!r} declared twice")
            if known is None:
                fields[entry.name] = entry
            elif known.type is not entry.type:
                raise ValueError(
                    f"{self.kind}: field {entry.name!r} declared as both "
                    f"{known.type.value} and {entry.type.value}"
                )
            by_code.setdefault(entry.code, []).append(entry)
        _check_unambiguous(self.kind, by_code)
        object.__setattr__(self, "entries", entries)
        object.__setattr__(self, "extra_markers", frozenset(self.extra_markers))
        object.__setattr__(self, "fields", fields)
        object.__setattr__(self, "markers", frozenset(markers))
        object.__setattr__(self, "marker_version", min(marker_versions, default=AcadVersion.R13))
        object.__setattr__(self, "_by_code", {code: tuple(items) for code, items in by_code.items()})
        object.__setattr__(self, "_members", members)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self.fields)

    def entries_for(self, code: int) -> tuple[Field, ...]:
        return self._by_code.get(code, ())

    def member_for(self, code: int) -> tuple[Repeated, int] | None:
        return self._members.get(code)

    def applies(self, version: VersionContext) -> bool:
        return self.min_version is None or version.at_least(self.min_version)

    def missing_fields(self, values: Mapping[str, Any], version: VersionContext) -> list[str]:
        missing: list[str] = []
        for entry in self.entries:
            if not isinstance(entry, Field) or not entry.required:
                continue
            if not entry.applies(version) or entry.name in missing:
                continue
            if entry.is_unset(values.get(entry.name)):
                missing.append(entry.name)
        return missing


def _check_unambiguous(kind: str, by_code: dict[int, list[Field]]) -> None:
    for code, entries in by_code.items():
        seen: set[tuple[Any, ...]] = set()
        for entry in entries:
            key = (entry.app_group, entry.occurrence, entry.min_version, entry.max_version)
            if key in seen:
                raise ValueError(
                    f"{kind}: group code {code} is declared twice for the same group, occurrence and versions"
                )
            seen.add(key)


def schema_registry(schemas: Iterable[RecordSchema]) -> dict[str, RecordSchema]:
    return {schema.kind: schema for schema in schemas}
