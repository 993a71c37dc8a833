from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from .errors import CollectionInvariantViolation
from .schema import RecordSchema


@dataclass
class Record:
    """Decoded value of one record kind: a closed set of named field slots.

    Records are built in two phases, :meth:`allocate` (every slot unset) then
    :meth:`initialize` (every slot at its declared default). The slot set is
    fixed by the schema; assigning an undeclared name is a ``KeyError``.
    """

    kind: str
    dxf: dict[str, Any] = field(default_factory=dict)
    _owner: "RecordCollection | None" = field(default=None, init=False, repr=False, compare=False)
    _released: bool = field(default=False, init=False, repr=False, compare=False)

    @classmethod
    def allocate(cls, schema: RecordSchema) -> "Record":
        return cls(schema.kind, dict.fromkeys(schema.field_names))

    @classmethod
    def new(cls, schema: RecordSchema, **values: Any) -> "Record":
        record = cls.allocate(schema).initialize(schema)
        for name, value in values.items():
            record[name] = value
        return record

    def initialize(self, schema: RecordSchema) -> "Record":
        for name, entry in schema.fields.items():
            self.dxf[name] = entry.default
        return self

    @property
    def handle(self) -> Any:
        return self.dxf.get("handle", "")

    @property
    def released(self) -> bool:
        return self._released

    def get(self, name: str, default: Any = None) -> Any:
        return self.dxf.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.dxf[name]

    def __setitem__(self, name: str, value: Any) -> None:
        if name not in self.dxf:
            raise KeyError(f"{self.kind} record has no field {name!r}")
        self.dxf[name] = value

    def copy(self) -> "Record":
        return Record(self.kind, dict(self.dxf))

    def release(self) -> None:
        if self._owner is not None:
            raise CollectionInvariantViolation(
                f"{self.kind} record {self.handle!r} is still linked into a collection"
            )
        if self._released:
            raise CollectionInvariantViolation(f"{self.kind} record {self.handle!r} was already released")
        self._released = True
        self.dxf.clear()


class RecordCollection:
    """Ordered, owning sequence of same-kind records; insertion is at the tail.

    A record belongs to at most one collection. It must be detached from its
    collection before it can be released, so :meth:`release_all` detaches each
    record and then releases it, head to tail.
    """

    def __init__(self, kind: str, records: Iterable[Record] = ()) -> None:
        self.kind = kind
        self._records: list[Record] = []
        for record in records:
            self.append(record)

    def append(self, record: Record) -> None:
        if record.kind != self.kind:
            raise ValueError(f"cannot append a {record.kind} record to a {self.kind} collection")
        if record.released:
            raise CollectionInvariantViolation(f"cannot append a released {record.kind} record")
        if record._owner is not None:
            raise CollectionInvariantViolation(
                f"{record.kind} record {record.handle!r} already belongs to a collection"
            )
        record._owner = self
        self._records.append(record)

    @property
    def head(self) -> Record | None:
        return self._records[0] if self._records else None

    def tail(self) -> Record | None:
        return self._records[-1] if self._records else None

    def successor(self, record: Record) -> Record | None:
        for index, item in enumerate(self._records):
            if item is record:
                if index + 1 < len(self._records):
                    return self._records[index + 1]
                return None
        raise ValueError(f"{record.kind} record is not part of this collection")

    def find(self, name: str) -> Record | None:
        key = name.upper()
        for record in self._records:
            if str(record.get("name", "")).upper() == key:
                return record
        return None

    def release_all(self) -> int:
        records = self._records
        self._records = []
        for index, record in enumerate(records):
            if record._owner is not self:
                self._records = records[index:]
                raise CollectionInvariantViolation(
                    f"{record.kind} record {record.handle!r} was relinked outside its collection"
                )
            record._owner = None
            record.release()
        return len(records)

    def __iter__(self) -> Iterator[Record]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> Record:
        return self._records[index]

    def __repr__(self) -> str:
        return f"RecordCollection({self.kind!r}, {len(self._records)} records)"
