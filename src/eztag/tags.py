from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import IO, Iterable, Iterator, NamedTuple

from .errors import SourceFailure

TERMINATOR_CODE = 0
SUBCLASS_MARKER_CODE = 100
APP_GROUP_CODE = 102
COMMENT_CODE = 999


class ValueType(Enum):
    TEXT = "text"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    HANDLE = "handle"


_GROUP_CODE_RANGES: tuple[tuple[int, int, ValueType], ...] = (
    (0, 9, ValueType.TEXT),
    (10, 59, ValueType.FLOAT),
    (60, 99, ValueType.INT),
    (100, 102, ValueType.TEXT),
    (105, 105, ValueType.HANDLE),
    (110, 149, ValueType.FLOAT),
    (160, 179, ValueType.INT),
    (210, 239, ValueType.FLOAT),
    (270, 289, ValueType.INT),
    (290, 299, ValueType.BOOL),
    (300, 319, ValueType.TEXT),
    (320, 369, ValueType.HANDLE),
    (370, 389, ValueType.INT),
    (390, 399, ValueType.HANDLE),
    (400, 409, ValueType.INT),
    (410, 419, ValueType.TEXT),
    (420, 429, ValueType.INT),
    (430, 439, ValueType.TEXT),
    (440, 459, ValueType.INT),
    (460, 469, ValueType.FLOAT),
    (470, 479, ValueType.TEXT),
    (480, 481, ValueType.HANDLE),
    (999, 999, ValueType.TEXT),
    (1000, 1009, ValueType.TEXT),
    (1010, 1059, ValueType.FLOAT),
    (1060, 1071, ValueType.INT),
)


def group_code_type(code: int) -> ValueType:
    for low, high, value_type in _GROUP_CODE_RANGES:
        if low <= code <= high:
            return value_type
    return ValueType.TEXT


class Tag(NamedTuple):
    code: int
    value: str


@dataclass(frozen=True)
class EndOfRecord:
    """A terminator tag; ``name`` is the kind (or section token) that follows."""

    name: str
    line_number: int = 0


def _source_name(stream: IO[str], source: str | None) -> str:
    if source:
        return source
    name = getattr(stream, "name", None)
    if isinstance(name, str) and name:
        return name
    return "<stream>"


class TagReader:
    """Pulls one (code, value) pair at a time from a line-oriented text source.

    Every physical line consumed advances ``line_number`` by one. A code-0 pair
    is returned as an :class:`EndOfRecord` and stays available as ``current``
    so the caller can continue with the kind it names.
    """

    def __init__(self, stream: IO[str], *, source: str | None = None) -> None:
        self._stream = stream
        self._lookahead: str | None = None
        self.source = _source_name(stream, source)
        self.line_number = 0
        self.current: Tag | EndOfRecord | None = None

    @classmethod
    @contextmanager
    def open(cls, path: str | Path, *, encoding: str = "utf-8") -> Iterator["TagReader"]:
        try:
            stream = open(path, "r", encoding=encoding)
        except OSError as exc:
            raise SourceFailure(f"cannot open for reading: {exc}", source=str(path)) from exc
        with stream:
            yield cls(stream, source=str(path))

    def next_tag(self) -> Tag | EndOfRecord:
        code_line = self._read_line().strip()
        try:
            code = int(code_line)
        except ValueError:
            raise SourceFailure(
                f"invalid group code {code_line!r}",
                source=self.source,
                line_number=self.line_number,
            ) from None
        value = self._read_line()
        item: Tag | EndOfRecord
        if code == TERMINATOR_CODE:
            item = EndOfRecord(value.strip(), self.line_number)
        else:
            item = Tag(code, value)
        self.current = item
        return item

    def at_end(self) -> bool:
        if self._lookahead is None:
            self._lookahead = self._readline()
        return self._lookahead == ""

    def _read_line(self) -> str:
        if self._lookahead is not None:
            line, self._lookahead = self._lookahead, None
        else:
            line = self._readline()
        if line == "":
            raise SourceFailure(
                "unexpected end of input",
                source=self.source,
                line_number=self.line_number,
            )
        self.line_number += 1
        return line.rstrip("\r\n")

    def _readline(self) -> str:
        try:
            return self._stream.readline()
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceFailure(
                f"read error: {exc}",
                source=self.source,
                line_number=self.line_number,
            ) from exc


class TagWriter:
    def __init__(self, stream: IO[str], *, source: str | None = None) -> None:
        self._stream = stream
        self.source = _source_name(stream, source)
        self.line_number = 0

    @classmethod
    @contextmanager
    def open(cls, path: str | Path, *, encoding: str = "utf-8") -> Iterator["TagWriter"]:
        out_path = Path(path)
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            stream = open(out_path, "w", encoding=encoding, newline="\n")
        except OSError as exc:
            raise SourceFailure(f"cannot open for writing: {exc}", source=str(path)) from exc
        with stream:
            yield cls(stream, source=str(path))

    def write_tag(self, code: int, value: str) -> None:
        try:
            self._stream.write(f"{code:>3}\n{value}\n")
        except (OSError, UnicodeEncodeError) as exc:
            raise SourceFailure(
                f"write error: {exc}",
                source=self.source,
                line_number=self.line_number,
            ) from exc
        self.line_number += 2

    def write_tags(self, tags: Iterable[Tag]) -> None:
        for code, value in tags:
            self.write_tag(code, value)

    def write_terminator(self, name: str) -> None:
        self.write_tag(TERMINATOR_CODE, name)

    def write_text(self, text: str) -> None:
        """Copy an already encoded tag stream."""
        try:
            self._stream.write(text)
        except (OSError, UnicodeEncodeError) as exc:
            raise SourceFailure(
                f"write error: {exc}",
                source=self.source,
                line_number=self.line_number,
            ) from exc
        self.line_number += text.count("\n")
