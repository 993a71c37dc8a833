from __future__ import annotations

from typing import Sequence


class TagCodecError(Exception):
    pass


class SourceFailure(TagCodecError):
    """The underlying stream could not produce or accept the next line."""

    def __init__(self, message: str, *, source: str = "<stream>", line_number: int = 0) -> None:
        super().__init__(f"{message} ({source}, line {line_number})")
        self.reason = message
        self.source = source
        self.line_number = line_number


class DecodeError(TagCodecError):
    pass


class MandatoryFieldMissing(DecodeError):
    def __init__(self, kind: str, fields: Sequence[str], *, line_number: int = 0) -> None:
        names = ", ".join(fields)
        super().__init__(f"{kind} record is missing mandatory field(s): {names}")
        self.kind = kind
        self.fields = tuple(fields)
        self.line_number = line_number


class EncodeError(TagCodecError):
    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"cannot encode {kind} record: {message}")
        self.kind = kind


class CollectionInvariantViolation(TagCodecError, RuntimeError):
    pass
