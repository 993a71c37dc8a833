from typing import Sequence

from .codec import Diagnostic, DiagnosticKind, decode, encode, encode_tags
from .convert import ConvertResult, WriteResult, to_ezdxf, write_dxf
from .document import Document, read, read_stream
from .errors import (
    CollectionInvariantViolation,
    DecodeError,
    EncodeError,
    MandatoryFieldMissing,
    SourceFailure,
    TagCodecError,
)
from .record import Record, RecordCollection
from .schema import Field, Marker, RecordSchema, Repeated
from .tags import EndOfRecord, Tag, TagReader, TagWriter
from .version import AcadVersion, VersionContext
from . import kinds

__all__ = [
    "read",
    "read_stream",
    "Document",
    "Record",
    "RecordCollection",
    "RecordSchema",
    "Field",
    "Marker",
    "Repeated",
    "Tag",
    "EndOfRecord",
    "TagReader",
    "TagWriter",
    "AcadVersion",
    "VersionContext",
    "decode",
    "encode",
    "encode_tags",
    "Diagnostic",
    "DiagnosticKind",
    "write_dxf",
    "to_ezdxf",
    "ConvertResult",
    "WriteResult",
    "TagCodecError",
    "SourceFailure",
    "DecodeError",
    "MandatoryFieldMissing",
    "EncodeError",
    "CollectionInvariantViolation",
    "kinds",
]


def main(argv: Sequence[str] | None = None) -> int:
    from eztag.cli import main as cli_main

    return cli_main(argv)
