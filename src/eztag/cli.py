from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Sequence

from .codec import DiagnosticKind
from .convert import to_ezdxf, write_dxf
from .document import SUPPORTED_RECORD_KINDS, read

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _package_version() -> str:
    try:
        return version("eztag")
    except PackageNotFoundError:
        return "0.0.0"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="eztag", description="Inspect, rewrite, and convert DXF tag streams.")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_package_version()}",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=_LOG_LEVELS,
        default="ERROR",
        help="Logging level for decode/encode diagnostics (default: ERROR).",
    )
    subparsers = parser.add_subparsers(dest="command")

    encoding_parser = argparse.ArgumentParser(add_help=False)
    encoding_parser.add_argument(
        "--encoding",
        default="utf-8",
        help="Text encoding of the input DXF file, e.g. cp1252 (default: utf-8).",
    )

    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Show basic DXF information.",
        parents=[encoding_parser],
    )
    inspect_parser.add_argument("path", help="Path to DXF file.")
    inspect_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show expanded diagnostics (more unknown group codes per record kind).",
    )

    rewrite_parser = subparsers.add_parser(
        "rewrite",
        help="Re-encode a DXF file with the native tag writer.",
        parents=[encoding_parser],
    )
    rewrite_parser.add_argument("input_path", help="Path to input DXF file.")
    rewrite_parser.add_argument("output_path", help="Path to output DXF file.")
    rewrite_parser.add_argument(
        "--dxf-version",
        default=None,
        help="Target version, e.g. AC1009/R12 or AC1015/R2000 (default: the input version).",
    )
    rewrite_parser.add_argument(
        "--kinds",
        default=None,
        help='Record kind filter, e.g. "LAYER STYLE".',
    )
    rewrite_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail if any record cannot be written.",
    )

    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert table records and entities to DXF using ezdxf as the writing backend.",
        parents=[encoding_parser],
    )
    convert_parser.add_argument("input_path", help="Path to input DXF file.")
    convert_parser.add_argument("output_path", help="Path to output DXF file.")
    convert_parser.add_argument(
        "--dxf-version",
        default="R2010",
        help="DXF version for ezdxf.new(), e.g. R2000/R2010/R2018.",
    )
    convert_parser.add_argument(
        "--kinds",
        default=None,
        help='Record kind filter, e.g. "LAYER STYLE".',
    )
    convert_parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail if any record cannot be converted.",
    )
    return parser


def _run_inspect(path: str, *, verbose: bool = False, encoding: str = "utf-8") -> int:
    file_path = Path(path)
    if not file_path.exists():
        print(f"error: file not found: {file_path}", file=sys.stderr)
        return 2

    try:
        doc = read(str(file_path), encoding=encoding)
    except Exception as exc:
        print(f"error: failed to read DXF: {exc}", file=sys.stderr)
        return 2

    counts = doc.record_counts()
    print(f"file: {file_path}")
    print(f"version: {doc.version}")
    print(f"total_records: {sum(counts.values())}")
    for kind in SUPPORTED_RECORD_KINDS:
        count = counts.get(kind, 0)
        if count > 0:
            print(f"{kind}: {count}")
    for kind, count in sorted(doc.skipped_by_kind.items()):
        print(f"skipped[{kind}]: {count}")

    by_kind: Counter[str] = Counter(diagnostic.kind.value for diagnostic in doc.diagnostics)
    for diagnostic_kind, count in sorted(by_kind.items()):
        print(f"diagnostics[{diagnostic_kind}]: {count}")

    unknown_codes: dict[str, Counter[int]] = {}
    for diagnostic in doc.diagnostics:
        if diagnostic.kind is not DiagnosticKind.UNKNOWN_CODE:
            continue
        unknown_codes.setdefault(diagnostic.record_kind, Counter())[diagnostic.code] += 1
    top_n = 10 if verbose else 3
    for record_kind, counter in sorted(unknown_codes.items()):
        top_codes = ", ".join(f"{code}:{count}" for code, count in counter.most_common(top_n))
        print(f"unknown_codes[{record_kind}]: {top_codes}")
    doc.release()
    return 0


def _run_rewrite(
    input_path: str,
    output_path: str,
    *,
    dxf_version: str | None = None,
    kinds: str | None = None,
    strict: bool = False,
    encoding: str = "utf-8",
) -> int:
    dxf_path = Path(input_path)
    if not dxf_path.exists():
        print(f"error: file not found: {dxf_path}", file=sys.stderr)
        return 2

    try:
        result = write_dxf(
            str(dxf_path),
            output_path,
            version=dxf_version,
            kinds=kinds,
            strict=strict,
            encoding=encoding,
        )
    except Exception as exc:
        print(f"error: failed to rewrite DXF: {exc}", file=sys.stderr)
        return 2

    print(f"input: {result.source_path}")
    print(f"output: {result.output_path}")
    print(f"target_version: {result.target_version}")
    print(f"total_records: {result.total_records}")
    print(f"written_records: {result.written_records}")
    print(f"skipped_records: {result.skipped_records}")
    for kind, count in result.skipped_by_kind.items():
        print(f"skipped[{kind}]: {count}")
    print(f"unread_records: {result.unread_records}")
    for kind, count in (result.unread_by_kind or {}).items():
        print(f"unread[{kind}]: {count}")
    return 0


def _run_convert(
    input_path: str,
    output_path: str,
    *,
    dxf_version: str = "R2010",
    kinds: str | None = None,
    strict: bool = False,
    encoding: str = "utf-8",
) -> int:
    dxf_path = Path(input_path)
    if not dxf_path.exists():
        print(f"error: file not found: {dxf_path}", file=sys.stderr)
        return 2

    try:
        result = to_ezdxf(
            str(dxf_path),
            output_path,
            dxf_version=dxf_version,
            kinds=kinds,
            strict=strict,
            encoding=encoding,
        )
    except Exception as exc:
        print(f"error: failed to convert DXF: {exc}", file=sys.stderr)
        return 2

    print(f"input: {result.source_path}")
    print(f"output: {result.output_path}")
    print(f"total_records: {result.total_records}")
    print(f"written_records: {result.written_records}")
    print(f"skipped_records: {result.skipped_records}")
    for kind, count in result.skipped_by_kind.items():
        print(f"skipped[{kind}]: {count}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    if args.command == "inspect":
        return _run_inspect(args.path, verbose=bool(args.verbose), encoding=args.encoding)
    if args.command == "rewrite":
        return _run_rewrite(
            args.input_path,
            args.output_path,
            dxf_version=args.dxf_version,
            kinds=args.kinds,
            strict=bool(args.strict),
            encoding=args.encoding,
        )
    if args.command == "convert":
        return _run_convert(
            args.input_path,
            args.output_path,
            dxf_version=args.dxf_version,
            kinds=args.kinds,
            strict=bool(args.strict),
            encoding=args.encoding,
        )

    parser.print_help()
    return 0
