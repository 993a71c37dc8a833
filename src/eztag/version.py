from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class AcadVersion(IntEnum):
    R10 = 1006
    R12 = 1009
    R11 = 1009
    R13 = 1012
    R14 = 1014
    R2000 = 1015
    R2004 = 1018
    R2007 = 1021
    R2010 = 1024
    R2013 = 1027
    R2018 = 1032

    @property
    def acadver(self) -> str:
        return f"AC{self.value}"

    @classmethod
    def parse(cls, text: str | int | "AcadVersion") -> "AcadVersion":
        if isinstance(text, cls):
            return text
        if isinstance(text, int):
            try:
                return cls(text)
            except ValueError:
                raise ValueError(f"unsupported DXF version: {text}") from None
        token = str(text).strip().upper()
        if token.startswith("AC") and token[2:].isdigit():
            try:
                return cls(int(token[2:]))
            except ValueError:
                pass
        elif token in cls.__members__:
            return cls.__members__[token]
        raise ValueError(f"unsupported DXF version: {text}")


DEFAULT_VERSION = AcadVersion.R12
SUPPORTED_VERSIONS = {version.acadver for version in AcadVersion}


@dataclass(frozen=True)
class VersionContext:
    """File-scoped format version, shared read-only by every decode/encode step."""

    version: AcadVersion = DEFAULT_VERSION

    def __post_init__(self) -> None:
        object.__setattr__(self, "version", AcadVersion.parse(self.version))

    @classmethod
    def of(cls, version: "str | int | AcadVersion | VersionContext | None") -> "VersionContext":
        if isinstance(version, VersionContext):
            return version
        if version is None:
            return cls()
        return cls(AcadVersion.parse(version))

    @property
    def acadver(self) -> str:
        return self.version.acadver

    def at_least(self, version: AcadVersion) -> bool:
        return self.version >= version

    def before(self, version: AcadVersion) -> bool:
        return self.version < version

    def __str__(self) -> str:
        return self.acadver
