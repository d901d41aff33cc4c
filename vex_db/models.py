"""
Record types emitted by the VEX synchronizer.

The advisory parser turns CSAF documents into ``Vulnerability`` records that an
external store upserts. The remaining types describe the affected package, the
repository it ships from and, for container images, the affected tag range.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum, IntEnum
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .toolkit.cpe import WFN


class Severity(IntEnum):
    """Normalized severity shared by every updater"""
    UNKNOWN = 0
    NEGLIGIBLE = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    CRITICAL = 5

    def __str__(self):
        return self.name.capitalize()


class PackageKind(str, Enum):
    SOURCE = "source"
    BINARY = "binary"


class ArchOp(str, Enum):
    """How a matcher compares a package arch against a vulnerability arch"""
    INVALID = ""
    EQUALS = "equals"
    NOT_EQUALS = "not equals"
    PATTERN_MATCH = "pattern match"


@dataclass(frozen=True)
class Version:
    """Normalized version: a kind tag and up to ten integer components"""
    kind: str = ""
    v: Tuple[int, ...] = (0,) * 10

    def compare(self, other: "Version") -> int:
        if self.kind != other.kind:
            raise ValueError(f"cannot compare {self.kind!r} and {other.kind!r} versions")
        if self.v < other.v:
            return -1
        if self.v > other.v:
            return 1
        return 0

    def __str__(self):
        if not self.kind:
            return ""
        return f"{self.kind}:" + ".".join(str(i) for i in self.v)


@dataclass
class Range:
    """Half-open version interval, ``lower <= v < upper``"""
    lower: Version = field(default_factory=Version)
    upper: Version = field(default_factory=Version)


@dataclass
class Package:
    name: str
    kind: PackageKind = PackageKind.BINARY
    version: str = ""
    module: str = ""
    arch: str = ""
    repository_hint: str = ""


@dataclass
class Repository:
    name: str = ""
    key: str = ""
    uri: str = ""
    cpe: Optional[WFN] = None


@dataclass
class Distribution:
    name: str = ""
    version_id: str = ""


@dataclass
class IndexRecord:
    """A package observed in a container layer together with its provenance"""
    package: Package
    repository: Optional[Repository] = None
    distribution: Optional[Distribution] = None


@dataclass
class Vulnerability:
    """One affected product × fix version emitted by the advisory parser"""
    updater: str
    name: str
    description: str = ""
    issued: Optional[datetime] = None
    links: str = ""
    severity: str = ""
    normalized_severity: Severity = Severity.UNKNOWN
    package: Optional[Package] = None
    fixed_in_version: str = ""
    arch_operation: ArchOp = ArchOp.INVALID
    repo: Optional[Repository] = None
    range: Optional[Range] = None

    def to_dict(self) -> Dict[str, Any]:
        """Plain-JSON rendering, used by the command line driver"""
        out = asdict(self)
        out['issued'] = self.issued.isoformat() if self.issued else None
        out['normalized_severity'] = str(self.normalized_severity)
        if self.package is not None:
            out['package']['kind'] = self.package.kind.value
        out['arch_operation'] = self.arch_operation.value
        if self.repo is not None:
            out['repo']['cpe'] = str(self.repo.cpe) if self.repo.cpe is not None else ""
        if self.range is not None:
            out['range'] = {
                'lower': str(self.range.lower),
                'upper': str(self.range.upper),
            }
        return out
