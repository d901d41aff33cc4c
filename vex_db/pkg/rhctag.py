"""
Versions for Red Hat container image tags.

Container tags look like ``v4.6.0-202112140546.p0.g8b9da97.assembly.stream``
or ``8.5-21.1645811927``. Only the major and minor numbers take part in
vulnerability ranges; ordering between tags uses RPM version comparison of
the whole tag.
"""

import functools
from dataclasses import dataclass
from typing import Tuple

from ..models import Version as NormalizedVersion
from .rpmver import compare_evr

MAX_INT32 = 2 ** 31 - 1
VERSION_KIND = "rhctag"


class TagError(ValueError):
    pass


def _up_to_dot(s: str) -> Tuple[int, str]:
    head, dot, rest = s.partition('.')
    if dot and head:
        try:
            return int(head), rest
        except ValueError:
            raise TagError(f"could not parse {head!r} as an int")
    try:
        return int(s), ""
    except ValueError:
        raise TagError(f"could not parse {s!r} as an int")


@functools.total_ordering
@dataclass(frozen=True)
class Version:
    original: str
    major: int = 0
    minor: int = 0

    @classmethod
    def parse(cls, s: str) -> "Version":
        """
        Parse a container tag

        A leading ``v`` and everything from the first ``-`` on are ignored. A
        missing or unparsable minor number is taken as 0.

        Raises:
            TagError: If the major number cannot be parsed
        """
        canonical = s[1:] if s.startswith('v') else s
        dash = canonical.find('-')
        if dash > 0:
            canonical = canonical[:dash]
        major, rest = _up_to_dot(canonical)
        try:
            minor, _ = _up_to_dot(rest)
        except TagError:
            minor = 0
        return cls(original=s, major=major, minor=minor)

    def version(self, min: bool) -> NormalizedVersion:
        """Normalized form: the start (min) or the end of this minor stream"""
        patch = 0 if min else MAX_INT32
        return NormalizedVersion(kind=VERSION_KIND, v=(self.major, self.minor, patch) + (0,) * 7)

    def minor_start(self) -> "Version":
        return Version.parse(f"{self.major}.{self.minor}")

    def compare(self, other: "Version") -> int:
        return compare_evr(self.original, other.original)

    def __eq__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self):
        return hash((self.major, self.minor))


class Versions(list):
    """A sortable collection of tag versions"""

    def first(self) -> Version:
        if not self:
            raise IndexError("first called on empty Versions")
        return self[0]
