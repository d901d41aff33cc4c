"""
RPM version comparison and NEVRA handling.

rpmvercmp follows rpm's lib/rpmvercmp.c: versions are split into alternating
runs of digits and letters, separators are ignored, ``~`` sorts before
anything (including the end of the string) and ``^`` sorts after the end of
the string but before any other segment.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

# Architectures recognized as a trailing ".arch" in a NEVRA string
KNOWN_ARCHES = frozenset([
    'noarch', 'src', 'nosrc',
    'x86_64', 'i386', 'i486', 'i586', 'i686', 'athlon',
    'aarch64', 'armv7hl', 'armv7l',
    'ppc64le', 'ppc64', 'ppc',
    's390x', 's390',
])


def _isalnum(c: str) -> bool:
    return c.isascii() and c.isalnum()


def _isdigit(c: str) -> bool:
    return '0' <= c <= '9'


def _isalpha(c: str) -> bool:
    return c.isascii() and c.isalpha()


def rpmvercmp(a: str, b: str) -> int:
    """Compare two version (or release) strings; returns -1, 0 or 1"""
    if a == b:
        return 0

    i, j = 0, 0
    la, lb = len(a), len(b)
    while i < la or j < lb:
        while i < la and not _isalnum(a[i]) and a[i] not in '~^':
            i += 1
        while j < lb and not _isalnum(b[j]) and b[j] not in '~^':
            j += 1

        # Tilde sorts before everything else
        if (i < la and a[i] == '~') or (j < lb and b[j] == '~'):
            if i >= la or a[i] != '~':
                return 1
            if j >= lb or b[j] != '~':
                return -1
            i += 1
            j += 1
            continue

        # Caret sorts after the end of the string but before any segment
        if (i < la and a[i] == '^') or (j < lb and b[j] == '^'):
            if i >= la:
                return -1
            if j >= lb:
                return 1
            if a[i] != '^':
                return 1
            if b[j] != '^':
                return -1
            i += 1
            j += 1
            continue

        if i >= la or j >= lb:
            break

        si, sj = i, j
        if _isdigit(a[i]):
            while i < la and _isdigit(a[i]):
                i += 1
            while j < lb and _isdigit(b[j]):
                j += 1
            numeric = True
        else:
            while i < la and _isalpha(a[i]):
                i += 1
            while j < lb and _isalpha(b[j]):
                j += 1
            numeric = False

        seg_a, seg_b = a[si:i], b[sj:j]
        if seg_b == "":
            # Numeric segments are newer than alpha ones
            return 1 if numeric else -1

        if numeric:
            seg_a = seg_a.lstrip('0')
            seg_b = seg_b.lstrip('0')
            if len(seg_a) != len(seg_b):
                return 1 if len(seg_a) > len(seg_b) else -1

        if seg_a != seg_b:
            return 1 if seg_a > seg_b else -1

    if i >= la and j >= lb:
        return 0
    return -1 if i >= la else 1


def split_evr(evr: str) -> Tuple[str, str, str]:
    """Split ``[epoch:]version[-release]``; a missing epoch is reported as "0" """
    epoch = "0"
    if ':' in evr:
        epoch, evr = evr.split(':', 1)
        epoch = epoch or "0"
    version, dash, release = evr.rpartition('-')
    if not dash:
        version, release = release, ""
    return epoch, version, release


def compare_evr(a: str, b: str) -> int:
    """Compare two ``[epoch:]version[-release]`` strings"""
    ea, va, ra = split_evr(a)
    eb, vb, rb = split_evr(b)
    c = rpmvercmp(ea, eb)
    if c != 0:
        return c
    c = rpmvercmp(va, vb)
    if c != 0:
        return c
    return rpmvercmp(ra, rb)


class NEVRAError(ValueError):
    pass


@dataclass(frozen=True)
class NEVRA:
    """An RPM package identity: name, epoch, version, release and arch"""
    name: str
    version: str
    release: str = ""
    epoch: Optional[str] = None
    arch: str = ""

    @classmethod
    def parse(cls, s: str) -> "NEVRA":
        """
        Parse ``name-[epoch:]version-release[.arch]``

        A trailing ``.arch`` is only split off when it names a known
        architecture, so releases like ``6.el9_2`` stay intact.
        """
        name_ver, sep, rel = s.rpartition('-')
        if not sep:
            raise NEVRAError(f"missing release in {s!r}")
        name, sep, ver = name_ver.rpartition('-')
        if not sep or not name or not ver or not rel:
            raise NEVRAError(f"malformed NEVRA {s!r}")

        arch = ""
        head, dot, tail = rel.rpartition('.')
        if dot and tail in KNOWN_ARCHES:
            rel, arch = head, tail

        epoch = None
        if ':' in ver:
            epoch, ver = ver.split(':', 1)
            if not epoch.isdigit():
                raise NEVRAError(f"bad epoch in {s!r}")
        return cls(name=name, version=ver, release=rel, epoch=epoch, arch=arch)

    def evr(self) -> str:
        out = f"{self.version}-{self.release}"
        if self.epoch:
            out = f"{self.epoch}:{out}"
        return out

    def __str__(self):
        out = f"{self.name}-{self.evr()}"
        if self.arch:
            out += f".{self.arch}"
        return out
