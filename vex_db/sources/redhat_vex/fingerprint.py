"""
Fingerprint of the incremental sync state.

The fingerprint records the entity tags last seen for changes.csv and
deletions.csv, the time of the last request, and the updater version. Entity
tags should not contain backslashes (RFC 9110 section 8.8.3), so ``\\`` is
used as the field separator::

    <changes etag>\\<deletions etag>\\<RFC 3339 time>\\<version>
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
SEPARATOR = "\\"


class FingerprintError(ValueError):
    pass


def format_rfc3339(t: datetime) -> str:
    """Second-precision RFC 3339, with "Z" for UTC"""
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    s = t.replace(microsecond=0).isoformat()
    if s.endswith("+00:00"):
        s = s[:-len("+00:00")] + "Z"
    return s


def parse_rfc3339(s: str) -> datetime:
    """
    Parse an RFC 3339 timestamp into an aware datetime

    Raises:
        ValueError: If the string is not a zoned RFC 3339 time
    """
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    t = datetime.fromisoformat(s)
    if t.tzinfo is None:
        raise ValueError(f"timestamp {s!r} has no zone offset")
    return t


@dataclass
class Fingerprint:
    changes_etag: str = ""
    deletions_etag: str = ""
    request_time: datetime = field(default=ZERO_TIME)
    version: str = ""

    @classmethod
    def parse(cls, s: str) -> "Fingerprint":
        """
        Parse a stored fingerprint; the empty string is the zero fingerprint

        Raises:
            FingerprintError: On a wrong field count or a malformed time
        """
        if not s:
            return cls()
        fields = s.split(SEPARATOR)
        if len(fields) != 4:
            raise FingerprintError("could not parse fingerprint")
        try:
            request_time = parse_rfc3339(fields[2])
        except ValueError as e:
            raise FingerprintError(f"could not parse fingerprint's request time: {e}") from e
        return cls(
            changes_etag=fields[0],
            deletions_etag=fields[1],
            request_time=request_time,
            version=fields[3],
        )

    def __str__(self):
        return SEPARATOR.join([
            self.changes_etag,
            self.deletions_etag,
            format_rfc3339(self.request_time),
            self.version,
        ])
