"""
Common machinery for CVSS vectors.

Every CVSS version is described by an ordered table of metrics, each with a
fixed set of valid values. Vectors are parsed in a single left-to-right pass
over ``ABBR:VALUE`` elements separated by ``/``:

- v3 and v4 vectors start with a ``CVSS:<version>`` element and list their
  metrics in table order
- v2 vectors carry no prefix and may list metrics in any order

In both cases every metric appears at most once and all base metrics must be
present.
"""

import abc
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

MetricTable = Sequence[Tuple[str, Tuple[str, ...]]]

_ONE = Decimal(1)
_TIE_PRECISION = Decimal("1e-9")


class CVSSParseError(ValueError):
    """Raised for malformed vector strings; carries the offending offset"""

    def __init__(self, message: str, vector: str = None, offset: int = None):
        self.vector = vector
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)


class Qualitative(Enum):
    """Qualitative severity rating scale"""
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    def __str__(self):
        return self.value


def qualitative_from_score(score: float) -> Qualitative:
    if score == 0:
        return Qualitative.NONE
    if score < 4.0:
        return Qualitative.LOW
    if score < 7.0:
        return Qualitative.MEDIUM
    if score < 9.0:
        return Qualitative.HIGH
    return Qualitative.CRITICAL


def qualitative_score(vector: "Vector") -> Qualitative:
    """Map a vector's score onto the published severity buckets"""
    return qualitative_from_score(vector.score())


def round_half_up(x: float, digits: int = 1) -> float:
    """
    Round away from zero on ties, as the published calculators do

    Products such as 3.0 * 0.95 land a hair below the tie in binary floating
    point, so the scaled value is settled to nine places before rounding.
    """
    scaled = Decimal(repr(x)).scaleb(digits).quantize(_TIE_PRECISION)
    return float(scaled.quantize(_ONE, rounding=ROUND_HALF_UP).scaleb(-digits))


class Vector(abc.ABC):
    """
    Base class for a parsed CVSS vector

    Subclasses provide the metric table and the scoring formula. Values are kept
    in a dict keyed by metric abbreviation; metrics absent from the vector are
    simply missing from the dict.
    """

    METRICS: MetricTable = ()
    BASE_METRICS: int = 0
    PREFIX: Optional[str] = None
    STRICT_ORDER: bool = True

    def __init__(self, values: Dict[str, str], version: str = ""):
        self._values = dict(values)
        self.version = version

    # Parsing

    @classmethod
    def _metric_index(cls) -> Dict[str, int]:
        idx = cls.__dict__.get('_METRIC_INDEX')
        if idx is None:
            idx = {abbr: i for i, (abbr, _) in enumerate(cls.METRICS)}
            cls._METRIC_INDEX = idx
        return idx

    @classmethod
    def _check_version(cls, version: str, vector: str):
        """Validate the version named by the prefix element"""

    @classmethod
    def parse(cls, s: str) -> "Vector":
        """
        Parse a vector string

        Args:
            s: Vector string, e.g. ``CVSS:3.1/AV:N/AC:L/...``

        Returns:
            Parsed vector

        Raises:
            CVSSParseError: If the string is malformed in any way
        """
        if not isinstance(s, str):
            raise CVSSParseError(f"vector must be a string, not {type(s).__name__}")
        for i, c in enumerate(s):
            if c.isspace():
                raise CVSSParseError("unexpected whitespace", s, i)
        if s == "":
            raise CVSSParseError("empty vector", s, 0)

        elems = s.split("/")
        offset = 0
        version = ""
        if cls.PREFIX is not None:
            head = elems.pop(0)
            if not head.startswith("CVSS:"):
                raise CVSSParseError("missing CVSS prefix", s, 0)
            version = head[len("CVSS:"):]
            cls._check_version(version, s)
            offset = len(head) + 1
        elif s.startswith("CVSS:"):
            raise CVSSParseError("unexpected CVSS prefix", s, 0)

        index = cls._metric_index()
        values: Dict[str, str] = {}
        last = -1
        for elem in elems:
            if elem == "":
                raise CVSSParseError("empty metric element", s, offset)
            abbr, sep, value = elem.partition(":")
            if not sep:
                raise CVSSParseError(f"missing ':' in element {elem!r}", s, offset)
            pos = index.get(abbr)
            if pos is None:
                raise CVSSParseError(f"unknown metric {abbr!r}", s, offset)
            if abbr in values:
                raise CVSSParseError(f"duplicate metric {abbr!r}", s, offset)
            if value not in cls.METRICS[pos][1]:
                raise CVSSParseError(f"invalid value {value!r} for metric {abbr!r}", s,
                                     offset + len(abbr) + 1)
            if cls.STRICT_ORDER and pos < last:
                raise CVSSParseError(f"metric {abbr!r} out of order", s, offset)
            last = pos
            values[abbr] = value
            offset += len(elem) + 1

        for abbr, _ in cls.METRICS[:cls.BASE_METRICS]:
            if abbr not in values:
                raise CVSSParseError(f"missing base metric {abbr!r}", s)
        return cls(values, version)

    # Accessors

    def get(self, metric: str) -> str:
        """Value of a metric as written in the vector, or "" when absent"""
        if metric not in self._metric_index():
            raise KeyError(metric)
        return self._values.get(metric, "")

    def items(self) -> Iterator[Tuple[str, str]]:
        for abbr, _ in self.METRICS:
            if abbr in self._values:
                yield abbr, self._values[abbr]

    def _any_set(self, metrics: List[str]) -> bool:
        return any(self._values.get(m, "X") not in ("X", "ND") for m in metrics)

    def __str__(self):
        elems = [f"{abbr}:{value}" for abbr, value in self.items()]
        if self.PREFIX is not None:
            elems.insert(0, f"{self.PREFIX}:{self.version}")
        return "/".join(elems)

    def __repr__(self):
        return f"{type(self).__name__}({str(self)!r})"

    def __eq__(self, other):
        if not isinstance(other, Vector):
            return NotImplemented
        return type(self) is type(other) and str(self) == str(other)

    def __hash__(self):
        return hash(str(self))

    @abc.abstractmethod
    def score(self) -> float:
        """Numeric score of the vector"""


def version(s: str) -> int:
    """Report the CVSS major version of a vector string, or 0 if unknown"""
    if s.startswith("CVSS:3."):
        return 3
    if s.startswith("CVSS:4."):
        return 4
    if s.startswith("AV:") or "/Au:" in s:
        return 2
    return 0
