"""
CVSS codec: parsing, canonical formatting, and scoring for v2, v3.x and v4.0
vectors.
"""

from .base import (
    CVSSParseError, Qualitative, Vector, qualitative_from_score, qualitative_score,
    round_half_up, version,
)
from .v2 import V2, parse_v2
from .v3 import V3, parse_v3
from .v4 import V4, parse_v4

__all__ = [
    'CVSSParseError',
    'Qualitative',
    'Vector',
    'qualitative_from_score',
    'qualitative_score',
    'round_half_up',
    'version',
    'V2',
    'V3',
    'V4',
    'parse_v2',
    'parse_v3',
    'parse_v4',
]
