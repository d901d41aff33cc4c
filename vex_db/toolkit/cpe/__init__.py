"""
CPE codec: WFN model, URI/formatted-string unbinding, and name matching.
"""

from .wfn import (
    Attribute, CPEError, NUM_ATTR, Value, ValueKind, WFN, has_wildcard, validate_value,
)
from .unbind import split_fs, unbind, unbind_fs, unbind_uri
from .match import Relation, Relations, compare, pattern_compare

__all__ = [
    'Attribute',
    'CPEError',
    'NUM_ATTR',
    'Value',
    'ValueKind',
    'WFN',
    'has_wildcard',
    'validate_value',
    'split_fs',
    'unbind',
    'unbind_fs',
    'unbind_uri',
    'Relation',
    'Relations',
    'compare',
    'pattern_compare',
]
