"""
Pairwise CPE name matching (NIST IR 7696 §6).
"""

import re
from enum import IntEnum

from .wfn import NUM_ATTR, Value, ValueKind, WFN, has_wildcard


class Relation(IntEnum):
    SUPERSET = 1
    SUBSET = 2
    EQUAL = 3
    DISJOINT = 4

    def __str__(self):
        return {1: "⊃", 2: "⊂", 3: "=", 4: "≠"}[self.value]


class Relations(tuple):
    """Per-attribute relations of a source match expression to a target"""

    def is_superset(self) -> bool:
        return all(r in (Relation.EQUAL, Relation.SUPERSET) for r in self)

    def is_subset(self) -> bool:
        return all(r in (Relation.EQUAL, Relation.SUBSET) for r in self)

    def is_equal(self) -> bool:
        return all(r == Relation.EQUAL for r in self)

    def is_disjoint(self) -> bool:
        return any(r == Relation.DISJOINT for r in self)


# One logical character of an escaped literal.
_ONE = r"(?:\\.|[^\\])"


def _split_pattern(s: str):
    """Split a literal into its leading wildcards, quoted middle, and trailing wildcards"""
    head = 0
    while head < len(s) and s[head] in '*?':
        head += 1
    tail = len(s)
    while tail > head and s[tail - 1] in '*?':
        # A quoted trailing wildcard belongs to the middle.
        if tail - 2 >= 0 and s[tail - 2] == '\\':
            n = 0
            j = tail - 2
            while j >= 0 and s[j] == '\\':
                n += 1
                j -= 1
            if n % 2 == 1:
                break
        tail -= 1
    return s[:head], s[head:tail], s[tail:]


def _wildcards_regex(w: str) -> str:
    if w == "*":
        return _ONE + "*"
    return _ONE + "{%d}" % len(w) if w else ""


def pattern_compare(source: str, target: str) -> bool:
    """
    Case-insensitive glob match of a source literal against a target literal

    ``*`` matches zero or more characters and ``?`` exactly one; both are only
    special at the start or end of the source. Quoted characters count as one
    character.
    """
    head, middle, tail = _split_pattern(source.lower())
    expr = _wildcards_regex(head) + re.escape(middle) + _wildcards_regex(tail)
    return re.fullmatch(expr, target.lower(), flags=re.DOTALL) is not None


def _kind(v: Value) -> ValueKind:
    # Unset attributes come from elided URI components and mean ANY.
    return ValueKind.ANY if v.kind == ValueKind.UNSET else v.kind


def _relate(sv: Value, tv: Value) -> Relation:
    sk, tk = _kind(sv), _kind(tv)
    if tk == ValueKind.SET and has_wildcard(tv.v):
        return Relation.DISJOINT
    if sk == ValueKind.ANY:
        return Relation.EQUAL if tk == ValueKind.ANY else Relation.SUPERSET
    if sk == ValueKind.NA:
        if tk == ValueKind.ANY:
            return Relation.SUBSET
        return Relation.EQUAL if tk == ValueKind.NA else Relation.DISJOINT
    if tk == ValueKind.ANY:
        return Relation.SUBSET
    if tk == ValueKind.NA:
        return Relation.DISJOINT
    if has_wildcard(sv.v):
        return Relation.SUPERSET if pattern_compare(sv.v, tv.v) else Relation.DISJOINT
    return Relation.EQUAL if sv.v.lower() == tv.v.lower() else Relation.DISJOINT


def compare(src: WFN, tgt: WFN) -> Relations:
    """Compare a source WFN against a target WFN attribute by attribute"""
    return Relations(_relate(src.attrs[i], tgt.attrs[i]) for i in range(NUM_ATTR))
