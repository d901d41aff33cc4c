"""
CPE Well-Formed Names

OBJECTIVE:
In-memory representation of a CPE name (NIST IR 7695 "WFN") together with the
literal validation rules and both bindings (2.3 formatted string and 2.2 URI).

A WFN is an ordered tuple of eleven attribute values. Each value is one of:
- UNSET: the attribute was never provided (URI bindings leave the extended
  attributes unset)
- ANY: the logical value ANY, bound as ``*`` or as an empty URI component
- NA: the logical value NOT APPLICABLE, bound as ``-``
- SET: a quoted literal that may carry the wildcards ``*`` and ``?`` at its
  leading or trailing position

Literals are stored in their escaped form: every printable non-alphanumeric
character other than ``_`` is preceded by a backslash unless it is a wildcard.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterable

FS_PREFIX = "cpe:2.3:"
URI_PREFIX = "cpe:/"

NUM_ATTR = 11


class CPEError(ValueError):
    """Raised for malformed CPE literals, bindings, or names"""

    def __init__(self, message: str, attribute: "Attribute" = None, value: str = None):
        self.attribute = attribute
        self.value = value
        super().__init__(message)


class Attribute(IntEnum):
    """WFN attributes in canonical binding order"""
    PART = 0
    VENDOR = 1
    PRODUCT = 2
    VERSION = 3
    UPDATE = 4
    EDITION = 5
    LANGUAGE = 6
    SW_EDITION = 7
    TARGET_SW = 8
    TARGET_HW = 9
    OTHER = 10

    def __str__(self):
        return self.name.lower()


class ValueKind(Enum):
    UNSET = 0
    ANY = 1
    NA = 2
    SET = 3


def reserved(c: str) -> bool:
    """Report whether a character needs quoting inside a WFN literal"""
    return not (c.isascii() and (c.isalnum() or c == '_'))


def validate_value(s: str):
    """
    Validate a WFN literal

    Args:
        s: Literal in escaped form

    Raises:
        CPEError: If the literal breaks any of the WFN value-string rules
    """
    if not s.isascii():
        raise CPEError("string contains non-ASCII characters", value=s)
    if any(c.isspace() for c in s):
        raise CPEError("string contains space characters", value=s)
    if s == "*":
        raise CPEError("single asterisk MUST NOT be used by itself", value=s)
    if s == "\\-":
        raise CPEError("quoted hyphen MUST NOT be used by itself", value=s)

    # Tokenize into (offset, char, special) so quoted characters never count
    # as wildcards.
    tokens = []
    esc = False
    for i, c in enumerate(s):
        if esc:
            tokens.append((i, c, False))
            esc = False
        elif c == '\\':
            esc = True
        elif c in '*?':
            tokens.append((i, c, True))
        elif reserved(c):
            raise CPEError(f"invalid unquoted character: {c!r} at {i}", value=s)
        else:
            tokens.append((i, c, False))
    if esc:
        raise CPEError("trailing backslash", value=s)

    literal = [n for n, t in enumerate(tokens) if not t[2]]
    if not literal:
        if tokens and any(c == '*' for _, c, _ in tokens):
            raise CPEError("special characters MUST NOT make up the whole value", value=s)
        return
    first, last = literal[0], literal[-1]
    for i, c, special in tokens[first:last + 1]:
        if special:
            raise CPEError(f"invalid position for special character {c!r} at {i}", value=s)
    for run in (tokens[:first], tokens[last + 1:]):
        chars = "".join(c for _, c, _ in run)
        if chars and chars != "*" and set(chars) != {'?'}:
            raise CPEError(f"invalid special character sequence {chars!r}", value=s)


def has_wildcard(s: str) -> bool:
    """Report whether a literal carries an unquoted ``*`` or ``?``"""
    esc = False
    for c in s:
        if esc:
            esc = False
        elif c == '\\':
            esc = True
        elif c in '*?':
            return True
    return False


@dataclass(frozen=True)
class Value:
    """One WFN attribute value"""
    kind: ValueKind = ValueKind.UNSET
    v: str = ""

    @classmethod
    def new(cls, v: str) -> "Value":
        """Build a SET value, validating the literal first"""
        validate_value(v)
        return cls(ValueKind.SET, v)

    def bind_fs(self) -> str:
        if self.kind in (ValueKind.UNSET, ValueKind.ANY):
            return "*"
        if self.kind == ValueKind.NA:
            return "-"
        out = []
        i = 0
        while i < len(self.v):
            c = self.v[i]
            if c == '\\' and i + 1 < len(self.v):
                nxt = self.v[i + 1]
                out.append(nxt if nxt in '.-_' else c + nxt)
                i += 2
                continue
            out.append(c)
            i += 1
        return "".join(out)

    def bind_uri(self) -> str:
        if self.kind in (ValueKind.UNSET, ValueKind.ANY):
            return ""
        if self.kind == ValueKind.NA:
            return "-"
        out = []
        i = 0
        while i < len(self.v):
            c = self.v[i]
            if c == '\\' and i + 1 < len(self.v):
                nxt = self.v[i + 1]
                out.append(_PCT_ENCODE.get(nxt, nxt))
                i += 2
                continue
            if c == '?':
                out.append("%01")
            elif c == '*':
                out.append("%02")
            else:
                out.append(c)
            i += 1
        return "".join(out)

    def __str__(self):
        return self.bind_fs()


# Characters that stay bare in the URI binding even when quoted in the WFN.
_PCT_ENCODE = {
    '!': "%21", '"': "%22", '#': "%23", '$': "%24", '%': "%25", '&': "%26",
    "'": "%27", '(': "%28", ')': "%29", '*': "%2a", '+': "%2b", ',': "%2c",
    '-': "-", '.': ".", '/': "%2f", ':': "%3a", ';': "%3b", '<': "%3c",
    '=': "%3d", '>': "%3e", '?': "%3f", '@': "%40", '[': "%5b", '\\': "%5c",
    ']': "%5d", '^': "%5e", '`': "%60", '{': "%7b", '|': "%7c", '}': "%7d",
    '~': "%7e",
}

_UNSET = Value()


class WFN:
    """
    A CPE Well-Formed Name

    Instances are immutable. Build them from a sequence of values, unset past
    its end, or with one of the unbind functions in ``vex_db.toolkit.cpe.unbind``.
    """

    __slots__ = ('attrs',)

    def __init__(self, attrs: Iterable[Value] = ()):
        values = list(attrs)
        if len(values) > NUM_ATTR:
            raise CPEError(f"too many attributes: {len(values)}")
        values.extend([_UNSET] * (NUM_ATTR - len(values)))
        object.__setattr__(self, 'attrs', tuple(values))

    def __setattr__(self, name, value):
        raise AttributeError("WFN is immutable")

    def get(self, attr: Attribute) -> Value:
        return self.attrs[attr]

    def validate(self):
        """
        Check the WFN as a whole

        Raises:
            CPEError: If every attribute is unset, the part is not one of
                a, o, h, or any literal is malformed
        """
        unset = 0
        for attr, value in zip(Attribute, self.attrs):
            if value.kind == ValueKind.UNSET:
                unset += 1
                continue
            if value.kind != ValueKind.SET:
                continue
            try:
                validate_value(value.v)
            except CPEError as e:
                raise CPEError(f"wfn attr {attr} is invalid: {e}", attribute=attr, value=value.v) from e
        if unset == NUM_ATTR:
            raise CPEError("wfn is empty")
        part = self.attrs[Attribute.PART]
        if part.kind == ValueKind.SET and part.v not in ('a', 'o', 'h'):
            raise CPEError(f"wfn attr part is invalid: {part.v!r} is a disallowed value",
                           attribute=Attribute.PART, value=part.v)

    def bind_fs(self) -> str:
        return FS_PREFIX + ":".join(v.bind_fs() for v in self.attrs)

    def bind_uri(self) -> str:
        a = self.attrs
        edition = a[Attribute.EDITION].bind_uri()
        extended = (Attribute.SW_EDITION, Attribute.TARGET_SW, Attribute.TARGET_HW, Attribute.OTHER)
        if any(a[x].kind in (ValueKind.SET, ValueKind.NA) for x in extended):
            edition = "~" + "~".join([edition] + [a[x].bind_uri() for x in extended])
        parts = [a[x].bind_uri() for x in (Attribute.VENDOR, Attribute.PRODUCT,
                                           Attribute.VERSION, Attribute.UPDATE)]
        parts.append(edition)
        parts.append(a[Attribute.LANGUAGE].bind_uri())
        return (URI_PREFIX + a[Attribute.PART].bind_uri() + ":" + ":".join(parts)).rstrip(":")

    def is_empty(self) -> bool:
        return all(v.kind == ValueKind.UNSET for v in self.attrs)

    def __eq__(self, other):
        if not isinstance(other, WFN):
            return NotImplemented
        return self.attrs == other.attrs

    def __hash__(self):
        return hash(self.attrs)

    def __str__(self):
        return self.bind_fs()

    def __repr__(self):
        return f"WFN({self.bind_fs()!r})"

    def __deepcopy__(self, memo):
        return self

