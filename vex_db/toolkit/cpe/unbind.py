"""
Unbinding of CPE strings into WFNs.

Both the 2.2 URI binding (``cpe:/``) and the 2.3 formatted string binding
(``cpe:2.3:``) are supported. The URI form is lowercased and percent-decoded;
the formatted string form keeps its case and has any unquoted reserved
characters re-quoted.
"""

import re
from typing import List

from .wfn import (
    Attribute, CPEError, FS_PREFIX, NUM_ATTR, URI_PREFIX, Value, ValueKind, WFN, reserved,
)

_URI_ATTRS = (
    Attribute.PART, Attribute.VENDOR, Attribute.PRODUCT, Attribute.VERSION,
    Attribute.UPDATE, Attribute.EDITION, Attribute.LANGUAGE,
)
_PACKED_ATTRS = (
    Attribute.EDITION, Attribute.SW_EDITION, Attribute.TARGET_SW,
    Attribute.TARGET_HW, Attribute.OTHER,
)

# Percent sequences are decoded into quoted characters. %01 and %02 are the
# URI spelling of the "?" and "*" wildcards.
_URI_DECODE = {
    '.': "\\.", '-': "\\-", '~': "\\~",
    '%01': "?", '%02': "*",
    '%21': "\\!", '%22': '\\"', '%23': "\\#", '%24': "\\$", '%25': "\\%",
    '%26': "\\&", '%27': "\\'", '%28': "\\(", '%29': "\\)", '%2a': "\\*",
    '%2b': "\\+", '%2c': "\\,", '%2f': "\\/", '%3a': "\\:", '%3b': "\\;",
    '%3c': "\\<", '%3d': "\\=", '%3e': "\\>", '%3f': "\\?", '%40': "\\@",
    '%5b': "\\[", '%5c': "\\\\", '%5d': "\\]", '%5e': "\\^", '%60': "\\`",
    '%7b': "\\{", '%7c': "\\|", '%7d': "\\}", '%7e': "\\~",
}
_URI_TOKEN = re.compile(r"%[0-9a-f]{2}|[.\-~]")


def unbind(s: str) -> WFN:
    """Unbind either binding, dispatching on the prefix"""
    if s.startswith(URI_PREFIX):
        return unbind_uri(s)
    if s.startswith(FS_PREFIX):
        return unbind_fs(s)
    raise CPEError("string does not appear to be a bound WFN", value=s)


def _decode_uri_component(s: str) -> Value:
    if s == "":
        return Value(ValueKind.ANY)
    if s == "-":
        return Value(ValueKind.NA)
    # Unknown percent sequences are left alone and fail validation on the
    # unquoted "%".
    decoded = _URI_TOKEN.sub(lambda m: _URI_DECODE.get(m.group(0), m.group(0)), s.lower())
    return Value(ValueKind.SET, decoded)


def unbind_uri(s: str) -> WFN:
    """
    Unbind a CPE 2.2 URI

    Elided components default to ANY. A sixth component starting with ``~``
    is a packed edition carrying the five extended attributes.

    Raises:
        CPEError: If the string is not a URI binding or any value is invalid
    """
    if not s.startswith(URI_PREFIX):
        raise CPEError("malformed CPE URI", value=s)
    values = [Value()] * NUM_ATTR
    for attr in _URI_ATTRS:
        values[attr] = Value(ValueKind.ANY)

    comps = s.split(":")[1:]
    comps[0] = comps[0][1:]
    for i, comp in enumerate(comps):
        if i >= len(_URI_ATTRS):
            raise CPEError(f"unexpected component at position {i}", value=s)
        if i == 5 and comp.startswith("~"):
            packed = comp.split("~", 5)[1:]
            for attr, sub in zip(_PACKED_ATTRS, packed):
                values[attr] = _decode_uri_component(sub)
            continue
        values[_URI_ATTRS[i]] = _decode_uri_component(comp)

    wfn = WFN(values)
    wfn.validate()
    return wfn


def split_fs(s: str) -> List[str]:
    """Split a formatted string on unquoted colons"""
    out = []
    prev, esc = 0, False
    for i, c in enumerate(s):
        if esc:
            esc = False
            continue
        if c == '\\':
            esc = True
        elif c == ':':
            out.append(s[prev:i])
            prev = i + 1
    out.append(s[prev:])
    return out


def _unbind_fs_value(s: str) -> str:
    out = []
    esc = False
    for c in s:
        if esc:
            out.append(c)
            esc = False
        elif c == '\\':
            out.append(c)
            esc = True
        elif c in '*?' or not reserved(c):
            out.append(c)
        else:
            out.append('\\' + c)
    return "".join(out)


def unbind_fs(s: str) -> WFN:
    """
    Unbind a CPE 2.3 formatted string

    Raises:
        CPEError: If the string is not a formatted string binding, has the
            wrong number of components, or any value is invalid
    """
    if not s.startswith(FS_PREFIX):
        raise CPEError("malformed CPE formatted string", value=s)
    comps = split_fs(s)[2:]
    if len(comps) > NUM_ATTR:
        raise CPEError(f"unexpected number of components: {len(comps)}", value=s)
    values = []
    for comp in comps:
        if comp == "":
            values.append(Value())
        elif comp == "-":
            values.append(Value(ValueKind.NA))
        elif comp == "*":
            values.append(Value(ValueKind.ANY))
        else:
            values.append(Value(ValueKind.SET, _unbind_fs_value(comp)))
    wfn = WFN(values)
    wfn.validate()
    return wfn
