"""
Tests for the CPE codec: literal validation, bindings, unbinding and matching.

Binding tables follow NIST IR 7695.
"""

import pytest

from vex_db.toolkit.cpe import (
    Attribute, CPEError, Relation, Value, ValueKind, WFN, compare, pattern_compare, unbind,
    unbind_fs, unbind_uri, validate_value,
)

E, SUB, SUP, D = Relation.EQUAL, Relation.SUBSET, Relation.SUPERSET, Relation.DISJOINT


def values(*items):
    """Table shorthand: '*' is ANY, '-' is NA, '' is UNSET, else SET"""
    kinds = {"*": ValueKind.ANY, "-": ValueKind.NA, "": ValueKind.UNSET}
    return tuple(Value(kinds[item]) if item in kinds else Value(ValueKind.SET, item) for item in items)


@pytest.mark.parametrize("literal", [
    "",
    r"foo\-bar",
    "Acrobat_Reader",
    r"\"oh_my\!\"",
    r"g\+\+",
    r"9\.?",
    "sr*",
    r"big\$money",
    r"foo\:bar",
    r"back\\slash_software",
    r"with_quoted\~tilde",
    "*SOFT*",
    r"8\.??",
    r"*8\.??",
    "?a?",
    "??a?",
    "?a??",
    "??a??",
])
def test_validate_accepts(literal):
    validate_value(literal)


@pytest.mark.parametrize("literal", [
    "*",
    "a*b",
    "a??b",
    "a?b",
    "sr**",
    r"\-",
    "]",
    " ",
    "a*?",
    "a?*",
    "*?a",
    "?*a",
])
def test_validate_rejects(literal):
    with pytest.raises(CPEError):
        validate_value(literal)


def test_value_new():
    assert Value.new("test") == Value(ValueKind.SET, "test")
    with pytest.raises(CPEError):
        Value.new(" ")


@pytest.mark.parametrize("attrs,bound", [
    (values("a", "microsoft", "internet_explorer", r"8\.0\.6001", "beta", "*"),
     "cpe:2.3:a:microsoft:internet_explorer:8.0.6001:beta:*:*:*:*:*:*"),
    (values("a", "microsoft", "internet_explorer", r"8\.*", "sp?"),
     "cpe:2.3:a:microsoft:internet_explorer:8.*:sp?:*:*:*:*:*:*"),
    (values("a", "microsoft", "internet_explorer", r"8\.\*", "sp?"),
     r"cpe:2.3:a:microsoft:internet_explorer:8.\*:sp?:*:*:*:*:*:*"),
    (values("a", "hp", "insight", r"7\.4\.0\.1570", "-", "", "", "online", "win2003", "x64"),
     "cpe:2.3:a:hp:insight:7.4.0.1570:-:*:*:online:win2003:x64:*"),
    (values("a", "hp", "openview_network_manager", r"7\.51", "", "", "", "", "linux"),
     "cpe:2.3:a:hp:openview_network_manager:7.51:*:*:*:*:linux:*:*"),
    (values("a", r"foo\\bar", r"big\$money_2010", "", "", "", "", "special", "ipod_touch", "80gb"),
     r"cpe:2.3:a:foo\\bar:big\$money_2010:*:*:*:*:special:ipod_touch:80gb:*"),
])
def test_bind_fs(attrs, bound):
    assert str(WFN(attrs)) == bound


class TestUnbindFS:
    def test_simple(self):
        got = unbind_fs("cpe:2.3:a:microsoft:internet_explorer:8.0.6001:beta:*:*:*:*:*:*")
        assert got == WFN(values("a", "microsoft", "internet_explorer", r"8\.0\.6001", "beta",
                                 "*", "*", "*", "*", "*", "*"))

    def test_na_and_extended(self):
        got = unbind_fs("cpe:2.3:a:hp:insight_diagnostics:7.4.0.1570:-:*:*:online:win2003:x64:*")
        assert got.get(Attribute.UPDATE).kind == ValueKind.NA
        assert got.get(Attribute.SW_EDITION) == Value(ValueKind.SET, "online")
        assert got.get(Attribute.TARGET_HW) == Value(ValueKind.SET, "x64")

    def test_quoted(self):
        got = unbind_fs(r"cpe:2.3:a:foo\\bar:big\$money:2010:*:*:*:special:ipod_touch:80gb:*")
        assert got.get(Attribute.VENDOR).v == r"foo\\bar"
        assert got.get(Attribute.PRODUCT).v == r"big\$money"

    def test_embedded_wildcard(self):
        with pytest.raises(CPEError):
            unbind_fs("cpe:2.3:a:hp:insight_diagnostics:7.4.*.1570:-:*:*:online:win2003:x64:*")

    def test_too_many_components(self):
        with pytest.raises(CPEError):
            unbind_fs("cpe:2.3:a:b:c:d:e:f:g:h:i:j:k:l")


class TestUnbindURI:
    def test_simple(self):
        got = unbind_uri("cpe:/a:microsoft:internet_explorer:8.0.6001:beta")
        assert got == WFN(values("a", "microsoft", "internet_explorer", r"8\.0\.6001", "beta",
                                 "*", "*"))

    def test_lowercases_and_decodes(self):
        got = unbind_uri("cpe:/a:Adobe::9.%02::PalmOS")
        assert got.get(Attribute.VENDOR).v == "adobe"
        assert got.get(Attribute.PRODUCT).kind == ValueKind.ANY
        assert got.get(Attribute.VERSION).v == r"9\.*"
        assert got.get(Attribute.EDITION).v == "palmos"

    def test_packed_edition(self):
        got = unbind_uri("cpe:/a:hp:insight_diagnostics:7.4.0.1570::~~online~win2003~x64~")
        assert got.get(Attribute.EDITION).kind == ValueKind.ANY
        assert got.get(Attribute.SW_EDITION).v == "online"
        assert got.get(Attribute.TARGET_SW).v == "win2003"
        assert got.get(Attribute.TARGET_HW).v == "x64"
        assert got.get(Attribute.OTHER).kind == ValueKind.ANY

    def test_bad_part(self):
        with pytest.raises(CPEError):
            unbind_uri("cpe:/x:redhat:enterprise_linux:8")

    def test_round_trip_through_fs(self):
        wfn = unbind("cpe:/o:redhat:enterprise_linux:8::baseos")
        assert unbind(wfn.bind_fs()).bind_fs() == wfn.bind_fs()
        assert wfn.bind_uri() == "cpe:/o:redhat:enterprise_linux:8::baseos"


def test_unbind_rejects_unknown_prefix():
    with pytest.raises(CPEError):
        unbind("cpe:redhat")


@pytest.mark.parametrize("source,target,want", [
    ("cpe:/a:Adobe::9.%02::PalmOS", "cpe:/a::Reader:9.3.2:-:-",
     (E, SUB, SUP, SUP, SUP, D, E, E, E, E, E)),
    ("cpe:/o:redhat:enterprise_linux:8::baseos", "cpe:/o:redhat:enterprise_linux:8",
     (E, E, E, E, E, SUB, E, E, E, E, E)),
    ("cpe:2.3:o:redhat:enterprise_linux:8:*:baseos:*:*:*:*:*", "cpe:/o:redhat:enterprise_linux:8",
     (E, E, E, E, E, SUB, E, E, E, E, E)),
    ("cpe:2.3:a:redhat:openshift:4.*:*:el8:*:*:*:*:*", "cpe:2.3:a:redhat:openshift:5.1:*:el8:*:*:*:*:*",
     (E, E, E, D, E, E, E, E, E, E, E)),
    ("cpe:2.3:a:redhat:openshift:4.*:*:el8:*:*:*:*:*", "cpe:2.3:a:redhat:openshift:4.11:*:el8:*:*:*:*:*",
     (E, E, E, SUP, E, E, E, E, E, E, E)),
])
def test_compare(source, target, want):
    got = compare(unbind(source), unbind(target))
    assert tuple(got) == want


def test_relations_aggregates():
    got = compare(unbind("cpe:/a:Adobe::9.%02::PalmOS"), unbind("cpe:/a::Reader:9.3.2:-:-"))
    assert got.is_disjoint()
    assert not got.is_superset()

    sup = compare(unbind("cpe:/o:redhat:enterprise_linux"), unbind("cpe:/o:redhat:enterprise_linux:8"))
    assert sup.is_superset()
    assert not sup.is_equal()


@pytest.mark.parametrize("source,target,want", [
    (r"8\.*", r"8\.0\.1", True),
    (r"8\.*", r"9\.0", False),
    (r"sp?", "sp1", True),
    (r"sp?", "sp12", False),
    (r"*soft*", "MicroSoftware", True),
])
def test_pattern_compare(source, target, want):
    assert pattern_compare(source, target) is want
