"""
Tests for the Red Hat VEX advisory parser.
"""

import io
import json
from pathlib import Path

import pytest
from packageurl import PackageURL

from conftest import (
    APPSTREAM, BASEOS, CVE_URL, ERRATA_URL, RHEL9, SELF_URL, VECTOR, build_spool,
    deleted_stub,
)
from vex_db.models import ArchOp, PackageKind, Severity
from vex_db.pkg.purl import PURLError
from vex_db.sources.base.exceptions import ParseException, ValidationException
from vex_db.sources.redhat_vex.constants import REPO_KEY, RHCC_REPO_KEY
from vex_db.sources.redhat_vex.parser import (
    Ranger, RelationshipError, VEXParser, check_purl, create_package_module, escape_cpe,
    extract_fixed_in_version, extract_package_name, walk_relationships,
)
from vex_db.sources.redhat_vex.spool import SpoolWriter
from vex_db.toolkit import csaf
from vex_db.toolkit.cpe import unbind

FIXTURES = Path(__file__).parent / "fixtures"
KEEPALIVED_DIGEST = "sha256:36abd2b22ebabea813c5afde35b0b80a200056f811267e89f0270da9155b1a22"


def _product(purl):
    return csaf.Product(product_identification_helper={"purl": purl})


@pytest.mark.parametrize("purl,want", [
    ("pkg:rpmmod/redhat/postgresql@13:8060020240903094008:ad008a3a", "postgresql:13"),
    ("pkg:rpmmod/redhat/postgresql@9.2:8060020240903094008:ad008a3a", "postgresql:9.2"),
    ("pkg:rpmmod/redhat/postgresql@9", "postgresql:9"),
    ("pkg:rpmmod/redhat/postgresql:15/postgresql", "postgresql:15"),
])
def test_create_package_module(purl, want):
    assert create_package_module(_product(purl)) == want


@pytest.mark.parametrize("purl", [
    "invalid",
    "pkg:rpmmod/oracle/postgresql@9",
    "pkg:rpm/redhat/postgresql@9",
])
def test_create_package_module_errors(purl):
    with pytest.raises(PURLError):
        create_package_module(_product(purl))


def test_create_package_module_without_purl():
    assert create_package_module(None) == ""
    assert create_package_module(csaf.Product(product_id="postgresql:13")) == ""


def _doc(*relationships):
    return csaf.CSAF.model_validate({"product_tree": {"relationships": [
        {
            "category": "default_component_of",
            "full_product_name": {"name": product_id, "product_id": product_id},
            "product_reference": product_ref,
            "relates_to_product_reference": relates_to,
        }
        for product_id, product_ref, relates_to in relationships
    ]}})


class TestWalkRelationships:
    def test_no_relationship(self):
        with pytest.raises(RelationshipError):
            walk_relationships("EAP 7.4 log4j async", _doc())

    def test_simple(self):
        pkg = "fence-agents-common-0:4.10.0-62.el9_4.3.noarch"
        repo = "ResilientStorage-9.4.0.Z.MAIN.EUS"
        doc = _doc((f"{repo}:{pkg}", pkg, repo))
        assert walk_relationships(f"{repo}:{pkg}", doc) == (pkg, "", repo)

    def test_two_levels(self):
        repo = "AppStream-8.10.0.Z.MAIN.EUS"
        mod = "httpd:2.4:8100020240612075645:489197e6"
        pkg = "httpd-0:2.4.37-65.module+el8.10.0+21982+14717793.aarch64"
        doc = _doc(
            (f"{repo}:{mod}", mod, repo),
            (f"{repo}:{mod}:{pkg}", pkg, f"{repo}:{mod}"),
        )
        assert walk_relationships(f"{repo}:{mod}:{pkg}", doc) == (pkg, mod, repo)

    def test_nested_on_both_sides(self):
        doc = _doc(
            ("J-COMP:JMC", "JMC", "J-COMP"),
            ("CROS:J-MOD", "J-MOD", "CROS"),
            ("CROS:J-MOD:J-COMP:JMC", "J-COMP:JMC", "CROS:J-MOD"),
        )
        assert walk_relationships("CROS:J-MOD:J-COMP:JMC", doc) == ("JMC", "J-MOD", "CROS")

    def test_perl_module(self):
        repo = "AppStream-8.10.0.GA"
        mod = "perl:5.32:8100020240314121426:9fe1d287"
        pkg = "perl-Carp-0:1.50-439.module+el8.10.0+21354+3ad137bb.noarch"
        doc = _doc(
            (f"{repo}:{mod}", mod, repo),
            (f"{repo}:{mod}:{pkg}", pkg, f"{repo}:{mod}"),
        )
        assert walk_relationships(f"{repo}:{mod}:{pkg}", doc) == (pkg, mod, repo)


@pytest.mark.parametrize("cpe,want", [
    ("cpe:/a:redhat:openshift:4.*", "cpe:/a:redhat:openshift:4.%02"),
    ("cpe:/a:redhat:astarry.*.comp:4.*", "cpe:/a:redhat:astarry.*.comp:4.%02"),
    ("cpe:/a:redhat:openshift:4.?::el8", "cpe:/a:redhat:openshift:4.%01::el8"),
    ("cpe:/a:redhat:openshift:4.?.10::el8", "cpe:/a:redhat:openshift:4.%01.10::el8"),
    ("cpe:/o:redhat:enterprise_linux:8::baseos", "cpe:/o:redhat:enterprise_linux:8::baseos"),
])
def test_escape_cpe(cpe, want):
    assert escape_cpe(cpe) == want


def test_escaped_cpe_unbinds():
    wfn = unbind(escape_cpe("cpe:/a:redhat:openshift:4.*"))
    assert str(wfn) == "cpe:2.3:a:redhat:openshift:4.*:*:*:*:*:*:*:*"


def _rpm(**qualifiers):
    return PackageURL(type="rpm", namespace="redhat", name="buildah-debugsource",
                      version="1.24.6-5.module+el8.8.0+18083+cd85596b", qualifiers=qualifiers)


def _oci(namespace=None, **qualifiers):
    return PackageURL(type="oci", namespace=namespace, name="keepalived-rhel9",
                      version=KEEPALIVED_DIGEST, qualifiers=qualifiers)


APK = PackageURL(type="apk", name="nice APK", version="v1.1.1", qualifiers={"arch": "ppc64le"})


class TestExtractFixedInVersion:
    def test_rpm_with_epoch(self):
        got = extract_fixed_in_version(_rpm(arch="ppc64le", epoch="1"))
        assert got == "1:1.24.6-5.module+el8.8.0+18083+cd85596b"

    def test_rpm_without_epoch(self):
        got = extract_fixed_in_version(_rpm(arch="ppc64le"))
        assert got == "0:1.24.6-5.module+el8.8.0+18083+cd85596b"

    def test_oci_with_tag(self):
        purl = _oci(arch="ppc64le", repository_url="registry.redhat.io/rhceph/keepalived-rhel9",
                    tag="2.2.4-3")
        assert extract_fixed_in_version(purl) == "2.2.4-3"

    def test_oci_without_tag(self):
        with pytest.raises(PURLError):
            extract_fixed_in_version(_oci(arch="ppc64le"))

    def test_unsupported_type(self):
        with pytest.raises(PURLError):
            extract_fixed_in_version(APK)


class TestExtractPackageName:
    def test_rpm(self):
        assert extract_package_name(_rpm(arch="ppc64le", epoch="1")) == "buildah-debugsource"

    def test_oci_with_repository_url(self):
        purl = _oci(arch="ppc64le", repository_url="registry.redhat.io/rhceph/keepalived-rhel9",
                    tag="2.2.4-3")
        assert extract_package_name(purl) == "rhceph/keepalived-rhel9"

    def test_oci_without_repository_url(self):
        assert extract_package_name(_oci(arch="ppc64le")) == "keepalived-rhel9"

    def test_oci_invalid_repository_url(self):
        with pytest.raises(PURLError):
            extract_package_name(_oci(arch="ppc64le",
                                      repository_url="registry.redhat.iorhcephkeepalived-rhel9"))

    def test_oci_namespace_wins(self):
        purl = _oci("something", arch="ppc64le",
                    repository_url="registry.redhat.io/rhceph/keepalived-rhel9")
        assert extract_package_name(purl) == "something/keepalived-rhel9"

    def test_unsupported_type(self):
        with pytest.raises(PURLError):
            extract_package_name(APK)


@pytest.mark.parametrize("purl,want", [
    ("pkg:rpm/redhat/openssl@1.1.1k-9.el8_8?arch=x86_64", True),
    ("pkg:oci/ubi9@sha256%3Aabc?tag=9.2-1", True),
    ("pkg:rpm/redhat/kernel-rt@4.18.0-477.el8?arch=x86_64", False),
    ("pkg:rpm/fedora/openssl@3.0.9-2.fc38", False),
    ("pkg:maven/org.apache.logging.log4j/log4j-core@2.17.1", False),
])
def test_check_purl(purl, want):
    assert check_purl(PackageURL.from_string(purl)) is want


class TestRanger:
    def test_lowest_reset(self):
        ranger = Ranger()
        newer = ranger.add("ubi9", "9.3-1")
        older = ranger.add("ubi9", "9.2-5")
        assert str(older.lower) == "rhctag:9.2.0.0.0.0.0.0.0.0"
        ranger.reset_lowest()
        assert older.lower.v == (0,) * 10
        assert newer.lower.v[:3] == (9, 3, 0)
        assert newer.upper.v[:3] == (9, 3, 2 ** 31 - 1)

    def test_unfixed_covers_everything(self):
        rng = Ranger().add("ubi9", "")
        assert rng.lower.v == (0,) * 10
        assert rng.upper.v[0] == 2 ** 31 - 1


def _by_name(vulns):
    return {v.package.name: v for v in vulns}


class TestDeltaParse:
    def test_advisory(self, advisory):
        vulns, deleted = VEXParser().delta_parse(build_spool([advisory]))
        assert deleted == []
        got = _by_name(vulns)
        assert sorted(got) == ["compat-openssl11", "nodejs", "openssl", "rhceph/keepalived-rhel9"]

        for v in vulns:
            assert v.updater == "rhel-vex"
            assert v.name == "CVE-2023-3817"
            assert v.description == "A flaw was found in OpenSSL."
            assert v.severity == VECTOR
            assert v.normalized_severity is Severity.MEDIUM
            assert v.issued.year == 2023

        openssl = got["openssl"]
        assert openssl.package.kind is PackageKind.BINARY
        assert openssl.package.arch == "aarch64|ppc64le|s390x|amd64|x86_64"
        assert openssl.arch_operation is ArchOp.PATTERN_MATCH
        assert openssl.fixed_in_version == "1:1.1.1k-9.el8_8"
        assert openssl.package.module == ""
        assert openssl.repo.key == REPO_KEY
        assert openssl.repo.name == "cpe:2.3:o:redhat:enterprise_linux:8:*:baseos:*:*:*:*:*"
        assert openssl.repo.cpe == unbind("cpe:/o:redhat:enterprise_linux:8::baseos")
        assert openssl.links == f"{CVE_URL} {SELF_URL} {ERRATA_URL}"

        nodejs = got["nodejs"]
        assert nodejs.package.module == "nodejs:18"
        assert nodejs.fixed_in_version == "1:18.16.1-1.module+el8.8.0+19223+fa3bbc2c"
        assert nodejs.package.arch == "amd64|x86_64"
        assert nodejs.repo.cpe == unbind("cpe:/a:redhat:enterprise_linux:8::appstream")

        keepalived = got["rhceph/keepalived-rhel9"]
        assert keepalived.fixed_in_version == "2.2.4-3"
        assert keepalived.repo.key == RHCC_REPO_KEY
        assert keepalived.range is not None
        assert keepalived.range.lower.v == (0,) * 10
        assert keepalived.range.upper.v[:3] == (2, 2, 2 ** 31 - 1)

        affected = got["compat-openssl11"]
        assert affected.package.kind is PackageKind.SOURCE
        assert affected.fixed_in_version == ""
        assert affected.arch_operation is ArchOp.INVALID
        assert affected.repo.key == REPO_KEY
        assert affected.repo.cpe == unbind("cpe:/o:redhat:enterprise_linux:9")
        assert affected.links == f"{CVE_URL} {SELF_URL}"

    def test_records_share_repositories(self, advisory):
        extra = "openssl-libs-1:1.1.1k-9.el8_8.x86_64"
        advisory["product_tree"]["branches"][0]["branches"][1]["branches"].append({
            "category": "product_version", "name": extra,
            "product": {"name": extra, "product_id": extra, "product_identification_helper": {
                "purl": "pkg:rpm/redhat/openssl-libs@1.1.1k-9.el8_8?arch=x86_64&epoch=1"}},
        })
        advisory["product_tree"]["relationships"].append({
            "category": "default_component_of",
            "full_product_name": {"name": f"{BASEOS}:{extra}", "product_id": f"{BASEOS}:{extra}"},
            "product_reference": extra,
            "relates_to_product_reference": BASEOS,
        })
        advisory["vulnerabilities"][0]["product_status"]["fixed"].append(f"{BASEOS}:{extra}")

        vulns, _ = VEXParser().delta_parse(build_spool([advisory]))
        got = _by_name(vulns)
        assert got["openssl-libs"].repo is got["openssl"].repo
        assert got["openssl-libs"].package.arch == "amd64|x86_64"

    def test_deletions(self, advisory_factory):
        docs = [advisory_factory("CVE-2023-3817"), deleted_stub("CVE-2021-0001")]
        vulns, deleted = VEXParser().delta_parse(build_spool(docs))
        assert deleted == ["CVE-2021-0001"]
        assert {v.name for v in vulns} == {"CVE-2023-3817"}

    def test_deletion_after_advisory_drops_records(self, advisory_factory):
        docs = [advisory_factory("CVE-2023-3817"), deleted_stub("CVE-2023-3817")]
        vulns, deleted = VEXParser().delta_parse(build_spool(docs))
        assert vulns == []
        assert deleted == ["CVE-2023-3817"]

    def test_advisory_after_deletion_is_kept(self, advisory_factory):
        docs = [deleted_stub("CVE-2023-3817"), deleted_stub("CVE-2023-3817"),
                advisory_factory("CVE-2023-3817")]
        vulns, deleted = VEXParser().delta_parse(build_spool(docs))
        assert deleted == []
        assert len(vulns) == 4

    def test_advisory_without_records_is_deleted(self, advisory):
        status = advisory["vulnerabilities"][0]["product_status"]
        status["fixed"] = [f"{BASEOS}:kernel-0:4.18.0-477.27.1.el8_8.x86_64"]
        status["known_affected"] = [f"{RHEL9}:kernel"]
        vulns, deleted = VEXParser().delta_parse(build_spool([advisory]))
        assert vulns == []
        assert deleted == ["CVE-2023-3817"]

    def test_later_copy_replaces_earlier(self, advisory_factory):
        first = advisory_factory()
        second = advisory_factory()
        second["vulnerabilities"][0]["notes"][0]["text"] = "Updated description."
        vulns, _ = VEXParser().delta_parse(build_spool([first, second]))
        assert len(vulns) == 4
        assert {v.description for v in vulns} == {"Updated description."}

    def test_zero_score_without_impact_is_dropped(self, advisory):
        entry = advisory["vulnerabilities"][0]
        entry["threats"] = []
        entry["scores"][0]["cvss_v3"]["baseScore"] = 0.0
        vulns, deleted = VEXParser().delta_parse(build_spool([advisory]))
        assert vulns == []
        assert deleted == ["CVE-2023-3817"]

    def test_missing_impact_keeps_scored_records(self, advisory):
        advisory["vulnerabilities"][0]["threats"] = []
        vulns, _ = VEXParser().delta_parse(build_spool([advisory]))
        assert len(vulns) == 4
        assert all(v.normalized_severity is Severity.UNKNOWN for v in vulns)

    def test_bad_cvss_skips_records(self, advisory):
        advisory["vulnerabilities"][0]["scores"][0]["cvss_v3"]["vectorString"] = "CVSS:3.1/AV:X"
        vulns, deleted = VEXParser().delta_parse(build_spool([advisory]))
        assert vulns == []
        assert deleted == ["CVE-2023-3817"]

    def test_bad_cpe_skips_records(self, advisory):
        streams = advisory["product_tree"]["branches"][0]["branches"][0]["branches"]
        for stream in streams:
            if stream["name"] == APPSTREAM:
                stream["product"]["product_identification_helper"]["cpe"] = "cpe:/x:bogus"
        vulns, _ = VEXParser().delta_parse(build_spool([advisory]))
        assert "nodejs" not in _by_name(vulns)
        assert "openssl" in _by_name(vulns)

    def test_bad_container_tag_skips_record(self, advisory):
        for branch in advisory["product_tree"]["branches"][0]["branches"][1]["branches"]:
            purl = branch["product"].get("product_identification_helper", {}).get("purl", "")
            if purl.startswith("pkg:oci/"):
                branch["product"]["product_identification_helper"]["purl"] = purl.replace(
                    "tag=2.2.4-3", "tag=latest")
        vulns, _ = VEXParser().delta_parse(build_spool([advisory]))
        assert "rhceph/keepalived-rhel9" not in _by_name(vulns)
        assert RHCC_REPO_KEY not in {v.repo.key for v in vulns}

    def test_malformed_document(self):
        writer = SpoolWriter()
        writer.write_line(b'{"document": 1}')
        with pytest.raises(ParseException):
            VEXParser().delta_parse(writer.finish())

    def test_missing_tracking_id(self, advisory):
        advisory["document"]["tracking"]["id"] = ""
        with pytest.raises(ValidationException) as exc:
            VEXParser().delta_parse(build_spool([advisory]))
        assert exc.value.validation_field == "document.tracking.id"

    def test_empty_spool(self):
        vulns, deleted = VEXParser().delta_parse(SpoolWriter().finish())
        assert vulns == []
        assert deleted == []

    def test_records_serialize(self, advisory):
        vulns, _ = VEXParser().delta_parse(build_spool([advisory]))
        for v in vulns:
            out = json.loads(json.dumps(v.to_dict()))
            assert out["normalized_severity"] == "Medium"
            assert out["repo"]["cpe"].startswith("cpe:2.3:")


def test_known_affected_module_package():
    with open(FIXTURES / "cve-2024-24786-simple.json") as f:
        doc = json.load(f)
    vulns, deleted = VEXParser().delta_parse(build_spool([doc]))
    assert deleted == []
    assert len(vulns) == 1

    v = vulns[0]
    assert v.name == "CVE-2024-24786"
    assert v.description.startswith("A flaw was found in Golang's protobuf module")
    assert v.issued.isoformat() == "2024-03-05T00:00:00+00:00"
    assert v.severity == "CVSS:3.1/AV:N/AC:H/PR:N/UI:N/S:U/C:N/I:N/A:H"
    assert v.normalized_severity is Severity.MEDIUM
    assert v.package.name == "go-toolset"
    assert v.package.kind is PackageKind.SOURCE
    assert v.package.module == "go-toolset:rhel8"
    assert v.fixed_in_version == ""
    assert v.arch_operation is ArchOp.INVALID
    assert v.repo.name == "cpe:2.3:o:redhat:enterprise_linux:8:*:*:*:*:*:*:*"
    assert v.repo.key == REPO_KEY
    assert v.links.split() == [
        "https://access.redhat.com/security/cve/CVE-2024-24786",
        "https://bugzilla.redhat.com/show_bug.cgi?id=2268046",
        "https://www.cve.org/CVERecord?id=CVE-2024-24786",
        "https://nvd.nist.gov/vuln/detail/CVE-2024-24786",
        "https://go.dev/cl/569356",
        "https://groups.google.com/g/golang-announce/c/ArQ6CDgtEjY/",
        "https://pkg.go.dev/vuln/GO-2024-2611",
        "https://security.access.redhat.com/data/csaf/v2/vex/2024/cve-2024-24786.json",
    ]


def test_corrupt_spool_is_a_parse_error():
    with pytest.raises(ParseException):
        VEXParser().delta_parse(io.BytesIO(b"not a snappy framed stream"))
