"""
Shared pytest fixtures for the VEX synchronizer tests.

Provides:
- A small but realistic Red Hat VEX advisory (RPMs, a module, a container image)
- Spool and archive builders
- Fetcher configuration pointing at a local pytest-httpserver instance
"""

import copy
import io
import json
import tarfile
from typing import Any, Dict, Iterable, Tuple

import pytest

from vex_db.sources.redhat_vex.spool import SpoolWriter

APPSTREAM = "AppStream-8.8.0.Z.MAIN"
BASEOS = "BaseOS-8.8.0.Z.MAIN"
RHEL9 = "red_hat_enterprise_linux_9"
CEPH = "8Base-RHCEPH-6.1-Tools"
NODEJS_MODULE = "nodejs:18:8080020230707:63f8e2a1"
NODEJS = "nodejs-1:18.16.1-1.module+el8.8.0+19223+fa3bbc2c.x86_64"
OPENSSL_ARCHES = ("aarch64", "ppc64le", "s390x", "x86_64")
KEEPALIVED = "rhceph/keepalived-rhel9@sha256:1e5fb4b3a9b6"

SELF_URL = "https://security.access.redhat.com/data/csaf/v2/vex/2023/cve-2023-3817.json"
CVE_URL = "https://access.redhat.com/security/cve/CVE-2023-3817"
ERRATA_URL = "https://access.redhat.com/errata/RHSA-2023:5209"
VECTOR = "CVSS:3.1/AV:N/AC:H/PR:N/UI:N/S:U/C:H/I:N/A:N"


def openssl_id(arch: str) -> str:
    return f"openssl-1:1.1.1k-9.el8_8.{arch}"


def _product(product_id: str, **helper) -> Dict[str, Any]:
    prod = {"name": product_id, "product_id": product_id}
    if helper:
        prod["product_identification_helper"] = helper
    return {"category": "product_version", "name": product_id, "product": prod}


def _relationship(product_ref: str, relates_to: str) -> Dict[str, Any]:
    product_id = f"{relates_to}:{product_ref}"
    return {
        "category": "default_component_of",
        "full_product_name": {"name": product_id, "product_id": product_id},
        "product_reference": product_ref,
        "relates_to_product_reference": relates_to,
    }


def make_advisory() -> Dict[str, Any]:
    """A CVE advisory shaped like the ones published in the VEX feed"""
    streams = [
        {"category": "product_name", "name": name,
         "product": {"name": name, "product_id": name,
                     "product_identification_helper": {"cpe": cpe}}}
        for name, cpe in (
            (APPSTREAM, "cpe:/a:redhat:enterprise_linux:8::appstream"),
            (BASEOS, "cpe:/o:redhat:enterprise_linux:8::baseos"),
            (RHEL9, "cpe:/o:redhat:enterprise_linux:9"),
            (CEPH, "cpe:/a:redhat:ceph_storage:6.1::el9"),
        )
    ]
    components = [
        _product(NODEJS_MODULE, purl="pkg:rpmmod/redhat/nodejs@18:8080020230707:63f8e2a1"),
        _product(NODEJS, purl="pkg:rpm/redhat/nodejs@18.16.1-1.module%2Bel8.8.0%2B19223%2Bfa3bbc2c"
                              "?arch=x86_64&epoch=1"),
        _product("kernel-0:4.18.0-477.27.1.el8_8.x86_64",
                 purl="pkg:rpm/redhat/kernel@4.18.0-477.27.1.el8_8?arch=x86_64"),
        _product(KEEPALIVED,
                 purl="pkg:oci/keepalived-rhel9@sha256%3A1e5fb4b3a9b6?arch=amd64"
                      "&repository_url=registry.redhat.io/rhceph/keepalived-rhel9&tag=2.2.4-3"),
        _product("compat-openssl11", purl="pkg:rpm/redhat/compat-openssl11"),
        _product("kernel"),
    ]
    components += [
        _product(openssl_id(arch), purl=f"pkg:rpm/redhat/openssl@1.1.1k-9.el8_8?arch={arch}&epoch=1")
        for arch in OPENSSL_ARCHES
    ]

    relationships = [
        _relationship(NODEJS_MODULE, APPSTREAM),
        _relationship(NODEJS, f"{APPSTREAM}:{NODEJS_MODULE}"),
        _relationship("kernel-0:4.18.0-477.27.1.el8_8.x86_64", BASEOS),
        _relationship(KEEPALIVED, CEPH),
        _relationship("compat-openssl11", RHEL9),
        _relationship("kernel", RHEL9),
    ]
    relationships += [_relationship(openssl_id(arch), BASEOS) for arch in OPENSSL_ARCHES]

    fixed = [
        f"{APPSTREAM}:{NODEJS_MODULE}:{NODEJS}",
        f"{BASEOS}:kernel-0:4.18.0-477.27.1.el8_8.x86_64",
        f"{CEPH}:{KEEPALIVED}",
        "unrelated-product",
    ] + [f"{BASEOS}:{openssl_id(arch)}" for arch in OPENSSL_ARCHES]
    known_affected = [f"{RHEL9}:compat-openssl11", f"{RHEL9}:kernel"]
    every = fixed + known_affected

    return {
        "document": {
            "category": "csaf_vex",
            "csaf_version": "2.0",
            "title": "openssl: Excessive time spent checking DH q parameter value",
            "aggregate_severity": {"namespace": "https://access.redhat.com/security/updates/classification/",
                                   "text": "low"},
            "publisher": {"category": "vendor", "name": "Red Hat Product Security",
                          "namespace": "https://www.redhat.com"},
            "references": [
                {"category": "self", "summary": "Canonical URL", "url": SELF_URL},
                {"category": "external", "summary": "RHBZ#2228169",
                 "url": "https://bugzilla.redhat.com/show_bug.cgi?id=2228169"},
            ],
            "tracking": {
                "id": "CVE-2023-3817",
                "status": "final",
                "version": "3",
                "current_release_date": "2023-11-07T12:00:00+00:00",
                "initial_release_date": "2023-07-31T00:00:00+00:00",
            },
        },
        "product_tree": {
            "branches": [{
                "category": "vendor",
                "name": "Red Hat",
                "branches": [
                    {"category": "product_family", "name": "Red Hat Enterprise Linux",
                     "branches": streams},
                    {"category": "architecture", "name": "components", "branches": components},
                ],
            }],
            "relationships": relationships,
        },
        "vulnerabilities": [{
            "cve": "CVE-2023-3817",
            "release_date": "2023-07-31T00:00:00+00:00",
            "notes": [
                {"category": "description", "text": "A flaw was found in OpenSSL.", "title": "Vulnerability description"},
                {"category": "summary", "text": "openssl: DH q parameter check", "title": "Vulnerability summary"},
                {"category": "description", "text": "A second description.", "title": "Ignored"},
            ],
            "references": [{"category": "self", "summary": "Canonical URL", "url": CVE_URL}],
            "product_status": {"fixed": fixed, "known_affected": known_affected},
            "remediations": [{"category": "vendor_fix", "details": "Update the package.",
                              "product_ids": fixed, "url": ERRATA_URL}],
            "scores": [{"cvss_v3": {"attackVector": "NETWORK", "baseScore": 5.9, "baseSeverity": "MEDIUM",
                                    "vectorString": VECTOR, "version": "3.1"},
                        "products": every}],
            "threats": [{"category": "impact", "details": "Moderate", "product_ids": every}],
        }],
    }


def deleted_stub(name: str) -> Dict[str, Any]:
    return {"document": {"tracking": {"id": name, "status": "deleted"}}}


def build_spool(docs: Iterable[Dict[str, Any]]):
    writer = SpoolWriter()
    for doc in docs:
        writer.write_record(json.dumps(doc, indent=2).encode("utf-8"))
    return writer.finish()


def build_archive(files: Iterable[Tuple[str, bytes]]) -> bytes:
    """A gzip compressed tarball holding the given (path, content) pairs"""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for path, content in files:
            info = tarfile.TarInfo(path)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


@pytest.fixture
def advisory() -> Dict[str, Any]:
    return make_advisory()


@pytest.fixture
def advisory_factory():
    """Fresh advisory copies, optionally renamed"""
    template = make_advisory()

    def factory(name: str = "CVE-2023-3817") -> Dict[str, Any]:
        doc = copy.deepcopy(template)
        doc["document"]["tracking"]["id"] = name
        return doc

    return factory


@pytest.fixture
def fetcher_config(httpserver) -> Dict[str, Any]:
    return {
        'name': 'rhel-vex',
        'base_url': httpserver.url_for("/vex/"),
        'timeout': 5,
        'max_retries': 1,
        'compressed_file_timeout': 30,
    }
