"""
Package URL conversions for RHEL RPMs and Red Hat container images.

RPM PURLs look like::

    pkg:rpm/redhat/bash@5.1.8-6?arch=x86_64&repository_cpes=<cpe>&repository_id=<repoid>

and container images::

    pkg:oci/ubi@v9.3.1?arch=amd64&tag=v9.3.1

Generation works from an IndexRecord; parsing returns IndexRecords.
"""

import logging
from typing import List, Optional
from urllib.parse import parse_qs, urlencode

from packageurl import PackageURL

from ..models import IndexRecord, Package, PackageKind, Repository
from ..toolkit.cpe import CPEError, unbind

logger = logging.getLogger(__name__)

RPM_PURL_TYPE = "rpm"
RPM_PURL_NAMESPACE = "redhat"
OCI_PURL_TYPE = "oci"

# Repository keys used to tell matchers how to interpret Repository.cpe
RPM_REPOSITORY_KEY = "rhel-cpe-repository"
RHCC_REPOSITORY_KEY = "rhcc-container-repository"
RHCC_REPOSITORY_HINT = "rhcc"

# Qualifier names
ARCH = "arch"
EPOCH = "epoch"
REPOSITORY_CPES = "repository_cpes"
REPOSITORY_ID = "repository_id"
RPMMOD = "rpmmod"
TAG = "tag"
REPOSITORY_URL = "repository_url"
CONTAINER_CPE = "container_cpe"


class PURLError(ValueError):
    pass


def gold_repo() -> Repository:
    """The Red Hat Container Catalog repository"""
    return Repository(
        name="Red Hat Container Catalog",
        uri="https://catalog.redhat.com/software/containers/explore",
        key=RHCC_REPOSITORY_KEY,
    )


def _repo_id(uri: str) -> str:
    ids = parse_qs(uri).get("repoid")
    return ids[0] if ids else ""


def generate_rpm_purl(record: IndexRecord) -> PackageURL:
    """
    Build an RPM PURL for an indexed package

    An epoch in the package version is moved into the ``epoch`` qualifier.
    """
    pkg = record.package
    if pkg is None or not pkg.name:
        raise PURLError("record has no package")

    version = pkg.version
    qualifiers = {}
    if pkg.arch:
        qualifiers[ARCH] = pkg.arch
    if ':' in version:
        epoch, version = version.split(':', 1)
        if epoch and epoch != "0":
            qualifiers[EPOCH] = epoch

    repo = record.repository
    if repo is not None:
        if repo.cpe is not None and not repo.cpe.is_empty():
            qualifiers[REPOSITORY_CPES] = str(repo.cpe)
        if repo.uri:
            repo_id = _repo_id(repo.uri)
            if repo_id:
                qualifiers[REPOSITORY_ID] = repo_id
    if pkg.module:
        qualifiers[RPMMOD] = pkg.module

    return PackageURL(
        type=RPM_PURL_TYPE,
        namespace=RPM_PURL_NAMESPACE,
        name=pkg.name,
        version=version,
        qualifiers=qualifiers,
    )


def parse_rpm_purl(purl: PackageURL) -> List[IndexRecord]:
    """
    Turn an RPM PURL back into IndexRecords, one per repository CPE

    Raises:
        PURLError: If the PURL is not a Red Hat RPM PURL or a CPE is malformed
    """
    if purl.type != RPM_PURL_TYPE:
        raise PURLError(f"unexpected purl type {purl.type!r}")
    if purl.namespace != RPM_PURL_NAMESPACE:
        raise PURLError(f"unexpected purl namespace {purl.namespace!r}")

    quals = purl.qualifiers or {}
    version = purl.version or ""
    if quals.get(EPOCH):
        version = f"{quals[EPOCH]}:{version}"

    def package():
        return Package(
            name=purl.name,
            kind=PackageKind.BINARY,
            version=version,
            module=quals.get(RPMMOD, ""),
            arch=quals.get(ARCH, ""),
        )

    uri = urlencode({"repoid": quals[REPOSITORY_ID]}) if quals.get(REPOSITORY_ID) else ""
    cpes = [c for c in quals.get(REPOSITORY_CPES, "").split(",") if c]
    if not cpes:
        return [IndexRecord(package=package())]

    records = []
    for c in cpes:
        try:
            wfn = unbind(c)
        except CPEError as e:
            raise PURLError(f"bad repository cpe {c!r}: {e}") from e
        records.append(IndexRecord(
            package=package(),
            repository=Repository(name=str(wfn), key=RPM_REPOSITORY_KEY, uri=uri, cpe=wfn),
        ))
    return records


def generate_oci_purl(record: IndexRecord) -> PackageURL:
    """Build an OCI PURL for a container image record"""
    pkg = record.package
    if pkg is None or not pkg.name:
        raise PURLError("record has no package")

    qualifiers = {}
    if pkg.arch:
        qualifiers[ARCH] = pkg.arch
    if pkg.version:
        qualifiers[TAG] = pkg.version
    repo = record.repository
    if repo is not None and repo.cpe is not None and not repo.cpe.is_empty():
        qualifiers[CONTAINER_CPE] = str(repo.cpe)
    elif repo is not None and repo.uri and repo.uri != gold_repo().uri:
        qualifiers[REPOSITORY_URL] = repo.uri

    return PackageURL(
        type=OCI_PURL_TYPE,
        name=pkg.name,
        version=pkg.version or None,
        qualifiers=qualifiers,
    )


def parse_oci_purl(purl: PackageURL) -> List[IndexRecord]:
    """
    Turn an OCI PURL back into an IndexRecord

    Images without a ``container_cpe`` qualifier belong to the container
    catalog repository.
    """
    if purl.type != OCI_PURL_TYPE:
        raise PURLError(f"unexpected purl type {purl.type!r}")

    quals = purl.qualifiers or {}
    pkg = Package(
        name=purl.name,
        kind=PackageKind.BINARY,
        version=purl.version or quals.get(TAG, ""),
        arch=quals.get(ARCH, ""),
        repository_hint=RHCC_REPOSITORY_HINT,
    )

    repo: Optional[Repository]
    container_cpe = quals.get(CONTAINER_CPE)
    if container_cpe:
        try:
            wfn = unbind(container_cpe)
        except CPEError as e:
            raise PURLError(f"bad container cpe {container_cpe!r}: {e}") from e
        repo = Repository(name=str(wfn), key=RHCC_REPOSITORY_KEY, cpe=wfn)
    elif quals.get(REPOSITORY_URL):
        repo = Repository(name=quals[REPOSITORY_URL], key=RHCC_REPOSITORY_KEY,
                          uri=quals[REPOSITORY_URL])
    else:
        repo = gold_repo()
    return [IndexRecord(package=pkg, repository=repo)]


def parse(s: str) -> PackageURL:
    """Parse a PURL string, raising PURLError on malformed input"""
    try:
        return PackageURL.from_string(s)
    except ValueError as e:
        raise PURLError(str(e)) from e
