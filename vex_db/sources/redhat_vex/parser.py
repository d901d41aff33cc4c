"""
Red Hat VEX advisory parser.

OBJECTIVE:
Turn the spool written by VEXFetcher into Vulnerability records and a list of
advisories that must be dropped from the store.

WORKFLOW:
1. Read the spool a line at a time; each line is one CSAF document
2. Documents with tracking status "deleted" go straight to the deleted list
3. For every vulnerability entry, resolve each "fixed" and "known_affected"
   product ID through the relationship tree into package, module and repo
4. Build one record per (repo, module, package, fix version); further
   architectures of the same package are folded into the record's arch
5. Advisories that end up with no records are reported as deleted, so a
   store that held records for them drops them

Per-record content problems (bad CPE, PURL, CVSS or tag) are logged and the
record skipped. Malformed JSON aborts the whole parse.
"""

from typing import BinaryIO, Callable, Dict, List, Optional, Tuple

from packageurl import PackageURL

from ...models import ArchOp, Package, PackageKind, Range, Repository, Vulnerability
from ...pkg import rhctag
from ...pkg.purl import OCI_PURL_TYPE, RPM_PURL_NAMESPACE, RPM_PURL_TYPE, PURLError
from ...toolkit import csaf
from ...toolkit.cpe import WFN, CPEError, unbind
from ...toolkit.cvss import CVSSParseError, parse_v2, parse_v3, parse_v4
from ..base.base_parser import BaseParser
from ..base.exceptions import ParseException, ValidationException
from .constants import REPO_KEY, RHCC_REPO_KEY, UPDATER_NAME
from .spool import iter_records

DEFAULT_COMPONENT_OF = "default_component_of"
ACCEPTED_PURL_TYPES = (RPM_PURL_TYPE, OCI_PURL_TYPE)
RPMMOD_PURL_TYPE = "rpmmod"


class RelationshipError(ValueError):
    """A product ID does not resolve to a package and a repository"""


# Relationship walking

def walk_relationships(product_id: str, doc: csaf.CSAF) -> Tuple[str, str, str]:
    """
    Resolve a product ID into (package, module, repo) product IDs

    Relationships nest; a three part result means the middle component is a
    module. More than three components never show up in practice, in that case
    the one next to the repo is taken as the module.

    Raises:
        RelationshipError: No initial relationship, or fewer than two components
    """
    rel = doc.find_relationship(product_id, DEFAULT_COMPONENT_OF)
    if rel is None:
        raise RelationshipError(f"cannot determine initial relationship for {product_id!r}")
    comps = extract_product_names(rel.product_reference, rel.relates_to_product_reference, [], doc)
    if len(comps) == 2:
        return comps[0], "", comps[1]
    if len(comps) > 2:
        return comps[0], comps[-2], comps[-1]
    raise RelationshipError(f"cannot determine relationships for {product_id!r}")


def extract_product_names(product_ref: str, relates_to_ref: str, comps: List[str],
                          doc: csaf.CSAF) -> List[str]:
    """
    Flatten a relationship into its terminal product IDs, left to right

    product_ref and its children come first, relates_to_ref and its children
    last, e.g. ("a_pkg", "a_repo:a_module") with a relationship
    a_module -> a_repo gives ["a_pkg", "a_module", "a_repo"].
    """
    for ref in (product_ref, relates_to_ref):
        rel = doc.find_relationship(ref, DEFAULT_COMPONENT_OF)
        if rel is not None:
            extract_product_names(rel.product_reference, rel.relates_to_product_reference, comps, doc)
        else:
            comps.append(ref)
    return comps


# PURL helpers

def check_purl(purl: PackageURL) -> bool:
    """Only Red Hat RPMs and container images are ingested; never the kernel"""
    if purl.type not in ACCEPTED_PURL_TYPES:
        return False
    if purl.name.startswith("kernel"):
        return False
    if purl.type == RPM_PURL_TYPE and purl.namespace != RPM_PURL_NAMESPACE:
        return False
    return True


def _qualifiers(purl: PackageURL) -> Dict[str, str]:
    return purl.qualifiers or {}


def extract_fixed_in_version(purl: PackageURL) -> str:
    """
    Fixed-in version of a package

    OCI images use the tag qualifier. RPMs prefix the version with the epoch
    qualifier, defaulting to 0.

    Raises:
        PURLError: Missing tag, or an unsupported type
    """
    qualifiers = _qualifiers(purl)
    if purl.type == OCI_PURL_TYPE:
        tag = qualifiers.get("tag")
        if tag is None:
            raise PURLError(f"could not find tag qualifier for OCI purl {purl.to_string()}")
        return tag
    if purl.type == RPM_PURL_TYPE:
        epoch = qualifiers.get("epoch", "0")
        return f"{epoch}:{purl.version}"
    raise PURLError(f"unexpected purl type {purl.type}")


def extract_package_name(purl: PackageURL) -> str:
    """
    Package name reported on the record

    OCI images use namespace/name when there is a namespace, else the image
    path of the repository_url qualifier, else the bare name.

    Raises:
        PURLError: repository_url without a path, or an unsupported type
    """
    if purl.type == OCI_PURL_TYPE:
        if purl.namespace:
            return f"{purl.namespace}/{purl.name}"
        repository_url = _qualifiers(purl).get("repository_url")
        if repository_url is None:
            return purl.name
        _, slash, image = repository_url.partition("/")
        if not slash:
            raise PURLError(f"invalid repository_url for OCI purl {purl.to_string()}")
        return image
    if purl.type == RPM_PURL_TYPE:
        return purl.name
    raise PURLError(f"unexpected purl type {purl.type}")


def extract_arch(purl: PackageURL) -> str:
    arch = _qualifiers(purl).get("arch", "")
    if arch in ("amd64", "x86_64"):
        return "amd64|x86_64"
    return arch


def create_package_key(repo: str, module: str, name: str, fixed_in: str) -> str:
    """Arch agnostic key, e.g. AppStream-8.2.0.Z.TUS:a_module:python3-idle-0:3.6.8-24.el8_2.2"""
    return f"{repo}:{module}:{name}-{fixed_in}"


def create_package_module(product: Optional[csaf.Product]) -> str:
    """
    Module name ("name:stream") from a module product's purl helper

    A product without a purl helper has no module.

    Raises:
        PURLError: Unparsable or non Red Hat module purl
    """
    if product is None:
        return ""
    helper = product.identification_helper.get("purl")
    if not helper:
        return ""
    try:
        purl = PackageURL.from_string(helper)
    except ValueError as e:
        raise PURLError(f"invalid module purl {helper!r}: {e}") from e
    if purl.type != RPMMOD_PURL_TYPE:
        raise PURLError(f"invalid RPM module purl: {helper!r}")
    namespace = purl.namespace or ""
    if namespace == RPM_PURL_NAMESPACE:
        stream = (purl.version or "").split(":", 1)[0]
        return f"{purl.name}:{stream}"
    if namespace.startswith(RPM_PURL_NAMESPACE + "/"):
        # pkg:rpmmod/redhat/postgresql:15/postgresql
        return namespace.split("/", 1)[1]
    raise PURLError(f"non Red Hat module purl: {helper!r}")


def escape_cpe(s: str) -> str:
    """Quote the wildcards Red Hat writes into CPE helpers so they unbind"""
    parts = s.split(":")
    for i, part in enumerate(parts):
        if part.endswith("*"):
            part = part[:-1] + "%02"
        parts[i] = part.replace("?", "%01")
    return ":".join(parts)


# Scores

def cvss_vector_from_score(score: csaf.Score) -> str:
    """
    Validated vector string of the newest CVSS version present

    Raises:
        CVSSParseError: Vector does not parse, or no CVSS object at all
    """
    if score.cvss_v4 is not None:
        return str(parse_v4(score.cvss_v4.vector_string))
    if score.cvss_v3 is not None:
        return str(parse_v3(score.cvss_v3.vector_string))
    if score.cvss_v2 is not None:
        return str(parse_v2(score.cvss_v2.vector_string))
    raise CVSSParseError("could not find a valid CVSS object")


def cvss_base_score_from_score(score: csaf.Score) -> float:
    for obj in (score.cvss_v4, score.cvss_v3, score.cvss_v2):
        if obj is not None:
            return obj.base_score
    return 0.0


# Per-advisory caches

class ProductCache:
    """Product lookups by ID within one document; misses are cached too"""

    def __init__(self, doc: csaf.CSAF):
        self.doc = doc
        self._cache: Dict[str, Optional[csaf.Product]] = {}

    def get(self, product_id: str) -> Optional[csaf.Product]:
        if product_id not in self._cache:
            self._cache[product_id] = self.doc.product_tree.find_product_by_id(product_id)
        return self._cache[product_id]


class RepoCache:
    """Shares one Repository per (CPE, repository key)"""

    def __init__(self):
        self._cache: Dict[Tuple[str, str], Repository] = {}

    def get(self, wfn: WFN, key: str) -> Repository:
        cache_key = (str(wfn), key)
        repo = self._cache.get(cache_key)
        if repo is None:
            repo = Repository(name=str(wfn), key=key, cpe=wfn)
            self._cache[cache_key] = repo
        return repo


class Ranger:
    """
    Affected tag ranges for container images within one advisory

    The lowest range seen per image has its lower bound zeroed by
    reset_lowest, so the first known minor stream also covers every older tag.
    """

    def __init__(self):
        self.lowest: Dict[str, Range] = {}

    def add(self, package_name: str, fixed_in_version: str) -> Range:
        """
        Range covering the minor stream of fixed_in_version

        An empty fix version means every tag is affected.

        Raises:
            rhctag.TagError: fixed_in_version is not a tag
        """
        if not fixed_in_version:
            rng = Range(
                lower=rhctag.Version("").version(True),
                upper=rhctag.Version("", major=rhctag.MAX_INT32).version(True),
            )
        else:
            first_patch = rhctag.Version.parse(fixed_in_version)
            rng = Range(lower=first_patch.version(True), upper=first_patch.version(False))
        current = self.lowest.get(package_name)
        if current is None or rng.lower.compare(current.lower) < 0:
            self.lowest[package_name] = rng
        return rng

    def reset_lowest(self):
        zero = rhctag.Version("").version(True)
        for rng in self.lowest.values():
            rng.lower = zero


class _Creator:
    """Builds the records of one advisory"""

    def __init__(self, parser: "VEXParser", name: str, link: str, doc: csaf.CSAF):
        self.parser = parser
        self.logger = parser.logger
        self.name = name
        self.link = link
        self.doc = doc
        self.products = ProductCache(doc)
        self.repos = RepoCache()
        self._unique: Dict[str, Vulnerability] = {}

    def _resolve(self, product_id: str, unrelated: List[str], skip_kernel: bool = False):
        """Common first steps: relationships, repo CPE helper, module name"""
        try:
            pkg_name, mod_name, repo_name = walk_relationships(product_id, self.doc)
        except RelationshipError:
            unrelated.append(product_id)
            return None
        if skip_kernel and pkg_name.startswith("kernel"):
            return None
        repo_prod = self.products.get(repo_name)
        if repo_prod is None:
            self.logger.warning(f"{self.link}: could not find product {repo_name!r} in product tree")
            return None
        cpe_helper = repo_prod.identification_helper.get("cpe")
        if not cpe_helper:
            self.logger.warning(f"{self.link}: could not find cpe helper in product {repo_name!r}")
            return None
        if mod_name:
            try:
                mod_name = create_package_module(self.products.get(mod_name))
            except PURLError as e:
                self.logger.warning(f"{self.link}: could not create package module: {e}")
                mod_name = ""
        return pkg_name, mod_name, repo_name, cpe_helper

    def _unbind(self, cpe_helper: str) -> Optional[WFN]:
        try:
            return unbind(escape_cpe(cpe_helper))
        except CPEError as e:
            self.logger.warning(f"{self.link}: could not unbind cpe {cpe_helper!r}: {e}")
            return None

    def _parse_purl(self, helper: str) -> Optional[PackageURL]:
        try:
            return PackageURL.from_string(helper)
        except ValueError as e:
            self.logger.warning(f"{self.link}: could not parse purl {helper!r}: {e}")
            return None

    def _apply_severity(self, vuln: Vulnerability, product_id: str) -> bool:
        """Fill in severities; False means the record must be dropped"""
        score = self.doc.find_score(product_id)
        if score is not None:
            try:
                vuln.severity = cvss_vector_from_score(score)
            except CVSSParseError as e:
                self.logger.warning(f"{self.link}: could not parse CVSS score: {e}")
                return False
        threat = self.doc.find_threat(product_id, "impact")
        if threat is not None:
            vuln.normalized_severity = self.parser.normalizer.normalize_severity(threat.details)
        elif score is not None and cvss_base_score_from_score(score) == 0.0:
            # No impact rating and a zero base score
            return False
        return True

    def _log_unrelated(self, unrelated: List[str]):
        if unrelated:
            self.logger.debug(f"{self.link}: skipped unrelatable product_ids {unrelated}")

    def fixed_vulnerabilities(self, entry: csaf.Vulnerability,
                              proto: Callable[[], Vulnerability]) -> List[Vulnerability]:
        """Records for the "fixed" bucket of one vulnerability entry"""
        ranger = Ranger()
        unrelated: List[str] = []
        out: List[Vulnerability] = []
        for product_id in entry.product_status.get("fixed", []):
            resolved = self._resolve(product_id, unrelated)
            if resolved is None:
                continue
            pkg_name, mod_name, repo_name, cpe_helper = resolved

            comp_prod = self.products.get(pkg_name)
            if comp_prod is None:
                self.logger.warning(f"{self.link}: could not find package {pkg_name!r} in product tree")
                continue
            purl_helper = comp_prod.identification_helper.get("purl")
            if not purl_helper:
                self.logger.warning(f"{self.link}: could not find purl helper in product {pkg_name!r}")
                continue
            purl = self._parse_purl(purl_helper)
            if purl is None or not check_purl(purl):
                continue
            try:
                fixed_in = extract_fixed_in_version(purl)
                package_name = extract_package_name(purl)
            except PURLError as e:
                self.logger.warning(f"{self.link}: {e}")
                continue
            mod_name = _qualifiers(purl).get("rpmmod", mod_name)

            key = create_package_key(repo_name, mod_name, purl.name, fixed_in)
            arch = extract_arch(purl)
            existing = self._unique.get(key)
            if existing is not None:
                if arch:
                    existing.package.arch = f"{existing.package.arch}|{arch}"
                continue

            wfn = self._unbind(cpe_helper)
            if wfn is None:
                continue
            vuln = proto()
            vuln.fixed_in_version = fixed_in
            vuln.package = Package(name=package_name, kind=PackageKind.BINARY, module=mod_name)
            if arch:
                vuln.package.arch = arch
                vuln.arch_operation = ArchOp.PATTERN_MATCH

            if purl.type == RPM_PURL_TYPE:
                vuln.repo = self.repos.get(wfn, REPO_KEY)
            else:
                vuln.repo = self.repos.get(wfn, RHCC_REPO_KEY)
                try:
                    vuln.range = ranger.add(package_name, fixed_in)
                except rhctag.TagError as e:
                    self.logger.warning(f"{self.link}: could not parse {fixed_in!r} into a range: {e}")
                    continue

            remediation = self.doc.find_remediation(product_id)
            if remediation is not None:
                vuln.links = self.parser.normalizer.join_links([vuln.links, remediation.url])
            if not self._apply_severity(vuln, product_id):
                continue

            self._unique[key] = vuln
            out.append(vuln)
        ranger.reset_lowest()
        self._log_unrelated(unrelated)
        return out

    def known_affected_vulnerabilities(self, entry: csaf.Vulnerability,
                                       proto: Callable[[], Vulnerability]) -> List[Vulnerability]:
        """Records for the "known_affected" bucket of one vulnerability entry"""
        ranger = Ranger()
        unrelated: List[str] = []
        out: List[Vulnerability] = []
        for product_id in entry.product_status.get("known_affected", []):
            resolved = self._resolve(product_id, unrelated, skip_kernel=True)
            if resolved is None:
                continue
            pkg_name, mod_name, _, cpe_helper = resolved

            comp_prod = self.products.get(pkg_name)
            if comp_prod is None:
                self.logger.warning(f"{self.link}: could not find package {pkg_name!r} in product tree")
                continue
            wfn = self._unbind(cpe_helper)
            if wfn is None:
                continue
            vuln = proto()
            vuln.repo = self.repos.get(wfn, REPO_KEY)

            # Without a purl helper the product ID is reported as the package name
            purl_helper = comp_prod.identification_helper.get("purl")
            if purl_helper:
                purl = self._parse_purl(purl_helper)
                if purl is None or not check_purl(purl):
                    continue
                try:
                    pkg_name = extract_package_name(purl)
                except PURLError as e:
                    self.logger.warning(f"{self.link}: {e}")
                mod_name = _qualifiers(purl).get("rpmmod", mod_name)
                if purl.type == OCI_PURL_TYPE:
                    vuln.repo = self.repos.get(wfn, RHCC_REPO_KEY)
                    vuln.range = ranger.add(pkg_name, vuln.fixed_in_version)

            vuln.package = Package(name=pkg_name, kind=PackageKind.SOURCE, module=mod_name)
            if not self._apply_severity(vuln, product_id):
                continue
            out.append(vuln)
        ranger.reset_lowest()
        self._log_unrelated(unrelated)
        return out


class VEXParser(BaseParser):
    """Parser for the spool produced by VEXFetcher"""

    def __init__(self, source_name: str = UPDATER_NAME, config=None):
        super().__init__(source_name, config)

    def delta_parse(self, fileobj: BinaryIO) -> Tuple[List[Vulnerability], List[str]]:
        """
        Transform every advisory in the spool

        Later copies of an advisory replace earlier ones.

        Returns:
            Tuple of (vulnerabilities, deleted advisory names)

        Raises:
            ParseException: A line is not a CSAF document
            ValidationException: A document has no tracking ID
        """
        out: Dict[str, List[Vulnerability]] = {}
        deleted: List[str] = []
        documents = 0

        for line in iter_records(fileobj):
            try:
                doc = csaf.parse(line)
            except csaf.CSAFError as e:
                raise ParseException(f"error parsing CSAF: {e}", self.source_name,
                                     raw_data_sample=line[:256].decode("utf-8", "replace")) from e
            documents += 1
            name = doc.document.tracking.id
            if not name:
                raise ValidationException("CSAF document has no tracking ID", self.source_name,
                                          validation_field="document.tracking.id")
            if doc.document.tracking.status == "deleted":
                out.pop(name, None)
                if name not in deleted:
                    deleted.append(name)
                continue
            if name in deleted:
                deleted.remove(name)
            out[name] = self._transform(name, doc)

        vulns: List[Vulnerability] = []
        for name, records in out.items():
            if not records:
                # An advisory with nothing left must not keep old records alive
                deleted.append(name)
                continue
            vulns.extend(records)

        self.logger.info(f"parsed {documents} documents into {len(vulns)} vulnerabilities "
                         f"and {len(deleted)} deletions")
        return vulns, deleted

    def _transform(self, name: str, doc: csaf.CSAF) -> List[Vulnerability]:
        self_link = ""
        for ref in doc.document.references:
            if ref.category == "self":
                self_link = ref.url
                break

        creator = _Creator(self, name, self_link, doc)
        records: List[Vulnerability] = []
        for entry in doc.vulnerabilities:
            links = self.normalizer.join_links([ref.url for ref in entry.references] + [self_link])
            description = next((n.text for n in entry.notes if n.category == "description"), "")

            def proto(entry=entry, links=links, description=description) -> Vulnerability:
                return Vulnerability(
                    updater=self.source_name,
                    name=name,
                    description=description,
                    issued=entry.release_date,
                    links=links,
                    severity="Unknown",
                )

            records.extend(creator.fixed_vulnerabilities(entry, proto))
            records.extend(creator.known_affected_vulnerabilities(entry, proto))
        return records
