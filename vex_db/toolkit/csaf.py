"""
CSAF 2.0 document reader.

Models the subset of the Common Security Advisory Framework 2.0 used by Red Hat
VEX files: https://docs.oasis-open.org/csaf/csaf/v2.0/os/csaf-v2.0-os.html

Every model accepts unknown keys so newer documents keep parsing; unknown
categories and identification helpers are passed through untouched. The lookup
helpers return the first match in document order, or None.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class CSAFError(ValueError):
    """Raised when a document is not valid JSON or does not fit the CSAF model"""


class _Model(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# Document metadata

class Reference(_Model):
    category: str = ""
    summary: str = ""
    url: str = ""


class Tracking(_Model):
    id: str = ""
    status: str = ""
    version: str = ""
    current_release_date: Optional[datetime] = None
    initial_release_date: Optional[datetime] = None


class Publisher(_Model):
    category: str = ""
    contact_details: str = ""
    issuing_authority: str = ""
    name: str = ""
    namespace: str = ""


class AggregateSeverity(_Model):
    namespace: str = ""
    text: str = ""


class DocumentMetadata(_Model):
    title: str = ""
    category: str = ""
    csaf_version: str = ""
    lang: str = ""
    tracking: Tracking = Field(default_factory=Tracking)
    references: List[Reference] = Field(default_factory=list)
    publisher: Publisher = Field(default_factory=Publisher)
    aggregate_severity: Optional[AggregateSeverity] = None
    distribution: Optional[Dict[str, Any]] = None


# Vulnerabilities

class Note(_Model):
    category: str = ""
    text: str = ""
    title: str = ""
    audience: str = ""


class TrackingID(_Model):
    system_name: str = ""
    text: str = ""


class ThreatData(_Model):
    category: str = ""
    details: str = ""
    product_ids: List[str] = Field(default_factory=list)


class RestartRequired(_Model):
    category: str = ""
    details: str = ""


class RemediationData(_Model):
    category: str = ""
    date: Optional[datetime] = None
    details: str = ""
    entitlements: List[str] = Field(default_factory=list)
    group_ids: List[str] = Field(default_factory=list)
    product_ids: List[str] = Field(default_factory=list)
    restart: Optional[RestartRequired] = Field(default=None, alias="restart_required")
    url: str = ""


class Flag(_Model):
    label: str = ""
    date: Optional[datetime] = None
    group_ids: List[str] = Field(default_factory=list)
    product_ids: List[str] = Field(default_factory=list)


class _CVSS(_Model):
    base_score: float = Field(default=0.0, alias="baseScore")
    base_severity: str = Field(default="", alias="baseSeverity")
    vector_string: str = Field(default="", alias="vectorString")
    version: str = ""


class CVSSV2(_Model):
    base_score: float = Field(default=0.0, alias="baseScore")
    vector_string: str = Field(default="", alias="vectorString")
    version: str = ""


class CVSSV3(_CVSS):
    """Both CVSS v3.0 and v3.1 score objects"""


class CVSSV4(_CVSS):
    pass


class Score(_Model):
    cvss_v2: Optional[CVSSV2] = None
    cvss_v3: Optional[CVSSV3] = None
    cvss_v4: Optional[CVSSV4] = None
    product_ids: List[str] = Field(default_factory=list, alias="products")


class CWE(_Model):
    id: str = ""
    name: str = ""


class Vulnerability(_Model):
    cve: str = ""
    ids: List[TrackingID] = Field(default_factory=list)
    product_status: Dict[str, List[str]] = Field(default_factory=dict)
    threats: List[ThreatData] = Field(default_factory=list)
    remediations: List[RemediationData] = Field(default_factory=list)
    flags: List[Flag] = Field(default_factory=list)
    references: List[Reference] = Field(default_factory=list)
    release_date: Optional[datetime] = None
    discovery_date: Optional[datetime] = None
    notes: List[Note] = Field(default_factory=list)
    scores: List[Score] = Field(default_factory=list)
    cwe: Optional[CWE] = None


# Product tree

class Product(_Model):
    name: str = ""
    product_id: str = ""
    identification_helper: Dict[str, Any] = Field(
        default_factory=dict, alias="product_identification_helper")


class Relationship(_Model):
    category: str = ""
    full_product_name: Product = Field(default_factory=Product)
    product_reference: str = ""
    relates_to_product_reference: str = ""


class ProductBranch(_Model):
    """A node of the product tree; the root carries the relationships"""

    category: str = ""
    name: str = ""
    branches: List["ProductBranch"] = Field(default_factory=list)
    product: Optional[Product] = None
    relationships: List[Relationship] = Field(default_factory=list)

    def find_product_by_id(self, product_id: str) -> Optional[Product]:
        """Depth-first search for the product with the given ID"""
        if self.product is not None and self.product.product_id == product_id:
            return self.product
        for branch in self.branches:
            found = branch.find_product_by_id(product_id)
            if found is not None:
                return found
        return None

    def find_product_identifier(self, helper_type: str, value: str) -> Optional[Product]:
        """Depth-first search for the product whose helper of the given type equals value"""
        if self.product is not None and self.product.identification_helper.get(helper_type) == value:
            return self.product
        for branch in self.branches:
            found = branch.find_product_identifier(helper_type, value)
            if found is not None:
                return found
        return None

    def find_relationship(self, product_id: str, category: str) -> Optional[Relationship]:
        for rel in self.relationships:
            if rel.category == category and rel.full_product_name.product_id == product_id:
                return rel
        return None


class CSAF(_Model):
    """A CSAF 2.0 document"""

    document: DocumentMetadata = Field(default_factory=DocumentMetadata)
    product_tree: ProductBranch = Field(default_factory=ProductBranch)
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)
    notes: List[Note] = Field(default_factory=list)

    def find_relationship(self, product_id: str, category: str) -> Optional[Relationship]:
        return self.product_tree.find_relationship(product_id, category)

    def find_remediation(self, product_id: str) -> Optional[RemediationData]:
        for vuln in self.vulnerabilities:
            for rem in vuln.remediations:
                if product_id in rem.product_ids:
                    return rem
        return None

    def find_score(self, product_id: str) -> Optional[Score]:
        for vuln in self.vulnerabilities:
            for score in vuln.scores:
                if product_id in score.product_ids:
                    return score
        return None

    def find_threat(self, product_id: str, category: str) -> Optional[ThreatData]:
        for vuln in self.vulnerabilities:
            for threat in vuln.threats:
                if threat.category == category and product_id in threat.product_ids:
                    return threat
        return None

    def find_flag(self, product_id: str) -> Optional[Flag]:
        for vuln in self.vulnerabilities:
            for flag in vuln.flags:
                if product_id in flag.product_ids:
                    return flag
        return None


def parse(data: Union[bytes, str, Any]) -> CSAF:
    """
    Decode one CSAF document

    Args:
        data: JSON as bytes or str, or a binary/text file object

    Returns:
        Parsed document

    Raises:
        CSAFError: If the input is not JSON or does not fit the document model
    """
    if hasattr(data, "read"):
        data = data.read()
    try:
        return CSAF.model_validate_json(data)
    except ValidationError as e:
        raise CSAFError(f"csaf: failed to unmarshal document: {e}") from e
