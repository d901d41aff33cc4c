"""
Data Normalizer for Feed Sources

Maps vendor vocabularies onto the shared record fields.

OBJECTIVE:
Vendors rate impact in their own words ("Important", "Moderate", ...) and
publish references in assorted shapes. Parsers run those values through a
DataNormalizer so every emitted Vulnerability uses the same Severity scale
and link format.
"""

import logging
from typing import Iterable

from ...models import Severity


class DataNormalizer:
    """Per-source normalizer for severity ratings and reference links"""

    def __init__(self, source_name: str):
        """Initialize data normalizer for specific source"""
        self.source_name = source_name
        self.logger = logging.getLogger(f"normalizer.{source_name}")

        self.severity_mapping = {
            'LOW': Severity.LOW,
            'MODERATE': Severity.MEDIUM,
            'MEDIUM': Severity.MEDIUM,
            'IMPORTANT': Severity.HIGH,
            'HIGH': Severity.HIGH,
            'CRITICAL': Severity.CRITICAL,
        }

    def normalize_severity(self, severity: str) -> Severity:
        """Normalize a vendor impact rating; anything unrecognized is Unknown"""
        if not severity:
            return Severity.UNKNOWN
        normalized = self.severity_mapping.get(str(severity).upper().strip())
        if normalized is None:
            self.logger.debug(f"unrecognized severity {severity!r}")
            return Severity.UNKNOWN
        return normalized

    @staticmethod
    def join_links(links: Iterable[str]) -> str:
        """Space-separated link list, skipping empty entries"""
        return " ".join(link for link in links if link)
