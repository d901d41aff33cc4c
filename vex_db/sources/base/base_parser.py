"""
Base Parser for Feed Sources

Abstract base class that source parsers inherit from.

OBJECTIVE:
Common parsing infrastructure for turning a fetched payload into
Vulnerability records plus the names of advisories that no longer apply.

RELATIONS TO LOCAL CODES:
- Integrates: Error handling from sources/base/exceptions.py
- Uses: DataNormalizer for severity and link normalization
- Produces: models.Vulnerability records
"""

import abc
import logging
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from ...models import Vulnerability
from .data_normalizer import DataNormalizer


class BaseParser(abc.ABC):
    """Abstract base class for feed parsers"""

    def __init__(self, source_name: str, config: Optional[Dict[str, Any]] = None):
        """
        Initialize parser with source configuration

        Args:
            source_name: Name of the feed source, also the emitted updater name
            config: Optional source configuration dict
        """
        self.source_name = source_name
        self.config = config or {}
        self.logger = logging.getLogger(f"parser.{source_name}")
        self.normalizer = DataNormalizer(source_name)

    def parse(self, fileobj: BinaryIO) -> List[Vulnerability]:
        """
        Parse a complete snapshot of the feed

        Sources that only publish deltas leave this unimplemented.
        """
        raise NotImplementedError(f"{self.source_name}: full parse is not supported")

    @abc.abstractmethod
    def delta_parse(self, fileobj: BinaryIO) -> Tuple[List[Vulnerability], List[str]]:
        """
        Parse an incremental payload

        Args:
            fileobj: Payload produced by the matching fetcher

        Returns:
            Tuple of (vulnerabilities, deleted advisory names)
        """
        pass
