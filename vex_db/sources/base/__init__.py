"""
Base Infrastructure for Feed Sources

Foundational classes shared by source implementations.

Key Components:
- BaseFetcher: Abstract interface for data fetching over HTTP
- BaseParser: Abstract interface for turning fetched payloads into records
- DataNormalizer: Maps vendor vocabularies to the shared record fields
- Exception hierarchy rooted at VulnSourceException

Related Files:
- sources/redhat_vex/ builds its fetcher and parser on these classes
"""

from .base_fetcher import BaseFetcher
from .base_parser import BaseParser
from .data_normalizer import DataNormalizer
from .exceptions import (
    ConfigException, FetchCancelled, FetchException, FetchTimeout, ParseException,
    ValidationException, VulnSourceException,
)

__all__ = [
    'BaseFetcher',
    'BaseParser',
    'DataNormalizer',
    'VulnSourceException',
    'FetchException',
    'FetchTimeout',
    'FetchCancelled',
    'ParseException',
    'ConfigException',
    'ValidationException',
]
