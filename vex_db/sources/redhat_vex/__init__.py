"""
Red Hat VEX Source

Incremental synchronizer for the CSAF-VEX advisories Red Hat publishes under
https://security.access.redhat.com/data/csaf/v2/vex/.

Key Components:
- VEXFetcher: Downloads changed advisories into a snappy-framed spool
- VEXParser: Turns the spool into Vulnerability records and deletions
- UpdaterFactory / VEXUpdater: Configuration and the fetch/parse pair
- UpdatingMapper: Container name to repository lookups
"""

from .constants import UPDATER_NAME, UPDATER_VERSION
from .fetcher import VEXFetcher
from .fingerprint import Fingerprint, FingerprintError
from .name2repos import UpdatingMapper, new_mapper
from .parser import RelationshipError, VEXParser
from .updater import UpdaterFactory, VEXUpdater

__all__ = [
    'UPDATER_NAME',
    'UPDATER_VERSION',
    'VEXFetcher',
    'Fingerprint',
    'FingerprintError',
    'UpdatingMapper',
    'new_mapper',
    'RelationshipError',
    'VEXParser',
    'UpdaterFactory',
    'VEXUpdater',
]
