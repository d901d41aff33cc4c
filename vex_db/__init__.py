"""
vex_db - Red Hat VEX feed synchronizer

Keeps a vulnerability store in step with Red Hat's CSAF-VEX advisories:
downloads only what changed since the last run and turns each advisory into
per-package Vulnerability records.

Layout:
- toolkit/: CPE, CVSS and CSAF codecs
- pkg/: RPM and container tag versions, package URLs
- sources/: the feed fetcher, parser and updater
- config/: settings from the environment
"""

__version__ = "1.0.0"
