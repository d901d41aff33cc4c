"""
Constants of the Red Hat VEX feed layout and of the records built from it.
"""

from ...pkg.purl import RHCC_REPOSITORY_KEY, RPM_REPOSITORY_KEY

# Base URL the VEX security data is published under
BASE_URL = "https://security.access.redhat.com/data/csaf/v2/vex/"

UPDATER_NAME = "rhel-vex"
# Bumping this forces every client to reprocess the full archive
UPDATER_VERSION = "5"

LATEST_FILE = "archive_latest.txt"
# archive_latest.txt holds a single file name
LATEST_FILE_MAX_BYTES = 512
CHANGES_FILE = "changes.csv"
DELETIONS_FILE = "deletions.csv"

# Advisories published before this year are ignored
LOOK_BACK_TO_YEAR = 2014

DEFAULT_COMPRESSED_FILE_TIMEOUT = 120.0

REPO_KEY = RPM_REPOSITORY_KEY
RHCC_REPO_KEY = RHCC_REPOSITORY_KEY
