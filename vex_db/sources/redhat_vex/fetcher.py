"""
Red Hat VEX Fetcher

OBJECTIVE:
Keep a local copy of every Red Hat CSAF-VEX advisory up to date while
downloading as little as possible.

UPSTREAM LAYOUT (relative to the base URL):
- archive_latest.txt: name of the newest compressed tarball of all advisories
- <archive>: tar.zst (or tar.gz) with one YYYY/cve-YYYY-NNNN.json per advisory
- changes.csv: "YYYY/cve-YYYY-NNNN.json","<RFC 3339 time>" per changed advisory
- deletions.csv: same shape, for withdrawn advisories

WORKFLOW:
1. On the first run, or when the updater version changed, find the latest
   archive and record its Last-Modified time as the request time
2. Fetch every advisory listed in changes.csv as changed at or after the
   request time
3. Emit a "deleted" stub for every advisory listed in deletions.csv at or
   after the request time
4. When processing the archive, stream it and emit every advisory not already
   seen in steps 2 and 3

Only one copy of any advisory ends up in the output, and after the initial
load only the handful of recently changed files is downloaded.
"""

import csv
import gzip
import io
import logging
import posixpath
import re
import tarfile
import threading
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, BinaryIO, Dict, Iterator, Optional, Set, Tuple
from urllib.parse import urljoin

import requests
import zstandard

from ..base.base_fetcher import BaseFetcher
from ..base.exceptions import FetchCancelled, FetchException, FetchTimeout, ParseException
from .constants import (
    BASE_URL, CHANGES_FILE, DEFAULT_COMPRESSED_FILE_TIMEOUT, DELETIONS_FILE, LATEST_FILE,
    LATEST_FILE_MAX_BYTES, LOOK_BACK_TO_YEAR, UPDATER_NAME, UPDATER_VERSION,
)
from .fingerprint import Fingerprint, parse_rfc3339
from .spool import SpoolWriter

DELETED_TEMPLATE = '{"document":{"tracking":{"id":"%s","status":"deleted"}}}'
CVE_PATH_REGEX = re.compile(r"^\d{4}/(cve-\d{4}-\d{4,})\.json$")

GZIP_MAGIC = b"\x1f\x8b"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"

# Read size for the archive body
STREAM_CHUNK_SIZE = 1 << 16


def deleted_json(cve_path: str) -> bytes:
    """
    Stub document marking the advisory at cve_path as deleted

    Raises:
        ValueError: If cve_path is not a YYYY/cve-YYYY-NNNN.json path
    """
    m = CVE_PATH_REGEX.match(cve_path)
    if m is None:
        raise ValueError(f"failed to parse CVE path {cve_path!r}")
    return (DELETED_TEMPLATE % m.group(1).upper()).encode("utf-8")


class _ChunkStream(io.RawIOBase):
    """Readable file object over an iterator of byte chunks"""

    def __init__(self, chunks: Iterator[bytes]):
        self._chunks = chunks
        self._pending = b""

    def readable(self):
        return True

    def readinto(self, b):
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
        n = min(len(b), len(self._pending))
        b[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


class VEXFetcher(BaseFetcher):
    """
    Incremental fetcher for the Red Hat VEX feed

    The output of fetch is a snappy-framed temporary file of newline-delimited
    compact CSAF JSON, ready for VEXParser.delta_parse.
    """

    def __init__(self, config: Dict[str, Any] = None, session: Optional[requests.Session] = None):
        if config is None:
            from ...config.source_config import SourceConfigManager
            config = SourceConfigManager().get_vex_config()
        base_url = config.get('base_url') or BASE_URL
        if not base_url.endswith("/"):
            base_url += "/"
        config = {**config, 'base_url': base_url}
        super().__init__(UPDATER_NAME, config, session)
        self.compressed_file_timeout = float(
            config.get('compressed_file_timeout') or DEFAULT_COMPRESSED_FILE_TIMEOUT)
        self.validate_config()

    def get_required_config_fields(self):
        return ['base_url', 'timeout']

    def _url(self, ref: str) -> str:
        return urljoin(self.base_url, ref)

    def _check_cancelled(self, cancel: Optional[threading.Event]):
        if cancel is not None and cancel.is_set():
            raise FetchCancelled("fetch cancelled", self.source_name)

    @staticmethod
    def _year(cve_path: str) -> int:
        try:
            return int(posixpath.dirname(cve_path))
        except ValueError as e:
            raise FetchException(f"error parsing year from {cve_path!r}: {e}") from e

    def fetch(self, fingerprint: str = "",
              cancel: Optional[threading.Event] = None) -> Tuple[BinaryIO, str]:
        """
        Collect every advisory that changed since fingerprint

        Args:
            fingerprint: Value returned by the previous fetch, or "" for a full load
            cancel: Optional event; when set the fetch stops at the next checkpoint

        Returns:
            (spool file positioned at its start, new fingerprint)

        Raises:
            FingerprintError: If fingerprint cannot be parsed
            FetchException: On any upstream failure (FetchTimeout, FetchCancelled)
        """
        fp = Fingerprint.parse(fingerprint)
        spool = SpoolWriter()
        success = False
        try:
            compressed_url = None
            # First run, or the updater changed since the last run
            process_archive = fp.changes_etag == "" or fp.version != UPDATER_VERSION
            if process_archive:
                self._check_cancelled(cancel)
                compressed_url = self.get_compressed_file_url()
                self.logger.debug(f"got compressed URL {compressed_url}")
                self._check_cancelled(cancel)
                fp.request_time = self.get_last_modified(compressed_url)

            changed: Set[str] = set()
            self.process_changes(spool, fp, changed, cancel)
            self.process_deletions(spool, fp, changed, cancel)

            if process_archive:
                self.process_archive(spool, compressed_url, changed, cancel)

            fp.version = UPDATER_VERSION
            fp.request_time = datetime.now(timezone.utc).replace(microsecond=0)
            f = spool.finish()
            success = True
            self.logger.info(f"fetched {spool.records} records")
            return f, str(fp)
        finally:
            if not success:
                spool.abort()

    def get_compressed_file_url(self) -> str:
        """Resolve the URL of the newest archive named by archive_latest.txt"""
        url = self._url(LATEST_FILE)
        response = self._make_request(url, stream=True)
        try:
            body = response.raw.read(LATEST_FILE_MAX_BYTES + 1, decode_content=True)
        finally:
            response.close()
        if len(body) > LATEST_FILE_MAX_BYTES:
            raise FetchException(f"{LATEST_FILE} is larger than {LATEST_FILE_MAX_BYTES} bytes",
                                 self.source_name, url=url)
        name = body.decode("utf-8", "replace").strip()
        if not name:
            raise FetchException(f"empty {LATEST_FILE}", self.source_name, url=url)
        return self._url(name)

    def get_last_modified(self, url: str) -> datetime:
        response = self._make_request(url, method='HEAD')
        lm = response.headers.get('last-modified')
        if not lm:
            raise FetchException("archive response has no Last-Modified header",
                                 self.source_name, url=url)
        try:
            t = parsedate_to_datetime(lm)
        except (TypeError, ValueError) as e:
            raise FetchException(f"could not parse Last-Modified {lm!r}: {e}",
                                 self.source_name, url=url) from e
        if t.tzinfo is None:
            t = t.replace(tzinfo=timezone.utc)
        return t

    def _get_csv(self, name: str, etag: str) -> Optional[Tuple[str, str]]:
        """
        Conditionally fetch a CSV index

        Returns:
            (body, etag), or None when the file has not changed
        """
        headers = {'If-None-Match': etag} if etag else None
        response = self._make_request(self._url(name), headers=headers, ok_statuses=(200, 304))
        if response.status_code == 304:
            self.logger.debug(f"{name} not modified")
            return None
        new_etag = response.headers.get('etag', '')
        if etag and etag == new_etag:
            self.logger.debug(f"{name} etag unchanged")
            return None
        return response.text, new_etag

    def _csv_rows(self, name: str, body: str, fp: Fingerprint,
                  cancel: Optional[threading.Event]) -> Iterator[str]:
        """Paths of CSV entries updated at or after the request time"""
        for lineno, row in enumerate(csv.reader(io.StringIO(body)), 1):
            self._check_cancelled(cancel)
            if not row:
                continue
            if len(row) != 2:
                raise FetchException(f"could not parse {name} line {lineno}", self.source_name)
            cve_path, updated = row
            if self._year(cve_path) < LOOK_BACK_TO_YEAR:
                continue
            try:
                updated_time = parse_rfc3339(updated)
            except ValueError as e:
                raise FetchException(f"{name} line {lineno}: {e}", self.source_name) from e
            if updated_time < fp.request_time:
                continue
            yield cve_path

    def process_changes(self, writer: SpoolWriter, fp: Fingerprint, changed: Set[str],
                        cancel: Optional[threading.Event] = None):
        """
        Fetch the advisories listed in changes.csv since fp.request_time

        fp.changes_etag is updated and every fetched file name is added to
        changed.
        """
        self._check_cancelled(cancel)
        result = self._get_csv(CHANGES_FILE, fp.changes_etag)
        if result is None:
            return
        body, fp.changes_etag = result

        count = 0
        for cve_path in self._csv_rows(CHANGES_FILE, body, fp, cancel):
            changed.add(posixpath.basename(cve_path))
            url = self._url(cve_path)
            self.logger.debug(f"fetching changed advisory {url}")
            response = self._make_request(url)
            try:
                writer.write_record(response.content, cve_path)
            except ParseException as e:
                raise FetchException(f"bad advisory at {url}: {e}", self.source_name, url=url) from e
            count += 1
        self.logger.info(f"processed {count} changed advisories")

    def process_deletions(self, writer: SpoolWriter, fp: Fingerprint, changed: Set[str],
                          cancel: Optional[threading.Event] = None):
        """
        Emit deleted stubs for the advisories listed in deletions.csv since
        fp.request_time

        fp.deletions_etag is updated and every listed file name is added to
        changed.
        """
        self._check_cancelled(cancel)
        result = self._get_csv(DELETIONS_FILE, fp.deletions_etag)
        if result is None:
            return
        body, fp.deletions_etag = result

        count = 0
        for cve_path in self._csv_rows(DELETIONS_FILE, body, fp, cancel):
            changed.add(posixpath.basename(cve_path))
            try:
                stub = deleted_json(cve_path)
            except ValueError as e:
                self.logger.warning(f"error creating JSON object denoting deletion: {e}")
                continue
            writer.write_line(stub)
            count += 1
        self.logger.info(f"processed {count} deleted advisories")

    def _decompressor(self, stream: io.BufferedReader, url: str):
        magic = stream.peek(4)[:4]
        if magic[:2] == GZIP_MAGIC:
            return gzip.GzipFile(fileobj=stream, mode="rb")
        if magic == ZSTD_MAGIC:
            return zstandard.ZstdDecompressor().stream_reader(stream, read_across_frames=True)
        raise FetchException(f"unknown compression (magic {magic.hex()})", self.source_name, url=url)

    def process_archive(self, writer: SpoolWriter, url: str, changed: Set[str],
                        cancel: Optional[threading.Event] = None):
        """
        Stream the compressed archive into writer, skipping advisories already
        handled from changes.csv and deletions.csv

        The whole download must finish within compressed_file_timeout.
        """
        self._check_cancelled(cancel)
        deadline = time.monotonic() + self.compressed_file_timeout
        try:
            response = self.session.get(url, stream=True, timeout=self.compressed_file_timeout)
        except requests.Timeout as e:
            raise FetchTimeout(f"timed out requesting {url}: {e}", self.source_name, url=url) from e
        except requests.RequestException as e:
            raise FetchException(f"error requesting {url}: {e}", self.source_name, url=url) from e
        if response.status_code != 200:
            raise self._status_error(response, url)

        written = 0
        with response:
            stream = io.BufferedReader(_ChunkStream(response.iter_content(STREAM_CHUNK_SIZE)))
            try:
                reader = self._decompressor(stream, url)
                with tarfile.open(fileobj=reader, mode="r|") as tar:
                    for member in tar:
                        self._check_cancelled(cancel)
                        if time.monotonic() > deadline:
                            raise FetchTimeout(
                                f"archive not consumed within {self.compressed_file_timeout}s",
                                self.source_name, url=url)
                        if not member.isreg():
                            continue
                        if self._year(member.name) < LOOK_BACK_TO_YEAR:
                            continue
                        if posixpath.basename(member.name) in changed:
                            continue
                        f = tar.extractfile(member)
                        writer.write_record(f.read(), member.name)
                        written += 1
            except requests.Timeout as e:
                raise FetchTimeout(f"timed out reading {url}: {e}", self.source_name, url=url) from e
            except requests.RequestException as e:
                if time.monotonic() > deadline:
                    raise FetchTimeout(f"timed out reading {url}: {e}", self.source_name,
                                       url=url) from e
                raise FetchException(f"error reading {url}: {e}", self.source_name, url=url) from e
            except (tarfile.TarError, zstandard.ZstdError, OSError, EOFError) as e:
                raise FetchException(f"error reading tar contents: {e}", self.source_name,
                                     url=url) from e
            except ParseException as e:
                raise FetchException(f"bad advisory in archive: {e}", self.source_name,
                                     url=url) from e

        self.logger.info(f"finished writing compressed data to spool, {written} entries written")
