"""
Container name to repository mapping.

Red Hat publishes a JSON document mapping the NAME label of a container image
to the registry repositories the image is shipped in:

    {"data": {"ubi8": ["registry.access.redhat.com/ubi8"], ...}}

Container scanners use it to turn an image name into the package names the
VEX records carry. The mapping is loaded once from a local file, or fetched
from a URL and refreshed at most every ten minutes.
"""

import gzip
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

import requests
import zstandard
from pydantic import BaseModel, Field, ValidationError

from ..base.exceptions import ConfigException, FetchException, ParseException

logger = logging.getLogger(__name__)

DEFAULT_MAPPING_URL = "https://security.access.redhat.com/data/metrics/container-name-repos-map.json"
UPDATE_INTERVAL = 600  # seconds
DEFAULT_TIMEOUT = 10


class MappingFile(BaseModel):
    data: Dict[str, List[str]] = Field(default_factory=dict)

    def get(self, name: str) -> List[str]:
        repos = self.data.get(name)
        if repos is None:
            return []
        logger.debug(f"name {name!r} present in mapping file")
        return list(repos)


def load_mapping(raw: bytes) -> MappingFile:
    """
    Decode a mapping document, which may be gzip or zstd compressed

    Raises:
        ParseException: If the document does not decode
    """
    try:
        if raw[:2] == b"\x1f\x8b":
            raw = gzip.decompress(raw)
        elif raw[:4] == b"\x28\xb5\x2f\xfd":
            raw = zstandard.ZstdDecompressor().decompressobj().decompress(raw)
    except (OSError, EOFError, zstandard.ZstdError) as e:
        raise ParseException(f"failed to decompress mapping file: {e}") from e
    try:
        return MappingFile.model_validate_json(raw)
    except ValidationError as e:
        raise ParseException(f"failed to decode mapping file: {e}",
                             raw_data_sample=raw[:256].decode("utf-8", "replace")) from e


class UpdatingMapper:
    """
    Name to repos lookups backed by a periodically refreshed mapping

    get() is safe to call from several threads. The first caller after the
    update interval performs the refresh; a failed refresh keeps the previous
    mapping.
    """

    def __init__(self, url: str, initial: Optional[MappingFile] = None,
                 session: Optional[requests.Session] = None, timeout: float = DEFAULT_TIMEOUT,
                 interval: float = UPDATE_INTERVAL, clock: Callable[[], float] = time.monotonic):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout
        self.interval = interval
        self._clock = clock
        self._mapping = initial
        self._lock = threading.Lock()
        self._rate_lock = threading.Lock()
        self._last_modified = ""
        self._next_update: Optional[float] = None
        # An initial mapping counts as the first update
        if initial is not None:
            self._allow()

    def _allow(self) -> bool:
        with self._rate_lock:
            now = self._clock()
            if self._next_update is not None and now < self._next_update:
                return False
            self._next_update = now + self.interval
            return True

    def get(self, name: str) -> List[str]:
        if not name:
            return []
        if self.url and self._allow():
            logger.debug("updating mapping file")
            try:
                self.refresh()
            except (FetchException, ParseException) as e:
                logger.error(f"error updating mapping file: {e}")
        mapping = self._mapping
        if mapping is None:
            return []
        return mapping.get(name)

    def refresh(self) -> bool:
        """
        Fetch the mapping unless it is unchanged since the last fetch

        Returns:
            True if a new mapping was stored

        Raises:
            FetchException: On transport errors or an unexpected status
            ParseException: If the document does not decode
        """
        with self._lock:
            headers = {}
            if self._last_modified:
                headers['If-Modified-Since'] = self._last_modified
            try:
                response = self.session.get(self.url, headers=headers, timeout=self.timeout)
            except requests.RequestException as e:
                raise FetchException(f"error fetching mapping file: {e}", url=self.url) from e
            with response:
                if response.status_code == 304:
                    logger.debug(f"mapping not modified since {self._last_modified}")
                    return False
                if response.status_code != 200:
                    raise FetchException(
                        f"received status code {response.status_code} querying mapping url",
                        status_code=response.status_code, url=self.url)
                mapping = load_mapping(response.content)
                self._last_modified = response.headers.get('Last-Modified', "")
            self._mapping = mapping
            logger.debug("update of local mapping file complete")
            return True


def new_mapper(url: Optional[str] = None, path: Optional[str] = None,
               session: Optional[requests.Session] = None,
               timeout: float = DEFAULT_TIMEOUT) -> UpdatingMapper:
    """
    Build a mapper from a URL, a local file, or the default URL

    A local file is loaded once and never refreshed.

    Raises:
        ConfigException: If the local file cannot be read or decoded
    """
    if path:
        try:
            with open(path, 'rb') as f:
                mapping = load_mapping(f.read())
        except (OSError, ParseException) as e:
            raise ConfigException(f"unable to load mapping file {path!r}: {e}",
                                  config_key="NAME2REPOS_MAPPING_FILE") from e
        return UpdatingMapper("", mapping, session=session, timeout=timeout)
    return UpdatingMapper(url or DEFAULT_MAPPING_URL, session=session, timeout=timeout)


def mapper_from_settings(settings=None, session: Optional[requests.Session] = None) -> UpdatingMapper:
    if settings is None:
        from ...config.settings import settings
    return new_mapper(settings.NAME2REPOS_MAPPING_URL, settings.NAME2REPOS_MAPPING_FILE,
                      session=session, timeout=settings.HTTP_TIMEOUT)
