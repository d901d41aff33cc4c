"""
Updater factory for the Red Hat VEX feed.

A store drives an updater in two steps: fetch(fingerprint) returns a spool
and a new fingerprint, delta_parse(spool) turns the spool into records. The
factory holds the shared configuration and hands out the single updater the
feed needs.

Configuration keys (all optional):
- url: base URL the feed is published under; a trailing "/" is added
- compressed_file_timeout: deadline for the archive download, as seconds or
  a duration string such as "2m", "90s" or "1h30m"
"""

import logging
import re
import threading
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

import requests

from ...models import Vulnerability
from ..base.exceptions import ConfigException
from .constants import BASE_URL, DEFAULT_COMPRESSED_FILE_TIMEOUT, UPDATER_NAME
from .fetcher import VEXFetcher
from .parser import VEXParser

logger = logging.getLogger(__name__)

_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}
_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Seconds in a timeout value

    Numbers are seconds; strings are either a number of seconds or a sequence
    of <number><unit> parts with units ns, us, ms, s, m and h.

    Raises:
        ConfigException: If value is not a non-negative duration
    """
    if isinstance(value, bool):
        raise ConfigException(f"invalid duration {value!r}", config_key="compressed_file_timeout")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for m in _DURATION_PART.finditer(text):
                if m.start() != pos:
                    break
                seconds += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
                pos = m.end()
            if pos != len(text) or not text:
                raise ConfigException(f"invalid duration {value!r}",
                                      config_key="compressed_file_timeout")
    if seconds < 0:
        raise ConfigException(f"negative duration {value!r}", config_key="compressed_file_timeout")
    return seconds


def _normalize_url(url: str) -> str:
    if not url.endswith("/"):
        url += "/"
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigException(f"invalid url {url!r}", UPDATER_NAME, config_key="url")
    return url


class VEXUpdater:
    """Fetches and parses the Red Hat VEX feed"""

    def __init__(self, url: str = BASE_URL, session: Optional[requests.Session] = None,
                 compressed_file_timeout: float = DEFAULT_COMPRESSED_FILE_TIMEOUT,
                 timeout: float = 30, max_retries: int = 3, user_agent: str = ""):
        self.url = url
        self.session = session or requests.Session()
        self.compressed_file_timeout = compressed_file_timeout
        self.timeout = timeout
        self.max_retries = max_retries
        self.user_agent = user_agent
        self.parser = VEXParser(UPDATER_NAME)

    @property
    def name(self) -> str:
        return UPDATER_NAME

    def configure(self, config: Optional[Dict[str, Any]] = None):
        """Per-updater overrides; only url is honored"""
        config = config or {}
        if config.get('url'):
            self.url = config['url']
        logger.info(f"{self.name}: configured url {self.url}")

    def fetcher(self) -> VEXFetcher:
        return VEXFetcher({
            'name': UPDATER_NAME,
            'base_url': self.url,
            'timeout': self.timeout,
            'max_retries': self.max_retries,
            'compressed_file_timeout': self.compressed_file_timeout,
            'user_agent': self.user_agent,
        }, session=self.session)

    def fetch(self, fingerprint: str = "",
              cancel: Optional[threading.Event] = None) -> Tuple[BinaryIO, str]:
        return self.fetcher().fetch(fingerprint, cancel)

    def parse(self, fileobj: BinaryIO) -> List[Vulnerability]:
        return self.parser.parse(fileobj)

    def delta_parse(self, fileobj: BinaryIO) -> Tuple[List[Vulnerability], List[str]]:
        return self.parser.delta_parse(fileobj)


class UpdaterFactory:
    """
    Builds the Red Hat VEX updater

    configure() must be called before create().
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session
        self.url: Optional[str] = None
        self.compressed_file_timeout = DEFAULT_COMPRESSED_FILE_TIMEOUT
        self.timeout: float = 30
        self.max_retries = 3
        self.user_agent = ""

    @classmethod
    def from_settings(cls, settings=None, session: Optional[requests.Session] = None) -> "UpdaterFactory":
        if settings is None:
            from ...config.settings import settings
        factory = cls(session)
        factory.timeout = settings.HTTP_TIMEOUT
        factory.max_retries = settings.HTTP_MAX_RETRIES
        factory.user_agent = settings.USER_AGENT
        factory.configure({
            'url': settings.VEX_URL,
            'compressed_file_timeout': settings.VEX_COMPRESSED_FILE_TIMEOUT,
        })
        return factory

    def configure(self, config: Optional[Dict[str, Any]] = None) -> "UpdaterFactory":
        """
        Apply factory configuration

        Raises:
            ConfigException: On an invalid url or timeout
        """
        config = config or {}
        self.url = _normalize_url(config.get('url') or BASE_URL)
        self.compressed_file_timeout = DEFAULT_COMPRESSED_FILE_TIMEOUT
        timeout = config.get('compressed_file_timeout')
        if timeout:
            self.compressed_file_timeout = parse_duration(timeout)
            if self.compressed_file_timeout == 0:
                self.compressed_file_timeout = DEFAULT_COMPRESSED_FILE_TIMEOUT
        logger.debug(f"configured {UPDATER_NAME} factory: url={self.url} "
                     f"compressed_file_timeout={self.compressed_file_timeout}s")
        return self

    def create(self) -> List[VEXUpdater]:
        """The updater set: exactly one VEXUpdater"""
        if self.url is None:
            raise ConfigException("configure must be called before create", UPDATER_NAME)
        return [VEXUpdater(
            url=self.url,
            session=self.session,
            compressed_file_timeout=self.compressed_file_timeout,
            timeout=self.timeout,
            max_retries=self.max_retries,
            user_agent=self.user_agent,
        )]
