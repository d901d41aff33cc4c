"""
Base Fetcher for Feed Sources

Abstract base class that feed fetchers inherit from.
Provides the shared HTTP session, retry logic, and configuration checks.
"""

import abc
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from .exceptions import ConfigException, FetchException

# Bytes of an unexpected response body quoted in error messages
ERROR_BODY_PREFIX = 256


class BaseFetcher(abc.ABC):
    """Abstract base class for feed fetchers"""

    def __init__(self, source_name: str, config: Dict[str, Any],
                 session: Optional[requests.Session] = None):
        """
        Initialize fetcher with source configuration

        Args:
            source_name: Name of the feed source
            config: Configuration dict, see config.source_config
            session: Optional preconfigured session (tests, connection sharing)
        """
        self.source_name = source_name
        self.config = config
        self.logger = logging.getLogger(f"fetcher.{source_name}")

        # Common configuration
        self.base_url = config.get('base_url', '')
        self.rate_limit = config.get('rate_limit', 0.0)  # seconds between requests
        self.timeout = config.get('timeout', 30)
        self.max_retries = max(1, config.get('max_retries', 3))

        # Session for connection pooling
        self.session = session or requests.Session()
        user_agent = config.get('user_agent')
        if user_agent:
            self.session.headers['User-Agent'] = user_agent
        self.session.headers.update(self._get_auth_headers())

    @abc.abstractmethod
    def fetch(self, fingerprint: str) -> Tuple[Any, str]:
        """
        Fetch everything new since the state described by fingerprint

        Returns:
            (data, new_fingerprint)
        """
        pass

    @abc.abstractmethod
    def get_required_config_fields(self) -> List[str]:
        """Return list of required configuration fields for this source"""
        pass

    def _get_auth_headers(self) -> Dict[str, str]:
        """Return authentication headers for requests; public feeds need none"""
        return {}

    def _make_request(self, url: str, method: str = 'GET',
                      headers: Dict[str, str] = None,
                      ok_statuses: Iterable[int] = (200,),
                      stream: bool = False,
                      timeout: float = None) -> requests.Response:
        """
        Make HTTP request with retry logic and rate limiting

        Connection errors, 429 and 5xx responses are retried with exponential
        backoff. Any other status outside ok_statuses fails immediately.

        Args:
            url: URL to request
            method: HTTP method
            headers: Extra request headers
            ok_statuses: Statuses handed back to the caller
            stream: Leave the body unread
            timeout: Override the configured timeout

        Returns:
            Response object

        Raises:
            FetchException: If the request fails or returns an unexpected status
        """
        ok_statuses = tuple(ok_statuses)
        timeout = self.timeout if timeout is None else timeout
        last_error = None
        for attempt in range(self.max_retries):
            if self.rate_limit:
                time.sleep(self.rate_limit)
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    stream=stream,
                    timeout=timeout,
                )
            except requests.RequestException as e:
                last_error = e
                if attempt == self.max_retries - 1:
                    break
                self.logger.warning(f"Request attempt {attempt + 1} for {url} failed: {e}")
                time.sleep(2 ** attempt)
                continue

            if response.status_code in ok_statuses:
                return response

            if response.status_code == 429 or response.status_code >= 500:
                last_error = f"status {response.status_code}"
                if attempt == self.max_retries - 1:
                    raise self._status_error(response, url)
                response.close()
                wait_time = 2 ** attempt
                self.logger.warning(f"{url} returned {response.status_code}, waiting {wait_time}s")
                time.sleep(wait_time)
                continue

            raise self._status_error(response, url)

        raise FetchException(
            f"Request to {url} failed after {self.max_retries} attempts: {last_error}",
            self.source_name, url=url,
        )

    def _status_error(self, response: requests.Response, url: str) -> FetchException:
        try:
            body = next(response.iter_content(ERROR_BODY_PREFIX), b"")
        except requests.RequestException:
            body = b""
        finally:
            response.close()
        return FetchException(
            f"unexpected response from {url}: {response.status_code} {response.reason} "
            f"(body: {body[:ERROR_BODY_PREFIX]!r})",
            self.source_name,
            status_code=response.status_code,
            url=url,
        )

    def validate_config(self) -> bool:
        """
        Validate that required configuration is present

        Returns:
            True if configuration is valid

        Raises:
            ConfigException: If a required field is missing or empty
        """
        for field in self.get_required_config_fields():
            if not self.config.get(field):
                raise ConfigException(f"Missing required configuration field: {field}",
                                      self.source_name, config_key=field)
        return True
