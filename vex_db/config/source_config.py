"""
Source Configuration Management

OBJECTIVE:
Turn environment settings into the configuration dicts consumed by
BaseFetcher implementations, and validate them before a fetch starts.

INTEGRATION WITH LOCAL CODES:
- Reads values from config.settings
- Provides configurations to sources/redhat_vex (fetcher and updater factory)
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from ..sources.base.exceptions import ConfigException
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

VEX_SOURCE_NAME = "rhel-vex"


@dataclass
class SourceConfig:
    """Configuration for a single feed source"""
    name: str
    url: str

    # Runtime configuration
    timeout_seconds: float = 30
    retry_attempts: int = 3
    compressed_file_timeout: float = 120
    user_agent: str = ""
    enabled: bool = True

    def to_fetcher_config(self) -> Dict[str, Any]:
        """Dict in the shape BaseFetcher.__init__ reads"""
        return {
            'name': self.name,
            'base_url': self.url,
            'timeout': self.timeout_seconds,
            'max_retries': self.retry_attempts,
            'compressed_file_timeout': self.compressed_file_timeout,
            'user_agent': self.user_agent,
        }


class SourceConfigManager:
    """
    Builds and validates source configurations

    RESPONSIBILITIES:
    1. Map settings onto SourceConfig objects
    2. Normalize the feed URL (the VEX base URL must end with "/")
    3. Reject configurations a fetcher cannot work with
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    def get_source_config(self, name: str = VEX_SOURCE_NAME) -> SourceConfig:
        if name != VEX_SOURCE_NAME:
            raise ConfigException(f"unknown source {name!r}", config_key="name")
        url = self.settings.VEX_URL
        if not url.endswith("/"):
            url += "/"
        config = SourceConfig(
            name=name,
            url=url,
            timeout_seconds=self.settings.HTTP_TIMEOUT,
            retry_attempts=self.settings.HTTP_MAX_RETRIES,
            compressed_file_timeout=self.settings.VEX_COMPRESSED_FILE_TIMEOUT,
            user_agent=self.settings.USER_AGENT,
        )
        self.validate(config)
        return config

    def get_vex_config(self) -> Dict[str, Any]:
        """Fetcher configuration dict for the Red Hat VEX feed"""
        return self.get_source_config(VEX_SOURCE_NAME).to_fetcher_config()

    @staticmethod
    def validate(config: SourceConfig) -> bool:
        """
        Validate a source configuration

        Raises:
            ConfigException: If a value is unusable
        """
        parsed = urlparse(config.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigException(f"invalid feed URL {config.url!r}", config.name, config_key="url")
        if config.timeout_seconds <= 0:
            raise ConfigException("timeout must be positive", config.name, config_key="timeout_seconds")
        if config.compressed_file_timeout <= 0:
            raise ConfigException("compressed file timeout must be positive", config.name,
                                  config_key="compressed_file_timeout")
        if config.retry_attempts < 1:
            raise ConfigException("at least one attempt is required", config.name,
                                  config_key="retry_attempts")
        logger.debug(f"validated source config {asdict(config)}")
        return True
