"""
Configuration for the VEX synchronizer: environment-driven settings and the
per-source configuration dicts handed to fetchers.
"""

from .settings import Settings, settings
from .source_config import SourceConfig, SourceConfigManager

__all__ = ['Settings', 'settings', 'SourceConfig', 'SourceConfigManager']
