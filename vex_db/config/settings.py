"""
Configuration settings for the VEX synchronizer

Values come from the environment or a ``.env`` file in the working directory.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Upstream feed
    VEX_URL: str = "https://security.access.redhat.com/data/csaf/v2/vex/"
    VEX_COMPRESSED_FILE_TIMEOUT: float = 120  # seconds, whole archive download
    HTTP_TIMEOUT: float = 30
    HTTP_MAX_RETRIES: int = 3
    USER_AGENT: str = "vex-db/1.0"

    # Container name to repository mapping
    NAME2REPOS_MAPPING_URL: Optional[str] = None
    NAME2REPOS_MAPPING_FILE: Optional[str] = None

    # Command line driver
    STATE_FILE: str = ".vex_fingerprint"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
