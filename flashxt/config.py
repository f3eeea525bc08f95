"""Application Configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Settings for the flashing backend.

    Built once by the caller and handed to each component; nothing in the
    package reads configuration from a module-level instance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Android Flash Tool XT"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    PY_HOST: str = "127.0.0.1"
    PY_PORT: int = 17890

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    # Database (action log + device records)
    DATABASE_URL: str = Field(
        default="sqlite:///~/.flashxt/flashxt.db",
        description="SQLAlchemy database URL",
    )
    DATABASE_ECHO: bool = False

    # Device tools
    ADB_PATH: str = "adb"
    FASTBOOT_PATH: str = "fastboot"
    COMMAND_TIMEOUT_SEC: Optional[float] = Field(
        default=None,
        description="Upper bound for a single adb/fastboot invocation; unset blocks until exit",
    )

    # Downloads
    DOWNLOADS_DIR: str = Field(
        default="~/.flashxt/downloads",
        description="Directory receiving downloaded archives and their extracted images",
    )
    USER_AGENT: str = "AndroidFlashToolXT/1.0"
    DOWNLOAD_CHUNK_SIZE: int = 8192
    DOWNLOAD_TIMEOUT_SEC: Optional[float] = Field(
        default=None,
        description="Connect/read timeout for bundle downloads; unset waits indefinitely",
    )
    DOWNLOAD_HISTORY_LIMIT: int = Field(
        default=50,
        description="Download status entries kept in memory; finished ones are evicted first",
    )

    # Safety
    REQUIRE_TYPED_CONFIRMATION: bool = Field(
        default=False,
        description="Require 'FLASH <serial>' instead of y/yes before flashing",
    )

    # Device report
    DETAILS_FILE: str = "details.txt"

    @field_validator("LOG_FORMAT")
    @classmethod
    def normalize_log_format(cls, v: str) -> str:
        """Accept json/text in any case"""
        v = v.strip().lower()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @field_validator("DOWNLOAD_HISTORY_LIMIT")
    @classmethod
    def positive_history_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("DOWNLOAD_HISTORY_LIMIT must be positive")
        return v

    @field_validator("DOWNLOAD_CHUNK_SIZE")
    @classmethod
    def positive_chunk_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("DOWNLOAD_CHUNK_SIZE must be positive")
        return v
