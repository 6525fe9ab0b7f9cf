"""
tmbridge Configuration Module

Centralized configuration management using Pydantic Settings.
Supports environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


NAMASTE_URL = "https://ayush.gov.in/fhir/CodeSystem/namaste"
UNANI_URL = "https://ayush.gov.in/fhir/CodeSystem/unani"
ICD11_TM2_URL = "http://id.who.int/icd/release/11/mms"
ICD11_BROWSER_URL = "https://icd.who.int/browse11/l-m/en"


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TMBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_json: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 1
    api_reload: bool = False


class TerminologySettings(BaseSettings):
    """Terminology engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="TERMINOLOGY_",
        env_file=".env",
        extra="ignore",
    )

    # Store backend: memory, postgres
    store_backend: Literal["memory", "postgres"] = "memory"

    # FHIR Bundle loaded into the memory store at startup ("" disables)
    seed_path: str | None = None
    load_sample_data: bool = True

    # Autocomplete
    default_limit: int = 20
    max_limit: int = 50
    min_search_length: int = 2
    default_systems: list[str] = Field(
        default_factory=lambda: ["namaste", "icd11-tm2", "unani"]
    )

    # Deadline applied to every engine operation
    query_timeout_seconds: float = 5.0

    # Alias -> canonical CodeSystem URL
    system_aliases: dict[str, str] = Field(
        default_factory=lambda: {
            "namaste": NAMASTE_URL,
            "unani": UNANI_URL,
            "icd11-tm2": ICD11_TM2_URL,
            "icd11": ICD11_BROWSER_URL,
        }
    )

    # Dual-coding families, tried in order
    source_systems: list[str] = Field(
        default_factory=lambda: [NAMASTE_URL, UNANI_URL]
    )
    target_systems: list[str] = Field(
        default_factory=lambda: [ICD11_TM2_URL, ICD11_BROWSER_URL]
    )


class PostgresSettings(BaseSettings):
    """PostgreSQL settings."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGRES_",
        env_file=".env",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 5432
    user: str = "tmbridge"
    password: SecretStr = Field(default=SecretStr("tmbridge_dev_password"))
    database: str = "tmbridge"
    min_pool_size: int = 2
    max_pool_size: int = 10

    @property
    def connection_url(self) -> str:
        """Get the PostgreSQL connection URL."""
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class Settings:
    """
    Aggregated settings container.

    Usage:
        from tmbridge.config import get_settings
        settings = get_settings()
        print(settings.app.api_port)
        print(settings.terminology.max_limit)
    """

    def __init__(self):
        self.app = AppSettings()
        self.terminology = TerminologySettings()
        self.postgres = PostgresSettings()

    @property
    def is_development(self) -> bool:
        return self.app.env == "development"

    @property
    def is_production(self) -> bool:
        return self.app.env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: The application settings
    """
    return Settings()
