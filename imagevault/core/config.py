"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from imagevault.core.database.contexts import RepositoryOptions, SaveChangesStrategy

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field(
        default="sqlite+aiosqlite:///./imagevault.db",
        alias="IMAGEVAULT_DATABASE_URL",
        description="Async SQLAlchemy connection URL for the application database",
    )
    echo: bool = Field(default=False, alias="IMAGEVAULT_DATABASE_ECHO", description="Log emitted SQL statements")

    model_config = {"populate_by_name": True}


class RepositoryConfig(BaseModel):
    """Generic repository behaviour configuration."""

    related_properties_max_depth: int = Field(
        default=3,
        ge=0,
        alias="IMAGEVAULT_RELATED_PROPERTIES_MAX_DEPTH",
        description="Maximum navigation depth walked when collecting loadable related properties",
    )
    save_changes_strategy: SaveChangesStrategy = Field(
        default=SaveChangesStrategy.PER_UNIT_OF_WORK,
        alias="IMAGEVAULT_SAVE_CHANGES_STRATEGY",
        description="When repositories flush pending changes (per_operation or per_unit_of_work)",
    )

    model_config = {"populate_by_name": True}

    def to_options(self) -> RepositoryOptions:
        """Build the per-context repository options from this configuration."""
        return RepositoryOptions(
            related_properties_max_depth=self.related_properties_max_depth,
            save_changes_strategy=self.save_changes_strategy,
        )


class StorageConfig(BaseModel):
    """Blob storage configuration."""

    root: str = Field(
        default="./storage/images", alias="IMAGEVAULT_STORAGE_ROOT", description="Directory holding stored image blobs"
    )
    public_url: str = Field(
        default="http://localhost:8000/images",
        alias="IMAGEVAULT_STORAGE_PUBLIC_URL",
        description="Base URL under which stored blobs are publicly reachable",
    )

    model_config = {"populate_by_name": True}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", alias="IMAGEVAULT_LOG_LEVEL", description="Root logging level")
    format: str = Field(default="detailed", alias="IMAGEVAULT_LOG_FORMAT", description="simple, detailed or json")
    file_dir: str = Field(default="logs", alias="IMAGEVAULT_LOG_FILE_DIR", description="Directory for log files")
    enable_file_logging: bool = Field(
        default=False, alias="IMAGEVAULT_ENABLE_FILE_LOGGING", description="Also write logs to a file"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # =====================================================================
    # Database Configuration
    # =====================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./imagevault.db",
        alias="IMAGEVAULT_DATABASE_URL",
    )
    database_echo: bool = Field(default=False, alias="IMAGEVAULT_DATABASE_ECHO")

    # =====================================================================
    # Repository Configuration
    # =====================================================================
    related_properties_max_depth: int = Field(default=3, alias="IMAGEVAULT_RELATED_PROPERTIES_MAX_DEPTH")
    save_changes_strategy: SaveChangesStrategy = Field(
        default=SaveChangesStrategy.PER_UNIT_OF_WORK,
        alias="IMAGEVAULT_SAVE_CHANGES_STRATEGY",
    )

    # =====================================================================
    # Storage Configuration
    # =====================================================================
    storage_root: str = Field(default="./storage/images", alias="IMAGEVAULT_STORAGE_ROOT")
    storage_public_url: str = Field(default="http://localhost:8000/images", alias="IMAGEVAULT_STORAGE_PUBLIC_URL")

    # =====================================================================
    # Logging Configuration
    # =====================================================================
    log_level: str = Field(default="INFO", alias="IMAGEVAULT_LOG_LEVEL")
    log_format: str = Field(default="detailed", alias="IMAGEVAULT_LOG_FORMAT")
    log_file_dir: str = Field(default="logs", alias="IMAGEVAULT_LOG_FILE_DIR")
    enable_file_logging: bool = Field(default=False, alias="IMAGEVAULT_ENABLE_FILE_LOGGING")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def database(self) -> DatabaseConfig:
        """Get database configuration from environment variables."""
        return DatabaseConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def repository(self) -> RepositoryConfig:
        """Get repository configuration from environment variables."""
        return RepositoryConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def storage(self) -> StorageConfig:
        """Get blob storage configuration from environment variables."""
        return StorageConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration from environment variables."""
        return LoggingConfig.model_validate(self.model_dump(by_alias=True))


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the process-wide settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
