"""Configuration settings for spark_imagegen.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_OWNER_LABEL = "radanalytics.io/completed-image"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the SPARK_IMG_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="SPARK_IMG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # External tools
    oc_binary: str = Field(
        default="oc",
        description="OpenShift command-line client",
    )
    s2i_binary: str = Field(
        default="s2i",
        description="Local source-to-image build tool",
    )

    # Platform
    namespace: str | None = Field(
        default=None,
        description="Project to operate in (uses the current project if not set)",
    )
    owner_label: str = Field(
        default=DEFAULT_OWNER_LABEL,
        min_length=1,
        description="Label key marking resources created by this tool",
    )

    # Builds
    default_tag: str = Field(
        default="complete",
        min_length=1,
        description="Default destination tag for completed images",
    )
    features: list[str] = Field(
        default_factory=list,
        description="Optional feature flags ('r' enables radanalytics-r-spark)",
    )
    work_dir: Path | None = Field(
        default=None,
        description="Parent directory for build contexts (uses system default if not set)",
    )

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )
    download_timeout: int = Field(
        default=600,
        ge=10,
        description="Timeout for build input downloads",
    )

    @property
    def r_enabled(self) -> bool:
        """Whether the optional R target is part of the catalog."""
        return "r" in {feature.lower() for feature in self.features}


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["DEFAULT_OWNER_LABEL", "Settings", "get_settings", "print_settings_json"]
