"""Configuration management with pydantic-settings."""

from typing import Any, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MwActionSettings(BaseSettings):
    """mwaction settings loaded from environment variables.

    All settings use the MWACTION_ prefix for environment variables.
    """

    # Site connection
    api_url: str | None = Field(
        default=None,
        description="Full URL of the wiki's api.php endpoint",
    )
    username: str | None = Field(default=None, description="Account (or bot password) name")
    password: SecretStr | None = Field(default=None, description="Account (or bot) password")
    totp_secret: SecretStr | None = Field(
        default=None,
        description="Base32 TOTP secret; when set, login uses clientlogin with two-factor codes",
    )
    login_assert: Literal["none", "user", "bot"] = Field(
        default="none",
        description="Login assertion: none (anonymous), user, or bot",
    )

    # Transport
    timeout: float = Field(default=120.0, description="HTTP timeout in seconds")
    user_agent: str = Field(
        default="mwaction/0.3 (https://pypi.org/project/mwaction/)",
        description="User-Agent sent with every request",
    )

    # Logging configuration
    log_level: str = Field(default="WARNING", description="Logging level")
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Log output format: console or json",
    )

    # Bulk runner
    max_workers: int = Field(default=4, description="Worker threads for bulk operations")

    model_config = SettingsConfigDict(
        env_prefix="MWACTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("max_workers")
    @classmethod
    def _positive_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_workers must be at least 1")
        return value

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be positive")
        return value

    def get_site_config(self) -> dict[str, Any]:
        """Get keyword arguments for building a site connection.

        Returns:
            Configuration dictionary for ``Site``.

        Raises:
            ValueError: If the site configuration is incomplete.
        """
        if not self.api_url:
            raise ValueError("MWACTION_API_URL environment variable is required")

        if self.login_assert != "none" and not (self.username and self.password):
            raise ValueError(
                "MWACTION_USERNAME and MWACTION_PASSWORD are required "
                f"when MWACTION_LOGIN_ASSERT={self.login_assert}"
            )

        return {
            "api_url": self.api_url,
            "login_assert": self.login_assert,
            "timeout": self.timeout,
            "user_agent": self.user_agent,
        }


# Global settings instance
_settings: MwActionSettings | None = None


def get_settings() -> MwActionSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = MwActionSettings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None
