"""Settings management for the PR review bot.

This module provides centralized configuration management using pydantic-settings.
All configuration is loaded from environment variables (or a ``.env`` file)
with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from integrations.github.auth import normalize_pem
from integrations.github.exceptions import ConfigurationError
from integrations.github.models import AppCredentials


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        app_name: Name of the application.
        app_version: Application version.
        debug: Enable debug mode.
        log_level: Logging level.
        log_json: Render logs as JSON instead of console output.

        github_app_id: GitHub App ID.
        github_installation_id: The single installation this app serves.
        github_private_key: Inline PEM private key.
        github_private_key_path: Path to the PEM private key file.
        github_webhook_secret: Webhook HMAC secret.
        github_bot_name: App slug; its bot login is ``<name>[bot]``.
        github_api_base_url: GitHub REST API base URL.
        github_api_version: Value of the X-GitHub-Api-Version header.
        github_jwt_ttl_minutes: App JWT lifetime (GitHub allows at most 10).
        github_token_cache_buffer_minutes: Refresh installation tokens this
            long before they expire.
        github_http_timeout: Timeout in seconds for every outbound call.

        dispatcher_min_workers: Workers kept alive.
        dispatcher_max_workers: Upper bound on workers.
        dispatcher_queue_capacity: Queued task limit.
        dispatcher_keep_alive_seconds: Idle time before a surplus worker exits.
        dispatcher_shutdown_timeout: Seconds to drain work on shutdown.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="PR Review Bot", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=True, description="Render logs as JSON")

    # GitHub App
    github_app_id: int | None = Field(default=None, description="GitHub App ID")
    github_installation_id: int | None = Field(
        default=None,
        description="GitHub App installation ID",
    )
    github_private_key: str | None = Field(
        default=None,
        description="GitHub App private key (inline PEM)",
    )
    github_private_key_path: Path | None = Field(
        default=None,
        description="Path to the GitHub App private key",
    )
    github_webhook_secret: str | None = Field(
        default=None,
        description="Webhook secret for signature verification",
    )
    github_bot_name: str = Field(
        default="pr-review-bot",
        description="Bot name used to recognise the app's own pull requests",
    )
    github_api_base_url: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL",
    )
    github_api_version: str = Field(default="2022-11-28", description="GitHub API version")
    github_jwt_ttl_minutes: int = Field(
        default=10,
        ge=1,
        le=10,
        description="App JWT lifetime in minutes",
    )
    github_token_cache_buffer_minutes: int = Field(
        default=5,
        ge=1,
        le=59,
        description="Installation token refresh buffer in minutes",
    )
    github_http_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for outbound GitHub calls in seconds",
    )

    # Dispatcher settings
    dispatcher_min_workers: int = Field(default=5, ge=1, description="Minimum workers")
    dispatcher_max_workers: int = Field(default=10, ge=1, description="Maximum workers")
    dispatcher_queue_capacity: int = Field(default=100, ge=1, description="Queue capacity")
    dispatcher_keep_alive_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Idle time before a surplus worker exits",
    )
    dispatcher_shutdown_timeout: float = Field(
        default=30.0,
        ge=0,
        description="Seconds to drain outstanding work on shutdown",
    )

    @model_validator(mode="after")
    def _check_dispatcher_bounds(self) -> "Settings":
        if self.dispatcher_max_workers < self.dispatcher_min_workers:
            raise ValueError("dispatcher_max_workers must be >= dispatcher_min_workers")
        return self

    def load_private_key(self) -> bytes:
        """Return the app private key PEM.

        The inline key wins; otherwise the key file is read.

        Raises:
            ConfigurationError: If neither source is configured or the file
                cannot be read.
        """
        if self.github_private_key and self.github_private_key.strip():
            return normalize_pem(self.github_private_key)

        if self.github_private_key_path is None:
            raise ConfigurationError(
                "Either GITHUB_PRIVATE_KEY or GITHUB_PRIVATE_KEY_PATH must be configured"
            )

        try:
            return self.github_private_key_path.expanduser().read_bytes()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read GitHub App private key at {self.github_private_key_path}: {e}"
            ) from e

    def load_credentials(self) -> AppCredentials:
        """Assemble the immutable app credentials.

        Returns:
            AppCredentials for the configured app and installation.

        Raises:
            ConfigurationError: If a required value is missing.
        """
        missing = [
            name
            for name, value in (
                ("GITHUB_APP_ID", self.github_app_id),
                ("GITHUB_INSTALLATION_ID", self.github_installation_id),
                ("GITHUB_WEBHOOK_SECRET", self.github_webhook_secret),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        return AppCredentials(
            app_id=self.github_app_id,
            installation_id=self.github_installation_id,
            private_key_pem=self.load_private_key(),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are loaded once and reused.

    Returns:
        The application settings instance.
    """
    return Settings()
