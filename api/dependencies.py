"""Dependency injection setup for the PR review bot.

This module wires every component explicitly on startup and exposes
FastAPI dependency functions for injecting them into route handlers.
"""

from collections.abc import AsyncGenerator
from datetime import timedelta
from typing import Annotated

import structlog
from fastapi import Depends

from core.dispatch import Dispatcher, DispatcherConfig
from integrations.github.auth import KeySigner
from integrations.github.client import GitHubAuthClient, GitHubClient, GitHubClientConfig
from integrations.github.filters import EligibilityFilter
from integrations.github.processor import PullRequestProcessor
from integrations.github.tokens import InstallationTokenCache

from .config import Settings, get_settings

logger = structlog.get_logger(__name__)

# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]


# Global instances owned by the application lifespan
_auth_client: GitHubAuthClient | None = None
_token_cache: InstallationTokenCache | None = None
_github_client: GitHubClient | None = None
_processor: PullRequestProcessor | None = None
_dispatcher: Dispatcher | None = None
_shutdown_timeout: float = 30.0


async def init_dependencies(settings: Settings) -> None:
    """Initialize global dependencies on application startup.

    Loads the app credentials, parses the private key eagerly so a bad
    key stops startup, and starts the dispatcher.

    Args:
        settings: Application settings instance.

    Raises:
        ConfigurationError: If required configuration is missing.
        KeyFormatError: If the private key cannot be parsed.
    """
    global _auth_client, _token_cache, _github_client, _processor, _dispatcher
    global _shutdown_timeout

    credentials = settings.load_credentials()

    signer = KeySigner(
        app_id=credentials.app_id,
        private_key_pem=credentials.private_key_pem,
        ttl=timedelta(minutes=settings.github_jwt_ttl_minutes),
    )
    _ = signer.private_key

    client_config = GitHubClientConfig(
        base_url=settings.github_api_base_url,
        api_version=settings.github_api_version,
        timeout=settings.github_http_timeout,
        user_agent=settings.github_bot_name,
    )
    _auth_client = GitHubAuthClient(client_config)
    _token_cache = InstallationTokenCache(
        signer=signer,
        exchanger=_auth_client,
        installation_id=credentials.installation_id,
        buffer=timedelta(minutes=settings.github_token_cache_buffer_minutes),
    )
    _github_client = GitHubClient(client_config, _token_cache)
    _processor = PullRequestProcessor(
        _github_client, EligibilityFilter(settings.github_bot_name)
    )

    _dispatcher = Dispatcher(
        DispatcherConfig(
            min_workers=settings.dispatcher_min_workers,
            max_workers=settings.dispatcher_max_workers,
            queue_capacity=settings.dispatcher_queue_capacity,
            keep_alive_seconds=settings.dispatcher_keep_alive_seconds,
        )
    )
    _shutdown_timeout = settings.dispatcher_shutdown_timeout
    await _dispatcher.start()

    logger.info(
        "dependencies_initialized",
        app_id=credentials.app_id,
        installation_id=credentials.installation_id,
    )


async def shutdown_dependencies() -> None:
    """Cleanup dependencies on application shutdown.

    Drains the dispatcher before closing the HTTP clients its tasks use.
    """
    global _auth_client, _token_cache, _github_client, _processor, _dispatcher

    if _dispatcher is not None:
        await _dispatcher.shutdown(timeout=_shutdown_timeout)
        _dispatcher = None

    if _github_client is not None:
        await _github_client.close()
        _github_client = None

    if _auth_client is not None:
        await _auth_client.close()
        _auth_client = None

    _token_cache = None
    _processor = None


def current_dispatcher() -> Dispatcher | None:
    """Return the dispatcher if startup has created one."""
    return _dispatcher


async def get_dispatcher() -> AsyncGenerator[Dispatcher, None]:
    """Get the background task dispatcher.

    Yields:
        The shared Dispatcher instance.

    Raises:
        RuntimeError: If dependencies have not been initialized.
    """
    if _dispatcher is None:
        raise RuntimeError(
            "Dispatcher not initialized. Ensure init_dependencies() was called on startup."
        )
    yield _dispatcher


async def get_processor() -> AsyncGenerator[PullRequestProcessor, None]:
    """Get the pull request processor.

    Yields:
        The shared PullRequestProcessor instance.

    Raises:
        RuntimeError: If dependencies have not been initialized.
    """
    if _processor is None:
        raise RuntimeError(
            "Processor not initialized. Ensure init_dependencies() was called on startup."
        )
    yield _processor


def get_eligibility_filter(settings: SettingsDep) -> EligibilityFilter:
    """Build the eligibility filter for the configured bot name."""
    return EligibilityFilter(settings.github_bot_name)


# Type aliases for commonly used dependencies
DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]
ProcessorDep = Annotated[PullRequestProcessor, Depends(get_processor)]
EligibilityFilterDep = Annotated[EligibilityFilter, Depends(get_eligibility_filter)]
