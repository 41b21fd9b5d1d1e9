"""Installation access token cache.

Installation tokens are valid for one hour upstream. The cache hands
out the current token until it is within ``buffer`` of expiry, then
exchanges a fresh app JWT for a new one. Concurrent callers that find
the cache stale share a single in-flight exchange.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog
from pydantic import ValidationError

from .auth import KeySigner
from .exceptions import KeyFormatError, TokenAcquisitionError
from .models import InstallationToken

logger = structlog.get_logger(__name__)

DEFAULT_REFRESH_BUFFER = timedelta(minutes=5)


class TokenExchanger(Protocol):
    """Exchanges an app JWT for an installation access token."""

    async def create_installation_token(
        self, jwt_token: str, installation_id: int
    ) -> InstallationToken: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InstallationTokenCache:
    """Holds the single installation token of the configured installation.

    All state is owned by the event loop the cache is used on. The check
    for a running refresh and the creation of a new one happen without an
    intervening ``await``, so at most one exchange is in flight.
    """

    def __init__(
        self,
        signer: KeySigner,
        exchanger: TokenExchanger,
        installation_id: int,
        buffer: timedelta = DEFAULT_REFRESH_BUFFER,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the cache.

        Args:
            signer: Signs the app JWT used for the exchange.
            exchanger: Performs the token exchange call.
            installation_id: The one installation this app serves.
            buffer: Refresh this long before upstream expiry. Must be positive.
            clock: Source of the current UTC time.
        """
        if buffer <= timedelta(0):
            raise ValueError(f"Token refresh buffer must be positive, got {buffer}")

        self.installation_id = installation_id
        self.buffer = buffer
        self._signer = signer
        self._exchanger = exchanger
        self._clock = clock
        self._token: InstallationToken | None = None
        self._refresh_task: asyncio.Task[InstallationToken] | None = None
        self._logger = logger.bind(
            component="installation_token_cache",
            installation_id=installation_id,
        )

    def _is_fresh(self, token: InstallationToken) -> bool:
        return self._clock() < token.expires_at - self.buffer

    @property
    def expires_at(self) -> datetime | None:
        """Upstream expiry of the cached token, if any."""
        return self._token.expires_at if self._token else None

    async def get_token(self, installation_id: int | None = None) -> str:
        """Return a valid installation access token.

        Args:
            installation_id: Installation to authenticate as. Defaults to
                the configured installation; any other value is rejected.

        Returns:
            Installation access token string.

        Raises:
            KeyFormatError: If the app private key is unusable.
            TokenAcquisitionError: If the exchange fails or the requested
                installation is not the configured one.
        """
        if installation_id is not None and installation_id != self.installation_id:
            raise TokenAcquisitionError(
                f"Installation {installation_id} is not configured for this app"
            )

        token = self._token
        if token is not None and self._is_fresh(token):
            return token.token

        if self._refresh_task is None:
            self._logger.info("installation_token_refresh_started")
            self._refresh_task = asyncio.create_task(self._refresh())
            self._refresh_task.add_done_callback(self._refresh_done)

        # Shield so a cancelled caller does not abort the shared exchange.
        token = await asyncio.shield(self._refresh_task)
        return token.token

    def invalidate(self, token: str | None = None) -> None:
        """Drop the cached token so the next call performs a fresh exchange.

        Called after a downstream API call is rejected with 401 or 403.

        Args:
            token: The token the rejected call presented. When given, the
                cache is only cleared if it still holds that token, so a
                late rejection cannot discard a newer token.
        """
        if self._token is None:
            return
        if token is not None and token != self._token.token:
            self._logger.debug("installation_token_invalidation_skipped")
            return
        self._logger.info("installation_token_invalidated")
        self._token = None

    async def _refresh(self) -> InstallationToken:
        try:
            assertion = self._signer.sign()
        except KeyFormatError:
            self._logger.error("installation_token_key_unusable")
            raise
        except Exception as e:
            self._logger.error("installation_token_signing_failed", error=str(e))
            raise TokenAcquisitionError(f"Failed to sign app JWT: {e}") from e

        try:
            token = await self._exchanger.create_installation_token(
                assertion.token, self.installation_id
            )
        except TokenAcquisitionError as e:
            self._logger.error("installation_token_exchange_failed", error=str(e))
            raise
        except ValidationError as e:
            self._logger.error("installation_token_response_invalid", error=str(e))
            raise TokenAcquisitionError(
                f"Token exchange returned an unusable response: {e}"
            ) from e
        except Exception as e:
            self._logger.error("installation_token_exchange_failed", error=str(e))
            raise TokenAcquisitionError(
                f"Failed to obtain installation access token: {e}"
            ) from e

        if token.expires_at.tzinfo is None:
            token = token.model_copy(update={"expires_at": token.expires_at.replace(tzinfo=UTC)})

        self._token = token
        self._logger.info(
            "installation_token_refreshed",
            expires_at=token.expires_at.isoformat(),
        )
        return token

    def _refresh_done(self, task: "asyncio.Task[InstallationToken]") -> None:
        self._refresh_task = None
        # Mark the failure as retrieved even when every waiter was cancelled.
        if not task.cancelled():
            task.exception()
