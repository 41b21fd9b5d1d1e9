"""GitHub API clients.

``GitHubAuthClient`` performs the JWT for installation token exchange.
``GitHubClient`` executes installation-authenticated REST calls for the
endpoints the pull request pipeline needs.
"""

import base64
import binascii
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ContentDecodeError, GitHubAPIError, TokenAcquisitionError
from .models import (
    FileContent,
    GitHubComment,
    GitHubFile,
    InstallationToken,
    ReviewCommentRequest,
)

logger = structlog.get_logger(__name__)

GITHUB_ACCEPT = "application/vnd.github+json"


class GitHubClientConfig(BaseModel):
    """Configuration shared by the GitHub clients."""

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(default="https://api.github.com", description="API base URL")
    api_version: str = Field(default="2022-11-28", description="X-GitHub-Api-Version")
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    user_agent: str = Field(default="pr-review-bot", description="User-Agent header")


class TokenProvider(Protocol):
    """Source of installation access tokens."""

    async def get_token(self, installation_id: int | None = None) -> str: ...

    def invalidate(self, token: str | None = None) -> None: ...


def _api_headers(config: GitHubClientConfig, bearer: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {bearer}",
        "Accept": GITHUB_ACCEPT,
        "X-GitHub-Api-Version": config.api_version,
        "User-Agent": config.user_agent,
    }


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text[:200]


class GitHubAuthClient:
    """Exchanges app JWTs for installation access tokens.

    This client never carries an installation token itself, so it can be
    used by the token cache without a circular dependency.
    """

    def __init__(
        self,
        config: GitHubClientConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the auth client.

        Args:
            config: Client configuration.
            http_client: Optional pre-built HTTP client (mainly for tests).
        """
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None
        self._logger = logger.bind(component="github_auth_client")

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def create_installation_token(
        self, jwt_token: str, installation_id: int
    ) -> InstallationToken:
        """Exchange an app JWT for an installation access token.

        Args:
            jwt_token: Signed app JWT.
            installation_id: Installation to issue the token for.

        Returns:
            The issued token and its expiry.

        Raises:
            TokenAcquisitionError: On transport failure, a non-2xx
                response, or a body without a token or a parsable expiry.
        """
        client = self._ensure_client()
        try:
            response = await client.post(
                f"/app/installations/{installation_id}/access_tokens",
                headers=_api_headers(self.config, jwt_token),
            )
        except httpx.HTTPError as e:
            raise TokenAcquisitionError(f"Token exchange request failed: {e}") from e

        if response.is_error:
            raise TokenAcquisitionError(
                f"Token exchange returned {response.status_code}: {_error_message(response)}"
            )

        try:
            token = InstallationToken.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenAcquisitionError(
                f"Token exchange returned an unusable response: {e}"
            ) from e

        self._logger.debug("installation_token_issued", installation_id=installation_id)
        return token


class GitHubClient:
    """Async GitHub REST client authenticated as the app installation.

    A 401 or 403 response invalidates the cached installation token before
    the error is raised, so the next call authenticates afresh.
    """

    def __init__(
        self,
        config: GitHubClientConfig,
        tokens: TokenProvider,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            config: Client configuration.
            tokens: Installation token provider.
            http_client: Optional pre-built HTTP client (mainly for tests).
        """
        self.config = config
        self._tokens = tokens
        self._http_client = http_client
        self._owns_client = http_client is None
        self._logger = logger.bind(component="github_client")

    async def __aenter__(self) -> "GitHubClient":
        """Enter async context."""
        self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Exit async context."""
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Make an installation-authenticated API request.

        Args:
            method: HTTP method.
            path: API path.
            params: Query parameters.
            json_data: JSON body data.

        Returns:
            Decoded JSON response.

        Raises:
            GitHubAPIError: On a non-2xx response.
        """
        client = self._ensure_client()
        token = await self._tokens.get_token()

        response = await client.request(
            method=method,
            url=path,
            params=params,
            json=json_data,
            headers=_api_headers(self.config, token),
        )

        if response.is_error:
            error = GitHubAPIError(response.status_code, _error_message(response))
            if error.is_auth_failure:
                self._tokens.invalidate(token)
            self._logger.warning(
                "github_request_failed",
                method=method,
                path=path,
                status=response.status_code,
            )
            raise error

        return response.json()

    async def get_pull_request_files(
        self, owner: str, repo: str, pr_number: int
    ) -> list[GitHubFile]:
        """Get files changed in a pull request.

        Args:
            owner: Repository owner.
            repo: Repository name.
            pr_number: PR number.

        Returns:
            List of changed files.
        """
        data = await self._request("GET", f"/repos/{owner}/{repo}/pulls/{pr_number}/files")
        files = [GitHubFile.model_validate(f) for f in data or []]
        self._logger.info(
            "pull_request_files_fetched",
            repo=f"{owner}/{repo}",
            pr_number=pr_number,
            count=len(files),
        )
        return files

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        """Get a file's content at a given ref.

        Args:
            owner: Repository owner.
            repo: Repository name.
            path: File path.
            ref: Branch name or commit SHA.

        Returns:
            Decoded file content; empty for non-file entries.

        Raises:
            GitHubAPIError: On a non-2xx response.
            ContentDecodeError: If the content is not valid base64 UTF-8 text.
        """
        data = await self._request(
            "GET", f"/repos/{owner}/{repo}/contents/{path}", params={"ref": ref}
        )
        content = FileContent.model_validate(data)
        if content.content is None:
            return ""
        if content.encoding not in (None, "base64"):
            return content.content

        # GitHub wraps base64 content with newlines.
        cleaned = "".join(content.content.split())
        try:
            return base64.b64decode(cleaned, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ContentDecodeError(path, str(e)) from e

    async def create_review_comment(
        self,
        owner: str,
        repo: str,
        pr_number: int,
        comment: ReviewCommentRequest,
    ) -> GitHubComment:
        """Create an inline review comment on a pull request.

        Args:
            owner: Repository owner.
            repo: Repository name.
            pr_number: PR number.
            comment: Comment body and diff position.

        Returns:
            Created comment.
        """
        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls/{pr_number}/comments",
            json_data=comment.model_dump(exclude_none=True),
        )
        return GitHubComment.model_validate(data)
