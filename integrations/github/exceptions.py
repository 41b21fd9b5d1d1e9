"""Error taxonomy for the GitHub App integration.

Signature verification failures are not represented here: verification
returns a boolean and the webhook route turns ``False`` into a 401.
"""


class GitHubIntegrationError(Exception):
    """Base class for all GitHub integration errors."""


class ConfigurationError(GitHubIntegrationError):
    """Required app configuration is missing or unreadable."""


class KeyFormatError(GitHubIntegrationError):
    """The app private key is not a parsable PEM RSA key.

    A bad key cannot become valid, so callers must not retry.
    """


class TokenAcquisitionError(GitHubIntegrationError):
    """An installation access token could not be obtained."""


class GitHubAPIError(GitHubIntegrationError):
    """A GitHub REST call returned a non-success status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"GitHub API returned {status_code}: {message}")
        self.status_code = status_code
        self.message = message

    @property
    def is_auth_failure(self) -> bool:
        """Whether the failure means the presented token was rejected."""
        return self.status_code in (401, 403)


class ContentDecodeError(GitHubIntegrationError):
    """GitHub returned file content that could not be decoded to text."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Could not decode content of {path}: {message}")
        self.path = path
