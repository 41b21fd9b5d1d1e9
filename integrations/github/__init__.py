"""GitHub App integration.

This module provides the trust boundary between GitHub and the service:
- App JWT signing and installation token caching
- Webhook signature verification and payload parsing
- Pull request eligibility filtering
- REST client and background pull request processing
"""

from .auth import KeySigner, parse_private_key
from .client import GitHubAuthClient, GitHubClient, GitHubClientConfig
from .exceptions import (
    ConfigurationError,
    ContentDecodeError,
    GitHubAPIError,
    GitHubIntegrationError,
    KeyFormatError,
    TokenAcquisitionError,
)
from .filters import EligibilityFilter, FilterDecision
from .models import (
    AppCredentials,
    CommitRef,
    FileStatus,
    GitHubFile,
    InstallationToken,
    ReviewCommentRequest,
    SignedAssertion,
    WebhookEvent,
    WebhookPayload,
)
from .processor import ProcessingResult, PullRequestProcessor
from .tokens import InstallationTokenCache
from .webhooks import (
    SUPPORTED_ACTIONS,
    is_supported_action,
    is_supported_event,
    parse_pull_request_event,
    verify_signature,
)

__all__ = [
    # Auth
    "KeySigner",
    "parse_private_key",
    "InstallationTokenCache",
    # Client
    "GitHubAuthClient",
    "GitHubClient",
    "GitHubClientConfig",
    # Errors
    "GitHubIntegrationError",
    "ConfigurationError",
    "KeyFormatError",
    "TokenAcquisitionError",
    "GitHubAPIError",
    "ContentDecodeError",
    # Models
    "AppCredentials",
    "CommitRef",
    "FileStatus",
    "GitHubFile",
    "InstallationToken",
    "ReviewCommentRequest",
    "SignedAssertion",
    "WebhookEvent",
    "WebhookPayload",
    # Webhooks
    "SUPPORTED_ACTIONS",
    "is_supported_action",
    "is_supported_event",
    "parse_pull_request_event",
    "verify_signature",
    # Processing
    "EligibilityFilter",
    "FilterDecision",
    "ProcessingResult",
    "PullRequestProcessor",
]
