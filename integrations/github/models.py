"""Pydantic models for the GitHub App integration.

This module defines the credential and token records owned by the auth
layer, the webhook payload shapes received from GitHub, the flattened
pull request event handed to the dispatcher, and the REST response and
request bodies used by the GitHub client.

Payload and response models ignore unknown keys so new fields added by
GitHub do not break parsing.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class WebhookEventType(str, Enum):
    """Handled GitHub webhook event types (``X-GitHub-Event`` header)."""

    PULL_REQUEST = "pull_request"


class PullRequestAction(str, Enum):
    """Pull request actions that lead to processing."""

    OPENED = "opened"
    SYNCHRONIZE = "synchronize"


class FileStatus(str, Enum):
    """File change status in a pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


# ---------------------------------------------------------------------------
# Credentials and tokens
# ---------------------------------------------------------------------------


class AppCredentials(BaseModel):
    """Immutable GitHub App credentials loaded from configuration."""

    model_config = ConfigDict(frozen=True)

    app_id: int = Field(..., description="GitHub App ID")
    installation_id: int = Field(..., description="Configured installation ID")
    private_key_pem: bytes = Field(..., repr=False, description="PEM private key")


class SignedAssertion(BaseModel):
    """A signed, short-lived JWT used to authenticate as the app."""

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., repr=False, description="Encoded JWT")
    issued_at: datetime = Field(..., description="iat claim")
    expires_at: datetime = Field(..., description="exp claim")


class InstallationToken(BaseModel):
    """Installation access token returned by the token exchange endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    token: str = Field(..., min_length=1, repr=False, description="Access token")
    expires_at: datetime = Field(..., description="Upstream expiry (ISO-8601)")


# ---------------------------------------------------------------------------
# Webhook payload
# ---------------------------------------------------------------------------


class GitHubUser(BaseModel):
    """GitHub user as it appears in webhook payloads."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int | None = Field(None, description="User ID")
    login: str = Field(..., description="Username")
    type: str | None = Field(None, description="User, Bot or Organization")


class GitHubRepository(BaseModel):
    """GitHub repository as it appears in webhook payloads."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int | None = Field(None, description="Repository ID")
    name: str = Field(..., description="Repository name")
    full_name: str | None = Field(None, description="Full name (owner/repo)")
    owner: GitHubUser | None = Field(None, description="Repository owner")
    private: bool = Field(default=False, description="Is private repository")
    fork: bool = Field(default=False, description="Is a fork")
    default_branch: str | None = Field(None, description="Default branch")


class GitHubBranch(BaseModel):
    """Head or base reference of a pull request."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ref: str = Field(..., description="Branch name")
    sha: str = Field(..., description="Commit SHA")
    repo: GitHubRepository | None = Field(None, description="Repository holding the ref")


class GitHubPullRequest(BaseModel):
    """Pull request object from a ``pull_request`` webhook payload."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    number: int = Field(..., description="PR number")
    title: str | None = Field(None, description="PR title")
    state: str | None = Field(None, description="open or closed")
    draft: bool = Field(default=False, description="Is a draft")
    user: GitHubUser = Field(..., description="PR author")
    head: GitHubBranch = Field(..., description="Head branch")
    base: GitHubBranch | None = Field(None, description="Base branch")


class GitHubInstallationRef(BaseModel):
    """Installation reference carried by app webhook deliveries."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., description="Installation ID")


class WebhookPayload(BaseModel):
    """Raw ``pull_request`` webhook payload."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    action: str | None = Field(None, description="Webhook action")
    pull_request: GitHubPullRequest | None = Field(None, description="Pull request")
    repository: GitHubRepository | None = Field(None, description="Repository")
    installation: GitHubInstallationRef | None = Field(None, description="Installation")
    sender: GitHubUser | None = Field(None, description="Event sender")


class CommitRef(BaseModel):
    """A branch name pinned to a commit."""

    model_config = ConfigDict(frozen=True)

    ref: str = Field(..., description="Branch name")
    sha: str = Field(..., description="Commit SHA")


class WebhookEvent(BaseModel):
    """Flattened pull request event derived from a verified payload."""

    model_config = ConfigDict(frozen=True)

    action: str = Field(..., description="Webhook action")
    pull_request_number: int = Field(..., description="PR number")
    repo_owner: str = Field(..., description="Repository owner login")
    repo_name: str = Field(..., description="Repository name")
    head_ref: CommitRef = Field(..., description="PR head")
    is_draft: bool = Field(default=False, description="PR is a draft")
    is_fork: bool = Field(default=False, description="PR head lives in a fork")
    author_login: str = Field(..., description="PR author login")
    installation_id: int | None = Field(None, description="Delivering installation")

    @property
    def repo_full_name(self) -> str:
        """Repository in ``owner/name`` form."""
        return f"{self.repo_owner}/{self.repo_name}"


# ---------------------------------------------------------------------------
# REST bodies
# ---------------------------------------------------------------------------


class GitHubFile(BaseModel):
    """File changed in a pull request."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    filename: str = Field(..., description="File path")
    status: str = Field(..., description="Change status")
    additions: int = Field(default=0, description="Lines added")
    deletions: int = Field(default=0, description="Lines deleted")
    changes: int = Field(default=0, description="Total changes")
    patch: str | None = Field(None, description="Diff patch")
    raw_url: str | None = Field(None, description="Raw content URL")
    previous_filename: str | None = Field(None, description="Previous name if renamed")


class FileContent(BaseModel):
    """Response of the repository contents endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str | None = Field(None, description="File name")
    path: str | None = Field(None, description="File path")
    sha: str | None = Field(None, description="Blob SHA")
    size: int | None = Field(None, description="Size in bytes")
    type: str | None = Field(None, description="file, dir, symlink or submodule")
    encoding: str | None = Field(None, description="Content encoding")
    content: str | None = Field(None, description="Encoded content")


class ReviewCommentRequest(BaseModel):
    """Body for creating an inline review comment."""

    model_config = ConfigDict(frozen=True)

    body: str = Field(..., description="Comment text")
    commit_id: str = Field(..., description="Commit SHA the comment applies to")
    path: str = Field(..., description="File path")
    line: int = Field(..., ge=1, description="Last line of the commented range")
    side: str = Field(default="RIGHT", description="LEFT or RIGHT")
    start_line: int | None = Field(None, ge=1, description="First line of a range")
    start_side: str | None = Field(None, description="Side of start_line")


class GitHubComment(BaseModel):
    """Review comment returned by GitHub."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(..., description="Comment ID")
    body: str = Field(default="", description="Comment body")
    path: str | None = Field(None, description="File path")
    line: int | None = Field(None, description="Line number")
    side: str | None = Field(None, description="Side of diff")
    commit_id: str | None = Field(None, description="Commit SHA")
    html_url: str | None = Field(None, description="Comment URL")
