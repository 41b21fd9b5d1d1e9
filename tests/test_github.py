"""Tests for GitHub integration module."""

import base64
import json
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx

from integrations.github.client import GitHubAuthClient, GitHubClient, GitHubClientConfig
from integrations.github.exceptions import (
    ContentDecodeError,
    GitHubAPIError,
    TokenAcquisitionError,
)
from integrations.github.filters import (
    REASON_DRAFT,
    REASON_FORK,
    REASON_SELF_AUTHORED,
    EligibilityFilter,
    FilterDecision,
)
from integrations.github.models import (
    CommitRef,
    FileStatus,
    GitHubFile,
    ReviewCommentRequest,
    WebhookEvent,
    WebhookEventType,
)
from integrations.github.processor import PullRequestProcessor
from integrations.github.webhooks import (
    is_supported_action,
    is_supported_event,
    parse_pull_request_event,
    verify_signature,
)

API = "https://api.github.com"

# =============================================================================
# Signature Verification Tests
# =============================================================================


class TestVerifySignature:
    """Tests for webhook HMAC verification."""

    BODY = b'{"action":"opened","number":42}'

    def test_valid_signature(self, sign_body: Callable[..., str], webhook_secret: str):
        """A signature computed with the shared secret verifies."""
        assert verify_signature(self.BODY, sign_body(self.BODY), webhook_secret) is True

    def test_bytes_secret(self, sign_body: Callable[..., str], webhook_secret: str):
        """The secret may be given as bytes."""
        assert verify_signature(self.BODY, sign_body(self.BODY), webhook_secret.encode())

    def test_any_body_byte_change_fails(self, sign_body: Callable[..., str], webhook_secret: str):
        """Flipping any single byte of the body breaks verification."""
        signature = sign_body(self.BODY)
        for i in range(len(self.BODY)):
            tampered = bytearray(self.BODY)
            tampered[i] ^= 0x01
            assert verify_signature(bytes(tampered), signature, webhook_secret) is False

    def test_wrong_secret_fails(self, sign_body: Callable[..., str], webhook_secret: str):
        """A signature made with another secret is rejected."""
        signature = sign_body(self.BODY, "other-secret")
        assert verify_signature(self.BODY, signature, webhook_secret) is False

    @pytest.mark.parametrize("signature", [None, "", "sha256="])
    def test_missing_signature_fails(self, signature: str | None, webhook_secret: str):
        """Absent or empty signatures are rejected."""
        assert verify_signature(self.BODY, signature, webhook_secret) is False

    @pytest.mark.parametrize("secret", [None, "", b""])
    def test_missing_secret_fails(self, secret: Any, sign_body: Callable[..., str]):
        """Verification never succeeds without a configured secret."""
        assert verify_signature(self.BODY, sign_body(self.BODY), secret) is False

    def test_empty_body_fails(self, sign_body: Callable[..., str], webhook_secret: str):
        """An empty body is rejected."""
        assert verify_signature(b"", sign_body(b""), webhook_secret) is False

    def test_sha1_prefix_fails(self, sign_body: Callable[..., str], webhook_secret: str):
        """The legacy sha1= header format is not accepted."""
        digest = sign_body(self.BODY).removeprefix("sha256=")
        assert verify_signature(self.BODY, f"sha1={digest}", webhook_secret) is False

    def test_non_ascii_signature_fails(self, webhook_secret: str):
        """Garbage in the header is a failed check, not an exception."""
        assert verify_signature(self.BODY, "sha256=ééé", webhook_secret) is False


class TestEventGates:
    """Tests for supported event and action checks."""

    def test_only_pull_request_event_supported(self):
        """Only pull_request deliveries are processed."""
        assert is_supported_event("pull_request")
        assert not is_supported_event("push")
        assert not is_supported_event("ping")
        assert not is_supported_event(None)

    def test_handled_event_types_are_pull_request_only(self):
        """The event enum lists only what the webhook route acts on."""
        assert [e.value for e in WebhookEventType] == ["pull_request"]
        assert not is_supported_event("installation")

    @pytest.mark.parametrize("action", ["opened", "synchronize"])
    def test_supported_actions(self, action: str):
        """Opened and synchronize lead to a review."""
        assert is_supported_action(action)

    @pytest.mark.parametrize("action", ["closed", "reopened", "edited", "labeled", None])
    def test_unsupported_actions(self, action: str | None):
        """Other actions are ignored."""
        assert not is_supported_action(action)


# =============================================================================
# Payload Parsing Tests
# =============================================================================


class TestParsePullRequestEvent:
    """Tests for flattening pull_request payloads."""

    def test_parses_core_fields(self, make_pr_payload: Callable[..., dict[str, Any]]):
        """The event carries the PR, repository, head and author."""
        event = parse_pull_request_event(make_pr_payload())

        assert event.action == "opened"
        assert event.pull_request_number == 42
        assert event.repo_owner == "octo-org"
        assert event.repo_name == "widgets"
        assert event.repo_full_name == "octo-org/widgets"
        assert event.head_ref == CommitRef(ref="feature/retry", sha="a1b2c3d4")
        assert event.author_login == "alice"
        assert event.is_draft is False
        assert event.is_fork is False
        assert event.installation_id == 777

    def test_detects_fork_from_head_repository(
        self, make_pr_payload: Callable[..., dict[str, Any]]
    ):
        """A head repository marked as a fork sets is_fork."""
        event = parse_pull_request_event(make_pr_payload(fork=True))
        assert event.is_fork is True

    def test_detects_draft(self, make_pr_payload: Callable[..., dict[str, Any]]):
        """Draft PRs are flagged."""
        assert parse_pull_request_event(make_pr_payload(draft=True)).is_draft is True

    def test_installation_is_optional(self, make_pr_payload: Callable[..., dict[str, Any]]):
        """Deliveries without an installation still parse."""
        event = parse_pull_request_event(make_pr_payload(installation_id=None))
        assert event.installation_id is None

    def test_owner_falls_back_to_full_name(
        self, make_pr_payload: Callable[..., dict[str, Any]]
    ):
        """Without an owner object the owner comes from full_name."""
        payload = make_pr_payload()
        del payload["repository"]["owner"]

        assert parse_pull_request_event(payload).repo_owner == "octo-org"

    def test_missing_pull_request_raises(self, make_pr_payload: Callable[..., dict[str, Any]]):
        """A payload without a pull_request object is invalid."""
        payload = make_pr_payload()
        del payload["pull_request"]

        with pytest.raises(ValueError, match="pull_request"):
            parse_pull_request_event(payload)

    def test_missing_repository_raises(self, make_pr_payload: Callable[..., dict[str, Any]]):
        """A payload without a repository object is invalid."""
        payload = make_pr_payload()
        del payload["repository"]

        with pytest.raises(ValueError, match="repository"):
            parse_pull_request_event(payload)


# =============================================================================
# Eligibility Filter Tests
# =============================================================================


def _event(**overrides: Any) -> WebhookEvent:
    fields: dict[str, Any] = {
        "action": "opened",
        "pull_request_number": 7,
        "repo_owner": "octo-org",
        "repo_name": "widgets",
        "head_ref": CommitRef(ref="feature", sha="abc123"),
        "author_login": "alice",
    }
    fields.update(overrides)
    return WebhookEvent(**fields)


class TestEligibilityFilter:
    """Tests for pull request and file eligibility."""

    @pytest.fixture
    def eligibility(self) -> EligibilityFilter:
        """Filter for the pr-review-bot app."""
        return EligibilityFilter("pr-review-bot")

    def test_regular_pull_request_accepted(self, eligibility: EligibilityFilter):
        """A non-fork, non-draft PR by a human is accepted."""
        assert eligibility.should_process(_event()) == FilterDecision(True, "")

    def test_fork_rejected(self, eligibility: EligibilityFilter):
        """Fork PRs are rejected."""
        assert eligibility.should_process(_event(is_fork=True)) == (False, REASON_FORK)

    def test_draft_rejected(self, eligibility: EligibilityFilter):
        """Draft PRs are rejected."""
        assert eligibility.should_process(_event(is_draft=True)) == (False, REASON_DRAFT)

    def test_self_authored_rejected(self, eligibility: EligibilityFilter):
        """PRs opened by the app's own bot account are rejected."""
        decision = eligibility.should_process(_event(author_login="pr-review-bot[bot]"))
        assert decision == (False, REASON_SELF_AUTHORED)

    def test_other_bots_accepted(self, eligibility: EligibilityFilter):
        """Only this app's bot is excluded."""
        assert eligibility.should_process(_event(author_login="dependabot[bot]")).accepted

    def test_fork_checked_before_draft(self, eligibility: EligibilityFilter):
        """The first failing check determines the reason."""
        decision = eligibility.should_process(
            _event(is_fork=True, is_draft=True, author_login="pr-review-bot[bot]")
        )
        assert decision.reason == REASON_FORK

    def test_draft_checked_before_author(self, eligibility: EligibilityFilter):
        """Draft wins over self-authored."""
        decision = eligibility.should_process(
            _event(is_draft=True, author_login="pr-review-bot[bot]")
        )
        assert decision.reason == REASON_DRAFT

    @pytest.mark.parametrize("status", [FileStatus.ADDED.value, FileStatus.MODIFIED.value])
    def test_added_and_modified_files_processed(
        self, eligibility: EligibilityFilter, status: str
    ):
        """Added and modified files are eligible for comments."""
        assert eligibility.should_process_file(status) is True

    @pytest.mark.parametrize("status", ["removed", "renamed", "copied", "changed", "", None])
    def test_other_file_statuses_skipped(
        self, eligibility: EligibilityFilter, status: str | None
    ):
        """Every other status is skipped."""
        assert eligibility.should_process_file(status) is False


# =============================================================================
# Processor Tests
# =============================================================================


class TestPullRequestProcessor:
    """Tests for background pull request processing."""

    @pytest.mark.asyncio
    async def test_selects_added_and_modified_files(self):
        """Only added and modified files end up in the result."""
        client = MagicMock(spec=GitHubClient)
        client.get_pull_request_files = AsyncMock(
            return_value=[
                GitHubFile(filename="src/new.py", status="added", additions=20),
                GitHubFile(filename="src/app.py", status="modified", additions=3, deletions=1),
                GitHubFile(filename="src/old.py", status="removed", deletions=40),
                GitHubFile(filename="src/moved.py", status="renamed"),
            ]
        )
        processor = PullRequestProcessor(client, EligibilityFilter("pr-review-bot"))

        result = await processor.process(_event(pull_request_number=42))

        client.get_pull_request_files.assert_awaited_once_with("octo-org", "widgets", 42)
        assert result.pr_number == 42
        assert result.repository == "octo-org/widgets"
        assert result.total_files == 4
        assert [f.filename for f in result.eligible_files] == ["src/new.py", "src/app.py"]

    @pytest.mark.asyncio
    async def test_pull_request_without_files(self):
        """An empty file list yields an empty result."""
        client = MagicMock(spec=GitHubClient)
        client.get_pull_request_files = AsyncMock(return_value=[])
        processor = PullRequestProcessor(client, EligibilityFilter("pr-review-bot"))

        result = await processor.process(_event())

        assert result.total_files == 0
        assert result.eligible_files == []

    @pytest.mark.asyncio
    async def test_api_errors_propagate(self):
        """Errors reach the dispatcher so the task is marked failed."""
        client = MagicMock(spec=GitHubClient)
        client.get_pull_request_files = AsyncMock(side_effect=GitHubAPIError(404, "Not Found"))
        processor = PullRequestProcessor(client, EligibilityFilter("pr-review-bot"))

        with pytest.raises(GitHubAPIError):
            await processor.process(_event())


# =============================================================================
# Client Tests
# =============================================================================


@pytest.fixture
def config() -> GitHubClientConfig:
    """Client config with the default API URL."""
    return GitHubClientConfig(user_agent="pr-review-bot")


@pytest.fixture
def tokens() -> MagicMock:
    """Installation token provider handing out a fixed token."""
    provider = MagicMock()
    provider.get_token = AsyncMock(return_value="ghs_installation")
    provider.invalidate = MagicMock()
    return provider


class TestGitHubAuthClient:
    """Tests for the JWT to installation token exchange."""

    @pytest.mark.asyncio
    async def test_exchange_success(self, config: GitHubClientConfig):
        """The JWT is sent as a bearer token with the GitHub headers."""
        with respx.mock(base_url=API) as mock:
            route = mock.post("/app/installations/777/access_tokens").mock(
                return_value=httpx.Response(
                    201,
                    json={"token": "ghs_new", "expires_at": "2026-03-14T13:00:00Z"},
                )
            )
            client = GitHubAuthClient(config)
            token = await client.create_installation_token("app.jwt.value", 777)
            await client.close()

        assert token.token == "ghs_new"
        assert token.expires_at.year == 2026
        headers = route.calls.last.request.headers
        assert headers["Authorization"] == "Bearer app.jwt.value"
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert headers["User-Agent"] == "pr-review-bot"

    @pytest.mark.asyncio
    async def test_exchange_rejected(self, config: GitHubClientConfig):
        """A non-2xx response raises TokenAcquisitionError with GitHub's message."""
        with respx.mock(base_url=API) as mock:
            mock.post("/app/installations/777/access_tokens").mock(
                return_value=httpx.Response(401, json={"message": "Bad credentials"})
            )
            client = GitHubAuthClient(config)
            with pytest.raises(TokenAcquisitionError, match="Bad credentials"):
                await client.create_installation_token("app.jwt.value", 777)
            await client.close()

    @pytest.mark.asyncio
    async def test_exchange_transport_error(self, config: GitHubClientConfig):
        """Connection failures raise TokenAcquisitionError."""
        with respx.mock(base_url=API) as mock:
            mock.post("/app/installations/777/access_tokens").mock(
                side_effect=httpx.ConnectError("connection refused")
            )
            client = GitHubAuthClient(config)
            with pytest.raises(TokenAcquisitionError):
                await client.create_installation_token("app.jwt.value", 777)
            await client.close()

    @pytest.mark.asyncio
    async def test_exchange_body_without_token(self, config: GitHubClientConfig):
        """A 2xx body lacking the token raises TokenAcquisitionError."""
        with respx.mock(base_url=API) as mock:
            mock.post("/app/installations/777/access_tokens").mock(
                return_value=httpx.Response(201, json={"expires_at": "2026-03-14T13:00:00Z"})
            )
            client = GitHubAuthClient(config)
            with pytest.raises(TokenAcquisitionError):
                await client.create_installation_token("app.jwt.value", 777)
            await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expires_at", ["next tuesday", "", None])
    async def test_exchange_unparsable_expiry(
        self, config: GitHubClientConfig, expires_at: str | None
    ):
        """A 2xx body whose expiry is not an ISO-8601 timestamp raises TokenAcquisitionError."""
        with respx.mock(base_url=API) as mock:
            mock.post("/app/installations/777/access_tokens").mock(
                return_value=httpx.Response(
                    201, json={"token": "ghs_new", "expires_at": expires_at}
                )
            )
            client = GitHubAuthClient(config)
            with pytest.raises(TokenAcquisitionError, match="unusable response"):
                await client.create_installation_token("app.jwt.value", 777)
            await client.close()

    @pytest.mark.asyncio
    async def test_exchange_non_json_body(self, config: GitHubClientConfig):
        """A 2xx body that is not JSON raises TokenAcquisitionError."""
        with respx.mock(base_url=API) as mock:
            mock.post("/app/installations/777/access_tokens").mock(
                return_value=httpx.Response(201, text="<html>oops</html>")
            )
            client = GitHubAuthClient(config)
            with pytest.raises(TokenAcquisitionError):
                await client.create_installation_token("app.jwt.value", 777)
            await client.close()


class TestGitHubClient:
    """Tests for installation-authenticated REST calls."""

    @pytest.mark.asyncio
    async def test_get_pull_request_files(self, config: GitHubClientConfig, tokens: MagicMock):
        """Changed files are fetched with the installation token."""
        with respx.mock(base_url=API) as mock:
            route = mock.get("/repos/octo-org/widgets/pulls/42/files").mock(
                return_value=httpx.Response(
                    200,
                    json=[
                        {
                            "sha": "f00",
                            "filename": "src/app.py",
                            "status": "modified",
                            "additions": 3,
                            "deletions": 1,
                            "changes": 4,
                            "patch": "@@ -1 +1 @@\n-a\n+b",
                        }
                    ],
                )
            )
            async with GitHubClient(config, tokens) as client:
                files = await client.get_pull_request_files("octo-org", "widgets", 42)

        assert len(files) == 1
        assert files[0].filename == "src/app.py"
        assert files[0].status == "modified"
        headers = route.calls.last.request.headers
        assert headers["Authorization"] == "Bearer ghs_installation"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_failure_invalidates_token(
        self, config: GitHubClientConfig, tokens: MagicMock, status_code: int
    ):
        """401 and 403 drop the token the call presented before raising."""
        with respx.mock(base_url=API) as mock:
            mock.get("/repos/octo-org/widgets/pulls/42/files").mock(
                return_value=httpx.Response(status_code, json={"message": "Bad credentials"})
            )
            async with GitHubClient(config, tokens) as client:
                with pytest.raises(GitHubAPIError) as exc_info:
                    await client.get_pull_request_files("octo-org", "widgets", 42)

        assert exc_info.value.status_code == status_code
        assert exc_info.value.message == "Bad credentials"
        tokens.invalidate.assert_called_once_with("ghs_installation")

    @pytest.mark.asyncio
    async def test_other_errors_keep_token(self, config: GitHubClientConfig, tokens: MagicMock):
        """A 404 raises without touching the token cache."""
        with respx.mock(base_url=API) as mock:
            mock.get("/repos/octo-org/widgets/pulls/42/files").mock(
                return_value=httpx.Response(404, json={"message": "Not Found"})
            )
            async with GitHubClient(config, tokens) as client:
                with pytest.raises(GitHubAPIError) as exc_info:
                    await client.get_pull_request_files("octo-org", "widgets", 42)

        assert exc_info.value.status_code == 404
        tokens.invalidate.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_file_content_decodes_wrapped_base64(
        self, config: GitHubClientConfig, tokens: MagicMock
    ):
        """Base64 content with embedded newlines decodes to text."""
        encoded = base64.b64encode(b"print('hello world')\n").decode()
        wrapped = "\n".join(encoded[i : i + 8] for i in range(0, len(encoded), 8)) + "\n"

        with respx.mock(base_url=API) as mock:
            route = mock.get("/repos/octo-org/widgets/contents/src/app.py").mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "type": "file",
                        "path": "src/app.py",
                        "encoding": "base64",
                        "content": wrapped,
                    },
                )
            )
            async with GitHubClient(config, tokens) as client:
                content = await client.get_file_content(
                    "octo-org", "widgets", "src/app.py", "feature/retry"
                )

        assert content == "print('hello world')\n"
        assert route.calls.last.request.url.params["ref"] == "feature/retry"

    @pytest.mark.asyncio
    async def test_get_file_content_without_content(
        self, config: GitHubClientConfig, tokens: MagicMock
    ):
        """Entries without content (e.g. submodules) yield an empty string."""
        with respx.mock(base_url=API) as mock:
            mock.get("/repos/octo-org/widgets/contents/vendor/lib").mock(
                return_value=httpx.Response(200, json={"type": "submodule", "path": "vendor/lib"})
            )
            async with GitHubClient(config, tokens) as client:
                content = await client.get_file_content("octo-org", "widgets", "vendor/lib", "main")

        assert content == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        ["!!!not-base64", base64.b64encode(b"\xff\xfe\xfa binary").decode()],
    )
    async def test_get_file_content_undecodable(
        self, config: GitHubClientConfig, tokens: MagicMock, content: str
    ):
        """Invalid base64 or non-UTF-8 bytes raise ContentDecodeError naming the path."""
        with respx.mock(base_url=API) as mock:
            mock.get("/repos/octo-org/widgets/contents/src/app.py").mock(
                return_value=httpx.Response(
                    200,
                    json={
                        "type": "file",
                        "path": "src/app.py",
                        "encoding": "base64",
                        "content": content,
                    },
                )
            )
            async with GitHubClient(config, tokens) as client:
                with pytest.raises(ContentDecodeError) as exc_info:
                    await client.get_file_content("octo-org", "widgets", "src/app.py", "main")

        assert exc_info.value.path == "src/app.py"
        assert not isinstance(exc_info.value, GitHubAPIError)
        tokens.invalidate.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_review_comment_omits_unset_fields(
        self, config: GitHubClientConfig, tokens: MagicMock
    ):
        """The request body carries only the fields that were set."""
        with respx.mock(base_url=API) as mock:
            route = mock.post("/repos/octo-org/widgets/pulls/42/comments").mock(
                return_value=httpx.Response(
                    201,
                    json={
                        "id": 9001,
                        "body": "Consider a timeout here.",
                        "path": "src/app.py",
                        "line": 12,
                    },
                )
            )
            async with GitHubClient(config, tokens) as client:
                comment = await client.create_review_comment(
                    "octo-org",
                    "widgets",
                    42,
                    ReviewCommentRequest(
                        body="Consider a timeout here.",
                        commit_id="a1b2c3d4",
                        path="src/app.py",
                        line=12,
                    ),
                )

        assert comment.id == 9001
        assert json.loads(route.calls.last.request.content) == {
            "body": "Consider a timeout here.",
            "commit_id": "a1b2c3d4",
            "path": "src/app.py",
            "line": 12,
            "side": "RIGHT",
        }

    @pytest.mark.asyncio
    async def test_injected_http_client_is_not_closed(
        self, config: GitHubClientConfig, tokens: MagicMock
    ):
        """close() leaves a caller-provided HTTP client open."""
        http_client = httpx.AsyncClient(base_url=API)
        client = GitHubClient(config, tokens, http_client=http_client)

        await client.close()

        assert http_client.is_closed is False
        await http_client.aclose()
