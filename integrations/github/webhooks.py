"""GitHub webhook verification and parsing.

This module verifies the HMAC signature GitHub attaches to every
delivery, gates deliveries by event type and action, and turns a
``pull_request`` payload into a flat ``WebhookEvent``.
"""

import hashlib
import hmac
from typing import Any

import structlog

from .models import (
    CommitRef,
    PullRequestAction,
    WebhookEvent,
    WebhookEventType,
    WebhookPayload,
)

logger = structlog.get_logger(__name__)

SIGNATURE_PREFIX = "sha256="

SUPPORTED_EVENTS = frozenset({WebhookEventType.PULL_REQUEST.value})
SUPPORTED_ACTIONS = frozenset(action.value for action in PullRequestAction)


def verify_signature(
    payload: bytes | None,
    signature: str | None,
    secret: bytes | str | None,
) -> bool:
    """Verify a GitHub webhook HMAC-SHA256 signature.

    Never raises: missing inputs, a malformed header, and errors while
    computing the digest all count as a failed verification.

    Args:
        payload: Raw request body bytes.
        signature: The ``X-Hub-Signature-256`` header value (``sha256=<hex>``).
        secret: The webhook secret configured for the GitHub App.

    Returns:
        True if the signature matches, False otherwise.
    """
    if not payload or not signature or not secret:
        logger.warning("webhook_signature_missing_input")
        return False

    if not signature.startswith(SIGNATURE_PREFIX):
        logger.warning("webhook_signature_bad_format")
        return False

    try:
        key = secret.encode("utf-8") if isinstance(secret, str) else secret
        expected = hmac.new(key, payload, hashlib.sha256).hexdigest()
        provided = signature[len(SIGNATURE_PREFIX):]
        return hmac.compare_digest(
            expected.encode("ascii"),
            provided.encode("utf-8", errors="replace"),
        )
    except Exception as e:
        logger.error("webhook_signature_check_failed", error=str(e))
        return False


def is_supported_event(event_type: str | None) -> bool:
    """Check whether an ``X-GitHub-Event`` value leads to processing."""
    return event_type in SUPPORTED_EVENTS


def is_supported_action(action: str | None) -> bool:
    """Check whether a ``pull_request`` action leads to processing."""
    return action in SUPPORTED_ACTIONS


def parse_pull_request_event(raw_payload: dict[str, Any]) -> WebhookEvent:
    """Parse a ``pull_request`` webhook payload.

    Args:
        raw_payload: Decoded JSON body of the delivery.

    Returns:
        The flattened pull request event.

    Raises:
        pydantic.ValidationError: If required payload fields are malformed.
        ValueError: If the payload lacks the pull request or repository.
    """
    payload = WebhookPayload.model_validate(raw_payload)

    pr = payload.pull_request
    repo = payload.repository
    if pr is None:
        raise ValueError("Payload has no pull_request object")
    if repo is None:
        raise ValueError("Payload has no repository object")

    if repo.owner is not None:
        owner = repo.owner.login
    elif repo.full_name and "/" in repo.full_name:
        owner = repo.full_name.split("/", 1)[0]
    else:
        raise ValueError("Payload repository has no owner")

    head_repo = pr.head.repo
    return WebhookEvent(
        action=payload.action or "",
        pull_request_number=pr.number,
        repo_owner=owner,
        repo_name=repo.name,
        head_ref=CommitRef(ref=pr.head.ref, sha=pr.head.sha),
        is_draft=pr.draft,
        is_fork=head_repo is not None and head_repo.fork,
        author_login=pr.user.login,
        installation_id=payload.installation.id if payload.installation else None,
    )
