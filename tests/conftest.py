"""Pytest configuration and shared fixtures.

This module provides an RSA key pair for app JWT signing, a builder for
``pull_request`` webhook payloads, and a helper that signs webhook
bodies the way GitHub does.
"""

import hashlib
import hmac
from collections.abc import Callable
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

WEBHOOK_SECRET = "test-webhook-secret"

# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_private_key() -> RSAPrivateKey:
    """RSA key pair standing in for the GitHub App key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key: RSAPrivateKey) -> bytes:
    """PKCS#1 PEM, the format GitHub issues app keys in."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def pkcs8_private_key_pem(rsa_private_key: RSAPrivateKey) -> bytes:
    """The same key in PKCS#8 form."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


# ---------------------------------------------------------------------------
# Webhook payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def webhook_secret() -> str:
    """Webhook secret shared by the app and the tests."""
    return WEBHOOK_SECRET


@pytest.fixture
def sign_body() -> Callable[[bytes, str], str]:
    """Return a function producing an ``X-Hub-Signature-256`` value."""

    def _sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
        digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return f"sha256={digest}"

    return _sign


@pytest.fixture
def make_pr_payload() -> Callable[..., dict[str, Any]]:
    """Return a builder for ``pull_request`` webhook payloads."""

    def _build(
        number: int = 42,
        action: str = "opened",
        author: str = "alice",
        draft: bool = False,
        fork: bool = False,
        owner: str = "octo-org",
        repo: str = "widgets",
        installation_id: int | None = 777,
    ) -> dict[str, Any]:
        base_repo = {
            "id": 1001,
            "name": repo,
            "full_name": f"{owner}/{repo}",
            "owner": {"id": 1, "login": owner, "type": "Organization"},
            "private": False,
            "fork": False,
            "default_branch": "main",
        }
        head_repo = dict(base_repo)
        if fork:
            head_repo = {
                "id": 2002,
                "name": repo,
                "full_name": f"{author}/{repo}",
                "owner": {"id": 2, "login": author, "type": "User"},
                "private": False,
                "fork": True,
            }

        payload: dict[str, Any] = {
            "action": action,
            "number": number,
            "pull_request": {
                "number": number,
                "title": "Add retry budget",
                "state": "open",
                "draft": draft,
                "user": {"id": 3, "login": author, "type": "User"},
                "head": {"ref": "feature/retry", "sha": "a1b2c3d4", "repo": head_repo},
                "base": {"ref": "main", "sha": "e5f6a7b8", "repo": base_repo},
            },
            "repository": base_repo,
            "sender": {"id": 3, "login": author},
        }
        if installation_id is not None:
            payload["installation"] = {"id": installation_id}
        return payload

    return _build
