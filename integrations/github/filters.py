"""Eligibility rules for pull requests and their files."""

from typing import NamedTuple

import structlog

from .models import FileStatus, WebhookEvent

logger = structlog.get_logger(__name__)

REASON_FORK = "fork"
REASON_DRAFT = "draft"
REASON_SELF_AUTHORED = "self-authored"

PROCESSABLE_FILE_STATUSES = frozenset({FileStatus.ADDED.value, FileStatus.MODIFIED.value})


class FilterDecision(NamedTuple):
    """Outcome of the pull request eligibility check."""

    accepted: bool
    reason: str = ""


class EligibilityFilter:
    """Decides whether a pull request event should be processed.

    Checks run in order and the first rejection wins:

    1. PRs whose head lives in a fork (installation tokens cannot act on them).
    2. Draft PRs.
    3. PRs authored by this app's bot account, so the bot never reacts
       to its own commits.
    """

    def __init__(self, bot_name: str) -> None:
        """Initialize the filter.

        Args:
            bot_name: App slug; the bot's login is ``<bot_name>[bot]``.
        """
        self.bot_login = f"{bot_name}[bot]"
        self._logger = logger.bind(component="eligibility_filter")

    def should_process(self, event: WebhookEvent) -> FilterDecision:
        """Check whether a pull request event is eligible.

        Args:
            event: Parsed pull request event.

        Returns:
            ``(True, "")`` if eligible, otherwise ``(False, reason)``.
        """
        if event.is_fork:
            decision = FilterDecision(False, REASON_FORK)
        elif event.is_draft:
            decision = FilterDecision(False, REASON_DRAFT)
        elif event.author_login == self.bot_login:
            decision = FilterDecision(False, REASON_SELF_AUTHORED)
        else:
            return FilterDecision(True)

        self._logger.info(
            "pull_request_filtered",
            repo=event.repo_full_name,
            pr_number=event.pull_request_number,
            reason=decision.reason,
        )
        return decision

    def should_process_file(self, status: str | None) -> bool:
        """Check whether a changed file is eligible for review comments.

        Only added and modified files qualify.
        """
        return status in PROCESSABLE_FILE_STATUSES
