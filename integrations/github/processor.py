"""Background processing of accepted pull request events."""

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .client import GitHubClient
from .filters import EligibilityFilter
from .models import GitHubFile, WebhookEvent

logger = structlog.get_logger(__name__)


class ProcessingResult(BaseModel):
    """Summary of one processed pull request."""

    model_config = ConfigDict(frozen=True)

    pr_number: int = Field(..., description="PR number")
    repository: str = Field(..., description="Repository full name")
    total_files: int = Field(default=0, description="Files changed in the PR")
    eligible_files: list[GitHubFile] = Field(
        default_factory=list, description="Files eligible for review comments"
    )


class PullRequestProcessor:
    """Fetches a pull request's changed files and selects those to review.

    Review content generation is not part of this service; eligible
    files are logged for now. Errors propagate so the dispatcher records
    the task as failed.
    """

    def __init__(self, client: GitHubClient, eligibility: EligibilityFilter) -> None:
        self._client = client
        self._eligibility = eligibility
        self._logger = logger.bind(component="pull_request_processor")

    async def process(self, event: WebhookEvent) -> ProcessingResult:
        """Process one pull request event.

        Args:
            event: Verified and eligible pull request event.

        Returns:
            ProcessingResult listing the eligible files.
        """
        log = self._logger.bind(
            repo=event.repo_full_name,
            pr_number=event.pull_request_number,
            action=event.action,
        )
        log.info("pull_request_processing_started", head_sha=event.head_ref.sha)

        files = await self._client.get_pull_request_files(
            event.repo_owner, event.repo_name, event.pull_request_number
        )
        if not files:
            log.info("pull_request_has_no_files")
            return ProcessingResult(
                pr_number=event.pull_request_number,
                repository=event.repo_full_name,
            )

        eligible: list[GitHubFile] = []
        for file in files:
            if not self._eligibility.should_process_file(file.status):
                log.debug("file_skipped", filename=file.filename, status=file.status)
                continue
            eligible.append(file)
            log.info(
                "file_eligible",
                filename=file.filename,
                status=file.status,
                additions=file.additions,
                deletions=file.deletions,
            )

        log.info(
            "pull_request_processed",
            total_files=len(files),
            eligible_files=len(eligible),
        )
        return ProcessingResult(
            pr_number=event.pull_request_number,
            repository=event.repo_full_name,
            total_files=len(files),
            eligible_files=eligible,
        )
