"""GitHub webhook endpoints.

This module receives GitHub App webhook deliveries, authenticates them,
decides whether the pull request deserves a review, and hands accepted
work to the background dispatcher. The response is returned as soon as
the task is queued.
"""

import json
from enum import Enum
from typing import Annotated

import structlog
from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api.dependencies import DispatcherDep, EligibilityFilterDep, ProcessorDep, SettingsDep
from core.dispatch import DispatchTask
from integrations.github.webhooks import (
    SUPPORTED_ACTIONS,
    SUPPORTED_EVENTS,
    is_supported_action,
    is_supported_event,
    parse_pull_request_event,
    verify_signature,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhook"])

WEBHOOK_PATH = "/webhook/github"


class WebhookStatus(str, Enum):
    """Outcome of a webhook delivery."""

    ACCEPTED = "accepted"
    IGNORED = "ignored"


class WebhookResponse(BaseModel):
    """Response body for a handled webhook delivery.

    Attributes:
        status: Whether the delivery was accepted or ignored.
        message: Human readable outcome.
        pr_number: Pull request number, as a string.
        action: The pull request action that was accepted.
        reason: Why an eligible-looking pull request was skipped.
    """

    status: WebhookStatus = Field(..., description="Delivery outcome")
    message: str = Field(..., description="Outcome message")
    pr_number: str | None = Field(None, description="Pull request number")
    action: str | None = Field(None, description="Pull request action")
    reason: str | None = Field(None, description="Skip reason")


class WebhookHealthResponse(BaseModel):
    """Response model for the webhook health check."""

    status: str = Field(..., description="Health status")
    service: str = Field(..., description="Service name")
    endpoint: str = Field(..., description="Webhook endpoint path")


class WebhookInfoResponse(BaseModel):
    """Response model describing the webhook endpoint."""

    endpoint: str = Field(..., description="Webhook endpoint path")
    method: str = Field(..., description="HTTP method")
    supported_events: list[str] = Field(..., description="Handled event types")
    supported_actions: list[str] = Field(..., description="Handled pull request actions")


def _ignored(message: str, **extra: str) -> WebhookResponse:
    logger.info("webhook_ignored", message=message, **extra)
    return WebhookResponse(status=WebhookStatus.IGNORED, message=message, **extra)


@router.post(
    "/github",
    response_model=WebhookResponse,
    response_model_exclude_none=True,
    summary="Receive GitHub webhook",
    description="Verify, filter and dispatch a GitHub webhook delivery.",
    responses={
        status.HTTP_401_UNAUTHORIZED: {"description": "Invalid signature"},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Processing failed"},
    },
)
async def handle_github_webhook(
    request: Request,
    settings: SettingsDep,
    eligibility: EligibilityFilterDep,
    processor: ProcessorDep,
    dispatcher: DispatcherDep,
    x_hub_signature_256: Annotated[str | None, Header()] = None,
    x_github_event: Annotated[str | None, Header()] = None,
) -> WebhookResponse | JSONResponse:
    """Handle a GitHub webhook delivery.

    The raw body is verified before anything else reads it. Unsupported
    events and actions, and pull requests the eligibility filter rejects,
    are acknowledged with an ``ignored`` status so GitHub does not retry.

    Args:
        request: The incoming request, used for its raw body.
        settings: Application settings holding the webhook secret.
        eligibility: Pull request eligibility filter.
        processor: Handler that performs the background work.
        dispatcher: Background task dispatcher.
        x_hub_signature_256: The ``sha256=<hex>`` signature header.
        x_github_event: The GitHub event type header.

    Returns:
        The delivery outcome, or an error response.
    """
    body = await request.body()

    if not verify_signature(body, x_hub_signature_256, settings.github_webhook_secret or ""):
        logger.warning("webhook_signature_invalid", github_event=x_github_event)
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Invalid signature"},
        )

    if not is_supported_event(x_github_event):
        return _ignored("Not a pull_request event")

    try:
        raw_payload = json.loads(body)
        action = raw_payload.get("action")
        if not is_supported_action(action):
            return _ignored(f"Action not supported: {action}")

        event = parse_pull_request_event(raw_payload)
        pr_number = str(event.pull_request_number)

        decision = eligibility.should_process(event)
        if not decision.accepted:
            return _ignored(
                f"PR skipped: {decision.reason}",
                reason=decision.reason,
                pr_number=pr_number,
            )

        task = DispatchTask(
            payload=event,
            handler=processor.process,
            name=f"{event.repo_full_name}#{pr_number}",
        )
        await dispatcher.submit(task)
    except Exception as e:
        logger.exception("webhook_processing_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": f"Failed to process webhook: {e}"},
        )

    logger.info(
        "webhook_accepted",
        repository=event.repo_full_name,
        pr_number=pr_number,
        action=event.action,
        task_id=task.id,
    )
    return WebhookResponse(
        status=WebhookStatus.ACCEPTED,
        message="Webhook received and processing started",
        pr_number=pr_number,
        action=event.action,
    )


@router.get(
    "/health",
    response_model=WebhookHealthResponse,
    summary="Webhook health check",
)
async def webhook_health(settings: SettingsDep) -> WebhookHealthResponse:
    """Report that the webhook endpoint is up."""
    return WebhookHealthResponse(
        status="healthy",
        service=settings.app_name,
        endpoint=WEBHOOK_PATH,
    )


@router.get(
    "/info",
    response_model=WebhookInfoResponse,
    summary="Webhook endpoint information",
)
async def webhook_info() -> WebhookInfoResponse:
    """Describe the webhook endpoint and what it handles."""
    return WebhookInfoResponse(
        endpoint=WEBHOOK_PATH,
        method="POST",
        supported_events=sorted(SUPPORTED_EVENTS),
        supported_actions=sorted(SUPPORTED_ACTIONS),
    )
