"""Translation of integration errors into HTTP responses."""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from integrations.github.exceptions import (
    ConfigurationError,
    ContentDecodeError,
    GitHubAPIError,
    KeyFormatError,
    TokenAcquisitionError,
)

logger = structlog.get_logger(__name__)


async def _key_format_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("private_key_unusable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Invalid GitHub App private key", "message": str(exc)},
    )


async def _configuration_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("configuration_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Configuration error", "message": str(exc)},
    )


async def _token_acquisition_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("token_acquisition_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "Failed to obtain installation token", "message": str(exc)},
    )


async def _github_api_error(request: Request, exc: GitHubAPIError) -> JSONResponse:
    logger.error(
        "github_api_error",
        path=request.url.path,
        status=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "GitHub API error", "status": exc.status_code, "message": exc.message},
    )


async def _content_decode_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("github_content_undecodable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "Undecodable GitHub content", "message": str(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for integration errors escaping a route.

    Args:
        app: The FastAPI application.
    """
    app.add_exception_handler(KeyFormatError, _key_format_error)
    app.add_exception_handler(ConfigurationError, _configuration_error)
    app.add_exception_handler(TokenAcquisitionError, _token_acquisition_error)
    app.add_exception_handler(GitHubAPIError, _github_api_error)
    app.add_exception_handler(ContentDecodeError, _content_decode_error)
