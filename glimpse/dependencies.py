"""FastAPI dependencies and the domain-error to HTTP mapping."""

from __future__ import annotations

import logging
from typing import Any, Tuple

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from .container import ServiceContainer
from .errors import GlimpseError, IsolationViolation, NotFound, NotPermitted, PolicyDenied, ValidationError
from .repositories.exceptions import RepositoryError, TransientStorageError

LOGGER = logging.getLogger("uvicorn.error")


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="service not ready")
    return container


async def require_account(
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> str:
    account_id = await container.auth.authenticate(request.headers)
    if not account_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authorization required")
    return account_id


def error_status(exc: Exception) -> Tuple[int, Any]:
    """HTTP status and ``detail`` body for a domain or storage error."""
    if isinstance(exc, PolicyDenied):
        return status.HTTP_400_BAD_REQUEST, exc.as_detail()
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST, str(exc)
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND, str(exc)
    if isinstance(exc, NotPermitted):
        return status.HTTP_409_CONFLICT, str(exc)
    if isinstance(exc, TransientStorageError):
        return status.HTTP_503_SERVICE_UNAVAILABLE, "storage temporarily unavailable"
    # IsolationViolation and anything unexpected: no detail leaves the process
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "internal error"


def install_error_handlers(app: FastAPI) -> None:
    async def _handle(request: Request, exc: Exception) -> ORJSONResponse:
        code, detail = error_status(exc)
        if isinstance(exc, IsolationViolation):
            LOGGER.error("Request %s %s aborted by isolation check", request.method, request.url.path)
        elif code >= 500:
            LOGGER.warning("Request %s %s failed: %r", request.method, request.url.path, exc)
        return ORJSONResponse(status_code=code, content={"detail": detail})

    async def _handle_invalid_request(request: Request, exc: RequestValidationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    app.add_exception_handler(GlimpseError, _handle)
    app.add_exception_handler(RepositoryError, _handle)
    app.add_exception_handler(RequestValidationError, _handle_invalid_request)


__all__ = ["error_status", "get_container", "install_error_handlers", "require_account"]
