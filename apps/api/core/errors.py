"""Translate service outcomes into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from apps.api.services.errors import ForbiddenError, HelpdeskError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def status_code_for(error: HelpdeskError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ForbiddenError):
        return 403
    if isinstance(error, ValidationError):
        return 400
    return 500


async def handle_helpdesk_error(request: Request, exc: HelpdeskError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.warning(
        "Request rejected. method=%s path=%s status=%s reason=%s",
        request.method,
        request.url.path,
        status_code,
        exc,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc) or exc.user_message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HelpdeskError, handle_helpdesk_error)  # type: ignore[arg-type]
