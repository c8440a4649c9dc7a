"""
Error responses of the conversation API.

Every failure reaches the messaging pages as the same envelope:

    {"error": {"code": "MESSAGES_UNAVAILABLE", "message": "...", "status_code": 502}}

``code`` is the ``error_code`` of the raised ``BaseAppException`` (for example
``MISSING_TOKEN``, ``RESOURCE_NOT_FOUND``, ``VALIDATION_ERROR_CONTENT``,
``SEND_FAILED``), so the UI can branch on it without parsing messages.
"""

import logging
from typing import Any, Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse

from portal_messaging.core.exceptions import BaseAppException

logger = logging.getLogger(__name__)


def error_body(code: str, message: str, status_code: int) -> Dict[str, Any]:
    return {"error": {"code": code, "message": message, "status_code": status_code}}


async def base_exception_handler(
    request: Request, exc: BaseAppException
) -> JSONResponse:
    """Render a domain error with its own status and code.

    Client mistakes (missing token, unknown conversation, invalid message)
    are logged at WARNING; employment-service failures (502) at ERROR.
    """
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "%s %s failed with %s: %s",
        request.method,
        request.url.path,
        exc.error_code,
        exc.detail,
        extra={"error_code": exc.error_code, "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, exc.detail, exc.status_code),
        headers=exc.headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer 500 INTERNAL_SERVER_ERROR; the traceback only goes to the log."""
    logger.exception(
        "Unhandled %s on %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            "INTERNAL_SERVER_ERROR",
            "An unexpected error occurred",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ),
    )
