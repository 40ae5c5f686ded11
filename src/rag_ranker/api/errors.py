"""
Global Error Handling

Application-wide exception handlers for the HTTP service.

Design Goals
------------
- Map every RankError to a stable status code and machine-readable body
- Never leak internal exception details for unexpected failures
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple, Type

from fastapi import Request
from fastapi.responses import JSONResponse

from ..core.errors import (
    ConfigurationError,
    EmbeddingError,
    EmptyStoreError,
    InvalidDocumentError,
    InvalidQueryError,
    RankError,
    RetrievalError,
    UnknownStoreTypeError,
)

logger = logging.getLogger("rag_ranker.errors")


# First match wins, so subclasses must precede their bases.
STATUS_CODES: Tuple[Tuple[Type[RankError], int], ...] = (
    (InvalidDocumentError, 422),
    (InvalidQueryError, 422),
    (EmptyStoreError, 404),
    (EmbeddingError, 502),
    (ConfigurationError, 400),
    (UnknownStoreTypeError, 400),
)


def status_for(exc: RankError) -> int:
    """
    Resolve the HTTP status for a RankError.

    A RetrievalError takes the status of the error it wraps.
    """
    if isinstance(exc, RetrievalError) and isinstance(exc.cause, RankError):
        return status_for(exc.cause)

    for cls, code in STATUS_CODES:
        if isinstance(exc, cls):
            return code
    return 500


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def rank_error_handler(request: Request, exc: RankError) -> JSONResponse:
    """
    Render a RankError as ``{error, detail, metadata}``.
    """
    status_code = status_for(exc)
    logger.error(
        "%s on %s %s: %s",
        exc.code,
        request.method,
        request.url.path,
        exc.message,
    )

    body = exc.to_dict()
    payload: Dict[str, Any] = {
        "error": body["code"],
        "detail": body["message"],
        "metadata": body["metadata"],
    }
    return JSONResponse(status_code=status_code, content=payload)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }
    return JSONResponse(status_code=500, content=payload)
