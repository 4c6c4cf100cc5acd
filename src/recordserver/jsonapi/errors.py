"""
Error translation for the JSON:API surface.

handle_error() is the only place where exceptions become HTTP statuses:

    RecordNotFoundError  -> 404
    ValidationError      -> 400
    UpstreamError        -> upstream status
    anything else        -> 500
"""

from __future__ import annotations

import logging
import uuid

from ..core.errors import RecordNotFoundError, UpstreamError, ValidationError
from ..source.base import Source
from .documents import ErrorObject, ErrorsDocument
from .handlers import JSONAPIResponse

logger = logging.getLogger(__name__)


def status_for(error: Exception) -> int:
    if isinstance(error, RecordNotFoundError):
        return 404
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, UpstreamError):
        return error.status_code
    return 500


async def handle_error(source: Source, error: Exception) -> JSONAPIResponse:
    """Build the error response for an exception raised while handling a request."""
    try:
        await source.clear_pending()
    except Exception as e:
        logger.warning(f"Failed to clear pending requests of '{source.name}': {e}")

    status = status_for(error)
    if status >= 500:
        logger.error(f"Unhandled error while processing request: {error}", exc_info=error)
    else:
        logger.info(f"Request failed with {status}: {error}")

    document = ErrorsDocument(errors=[
        ErrorObject(
            id=str(uuid.uuid4()),
            title=str(error) or type(error).__name__,
            detail=getattr(error, "description", "") or "",
            code=str(status),
        )
    ])
    return JSONAPIResponse(status=status, body=document.model_dump())
