import structlog
from fastapi import HTTPException, status

from .errors import (
    ConflictError,
    NotFoundError,
    RetrievalError,
    ServiceError,
    ValidationError,
    WriteError,
)

logger = structlog.get_logger(__name__)

GENERIC_FAILURE = "Temporary failure, please try again later"


def to_http_exception(error: ServiceError) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, (RetrievalError, WriteError)):
        logger.error("request_failed", error_type=type(error).__name__, error=str(error))
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=GENERIC_FAILURE)
    logger.error("request_failed", error_type=type(error).__name__, error=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=GENERIC_FAILURE)
