"""
Mapping of domain error codes to HTTP responses. Clients get the code and a readable reason,
never exception text.
"""
from fastapi import Request
from fastapi.responses import JSONResponse
import logging

from storygate.services.errors import ErrorCode, StorageError

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    ErrorCode.INSUFFICIENT_FUNDS: 402,
    ErrorCode.DUPLICATE_TRANSACTION: 409,
    ErrorCode.UNKNOWN_PACKAGE: 404,
    ErrorCode.PROVIDER_TIMEOUT: 504,
    ErrorCode.STORAGE_FAILURE: 503,
}


def error_response(error: ErrorCode, message: str, **extra) -> JSONResponse:
    body = {"success": False, "error": error.value, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=STATUS_BY_ERROR.get(error, 400), content=body)


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(
        "request_storage_failure",
        extra={"path": request.url.path, "method": exc.operation, "status_code": 503},
    )
    return error_response(ErrorCode.STORAGE_FAILURE, "temporarily unavailable, retry")
