"""Conversion of engine exceptions into structured HTTP error responses."""

import enum
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from possibilities.logging_config import get_request_id
from possibilities.model_providers.exceptions import (
    CredentialMissing,
    GenerationCancelled,
    GenerationFailed,
    ModelNotFound,
    PossibilityError,
    ProviderNotFound,
    UpstreamError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"
    CREDENTIAL_MISSING = "CREDENTIAL_MISSING"
    GENERATION_FAILED = "GENERATION_FAILED"
    GENERATION_CANCELLED = "GENERATION_CANCELLED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Most specific first
_STATUS_MAP: list[tuple[type, int, ErrorCode]] = [
    (ModelNotFound, 404, ErrorCode.MODEL_NOT_FOUND),
    (ProviderNotFound, 404, ErrorCode.PROVIDER_NOT_FOUND),
    (CredentialMissing, 401, ErrorCode.CREDENTIAL_MISSING),
    (GenerationCancelled, 504, ErrorCode.GENERATION_CANCELLED),
    (GenerationFailed, 502, ErrorCode.GENERATION_FAILED),
    (UpstreamError, 502, ErrorCode.GENERATION_FAILED),
]


def error_body(code: ErrorCode, message: str, request_id: Optional[str] = None) -> dict:
    body = {
        "error": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }
    if request_id:
        body["error"]["request_id"] = request_id
    return body


def status_for(exc: PossibilityError) -> tuple[int, ErrorCode]:
    for exc_type, status, code in _STATUS_MAP:
        if isinstance(exc, exc_type):
            return status, code
    return 500, ErrorCode.INTERNAL_ERROR


async def handle_possibility_error(request: Request, exc: PossibilityError) -> JSONResponse:
    status, code = status_for(exc)
    if status >= 500:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, status, exc)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, status, exc)
    return JSONResponse(status_code=status, content=error_body(code, str(exc), get_request_id()))
