from typing import Any, Dict

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ekko_server.models.results import ErrorInfo, OperationResult

STATUS_FOR_CODE: Dict[str, int] = {
    "bad_request": 400,
    "not_found": 404,
    "method_not_allowed": 405,
    "conflict": 409,
    "rate_limited": 429,
    "corrupt": 500,
    "internal_error": 500,
    "unavailable": 503,
    # soft failure: the like already exists, nothing was written
    "already_liked": 200,
}


def code_for_status(status: int) -> str:
    return {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "unprocessable_entity",
        429: "rate_limited",
        500: "internal_error",
        503: "unavailable",
    }.get(status, "error")


def result_response(result: OperationResult, success_status: int = 200) -> JSONResponse:
    if result.ok:
        status = success_status
    else:
        status = STATUS_FOR_CODE.get(result.error.code, 500)
    return JSONResponse(jsonable_encoder(result.model_dump(exclude_none=True)), status_code=status)


def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Error"
    details: Any = exc.detail if isinstance(exc.detail, dict) else None
    result = OperationResult(
        ok=False,
        error=ErrorInfo(code=code_for_status(exc.status_code), message=message, details=details),
    )
    return JSONResponse(result.model_dump(exclude_none=True), status_code=exc.status_code)


def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Normalize FastAPI/Pydantic 422 into 400 with consistent shape
    result = OperationResult.failure("bad_request", "Invalid request", {"errors": exc.errors()})
    return JSONResponse(jsonable_encoder(result.model_dump(exclude_none=True)), status_code=400)
