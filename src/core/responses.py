from typing import Any, Optional

import structlog
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


log = structlog.get_logger()


class ApiError(HTTPException):
    """HTTPException que também carrega um payload `data` no envelope."""

    def __init__(self, status_code: int, message: str, data: Optional[Any] = None):
        super().__init__(status_code=status_code, detail=message)
        self.data = data


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    body: dict = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def failure(status_code: int, message: str, data: Any = None) -> JSONResponse:
    body: dict = {"success": False, "message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


async def http_exception_handler(request: Request, exc: HTTPException):
    return failure(exc.status_code, str(exc.detail), getattr(exc, "data", None))


def validation_message(errors) -> str:
    # "fullName: Field required; age: Input should be greater than 0"
    reasons = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc)
        reasons.append(f"{field}: {err.get('msg')}" if field else err.get("msg", "Invalid request"))
    return "; ".join(reasons) or "Invalid request"


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    message = validation_message(exc.errors())
    log.info("request.invalid", path=request.url.path, reason=message)
    return failure(400, message)
