from typing import Any, Optional
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from .logger import get_logger

logger = get_logger(__name__)


# HTTPException that carries extra top-level fields next to "error"
class ApiError(HTTPException):
    def __init__(self, status_code: int, error: str, extra: Optional[dict[str, Any]] = None, headers: Optional[dict[str, str]] = None):
        super().__init__(status_code=status_code, detail=error, headers=headers)
        self.extra = extra or {}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body: dict[str, Any] = {"error": str(exc.detail)}
    if isinstance(exc, ApiError):
        body.update(exc.extra)
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.info(f"rejected {request.method} {request.url.path}: {details}")
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


# Renders every error as {"error": "..."} instead of FastAPI's {"detail": ...}
def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
