import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class AppException(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ValidationFailed(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class NotFound(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class Forbidden(AppException):
    def __init__(self, message: str = "Access denied"):
        super().__init__(message, status_code=403)


class Conflict(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class RateLimited(AppException):
    def __init__(self, message: str = "Too many requests from this IP, please try again later."):
        super().__init__(message, status_code=429)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def _app_exception_handler(_: Request, exc: AppException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(_: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(_: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder({"success": False, "message": "Validation failed", "errors": errors}),
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        content = {"success": False, "message": "Internal server error"}
        if get_settings().ENVIRONMENT.lower() == "development":
            content["detail"] = str(exc)
        return JSONResponse(status_code=500, content=content)
