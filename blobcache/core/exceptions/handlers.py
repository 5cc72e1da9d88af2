from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
import traceback
from blobcache.core.responses import send_error
from blobcache.storage.errors import CacheError
from blobcache.utils.logging import get_logger


def register_exception_handlers(app):
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger = get_logger()
        logger.error(
            f"Unhandled exception for {request.method} {request.url}: {exc}\n"
            f"Traceback: {traceback.format_exc()}\n"
            f"User-Agent: {request.headers.get('user-agent')}"
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=send_error(
                message="An unexpected error occurred.",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            ).model_dump(),
        )

    @app.exception_handler(CacheError)
    async def cache_exception_handler(request: Request, exc: CacheError):
        logger = get_logger()
        if exc.status_code < 500:
            logger.info(
                f"{request.method} {request.url.path} - {exc.message.lower()}"
            )
        else:
            logger.error(
                f"{request.method} {request.url.path} - {exc.message.lower()}: "
                f"{exc.__cause__ or exc}"
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=send_error(
                message=exc.message,
                data={"key": exc.key} if exc.key else None,
                status_code=exc.status_code,
            ).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger = get_logger()
        raw_errors = exc.errors()
        logger.warning(
            f"Validation error for {request.method} {request.url}: {raw_errors}"
        )

        friendly_errors = {}
        for error in raw_errors:
            field = ".".join(map(str, error["loc"]))
            friendly_errors[field] = error["msg"]

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=send_error(
                message="Validation failed",
                data={"errors": friendly_errors},
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            ).model_dump(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger = get_logger()
        logger.warning(
            f"HTTP {exc.status_code} for {request.method} {request.url}: {exc.detail}"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=send_error(
                message=exc.detail, status_code=exc.status_code
            ).model_dump(),
            headers=getattr(exc, "headers", None),
        )
