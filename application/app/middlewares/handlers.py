from fastapi import FastAPI, Request, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from app.config.sentry import capture_exception, add_breadcrumb
from app.config.settings import GatewayConfigs
from app.logging.utils import get_app_logger
from app.middlewares.request_context import request_context

logger = get_app_logger(__name__)
configs = GatewayConfigs()

# DEBUG=false means production
DEBUG = configs.DEBUG


def _format_validation_errors(errors) -> dict:
    """One line per error: "field_path: error_message"."""
    error_messages = []
    for err in errors:
        field_path = " -> ".join(str(loc) for loc in err.get("loc", []))
        error_messages.append(f"{field_path}: {err.get('msg', 'Invalid input')}")
    if len(error_messages) == 1:
        return {"success": False, "message": error_messages[0]}
    return {"success": False, "message": "Validation errors", "errors": error_messages}


async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with production-safe messages."""
    request_context.module_name = 'middleware_handlers'
    logger.warning(f"validation_error | method={request.method} path={request.url.path} errors={len(exc.errors())}")

    add_breadcrumb(
        message=f"Validation error on {request.method} {request.url.path}",
        category="validation",
        level="warning",
    )

    if DEBUG:
        payload = _format_validation_errors(exc.errors())
    else:
        payload = {"success": False, "message": "Invalid request data"}
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=payload)


async def _general_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions with production-safe messages."""
    request_context.module_name = 'middleware_handlers'
    logger.error(
        f"unhandled_exception | method={request.method} path={request.url.path} exception_type={type(exc).__name__} exception_message={str(exc)}",
        exc_info=exc,
    )

    add_breadcrumb(
        message=f"Unhandled exception on {request.method} {request.url.path}",
        category="exception",
        level="error",
        data={"exception_type": type(exc).__name__},
    )
    capture_exception(exc)

    if DEBUG:
        payload = {"success": False, "message": f"Internal server error: {str(exc)}"}
    else:
        payload = {"success": False, "message": "Something went wrong"}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)


async def _http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with production-safe messages."""
    request_context.module_name = 'middleware_handlers'
    status_code = exc.status_code
    if status_code >= 500:
        logger.error(f"http_exception | method={request.method} path={request.url.path} status_code={status_code} detail={exc.detail}")
        add_breadcrumb(
            message=f"HTTP {status_code} error on {request.method} {request.url.path}",
            category="http",
            level="error",
            data={"status_code": status_code, "detail": exc.detail}
        )
        capture_exception(exc)
    else:
        logger.warning(f"http_exception | method={request.method} path={request.url.path} status_code={status_code} detail={exc.detail}")

    if DEBUG:
        message = exc.detail
    elif status_code == 404:
        message = "Resource not found"
    elif status_code == 405:
        message = "Method not allowed"
    elif 400 <= status_code < 500:
        message = "Invalid request"
    else:
        message = "Something went wrong"

    return JSONResponse(status_code=status_code, content={"success": False, "message": message}, headers=exc.headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the given FastAPI instance."""
    from starlette.exceptions import HTTPException as StarletteHTTPException

    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _general_exception_handler)
