"""RFC 9457 Problem Details for every error the control surface returns."""

from typing import Callable, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..domain.errors import OwnerNotFoundError, RelayError, RevertedError, RpcError
from ..utils.logging_config import get_logger, log_exception

logger = get_logger('api')

_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}


class ProblemDetailsException(HTTPException):
    """Enhanced HTTPException that includes RFC 9457 Problem Details."""

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        **extra_fields,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.title = title
        self.type_uri = type_uri or f"https://httpstatuses.com/{status_code}"
        self.instance = instance
        self.extra_fields = extra_fields


def problem_response(
    status_code: int,
    title: str,
    detail: Optional[str] = None,
    type_uri: Optional[str] = None,
    instance: Optional[str] = None,
    **extra_fields,
) -> JSONResponse:
    """Create a JSON response in RFC 9457 Problem Details format."""
    problem = {
        "type": type_uri or f"https://httpstatuses.com/{status_code}",
        "title": title,
        "status": status_code,
    }

    if detail:
        problem["detail"] = detail
    if instance:
        problem["instance"] = instance

    problem.update(jsonable_encoder(extra_fields))

    return JSONResponse(
        status_code=status_code,
        content=problem,
        media_type="application/problem+json",
    )


def relay_error_status(exc: RelayError) -> int:
    """HTTP status for a relay error raised while serving a request."""
    if isinstance(exc, OwnerNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (RpcError, RevertedError)):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_503_SERVICE_UNAVAILABLE


async def _problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    return problem_response(
        status_code=exc.status_code,
        title=exc.title,
        detail=exc.detail,
        type_uri=exc.type_uri,
        instance=exc.instance or str(request.url),
        **exc.extra_fields,
    )


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return problem_response(
        status_code=exc.status_code,
        title=_TITLES.get(exc.status_code, "HTTP Error"),
        detail=str(exc.detail) if exc.detail else None,
        instance=str(request.url),
    )


async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return problem_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        title="Validation Error",
        detail="Request validation failed",
        instance=str(request.url),
        errors=exc.errors(),
    )


async def _relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    status_code = relay_error_status(exc)
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
    return problem_response(
        status_code=status_code,
        title=_TITLES.get(status_code, "HTTP Error"),
        detail=str(exc),
        instance=str(request.url),
        error_type=type(exc).__name__,
    )


def install_problem_handlers(app: FastAPI) -> None:
    """Register problem-details exception handlers on the app."""
    app.add_exception_handler(ProblemDetailsException, _problem_details_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_handler)
    app.add_exception_handler(RelayError, _relay_error_handler)


class ProblemDetailsMiddleware(BaseHTTPMiddleware):
    """Turn anything the handlers did not catch into a 500 problem response."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            log_exception('api', exc, {"method": request.method, "path": request.url.path})
            return problem_response(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                title="Internal Server Error",
                detail="An unexpected error occurred",
                instance=str(request.url),
            )
