from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from azfunc_adapter.azure_function.collector import CollectorHandle
from azfunc_adapter.azure_function.context import InvocationContext, record_error, require_invocation


def current_invocation(request: Request) -> InvocationContext:
    return require_invocation(request.scope)


async def invocation_logger(request: Request) -> AsyncIterator[CollectorHandle]:
    """Borrow the invocation's log collector for the lifetime of a handler.

    Lines logged here show up in the envelope's ``Logs`` array, prefixed with the
    invocation id.
    """

    with require_invocation(request.scope).collector.share() as handle:
        yield handle


async def _record_http_exception(request: Request, exc: StarletteHTTPException) -> Response:
    record_error(request.scope, exc, status_code=exc.status_code)
    return await http_exception_handler(request, exc)


async def _record_validation_error(request: Request, exc: RequestValidationError) -> Response:
    record_error(request.scope, exc, status_code=422)
    return await request_validation_exception_handler(request, exc)


def install_error_recording(app: FastAPI) -> None:
    """Expose HTTPException / validation details to ErrorObservingMiddleware."""

    app.add_exception_handler(StarletteHTTPException, _record_http_exception)
    app.add_exception_handler(RequestValidationError, _record_validation_error)
