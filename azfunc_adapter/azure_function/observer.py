from __future__ import annotations

from http import HTTPStatus
from time import perf_counter
from typing import Any, Callable, Iterable

import structlog

from azfunc_adapter.azure_function.context import ResponseError, require_invocation


def format_status(status_code: int) -> str:
    try:
        reason = HTTPStatus(status_code).phrase
    except ValueError:
        reason = "Unknown"
    return f"{status_code} - {reason}"


def format_error_line(status_code: int, elapsed_ms: float, error: ResponseError | None) -> str | None:
    """Diagnostic line for a 4xx/5xx response, or None for anything else."""

    if 500 <= status_code < 600:
        prefix = "Internal error."
    elif 400 <= status_code < 500:
        prefix = "Client error."
    else:
        return None

    detail = f"status: {format_status(status_code)}, duration: {elapsed_ms:.2f}ms"
    if error is None:
        return f"{prefix} {detail}"
    return f"{prefix} message: {error.message!r}, error_type: {error.type_name!r}, {detail}"


class ErrorObservingMiddleware:
    """Appends a diagnostic line to the invocation log for client and server errors.

    Must sit inside AzureFunctionMiddleware. Never changes the status or body it observes;
    an unhandled exception is turned into a plain 500 response so the adapter can still
    encode it.
    """

    def __init__(self, app: Callable[..., Any], exempt_paths: Iterable[str] = ()) -> None:
        self.app = app
        self._exempt_paths = frozenset(exempt_paths)

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http" or scope.get("path") in self._exempt_paths:
            await self.app(scope, receive, send)
            return

        context = require_invocation(scope)
        if context.observed:
            await self.app(scope, receive, send)
            return
        context.observed = True

        start = perf_counter()
        status_code: int = 500
        response_started = False

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code, response_started
            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                response_started = True
            await send(message)

        with context.collector.share() as handle:
            try:
                await self.app(scope, receive, send_wrapper)
            except Exception as exc:
                if response_started:
                    raise
                structlog.get_logger("azure_function").exception(
                    "unhandled_application_error",
                    error_type=type(exc).__qualname__,
                )
                context.error = ResponseError.from_exception(exc, status_code=500)
                status_code = 500
                await send(
                    {
                        "type": "http.response.start",
                        "status": 500,
                        "headers": [(b"content-type", b"text/plain; charset=utf-8")],
                    }
                )
                await send({"type": "http.response.body", "body": b"Internal Server Error", "more_body": False})

            elapsed_ms = (perf_counter() - start) * 1000.0
            line = format_error_line(status_code, elapsed_ms, context.error)
            if line is not None:
                await handle.log(line)
