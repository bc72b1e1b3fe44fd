from __future__ import annotations

from time import perf_counter
from typing import Any, Callable, Iterable

import structlog
from starlette.datastructures import MutableHeaders
from starlette.requests import ClientDisconnect

from azfunc_adapter.azure_function.collector import LogCollector
from azfunc_adapter.azure_function.context import InvocationContext, has_run, mark_run
from azfunc_adapter.azure_function.decoder import MISSING_INVOCATION_ID, decode_envelope
from azfunc_adapter.azure_function.encoder import encode_envelope, outer_headers, outward_status, select_headers
from azfunc_adapter.azure_function.errors import EnvelopeDecodeError
from azfunc_adapter.config import Settings, get_settings


logger = structlog.get_logger("azure_function")


async def _read_body(receive: Callable[..., Any]) -> bytes:
    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            raise ClientDisconnect()
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            return b"".join(chunks)


class AzureFunctionMiddleware:
    """Adapts an ASGI app to the Azure Functions custom handler protocol.

    The host POSTs a JSON invocation envelope and expects one back. This middleware
    unwraps the external request body from the envelope, runs the wrapped app once,
    and wraps its response together with the invocation's log trail::

        {"Outputs": {"res": {"statusCode": ..., "headers": {...}, "body": "..."}}, "Logs": [...]}

    The binding names in ``function.json`` must match the envelope paths, i.e. an
    ``httpTrigger`` input named ``req`` and an ``http`` output named ``res``.

    Safe to mount at several levels (e.g. on a parent app and a mounted sub-app): only
    the outermost instance transforms the request, inner ones pass straight through.
    """

    def __init__(
        self,
        app: Callable[..., Any],
        settings: Settings | None = None,
        exempt_paths: Iterable[str] = (),
    ) -> None:
        self.app = app
        self._settings = settings
        # Paths the host calls without an envelope, e.g. its liveness probe.
        self._exempt_paths = frozenset(exempt_paths)

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http" or has_run(scope) or scope.get("path") in self._exempt_paths:
            await self.app(scope, receive, send)
            return

        settings = self.settings
        headers = {name.decode("latin-1"): value.decode("latin-1") for name, value in scope.get("headers", [])}
        start = perf_counter()

        raw_body = await _read_body(receive)
        try:
            decoded = decode_envelope(raw_body, headers, settings)
        except EnvelopeDecodeError as exc:
            await self._reject(exc, headers, send, settings)
            return

        collector = LogCollector(decoded.invocation_id, decoded.diagnostics)
        mark_run(
            scope,
            InvocationContext(
                invocation_id=decoded.invocation_id,
                collector=collector,
                inner_request=decoded.inner_request,
            ),
        )
        structlog.contextvars.bind_contextvars(invocation_id=decoded.invocation_id)

        inner_body = raw_body
        if decoded.body is not None:
            inner_body = decoded.body
            MutableHeaders(scope=scope)["content-length"] = str(len(inner_body))
        body_replayed = False

        async def receive_wrapper() -> dict[str, Any]:
            nonlocal body_replayed
            if not body_replayed:
                body_replayed = True
                return {"type": "http.request", "body": inner_body, "more_body": False}
            return await receive()

        start_message: dict[str, Any] | None = None
        body_parts: list[bytes] = []

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal start_message
            if message["type"] == "http.response.start":
                start_message = message
            elif message["type"] == "http.response.body":
                body_parts.append(message.get("body", b""))
            else:
                await send(message)

        try:
            try:
                await self.app(scope, receive_wrapper, send_wrapper)
            except Exception as exc:
                # Nothing has gone out yet, so still answer with an envelope carrying the log
                # trail, then let the server see the error.
                logger.exception("azure_invocation_failed")
                await collector.append(f"Unhandled error. message: {exc!s}, error_type: {type(exc).__qualname__}")
                start_message = {"type": "http.response.start", "status": 500, "headers": []}
                body_parts = [b"Internal Server Error"]
                await self._respond(start_message, body_parts, collector, send, settings, start)
                raise

            if start_message is None:
                await collector.append("AzureFnMiddleware Error: the application did not send a response")
                start_message = {"type": "http.response.start", "status": 500, "headers": []}

            await self._respond(start_message, body_parts, collector, send, settings, start)
        finally:
            structlog.contextvars.unbind_contextvars("invocation_id")

    async def _respond(
        self,
        start_message: dict[str, Any],
        body_parts: list[bytes],
        collector: LogCollector,
        send: Callable[..., Any],
        settings: Settings,
        start: float,
    ) -> None:
        status_code = int(start_message.get("status", 500))
        raw_headers = list(start_message.get("headers", []))

        raw_body = b"".join(body_parts)
        try:
            body_text = raw_body.decode("utf-8")
        except UnicodeDecodeError as exc:
            # The envelope only carries text; bad bytes become U+FFFD.
            body_text = raw_body.decode("utf-8", errors="replace")
            await collector.append(
                f"AzureFnMiddleware Error: response body is not valid UTF-8 "
                f"({exc.reason} at byte {exc.start}), sent lossy"
            )

        # Raises CollectorOwnershipError if a shared handle outlived the pipeline; not caught.
        logs = collector.finalize()
        payload = encode_envelope(
            status_code,
            select_headers(raw_headers, settings.response_headers),
            body_text,
            logs,
            settings,
        )
        status_out = outward_status(status_code, settings)

        await send(
            {
                "type": "http.response.start",
                "status": status_out,
                "headers": outer_headers(raw_headers, len(payload)),
            }
        )
        await send({"type": "http.response.body", "body": payload, "more_body": False})

        logger.info(
            "azure_invocation",
            status_code=status_code,
            outward_status=status_out,
            log_lines=len(logs),
            elapsed_ms=round((perf_counter() - start) * 1000.0, 2),
        )

    async def _reject(
        self,
        exc: EnvelopeDecodeError,
        headers: dict[str, str],
        send: Callable[..., Any],
        settings: Settings,
    ) -> None:
        # Nothing can be recovered from the envelope, so only the header can name the invocation.
        invocation_id = MISSING_INVOCATION_ID
        if settings.invocation_id_source == "header":
            invocation_id = headers.get(settings.invocation_id_header.lower()) or MISSING_INVOCATION_ID

        collector = LogCollector(invocation_id)
        await collector.append(f"AzureFnMiddleware Error: {exc}")
        payload = encode_envelope(500, {}, "Internal Server Error", collector.finalize(), settings)

        logger.warning("azure_envelope_rejected", invocation_id=invocation_id, error=str(exc))
        await send(
            {
                "type": "http.response.start",
                "status": 500,
                "headers": outer_headers([], len(payload)),
            }
        )
        await send({"type": "http.response.body", "body": payload, "more_body": False})
