"""Azure Functions custom handler adapter.

``AzureFunctionMiddleware`` turns the host's JSON invocation envelope into a plain HTTP
request for the wrapped app and wraps the app's response (plus the invocation's log
trail) back into an envelope. ``ErrorObservingMiddleware`` adds a log line for 4xx/5xx
responses. Handlers log to the host through the ``invocation_logger`` dependency.
"""

from azfunc_adapter.azure_function.collector import CollectorHandle, LogCollector
from azfunc_adapter.azure_function.context import (
    InvocationContext,
    ResponseError,
    get_invocation,
    has_run,
    mark_run,
    record_error,
    require_invocation,
)
from azfunc_adapter.azure_function.decoder import MISSING_INVOCATION_ID, DecodedEnvelope, decode_envelope
from azfunc_adapter.azure_function.encoder import build_envelope, encode_envelope
from azfunc_adapter.azure_function.errors import (
    AdapterNotInstalledError,
    CollectorFinalizedError,
    CollectorOwnershipError,
    EnvelopeDecodeError,
)
from azfunc_adapter.azure_function.middleware import AzureFunctionMiddleware
from azfunc_adapter.azure_function.observer import ErrorObservingMiddleware

__all__ = [
    "AdapterNotInstalledError",
    "AzureFunctionMiddleware",
    "CollectorFinalizedError",
    "CollectorHandle",
    "CollectorOwnershipError",
    "DecodedEnvelope",
    "EnvelopeDecodeError",
    "ErrorObservingMiddleware",
    "InvocationContext",
    "LogCollector",
    "MISSING_INVOCATION_ID",
    "ResponseError",
    "build_envelope",
    "decode_envelope",
    "encode_envelope",
    "get_invocation",
    "has_run",
    "mark_run",
    "record_error",
    "require_invocation",
]
