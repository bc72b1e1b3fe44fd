from __future__ import annotations

from dataclasses import dataclass
from typing import Any, MutableMapping

from azfunc_adapter.azure_function.collector import LogCollector
from azfunc_adapter.azure_function.errors import AdapterNotInstalledError

# Lives in scope["state"] so Starlette's request.state and mounted sub-apps see the same object.
STATE_KEY = "azure_invocation"

Scope = MutableMapping[str, Any]


@dataclass
class ResponseError:
    message: str
    type_name: str
    status_code: int | None = None

    @classmethod
    def from_exception(cls, exc: BaseException, status_code: int | None = None) -> ResponseError:
        detail = getattr(exc, "detail", None)
        message = detail if isinstance(detail, str) else str(exc) or repr(exc)
        return cls(message=message, type_name=f"{type(exc).__module__}.{type(exc).__qualname__}", status_code=status_code)


@dataclass
class InvocationContext:
    """Per-request state shared between the adapter, the pipeline and the error observer."""

    invocation_id: str
    collector: LogCollector
    inner_request: dict[str, Any] | None = None
    error: ResponseError | None = None
    # Run-once marker for ErrorObservingMiddleware.
    observed: bool = False


def _state(scope: Scope) -> MutableMapping[str, Any]:
    return scope.setdefault("state", {})


def get_invocation(scope: Scope) -> InvocationContext | None:
    state = scope.get("state")
    if not state:
        return None
    return state.get(STATE_KEY)


def has_run(scope: Scope) -> bool:
    return get_invocation(scope) is not None


def mark_run(scope: Scope, context: InvocationContext) -> None:
    _state(scope)[STATE_KEY] = context


def require_invocation(scope: Scope) -> InvocationContext:
    context = get_invocation(scope)
    if context is None:
        raise AdapterNotInstalledError("AzureFunctionMiddleware must be installed outside this component")
    return context


def record_error(scope: Scope, exc: BaseException, status_code: int | None = None) -> None:
    """Expose a structured error for ErrorObservingMiddleware. No-op outside an invocation."""

    context = get_invocation(scope)
    if context is not None:
        context.error = ResponseError.from_exception(exc, status_code=status_code)
