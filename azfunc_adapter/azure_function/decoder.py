from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from azfunc_adapter.azure_function.errors import EnvelopeDecodeError
from azfunc_adapter.config import Settings

MISSING_INVOCATION_ID = "(id missing)"

_MISSING = object()


@dataclass(frozen=True)
class DecodedEnvelope:
    invocation_id: str
    # Replacement body for the downstream request; None keeps the outer body.
    body: bytes | None
    diagnostics: list[str] = field(default_factory=list)
    inner_request: dict[str, Any] | None = None


def _unescape(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def resolve_pointer(document: Any, pointer: str) -> tuple[bool, Any]:
    """Resolve an RFC 6901 JSON pointer. Returns (found, value)."""

    if pointer == "":
        return True, document

    current = document
    for raw in pointer[1:].split("/"):
        token = _unescape(raw)
        if isinstance(current, dict):
            current = current.get(token, _MISSING)
        elif isinstance(current, list) and token.isdigit():
            index = int(token)
            current = current[index] if index < len(current) else _MISSING
        else:
            return False, None
        if current is _MISSING:
            return False, None
    return True, current


def _parent_pointer(pointer: str) -> str:
    return pointer.rsplit("/", 1)[0] if "/" in pointer else ""


def _header(headers: Mapping[str, str], name: str) -> str | None:
    target = name.lower()
    value = None
    for key, val in headers.items():
        if key.lower() == target:
            value = val
    return value


def _invocation_id(payload: Any, headers: Mapping[str, str], settings: Settings) -> str:
    if settings.invocation_id_source == "header":
        value: Any = _header(headers, settings.invocation_id_header)
    else:
        found, value = resolve_pointer(payload, settings.invocation_id_pointer)
        if not found or isinstance(value, (dict, list)):
            value = None

    if value is None or value == "":
        return MISSING_INVOCATION_ID
    return value if isinstance(value, str) else json.dumps(value)


def _diagnostic(pointer: str, problem: str) -> str:
    return f'AzureFnMiddleware Error: "{pointer}" {problem}, check function.json'


def decode_envelope(body: bytes, headers: Mapping[str, str], settings: Settings) -> DecodedEnvelope:
    """Decode the host's invocation envelope into the inner request body and invocation id.

    Only malformed JSON is fatal. A missing id or a missing/mistyped inner body is reported as
    a diagnostic line and the request continues with a fallback value.
    """

    try:
        payload = json.loads(body or b"")
    except (UnicodeDecodeError, ValueError) as exc:
        raise EnvelopeDecodeError(f"invocation envelope is not valid JSON: {exc}") from exc

    invocation_id = _invocation_id(payload, headers, settings)
    pointer = settings.request_body_pointer
    diagnostics: list[str] = []
    inner_body: bytes | None = None

    found, value = resolve_pointer(payload, pointer)
    if not found:
        diagnostics.append(_diagnostic(pointer, "not found"))
    elif settings.request_body_format == "string":
        if isinstance(value, str):
            inner_body = value.encode("utf-8")
        else:
            diagnostics.append(_diagnostic(pointer, "not a String"))
    elif value is None:
        diagnostics.append(_diagnostic(pointer, "not a JSON value"))
    elif isinstance(value, str):
        inner_body = value.encode("utf-8")
    else:
        inner_body = json.dumps(value, separators=(",", ":")).encode("utf-8")

    found_req, inner_request = resolve_pointer(payload, _parent_pointer(pointer))
    if not found_req or not isinstance(inner_request, dict) or inner_request is payload:
        inner_request = None

    return DecodedEnvelope(
        invocation_id=invocation_id,
        body=inner_body,
        diagnostics=diagnostics,
        inner_request=inner_request,
    )
