from __future__ import annotations

import json
from typing import Any, Iterable

from azfunc_adapter.config import Settings

JSON_CONTENT_TYPE = "application/json"

_DROPPED_HEADERS = {"content-length"}
_UNJOINABLE_HEADERS = {"set-cookie"}


def _decode(value: bytes | str) -> str:
    return value.decode("latin-1") if isinstance(value, bytes) else value


def select_headers(raw_headers: Iterable[tuple[bytes | str, bytes | str]], mode: str) -> dict[str, str]:
    """Pick the response headers carried inside the envelope.

    ``location`` keeps only the redirect target; ``all`` keeps every header except
    ``content-length``, which no longer describes the inner body once it is wrapped.
    The envelope maps one name to one string, so repeated headers are joined with
    ``", "``. ``set-cookie`` cannot be joined that way and keeps its last value only.
    """

    selected: dict[str, str] = {}
    for raw_name, raw_value in raw_headers:
        name = _decode(raw_name).lower()
        value = _decode(raw_value)
        if mode == "location":
            if name == "location":
                selected["Location"] = value
        elif name in _DROPPED_HEADERS:
            continue
        elif name in selected and name not in _UNJOINABLE_HEADERS:
            selected[name] = f"{selected[name]}, {value}"
        else:
            selected[name] = value
    return selected


def build_envelope(
    status_code: int,
    headers: dict[str, str],
    body_text: str,
    logs: list[str],
    settings: Settings,
) -> dict[str, Any]:
    if settings.output_shape == "return_value":
        return {"ReturnValue": body_text, "Logs": logs}

    return {
        "Outputs": {
            settings.output_binding: {
                "statusCode": status_code,
                "headers": headers,
                "body": body_text,
            }
        },
        # The only way a custom handler can get log lines to the host.
        "Logs": logs,
    }


def encode_envelope(
    status_code: int,
    headers: dict[str, str],
    body_text: str,
    logs: list[str],
    settings: Settings,
) -> bytes:
    envelope = build_envelope(status_code, headers, body_text, logs, settings)
    return json.dumps(envelope, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def outward_status(status_code: int, settings: Settings) -> int:
    """Transport-level status sent to the host; the real status stays inside the envelope."""

    return 200 if settings.force_ok_status else status_code


def outer_headers(raw_headers: Iterable[tuple[bytes, bytes]], content_length: int) -> list[tuple[bytes, bytes]]:
    kept = [
        (name, value)
        for name, value in raw_headers
        if name.lower() not in (b"content-type", b"content-length")
    ]
    kept.append((b"content-type", JSON_CONTENT_TYPE.encode("latin-1")))
    kept.append((b"content-length", str(content_length).encode("latin-1")))
    return kept
