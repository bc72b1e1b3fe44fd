import json

from azfunc_adapter.azure_function import build_envelope, encode_envelope
from azfunc_adapter.azure_function.encoder import outer_headers, outward_status, select_headers
from azfunc_adapter.config import Settings


RAW_HEADERS = [
    (b"content-type", b"text/plain; charset=utf-8"),
    (b"content-length", b"5"),
    (b"location", b"https://squamish.example/thanks"),
    (b"x-trace", b"a"),
    (b"x-trace", b"b"),
]


def test_outputs_shape() -> None:
    envelope = build_envelope(404, {}, "No such member", ["id line"], Settings())
    assert envelope == {
        "Outputs": {"res": {"statusCode": 404, "headers": {}, "body": "No such member"}},
        "Logs": ["id line"],
    }


def test_outputs_shape_uses_configured_binding_name() -> None:
    envelope = build_envelope(200, {}, "", [], Settings(output_binding="response"))
    assert "response" in envelope["Outputs"]


def test_return_value_shape() -> None:
    envelope = build_envelope(200, {"Location": "x"}, "ok", ["line"], Settings(output_shape="return_value"))
    assert envelope == {"ReturnValue": "ok", "Logs": ["line"]}


def test_encode_envelope_is_utf8_json() -> None:
    payload = encode_envelope(200, {}, "café", [], Settings())
    assert json.loads(payload.decode("utf-8"))["Outputs"]["res"]["body"] == "café"


def test_select_headers_location_only() -> None:
    assert select_headers(RAW_HEADERS, "location") == {"Location": "https://squamish.example/thanks"}
    assert select_headers(RAW_HEADERS[:2], "location") == {}


def test_select_headers_all_drops_content_length_and_joins_repeats() -> None:
    selected = select_headers(RAW_HEADERS, "all")
    assert "content-length" not in selected
    assert selected["content-type"] == "text/plain; charset=utf-8"
    assert selected["x-trace"] == "a, b"


def test_select_headers_all_keeps_last_set_cookie() -> None:
    raw = [(b"set-cookie", b"a=1; Path=/"), (b"set-cookie", b"b=2; Path=/")]
    assert select_headers(raw, "all") == {"set-cookie": "b=2; Path=/"}


def test_outward_status_policy() -> None:
    assert outward_status(404, Settings()) == 200
    assert outward_status(404, Settings(force_ok_status=False)) == 404


def test_outer_headers_force_json_and_recompute_length() -> None:
    headers = dict(outer_headers(RAW_HEADERS, 42))
    assert headers[b"content-type"] == b"application/json"
    assert headers[b"content-length"] == b"42"
    assert headers[b"location"] == b"https://squamish.example/thanks"
