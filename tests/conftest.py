from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from httpx import ASGITransport, AsyncClient

from azfunc_adapter.azure_function import CollectorHandle, require_invocation
from azfunc_adapter.azure_function.dependencies import invocation_logger
from azfunc_adapter.config import Settings, get_settings
from azfunc_adapter.main import create_app


FIXTURES = Path(__file__).parent / "fixtures"
INVOCATION_HEADER = "X-Azure-Functions-InvocationId"

_ENV_VARS = (
    "AZFN_INVOCATION_ID_SOURCE",
    "AZFN_INVOCATION_ID_HEADER",
    "AZFN_INVOCATION_ID_POINTER",
    "AZFN_REQUEST_BODY_POINTER",
    "AZFN_REQUEST_BODY_FORMAT",
    "AZFN_OUTPUT_SHAPE",
    "AZFN_OUTPUT_BINDING",
    "AZFN_RESPONSE_HEADERS",
    "AZFN_FORCE_OK_STATUS",
    "LOGLEVEL",
    "HOST",
    "FUNCTIONS_CUSTOMHANDLER_PORT",
)


def build_envelope(body: Any = "", invocation_id: str | None = None, method: str = "POST") -> dict[str, Any]:
    req: dict[str, Any] = {
        "Url": "https://squamish.example/api/Paypal-IPN",
        "Method": method,
        "Query": {},
        "Headers": {"Content-Type": ["application/x-www-form-urlencoded"]},
        "Params": {},
    }
    if body is not None:
        req["Body"] = body
    envelope: dict[str, Any] = {"Data": {"req": req}, "Metadata": {"sys": {"MethodName": "Paypal-IPN"}}}
    if invocation_id is not None:
        envelope["Metadata"]["Id"] = invocation_id
    return envelope


def build_app(settings: Settings) -> FastAPI:
    app = create_app(settings)

    @app.post("/echo")
    async def echo(request: Request, logger: CollectorHandle = Depends(invocation_logger)) -> PlainTextResponse:
        request.app.state.calls = getattr(request.app.state, "calls", 0) + 1
        body = (await request.body()).decode("utf-8")
        await logger.log(f"echo received {len(body)} bytes")
        return PlainTextResponse(body)

    @app.post("/steps")
    async def steps(logger: CollectorHandle = Depends(invocation_logger)) -> dict[str, bool]:
        for line in ("l1", "l2", "l3"):
            await logger.log(line)
        return {"ok": True}

    @app.post("/members/missing")
    async def missing_member(logger: CollectorHandle = Depends(invocation_logger)) -> dict[str, str]:
        await logger.log("No such member: nobody@example.com")
        raise HTTPException(status_code=404, detail="No such member")

    @app.post("/boom")
    async def boom() -> dict[str, str]:
        raise RuntimeError("kaboom")

    @app.post("/thanks")
    async def thanks() -> RedirectResponse:
        return RedirectResponse("https://squamish.example/thanks", status_code=302)

    @app.post("/leak")
    async def leak(request: Request) -> dict[str, bool]:
        # Keeps a shared handle alive past the pipeline.
        request.app.state.leaked = require_invocation(request.scope).collector.share()
        return {"ok": True}

    return app


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def envelope() -> Callable[..., dict[str, Any]]:
    return build_envelope


@pytest.fixture
def load_fixture() -> Callable[[str], bytes]:
    def _load(name: str) -> bytes:
        return (FIXTURES / name).read_bytes()

    return _load


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def app_factory() -> Callable[[Settings], FastAPI]:
    return build_app


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return build_app(settings)


@pytest.fixture
async def make_client() -> AsyncIterator[Callable[..., AsyncClient]]:
    clients: list[AsyncClient] = []

    def _make(asgi_app: Any, raise_app_exceptions: bool = True) -> AsyncClient:
        transport = ASGITransport(app=asgi_app, raise_app_exceptions=raise_app_exceptions)
        client = AsyncClient(transport=transport, base_url="http://test")
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()


@pytest.fixture
async def api_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def invoke_kwargs(payload: dict[str, Any], invocation_id: str | None = "inv-1") -> dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    if invocation_id is not None:
        headers[INVOCATION_HEADER] = invocation_id
    return {"content": json.dumps(payload), "headers": headers}


@pytest.fixture
def invoke() -> Callable[..., dict[str, Any]]:
    """Keyword arguments for posting an envelope the way the host does."""

    return invoke_kwargs
