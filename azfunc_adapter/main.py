from fastapi import FastAPI, Response

from azfunc_adapter.azure_function import AzureFunctionMiddleware, ErrorObservingMiddleware
from azfunc_adapter.azure_function.dependencies import install_error_recording
from azfunc_adapter.config import Settings, get_settings

# Called by the host directly, never wrapped in an invocation envelope.
UNWRAPPED_PATHS = ("/", "/health")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Azure Functions custom handler", version="0.1.0")

    # Starlette runs the last added middleware outermost: the adapter must wrap the observer.
    app.add_middleware(ErrorObservingMiddleware, exempt_paths=UNWRAPPED_PATHS)
    app.add_middleware(AzureFunctionMiddleware, settings=settings, exempt_paths=UNWRAPPED_PATHS)
    install_error_recording(app)

    # The host probes this to learn that the custom handler is listening.
    @app.get("/")
    async def ping() -> Response:
        return Response(status_code=200)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
