from __future__ import annotations

import argparse

import uvicorn

from azfunc_adapter.config import get_settings
from azfunc_adapter.observability.logging import configure_logging


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Azure Functions custom handler")
    parser.add_argument("--host", default=settings.host, help="Interface to bind (HOST)")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to bind (FUNCTIONS_CUSTOMHANDLER_PORT)")
    parser.add_argument("--app", default="azfunc_adapter.main:app", help="ASGI app import path")
    args = parser.parse_args()

    configure_logging(settings.log_level)
    uvicorn.run(args.app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
