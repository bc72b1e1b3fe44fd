"""Run ordinary ASGI handlers as an Azure Functions custom handler."""

__version__ = "0.1.0"
