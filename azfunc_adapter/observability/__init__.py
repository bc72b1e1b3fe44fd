"""Process-side logging (structlog, JSON to stdout).

This is what the worker process prints; the host only surfaces the per-invocation
``Logs`` array built by ``azfunc_adapter.azure_function``.
"""

