from __future__ import annotations


class EnvelopeDecodeError(ValueError):
    """The inbound invocation envelope is not valid JSON; no inner request can be recovered."""


class CollectorOwnershipError(RuntimeError):
    """A log collector was finalized while a shared handle was still outstanding.

    This is a logic bug (a handle outlived the request pipeline), never a user error,
    so nothing in the adapter catches it.
    """


class CollectorFinalizedError(RuntimeError):
    """A log collector, or a handle to it, was used after it was finalized or released."""


class AdapterNotInstalledError(RuntimeError):
    """A component needs the invocation context but AzureFunctionMiddleware is not mounted outside it."""
