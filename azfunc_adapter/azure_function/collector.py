"""Per-invocation log collector.

Custom handlers have no log channel to the Functions host other than the ``Logs``
array of the outbound envelope, so everything worth surfacing for an invocation is
gathered here and drained exactly once when the envelope is encoded.
"""

from __future__ import annotations

import asyncio
from typing import Any

from azfunc_adapter.azure_function.errors import CollectorFinalizedError, CollectorOwnershipError


class LogCollector:
    """Ordered, request-private log sink.

    The collector is owned by the invocation context. Other components borrow it via
    ``share()`` and must release the handle before the pipeline unwinds to the encoder.
    """

    def __init__(self, invocation_id: str, logs: list[str] | None = None) -> None:
        self._invocation_id = invocation_id
        self._logs: list[str] = [self._prefix(line) for line in (logs or [])]
        self._lock = asyncio.Lock()
        self._outstanding = 0
        self._finalized = False

    def __repr__(self) -> str:
        state = "finalized" if self._finalized else f"{len(self._logs)} lines, {self._outstanding} shared"
        return f"<LogCollector {self._invocation_id!r} {state}>"

    @property
    def invocation_id(self) -> str:
        return self._invocation_id

    @property
    def outstanding(self) -> int:
        return self._outstanding

    @property
    def finalized(self) -> bool:
        return self._finalized

    def _prefix(self, line: str) -> str:
        return f"{self._invocation_id} {line}"

    def _check_usable(self) -> None:
        if self._finalized:
            raise CollectorFinalizedError(f"log collector for {self._invocation_id!r} was already finalized")

    async def append(self, line: str) -> None:
        self._check_usable()
        async with self._lock:
            self._logs.append(self._prefix(line))

    def share(self) -> CollectorHandle:
        self._check_usable()
        self._outstanding += 1
        return CollectorHandle(self)

    def _release(self) -> None:
        self._outstanding -= 1

    def finalize(self) -> list[str]:
        """Drain the collected lines. Requires that no shared handle is outstanding."""

        self._check_usable()
        if self._outstanding:
            raise CollectorOwnershipError(
                f"log collector for {self._invocation_id!r} finalized with "
                f"{self._outstanding} shared handle(s) still alive"
            )
        self._finalized = True
        logs, self._logs = self._logs, []
        return logs


class CollectorHandle:
    """Borrowed reference to a LogCollector. Release it (or leave the ``with`` block) when done."""

    def __init__(self, collector: LogCollector) -> None:
        self._collector: LogCollector | None = collector

    def __repr__(self) -> str:
        return f"<CollectorHandle {'released' if self._collector is None else self._collector.invocation_id!r}>"

    @property
    def released(self) -> bool:
        return self._collector is None

    @property
    def invocation_id(self) -> str:
        return self._require().invocation_id

    def _require(self) -> LogCollector:
        if self._collector is None:
            raise CollectorFinalizedError("collector handle was already released")
        return self._collector

    async def log(self, line: str) -> None:
        await self._require().append(line)

    def release(self) -> None:
        if self._collector is not None:
            self._collector._release()
            self._collector = None

    def __enter__(self) -> CollectorHandle:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

    async def __aenter__(self) -> CollectorHandle:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.release()
