from __future__ import annotations

from typing import Protocol

from starlette.requests import ClientDisconnect
from starlette.types import Send

from rangeserve.core.errors import SinkClosedError


class ByteSink(Protocol):
    """Where a transfer's bytes go. Awaiting write() is the backpressure point."""

    @property
    def closed(self) -> bool: ...

    async def write(self, chunk: bytes) -> None: ...

    async def close(self) -> None: ...


class ASGIByteSink:
    """
    ByteSink over an ASGI `send` callable.

    The response start message is sent lazily with the first body write (or
    close), so a failure before any byte leaves the caller free to answer
    with a different status.
    """

    def __init__(self, send: Send, *, status_code: int, headers: list[tuple[bytes, bytes]]):
        self._send = send
        self.status_code = status_code
        self.raw_headers = headers
        self.started = False
        self.finished = False
        self._disconnected = False

    @property
    def closed(self) -> bool:
        return self._disconnected or self.finished

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    def mark_disconnected(self) -> None:
        self._disconnected = True

    async def write(self, chunk: bytes) -> None:
        if self.closed:
            raise SinkClosedError("sink is closed")
        await self._guarded({"type": "http.response.body", "body": chunk, "more_body": True})

    async def close(self) -> None:
        if self.closed:
            return
        await self._guarded({"type": "http.response.body", "body": b"", "more_body": False})
        self.finished = True

    async def _guarded(self, message: dict) -> None:
        try:
            if not self.started:
                # no second start message can follow, even if this one fails
                self.started = True
                await self._send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
            await self._send(message)
        except (OSError, ClientDisconnect) as exc:
            self._disconnected = True
            raise SinkClosedError("client went away") from exc
