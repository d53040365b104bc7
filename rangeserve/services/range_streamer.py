from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import anyio
from anyio import AsyncFile

from rangeserve.core.errors import SinkClosedError, StreamIOError
from rangeserve.models import ByteRange, Resource, TransferSession
from rangeserve.streaming.sink import ByteSink


class TransferOutcomeKind(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class TransferOutcome:
    kind: TransferOutcomeKind
    bytes_sent: int
    reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.kind is TransferOutcomeKind.COMPLETED


class RangeStreamer:
    """
    Copies one byte interval of a resource into a sink, a bounded chunk at a time.

    Memory use is one chunk: a chunk is read only after the previous one has
    been accepted by the sink. A read+write cycle that makes no progress for
    `idle_timeout` seconds aborts the transfer.
    """

    def __init__(self, *, chunk_size: int = 64 * 1024, idle_timeout: float = 30.0):
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.chunk_size = chunk_size
        self.idle_timeout = idle_timeout
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def stream(
        self,
        resource: Resource,
        byte_range: Optional[ByteRange],
        sink: ByteSink,
        session: Optional[TransferSession] = None,
    ) -> TransferOutcome:
        if byte_range is None:
            start, count = 0, resource.total_length
        else:
            start, count = byte_range.start, byte_range.length

        try:
            f = await anyio.open_file(resource.path, mode="rb")
        except OSError as exc:
            raise StreamIOError(f"cannot open {resource.identifier}") from exc

        bytes_sent = 0
        try:
            try:
                await f.seek(start)
            except OSError as exc:
                raise StreamIOError(f"cannot seek {resource.identifier}") from exc

            remaining = count
            while remaining > 0:
                if sink.closed:
                    return self._aborted(resource, bytes_sent, "client-disconnect")
                if session is not None and session.is_terminal:
                    return self._aborted(resource, bytes_sent, session.abort_reason or "session-ended")

                try:
                    with anyio.fail_after(self.idle_timeout):
                        chunk = await self._read(f, resource, min(self.chunk_size, remaining), bytes_sent)
                        await sink.write(chunk)
                except TimeoutError:
                    return self._aborted(resource, bytes_sent, "idle-timeout")
                except SinkClosedError:
                    return self._aborted(resource, bytes_sent, "client-disconnect")

                bytes_sent += len(chunk)
                remaining -= len(chunk)
                if session is not None:
                    session.record_progress(len(chunk))
        finally:
            # close even when the surrounding scope is being cancelled
            with anyio.CancelScope(shield=True):
                await f.aclose()

        return TransferOutcome(TransferOutcomeKind.COMPLETED, bytes_sent)

    async def _read(self, f: AsyncFile[bytes], resource: Resource, size: int, bytes_sent: int) -> bytes:
        try:
            chunk = await f.read(size)
        except OSError as exc:
            raise StreamIOError(f"read failed on {resource.identifier}", bytes_sent=bytes_sent) from exc
        if not chunk:
            # file shrank after it was resolved
            raise StreamIOError(f"{resource.identifier} ended early", bytes_sent=bytes_sent)
        return chunk

    def _aborted(self, resource: Resource, bytes_sent: int, reason: str) -> TransferOutcome:
        self.logger.info("Transfer of %s aborted (%s) after %d bytes", resource.identifier, reason, bytes_sent)
        return TransferOutcome(TransferOutcomeKind.ABORTED, bytes_sent, reason)
