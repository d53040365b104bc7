from __future__ import annotations

import logging
from typing import Optional

import anyio
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from rangeserve.core.errors import SinkClosedError, StreamIOError
from rangeserve.models import ByteRange, Resource, TransferSession
from rangeserve.services.range_streamer import RangeStreamer, TransferOutcome, TransferOutcomeKind
from rangeserve.services.response_assembler import AssembledResponse, ResponseAssembler, ResponseKind
from rangeserve.streaming.sink import ASGIByteSink


class RangeStreamResponse(Response):
    """
    Streams an admitted transfer and ends its session exactly once.

    The transfer races a disconnect watcher inside one task group: an
    http.disconnect cancels the copy loop wherever it is suspended.
    """

    def __init__(
        self,
        *,
        resource: Resource,
        byte_range: Optional[ByteRange],
        assembled: AssembledResponse,
        session: TransferSession,
        streamer: RangeStreamer,
        assembler: ResponseAssembler,
        background: Optional[BackgroundTask] = None,
    ):
        self.resource = resource
        self.byte_range = byte_range
        self.session = session
        self.streamer = streamer
        self.assembler = assembler
        self.status_code = assembled.status_code
        self.background = background
        self.init_headers(assembled.headers)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        sink = ASGIByteSink(send, status_code=self.status_code, headers=self.raw_headers)
        outcome: Optional[TransferOutcome] = None

        try:
            if not self.session.is_terminal:
                self.session.mark_streaming()
            async with anyio.create_task_group() as tg:

                async def watch_disconnect() -> None:
                    while True:
                        message = await receive()
                        if message["type"] == "http.disconnect":
                            sink.mark_disconnected()
                            tg.cancel_scope.cancel()
                            return

                tg.start_soon(watch_disconnect)
                try:
                    outcome = await self.streamer.stream(self.resource, self.byte_range, sink, self.session)
                    if outcome.completed:
                        await sink.close()
                    elif not sink.started and not sink.disconnected:
                        # ended (e.g. swept) before a single byte: the client still needs an answer
                        await self._send_error(send)
                except SinkClosedError:
                    outcome = TransferOutcome(TransferOutcomeKind.ABORTED, self.session.bytes_sent, "client-disconnect")
                except StreamIOError as exc:
                    outcome = TransferOutcome(TransferOutcomeKind.ABORTED, exc.bytes_sent, "io-failure")
                    await self._fail(sink, send, exc)
                finally:
                    tg.cancel_scope.cancel()
        finally:
            self._finish(outcome)

        if self.background is not None:
            await self.background()

    async def _fail(self, sink: ASGIByteSink, send: Send, exc: StreamIOError) -> None:
        if sink.started:
            # Headers are out; the only thing left is to cut the response short.
            self.logger.error(
                "I/O failure on %s after %d bytes; terminating response: %s",
                self.resource.identifier, exc.bytes_sent, exc.__cause__ or exc,
            )
            return

        self.logger.error("I/O failure opening %s: %s", self.resource.identifier, exc.__cause__ or exc)
        await self._send_error(send)

    async def _send_error(self, send: Send) -> None:
        error = self.assembler.assemble(ResponseKind.ERROR)
        try:
            await send({
                "type": "http.response.start",
                "status": error.status_code,
                "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in error.headers.items()],
            })
            await send({"type": "http.response.body", "body": b"", "more_body": False})
        except (OSError, ClientDisconnect):
            self.logger.info("Client for %s left before the error response", self.resource.identifier)

    def _finish(self, outcome: Optional[TransferOutcome]) -> None:
        session = self.session
        if session.is_terminal:
            return

        if outcome is not None and outcome.completed:
            session.complete()
            self.logger.debug("Transfer of %s completed (%d bytes)", self.resource.identifier, session.bytes_sent)
        else:
            reason = outcome.reason if outcome is not None else "client-disconnect"
            session.abort(reason or "aborted")
            self.logger.info(
                "Transfer of %s aborted (%s) after %d bytes", self.resource.identifier, session.abort_reason, session.bytes_sent
            )
