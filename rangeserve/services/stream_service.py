from __future__ import annotations

import logging
from typing import Mapping, Optional

import anyio
from fastapi import Response

from rangeserve.core.errors import CapacityError, MalformedRangeError, UnsatisfiableRangeError
from rangeserve.models import ByteRange, Resource
from rangeserve.runtime.client_sessions import ClientSessionRegistry
from rangeserve.services.concurrency_governor import ConcurrencyGovernor
from rangeserve.services.range_parser import parse_range_header
from rangeserve.services.range_streamer import RangeStreamer
from rangeserve.services.resource_locator import ResourceLocator
from rangeserve.services.response_assembler import ResponseAssembler, ResponseKind
from rangeserve.services.validator_cache import CacheDecision, ValidatorCache
from rangeserve.streaming.response import RangeStreamResponse


class StreamService:
    """
    One GET/HEAD against a resource:
    resolve -> conditional check -> If-Range -> parse Range -> admit -> stream.

    Raises ResourceNotFoundError / ForbiddenResourceError / CapacityError for
    the HTTP layer to map; every other outcome comes back as a Response.
    """

    def __init__(
        self,
        *,
        locator: ResourceLocator,
        governor: ConcurrencyGovernor,
        streamer: RangeStreamer,
        assembler: ResponseAssembler,
        validators: Optional[ValidatorCache] = None,
        client_sessions: Optional[ClientSessionRegistry] = None,
    ):
        self.locator = locator
        self.governor = governor
        self.streamer = streamer
        self.assembler = assembler
        self.validators = validators or ValidatorCache()
        self.client_sessions = client_sessions or ClientSessionRegistry()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def handle(
        self,
        identifier: str,
        headers: Mapping[str, str],
        *,
        method: str = "GET",
        client_session: Optional[str] = None,
    ) -> Response:
        if client_session:
            self.client_sessions.touch(client_session)

        resource = await anyio.to_thread.run_sync(self.locator.resolve, identifier)

        if self.validators.evaluate(resource, headers) is CacheDecision.FRESH:
            return self._plain(ResponseKind.NOT_MODIFIED, resource)

        byte_range: Optional[ByteRange] = None
        range_header = headers.get("range")
        if range_header and self.validators.range_applies(resource, headers):
            try:
                byte_range = parse_range_header(range_header, resource.total_length)
            except UnsatisfiableRangeError as exc:
                self.logger.debug("Unsatisfiable range %r for %s: %s", range_header, resource.identifier, exc)
                return self._plain(ResponseKind.UNSATISFIABLE, resource)
            except MalformedRangeError as exc:
                # unparsable Range is ignored, not an error
                self.logger.debug("Ignoring malformed range %r: %s", range_header, exc)

        kind = ResponseKind.FULL if byte_range is None else ResponseKind.PARTIAL
        assembled = self.assembler.assemble(kind, resource, byte_range)

        if method.upper() == "HEAD":
            # HEAD returns headers only; nothing is streamed, so nothing is admitted.
            return Response(status_code=assembled.status_code, headers=assembled.headers)

        try:
            session = self.governor.try_admit(
                resource.identifier, byte_range=byte_range, client_session=client_session
            )
        except CapacityError as exc:
            self.logger.warning(
                "Rejected stream of %s: %d/%d streams active", resource.identifier, exc.active_count, exc.max_concurrent
            )
            raise

        return RangeStreamResponse(
            resource=resource,
            byte_range=byte_range,
            assembled=assembled,
            session=session,
            streamer=self.streamer,
            assembler=self.assembler,
        )

    def _plain(self, kind: ResponseKind, resource: Resource) -> Response:
        assembled = self.assembler.assemble(kind, resource)
        response = Response(status_code=assembled.status_code, headers=assembled.headers)
        if not any(name.lower() == "content-length" for name in assembled.headers):
            # Starlette frames empty bodies with content-length: 0; 416 must not carry one
            del response.headers["content-length"]
        return response
