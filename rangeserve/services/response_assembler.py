from __future__ import annotations

from dataclasses import dataclass, field
from email.utils import format_datetime
from enum import Enum
from typing import Optional

from rangeserve.models import ByteRange, Resource


class ResponseKind(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    UNSATISFIABLE = "unsatisfiable"
    NOT_MODIFIED = "not_modified"
    REJECTED = "rejected"
    ERROR = "error"


@dataclass(frozen=True)
class AssembledResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)


class ResponseAssembler:
    """
    Status + header composition for every answer the stream endpoint gives.
    Nothing here carries a filesystem path or an exception message.
    """

    def __init__(
        self,
        *,
        cache_control: str = "public, max-age=31536000",
        reject_status_code: int = 503,
        retry_after_seconds: int = 5,
    ):
        if reject_status_code not in (429, 503):
            raise ValueError("reject_status_code must be 429 or 503")
        self.cache_control = cache_control
        self.reject_status_code = reject_status_code
        self.retry_after_seconds = retry_after_seconds

    def assemble(
        self,
        kind: ResponseKind,
        resource: Optional[Resource] = None,
        byte_range: Optional[ByteRange] = None,
    ) -> AssembledResponse:
        headers = {"Accept-Ranges": "bytes"}

        if kind is ResponseKind.REJECTED:
            headers["Retry-After"] = str(self.retry_after_seconds)
            return AssembledResponse(self.reject_status_code, headers)
        if kind is ResponseKind.ERROR:
            headers["Content-Length"] = "0"
            return AssembledResponse(500, headers)

        if resource is None:
            raise ValueError(f"{kind.value} response needs a resource")

        if kind is ResponseKind.UNSATISFIABLE:
            headers["Content-Range"] = f"bytes */{resource.total_length}"
            return AssembledResponse(416, headers)

        headers.update(self._validator_headers(resource))
        if kind is ResponseKind.NOT_MODIFIED:
            return AssembledResponse(304, headers)

        headers["Content-Type"] = resource.content_type
        if kind is ResponseKind.FULL:
            headers["Content-Length"] = str(resource.total_length)
            return AssembledResponse(200, headers)

        if byte_range is None:
            raise ValueError("partial response needs a byte range")
        headers["Content-Range"] = byte_range.content_range(resource.total_length)
        headers["Content-Length"] = str(byte_range.length)
        return AssembledResponse(206, headers)

    def _validator_headers(self, resource: Resource) -> dict[str, str]:
        return {
            "ETag": resource.validator,
            "Last-Modified": format_datetime(resource.last_modified, usegmt=True),
            "Cache-Control": self.cache_control,
        }
