from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


@dataclass(frozen=True)
class Resource:
    """
    identifier: request-facing name relative to the resource root (e.g. "clips/intro.mp4")
    path: absolute filesystem path; never sent to clients
    total_length: size in bytes at resolution time
    last_modified_ns: st_mtime_ns at resolution time
    content_type: MIME type used for Content-Type
    validator: quoted strong entity tag derived from total_length + last_modified_ns
    """
    identifier: str
    path: Path
    total_length: int
    last_modified_ns: int
    content_type: str
    validator: str

    @property
    def last_modified(self) -> datetime:
        return datetime.fromtimestamp(self.last_modified_ns / 1_000_000_000, tz=timezone.utc)


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte interval [start, end] over a resource."""
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"invalid byte range {self.start}-{self.end}")

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total_length: int) -> str:
        return f"bytes {self.start}-{self.end}/{total_length}"
