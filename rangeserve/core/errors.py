"""
Error taxonomy.

Every error here is resolved into a status code at the request boundary;
none of them is allowed to escape as a 500 with a traceback.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rangeserve.models import TransferSession


class RangeServeError(Exception):
    pass


# ---- Range header ----

class RangeError(RangeServeError):
    pass


class MalformedRangeError(RangeError):
    """The Range header does not parse; the request is served as if it had none."""


class UnsatisfiableRangeError(RangeError):
    """The Range header parses but selects nothing in the resource (416)."""


class MultipleRangesError(UnsatisfiableRangeError):
    """Comma-separated range sets are not served."""


# ---- resource lookup ----

class LocatorError(RangeServeError):
    pass


class ResourceNotFoundError(LocatorError):
    pass


class ForbiddenResourceError(LocatorError):
    pass


# ---- admission ----

class CapacityError(RangeServeError):
    def __init__(self, session: TransferSession, active_count: int, max_concurrent: int):
        super().__init__(f"at capacity ({active_count}/{max_concurrent} streams)")
        self.session = session
        self.active_count = active_count
        self.max_concurrent = max_concurrent


# ---- transfer ----

class StreamIOError(RangeServeError):
    def __init__(self, message: str, *, bytes_sent: int = 0):
        super().__init__(message)
        self.bytes_sent = bytes_sent


class SinkClosedError(RangeServeError):
    pass


class InvalidTransitionError(RangeServeError):
    pass
