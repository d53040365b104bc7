from __future__ import annotations

import re
from typing import Optional

from rangeserve.core.errors import MalformedRangeError, MultipleRangesError, UnsatisfiableRangeError
from rangeserve.models import ByteRange

_RANGE_SPEC = re.compile(r"^\s*(\d*)\s*-\s*(\d*)\s*$")


def _position(digits: str, total_length: int) -> int:
    """Byte position from a digit run, capped at total_length so huge values never reach int()."""
    digits = digits.lstrip("0") or "0"
    if len(digits) > len(str(total_length)):
        return total_length
    return min(int(digits), total_length)


def parse_range_header(range_header: Optional[str], total_length: int) -> Optional[ByteRange]:
    """
    Returns the inclusive ByteRange selected by a Range header, or None if the
    header is missing/empty (serve the full resource).
    Only a single range is supported (bytes=start-end | bytes=start- | bytes=-suffix).

    Raises MalformedRangeError when the header does not parse, and
    UnsatisfiableRangeError when it parses but selects no bytes of a
    resource of `total_length` bytes. Comma-separated range sets raise
    MultipleRangesError.
    """
    if range_header is None or not range_header.strip():
        return None

    unit, sep, spec = range_header.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise MalformedRangeError(f"unsupported range unit in {range_header!r}")

    # Empty list elements are allowed ("bytes=0-9,"), so drop them first.
    specs = [s for s in spec.split(",") if s.strip()]
    if not specs:
        raise MalformedRangeError("empty range set")

    matches = [_RANGE_SPEC.match(s) for s in specs]
    if not all(matches):
        raise MalformedRangeError(f"invalid range spec in {range_header!r}")
    if len(matches) > 1:
        raise MultipleRangesError(f"{len(matches)} ranges requested, only one is supported")

    start_s, end_s = matches[0].groups()
    if start_s == "" and end_s == "":
        raise MalformedRangeError("range spec has neither start nor end")

    if total_length <= 0:
        raise UnsatisfiableRangeError("resource is empty")

    if start_s == "":
        # suffix range: bytes=-N (last N bytes)
        suffix_len = _position(end_s, total_length)
        if suffix_len == 0:
            raise UnsatisfiableRangeError("zero-length suffix range")
        return ByteRange(max(0, total_length - suffix_len), total_length - 1)

    start = _position(start_s, total_length)
    end = _position(end_s, total_length) if end_s else total_length - 1

    if start > end:
        raise UnsatisfiableRangeError("range end before start")
    if start >= total_length:
        raise UnsatisfiableRangeError("range start out of bounds")

    return ByteRange(start, min(end, total_length - 1))
