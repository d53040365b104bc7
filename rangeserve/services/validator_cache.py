from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Mapping, Optional

from rangeserve.models import Resource


class CacheDecision(str, Enum):
    FRESH = "fresh"    # client copy is current: answer 304
    STALE = "stale"    # proceed with a body


def compute_validator(total_length: int, last_modified_ns: int) -> str:
    digest = hashlib.blake2b(f"{total_length}-{last_modified_ns}".encode(), digest_size=8).hexdigest()
    return f'"{digest}"'


def _opaque_tag(tag: str) -> str:
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag


def _parse_http_date(value: str) -> Optional[datetime]:
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _modified_second(resource: Resource) -> int:
    # HTTP dates carry whole seconds only
    return int(resource.last_modified.timestamp())


class ValidatorCache:
    """
    Conditional-request evaluation against a resource's validator.

    `headers` is any mapping with lower-case header names (starlette's
    Headers is case-insensitive, which also works).
    """

    def evaluate(self, resource: Resource, headers: Mapping[str, str]) -> CacheDecision:
        if_none_match = headers.get("if-none-match")
        if if_none_match is not None:
            return CacheDecision.FRESH if self._matches_any(resource.validator, if_none_match) else CacheDecision.STALE

        # If-Modified-Since is only consulted without If-None-Match (RFC 9110 13.1.3)
        if_modified_since = headers.get("if-modified-since")
        if if_modified_since:
            since = _parse_http_date(if_modified_since)
            if since is not None and _modified_second(resource) <= since.timestamp():
                return CacheDecision.FRESH

        return CacheDecision.STALE

    def range_applies(self, resource: Resource, headers: Mapping[str, str]) -> bool:
        """False when an If-Range precondition no longer matches, i.e. the Range header must be ignored."""
        if_range = headers.get("if-range")
        if not if_range:
            return True

        if_range = if_range.strip()
        if if_range.startswith("W/"):
            # weak tags never satisfy If-Range
            return False
        if if_range.startswith('"'):
            return if_range == resource.validator

        since = _parse_http_date(if_range)
        return since is not None and _modified_second(resource) == int(since.timestamp())

    @staticmethod
    def _matches_any(validator: str, header_value: str) -> bool:
        if header_value.strip() == "*":
            return True
        current = _opaque_tag(validator)
        return any(_opaque_tag(tag) == current for tag in header_value.split(",") if tag.strip())
