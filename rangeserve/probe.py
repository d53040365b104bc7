#!/usr/bin/env python3
"""
Minimal HTTP Range request probe.

Examples:
  rangeserve-probe "http://127.0.0.1:3000/video/intro.mp4" --start 0 --end 1023
  rangeserve-probe "127.0.0.1:3000/video/intro.mp4" --suffix 500
"""

from __future__ import annotations

import argparse
import http.client
import sys
from urllib.parse import urlparse

HIGH_SIGNAL_HEADERS = (
    "accept-ranges",
    "content-range",
    "content-length",
    "content-type",
    "cache-control",
    "etag",
    "last-modified",
    "retry-after",
)


def format_range_header(start: int | None, end: int | None = None, *, suffix: int | None = None) -> str:
    if suffix is not None:
        if suffix <= 0:
            raise ValueError("--suffix must be > 0")
        return f"bytes=-{suffix}"
    if start is None or start < 0:
        raise ValueError("--start must be >= 0")
    if end is not None and end < start:
        raise ValueError("--end must be >= --start")
    return f"bytes={start}-" if end is None else f"bytes={start}-{end}"


def describe_status(status: int) -> str:
    if status == 206:
        return "OK: server honored Range (206 Partial Content)."
    if status == 200:
        return "WARN: server ignored Range (200 OK). Check proxy/CDN config or whether this route supports ranges."
    if status == 304:
        return "OK: validator matched (304 Not Modified)."
    if status == 416:
        return "WARN: 416 Range Not Satisfiable (range starts past the end of the resource)."
    if status in (429, 503):
        return "WARN: server at its concurrent-stream limit; retry later."
    return "WARN: unexpected status for a Range request."


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Send a GET with Range header and print response details.")
    ap.add_argument(
        "url",
        help='Resource URL. Accepts full URL (e.g. "http://127.0.0.1:3000/video/...") '
        'or host:port/path (e.g. "127.0.0.1:3000/video/...").',
    )
    ap.add_argument("--start", type=int, default=0, help="Range start byte (default: 0).")
    ap.add_argument("--end", type=int, default=1023, help="Range end byte (default: 1023). Use -1 for open-ended.")
    ap.add_argument("--suffix", type=int, default=None, help="Request the last N bytes instead of --start/--end.")
    ap.add_argument("--if-none-match", default=None, help="Send an If-None-Match validator.")
    ap.add_argument(
        "--max-read",
        type=int,
        default=8192,
        help="Safety limit for bytes to read from response body (default: 8192).",
    )
    args = ap.parse_args(argv)

    end: int | None = None if args.end == -1 else args.end
    try:
        range_header = format_range_header(args.start, end, suffix=args.suffix)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    raw_url = args.url.strip()
    # Users often paste "127.0.0.1:3000/path" without a scheme; default to http://
    if "://" not in raw_url:
        raw_url = f"http://{raw_url}"

    u = urlparse(raw_url)
    if u.scheme not in ("http", "https"):
        print(f"Unsupported URL scheme: {u.scheme!r}. Try prefixing with http://", file=sys.stderr)
        return 2
    if not u.netloc:
        print("URL must include host, e.g. http://127.0.0.1:3000/path", file=sys.stderr)
        return 2
    if u.username or u.password:
        print("URL-embedded credentials are not supported.", file=sys.stderr)
        return 2

    path = u.path or "/"
    if u.query:
        path = f"{path}?{u.query}"

    headers = {
        "Range": range_header,
        "User-Agent": "rangeserve-probe/1.0",
        "Accept": "*/*",
        "Connection": "close",
    }
    if args.if_none_match:
        headers["If-None-Match"] = args.if_none_match

    print(f"==> GET {raw_url}")
    print(f"==> Range: {range_header}")

    conn_cls = http.client.HTTPSConnection if u.scheme == "https" else http.client.HTTPConnection
    conn = conn_cls(u.hostname, u.port, timeout=15)
    try:
        conn.request("GET", path, headers=headers)
        resp = conn.getresponse()
        print(f"<== HTTP {resp.status} {resp.reason}")

        hdrs = {k.lower(): v for (k, v) in resp.getheaders()}
        for k in HIGH_SIGNAL_HEADERS:
            if k in hdrs:
                print(f"<== {k}: {hdrs[k]}")

        # Read only up to max-read so a server ignoring Range doesn't download a huge file.
        to_read = args.max_read
        if hdrs.get("content-length", "").isdigit():
            to_read = min(to_read, int(hdrs["content-length"]))

        body = resp.read(to_read)
        print(f"<== read_bytes: {len(body)} (limit {args.max_read})")
        print(describe_status(resp.status))
    except OSError as e:
        print(f"Request failed: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
