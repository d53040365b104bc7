from __future__ import annotations

import argparse
import logging
import os
import sys

import uvicorn

from rangeserve.core import Settings
from rangeserve.main import create_app


def main(argv: list[str] | None = None) -> int:
    """
    Start the range server. Flags override environment/.env settings.
    """
    parser = argparse.ArgumentParser(description="Serve files with HTTP Range support and bounded concurrency.")
    parser.add_argument("--host", type=str, default=None, help="Host/IP address to bind (default: HOST setting)")
    parser.add_argument("-p", "--port", type=int, default=None, help="Port to listen on (default: PORT setting)")
    parser.add_argument("-r", "--root", type=str, default=None, help="Directory to serve (default: RESOURCE_ROOT setting)")
    parser.add_argument("--max-concurrent", type=int, default=None, help="Ceiling on simultaneous transfers")
    args = parser.parse_args(argv)

    overrides = {
        key: value
        for key, value in {
            "HOST": args.host,
            "PORT": args.port,
            "RESOURCE_ROOT": args.root,
            "MAX_CONCURRENT_STREAMS": args.max_concurrent,
        }.items()
        if value is not None
    }
    config = Settings(**overrides)

    if not os.path.isdir(config.RESOURCE_ROOT):
        logging.getLogger("rangeserve").error("Resource root %r does not exist.", config.RESOURCE_ROOT)
        return 1

    uvicorn.run(create_app(config), host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
