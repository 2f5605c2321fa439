"""Run the tracking relay endpoints (poll, webhook, event stream)."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Sequence

from aiohttp import web

from relay.app import STREAM_INTERVAL, create_app


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the tracking relay endpoints")
    parser.add_argument("--host", default=os.environ.get("RELAY_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("RELAY_PORT", "8080")))
    parser.add_argument(
        "--stream-interval",
        type=float,
        default=STREAM_INTERVAL,
        help="Seconds between server-sent events (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("TRACKER_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    web.run_app(create_app(stream_interval=args.stream_interval), host=args.host, port=args.port)
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution entry point
    raise SystemExit(main())
