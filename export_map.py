"""Fetch one tracking snapshot and save it as a standalone Folium map."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Sequence

from tracker.geo import Coordinate
from tracker.route_map import build_delivery_map
from tracker.upstream import get_tracking_client

logger = logging.getLogger(__name__)


def _parse_user_location(value: str | None) -> Coordinate | None:
    if not value:
        return None
    return Coordinate.parse(value)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Save the current delivery position as an HTML map")
    parser.add_argument("--out", default="delivery_map.html", help="Output HTML map path")
    parser.add_argument(
        "--me",
        default=os.environ.get("TRACKER_USER_LOCATION"),
        help="Optional 'lat,lng' to plot your own location",
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

    try:
        user = _parse_user_location(args.me)
        snapshot = get_tracking_client().fetch_snapshot(user=user)
    except (RuntimeError, ValueError) as exc:
        logger.error("Unable to fetch tracking data: %s", exc)
        return 1

    fmap = build_delivery_map(snapshot)
    fmap.save(args.out)
    print(f"Map saved to {args.out}")
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution entry point
    raise SystemExit(main())
