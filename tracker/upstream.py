"""Client for the third-party last-mile tracking API."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import requests

from tracker.geo import Coordinate
from tracker.snapshot import CustomerLocation, Snapshot

logger = logging.getLogger(__name__)

TRACKING_API_URL = os.environ.get(
    "TRACKING_API_URL",
    "https://us-central1-hellofresh-ca-prod.cloudfunctions.net/c_hf_getTraceyData",
)
TRACKING_SCREEN_WIDTH = int(os.environ.get("TRACKING_SCREEN_WIDTH", "500"))
TRACKING_API_TIMEOUT = float(os.environ.get("TRACKING_API_TIMEOUT", "10"))

__all__ = [
    "TRACKING_API_URL",
    "TrackingApiClient",
    "TrackingApiError",
    "get_tracking_client",
    "parse_snapshot",
]


class TrackingApiError(RuntimeError):
    """Raised when the upstream tracking API cannot supply usable data."""


def parse_snapshot(
    payload: Dict[str, Any],
    *,
    history: tuple[Coordinate, ...] = (),
    user: Optional[Coordinate] = None,
) -> Snapshot:
    """Build a :class:`Snapshot` from an upstream payload.

    ``history`` and ``user`` are supplied by the caller; the upstream API only
    knows the current driver and customer positions.
    """

    driver_payload = payload.get("driverLocation")
    customer_payload = payload.get("customerLocation")
    if not driver_payload or not customer_payload:
        raise TrackingApiError("Driver or customer location not found in response")

    planned = payload.get("plannedTimeOfArrival")
    return Snapshot(
        driver=Coordinate.from_mapping(driver_payload),
        customer=CustomerLocation.from_mapping(customer_payload),
        history=history,
        user=user,
        planned_arrival=str(planned) if planned else None,
    )


class TrackingApiClient:
    """Thin ``requests`` wrapper around the tracking endpoint."""

    def __init__(
        self,
        token: str,
        *,
        url: str = TRACKING_API_URL,
        screen_width: int = TRACKING_SCREEN_WIDTH,
        timeout: float = TRACKING_API_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.token = token
        self.url = url
        self.screen_width = screen_width
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_payload(self) -> Dict[str, Any]:
        """Return the raw JSON payload, guaranteeing a ``driverLocation`` key."""

        try:
            response = self.session.get(
                self.url,
                params={"token": self.token, "screenWidth": self.screen_width},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Tracking API request failed: %s", exc)
            raise TrackingApiError(f"Tracking API request failed: {exc}") from exc

        if not response.ok:
            raise TrackingApiError(f"HTTP error! status: {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise TrackingApiError("Tracking API returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise TrackingApiError("Tracking API returned an unexpected payload")
        if not data.get("driverLocation"):
            raise TrackingApiError("No driver location found in response")

        logger.debug("Fetched tracking payload with keys %s", sorted(data))
        return data

    def fetch_snapshot(
        self,
        *,
        history: tuple[Coordinate, ...] = (),
        user: Optional[Coordinate] = None,
    ) -> Snapshot:
        return parse_snapshot(self.fetch_payload(), history=history, user=user)


_TRACKING_CLIENT: Optional[TrackingApiClient] = None


def get_tracking_client(client: Optional[TrackingApiClient] = None) -> TrackingApiClient:
    """Return a process-wide tracking client configured from the environment."""

    if client is not None:
        return client

    global _TRACKING_CLIENT
    if _TRACKING_CLIENT is None:
        token = os.environ.get("TRACKING_API_TOKEN")
        if not token:
            raise RuntimeError(
                "Set TRACKING_API_TOKEN env var (export TRACKING_API_TOKEN=YOUR_TOKEN)"
            )
        _TRACKING_CLIENT = TrackingApiClient(token)
    return _TRACKING_CLIENT
