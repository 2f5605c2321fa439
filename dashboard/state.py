"""State and session helpers for the Streamlit tracker dashboard."""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Callable, Dict, List, Mapping, Optional

import streamlit as st

from dashboard.components.map_view import MapViewController
from tracker.geo import Coordinate, MalformedCoordinateError
from tracker.snapshot import LocationHistory, Snapshot

logger = logging.getLogger(__name__)

SESSION_KEY = "delivery_tracker"
# Timer-driven reruns may land a little early.
FETCH_GRACE_SECONDS = 1.0

__all__ = [
    "SESSION_KEY",
    "TrackerSession",
    "_get_query_params",
    "_rerun_app",
    "get_tracker_session",
    "resolve_user_location",
]


def _get_query_params() -> Dict[str, List[str]]:
    """Return query parameters as a dictionary of lists."""

    query_params = getattr(st, "query_params", None)
    if query_params is not None:
        return {key: query_params.get_all(key) for key in query_params.keys()}
    return st.experimental_get_query_params()


def _rerun_app() -> None:
    """Trigger a Streamlit rerun using the available API."""

    rerun = getattr(st, "rerun", None)
    if rerun is not None:
        rerun()
        return

    st.experimental_rerun()


@dataclass
class TrackerSession:
    """Everything the page keeps between reruns for one browser session."""

    history: LocationHistory = field(default_factory=LocationHistory)
    controller: MapViewController = field(default_factory=MapViewController)
    user_location: Optional[Coordinate] = None
    user_location_resolved: bool = False
    last_snapshot: Optional[Snapshot] = None
    last_error: Optional[str] = None
    last_updated: Optional[datetime] = None
    last_fetch: Optional[float] = None
    refresh_requested: bool = False

    def fetch_due(self, interval: float, *, now: Optional[float] = None) -> bool:
        """True on first load, after an explicit refresh request, or once ``interval`` has elapsed.

        Widget reruns in between (map controls, reset) reuse the last snapshot.
        """

        if self.last_fetch is None or self.refresh_requested:
            return True
        now = time.monotonic() if now is None else now
        return now - self.last_fetch >= interval - FETCH_GRACE_SECONDS

    def mark_fetched(self, *, now: Optional[float] = None) -> None:
        self.last_fetch = time.monotonic() if now is None else now
        self.refresh_requested = False

    def record(self, snapshot: Snapshot, *, now: Optional[datetime] = None) -> Snapshot:
        """Append the driver position and return ``snapshot`` carrying the session history and user."""

        self.history.append(snapshot.driver, recorded_at=now)
        recorded = replace(snapshot, history=self.history.coordinates(), user=self.user_location)
        self.last_snapshot = recorded
        self.last_error = None
        self.last_updated = now or datetime.now(UTC)
        return recorded

    def show(self, snapshot: Snapshot) -> None:
        """Initialize the map view on first use, otherwise push the update into it."""

        if self.controller.is_initialized:
            self.controller.apply_snapshot(snapshot)
        else:
            self.controller.initialize(snapshot)

    def reset_map(self) -> None:
        self.controller.dispose()
        self.controller = MapViewController()
        if self.last_snapshot is not None:
            self.controller.initialize(self.last_snapshot)


def resolve_user_location(
    session: TrackerSession,
    query_params: Mapping[str, List[str]],
    environ: Mapping[str, str] = os.environ,
) -> Optional[Coordinate]:
    """Resolve the viewer's own location once per session.

    ``?me=lat,lng`` wins over ``TRACKER_USER_LOCATION``. A failure is logged
    and leaves the location absent for the rest of the session.
    """

    if session.user_location_resolved:
        return session.user_location

    session.user_location_resolved = True
    values = query_params.get("me") or []
    raw = values[0] if values else environ.get("TRACKER_USER_LOCATION")
    if not raw:
        return None
    try:
        session.user_location = Coordinate.parse(raw)
    except MalformedCoordinateError as exc:
        logger.info("User location not available: %s", exc)
        return None
    return session.user_location


def get_tracker_session(factory: Callable[[], TrackerSession] = TrackerSession) -> TrackerSession:
    """Return the session's :class:`TrackerSession`, creating it on first use."""

    session = st.session_state.get(SESSION_KEY)
    if not isinstance(session, TrackerSession):
        session = factory()
        st.session_state[SESSION_KEY] = session
    return session
