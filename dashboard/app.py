"""Streamlit page for following a single delivery in progress."""
from __future__ import annotations

import logging
import os
from typing import Optional

import streamlit as st

from dashboard.components.map_view import MapViewController
from dashboard.components.panels import (
    render_error,
    render_history,
    render_legend,
    render_map_info,
    render_status_cards,
)
from dashboard.state import (
    TrackerSession,
    _get_query_params,
    _rerun_app,
    get_tracker_session,
    resolve_user_location,
)
from tracker.geo import MalformedCoordinateError
from tracker.snapshot import Snapshot
from tracker.upstream import TrackingApiClient, get_tracking_client

logger = logging.getLogger(__name__)

REFRESH_SECONDS = int(os.environ.get("TRACKER_REFRESH_SECONDS", "30"))

__all__ = [
    "REFRESH_SECONDS",
    "refresh_if_due",
    "refresh_tracking",
    "render_map_controls",
    "render_tracker_dashboard",
]


def refresh_tracking(
    session: TrackerSession,
    client: Optional[TrackingApiClient] = None,
) -> Optional[Snapshot]:
    """Fetch one snapshot, record it and push it into the session's map view.

    Failures are stored on ``session.last_error`` and leave the map untouched.
    """

    session.mark_fetched()
    try:
        snapshot = get_tracking_client(client).fetch_snapshot(user=session.user_location)
    except (RuntimeError, MalformedCoordinateError) as exc:
        logger.warning("Error fetching tracking data: %s", exc)
        session.last_error = str(exc)
        return None

    recorded = session.record(snapshot)
    session.show(recorded)
    return recorded


def refresh_if_due(
    session: TrackerSession,
    client: Optional[TrackingApiClient] = None,
    *,
    now: Optional[float] = None,
) -> Optional[Snapshot]:
    """Fetch only when the refresh timer is due or "Refresh now" was pressed."""

    if not session.fetch_due(REFRESH_SECONDS, now=now):
        return None
    return refresh_tracking(session, client)


def render_map_controls(controller: MapViewController) -> None:
    """Buttons that re-frame the map without touching the overlays."""

    has_user = controller.user_location is not None
    cols = st.columns(4 if has_user else 3)
    if cols[0].button("📍 Fit All Points", help="Fit map to show all points"):
        controller.fit_all_points()
    if cols[1].button("🚗 Driver Location", help="Center on driver location"):
        controller.center_on_driver()
    if cols[2].button("🏠 Customer Location", help="Center on customer location"):
        controller.center_on_customer()
    if has_user and cols[3].button("📍 Your Location", help="Center on your location"):
        controller.center_on_user()


def _render_tracking(session: TrackerSession, client: Optional[TrackingApiClient]) -> None:
    refresh_if_due(session, client)

    if session.last_error:
        render_error(session.last_error)

    snapshot = session.last_snapshot
    controller = session.controller
    if snapshot is None or not controller.is_initialized:
        st.info("Waiting for the first driver location...")
        return

    render_status_cards(
        snapshot,
        tracking_status="Error" if session.last_error else "Live",
        last_updated=session.last_updated,
    )
    render_map_controls(controller)
    surface = controller.surface
    st.pydeck_chart(surface.to_deck(), width=surface.width, height=surface.height)
    render_map_info(controller, snapshot)
    render_legend(controller.user_location is not None)
    render_history(session.history)


def render_tracker_dashboard(client: Optional[TrackingApiClient] = None) -> None:
    """Render the tracker page; the tracking section refreshes on its own."""

    session = get_tracker_session()
    resolve_user_location(session, _get_query_params())

    header, refresh_col, reset_col = st.columns([6, 1, 1])
    header.title("🚚 Delivery Tracker")
    header.caption(f"Driver location refreshes every {REFRESH_SECONDS} seconds")
    if refresh_col.button("Refresh now"):
        session.refresh_requested = True
        _rerun_app()
    if reset_col.button("Reset map"):
        session.reset_map()

    fragment = getattr(st, "fragment", None)
    if fragment is None:
        _render_tracking(session, client)
        return

    @fragment(run_every=REFRESH_SECONDS)
    def _live_section() -> None:
        _render_tracking(session, client)

    _live_section()
