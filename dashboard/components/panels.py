"""Status, legend and history panels shown around the delivery map."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

import pandas as pd
import streamlit as st

from dashboard.components.map_view import MapViewController
from tracker.snapshot import LocationHistory, Snapshot
from tracker.timefmt import (
    LOCAL_TIMEZONE,
    format_planned_time,
    get_relative_time,
    get_time_status,
)

__all__ = [
    "format_coordinate",
    "map_info_lines",
    "history_frame",
    "render_error",
    "render_history",
    "render_legend",
    "render_map_info",
    "render_status_cards",
]

_STATUS_LABELS = {
    "past": "Arrival time passed",
    "present": "Arriving now",
    "future": "On the way",
}


def format_coordinate(lat: float, lng: float, *, places: int = 6) -> str:
    return f"{lat:.{places}f}, {lng:.{places}f}"


def map_info_lines(controller: MapViewController, snapshot: Snapshot) -> List[str]:
    """Lines for the info panel under the map."""

    lines = [
        f"🚗 Driver: {format_coordinate(snapshot.driver.lat, snapshot.driver.lng)}",
        f"🏠 Customer: {format_coordinate(snapshot.customer.lat, snapshot.customer.lng)}",
    ]
    if controller.user_location is not None:
        you = controller.user_location
        lines.append(f"📍 You: {format_coordinate(you.lat, you.lng)}")
    lines.append(f"🛣️ Tracked Points: {len(snapshot.history)}")
    zoom = controller.surface.zoom if controller.surface is not None else None
    lines.append(f"🗺️ Zoom: {zoom if zoom is not None else 'N/A'}")
    return lines


def history_frame(history: LocationHistory, *, count: int = 10) -> pd.DataFrame:
    """Newest-first history rows with local timestamps for display."""

    frame = history.to_frame(count)
    if frame.empty:
        return frame
    frame["recorded_at"] = pd.to_datetime(frame["recorded_at"], utc=True).dt.tz_convert(LOCAL_TIMEZONE)
    frame["recorded_at"] = frame["recorded_at"].dt.strftime("%I:%M:%S %p")
    frame.insert(0, "#", range(1, len(frame) + 1))
    return frame.rename(columns={"lat": "Latitude", "lng": "Longitude", "recorded_at": "Recorded"})


def render_status_cards(
    snapshot: Snapshot,
    *,
    tracking_status: str = "Live",
    last_updated: Optional[datetime] = None,
) -> None:
    """Render the driver, customer and arrival summary above the map."""

    col1, col2, col3 = st.columns(3)
    col1.metric("🚗 Driver", format_coordinate(snapshot.driver.lat, snapshot.driver.lng, places=4))
    col2.metric("🏠 Customer", format_coordinate(snapshot.customer.lat, snapshot.customer.lng, places=4))
    col3.metric("📡 Tracking status", tracking_status)

    st.markdown(f"**Delivery address:** {snapshot.customer.address or 'Unknown'}")

    if snapshot.planned_arrival:
        status = get_time_status(snapshot.planned_arrival)
        st.markdown(
            f"**Planned arrival:** {format_planned_time(snapshot.planned_arrival)} "
            f"({get_relative_time(snapshot.planned_arrival)}) · {_STATUS_LABELS[status]}"
        )
    if last_updated is not None:
        st.caption(f"Last updated {last_updated.astimezone(LOCAL_TIMEZONE):%I:%M:%S %p %Z}")


def render_map_info(controller: MapViewController, snapshot: Snapshot) -> None:
    st.caption("  \n".join(map_info_lines(controller, snapshot)))


def _legend_items(has_user: bool) -> List[Tuple[str, str]]:
    items = [("🚗", "Driver Location"), ("🏠", "Customer Location")]
    if has_user:
        items.append(("📍", "Your Location"))
    items.append(("━", "Driver Path"))
    return items


def render_legend(has_user: bool) -> None:
    cols = st.columns(len(_legend_items(has_user)))
    for column, (glyph, label) in zip(cols, _legend_items(has_user)):
        column.markdown(f"{glyph} {label}")


def render_history(history: LocationHistory, *, count: int = 10) -> None:
    st.markdown("### Driver Location History")
    frame = history_frame(history, count=count)
    if frame.empty:
        st.info("No driver location history yet. Data will be fetched from the tracking API...")
        return
    st.dataframe(frame, hide_index=True, width="stretch")


def render_error(message: str) -> None:
    st.error(f"Unable to load tracking data: {message}")
