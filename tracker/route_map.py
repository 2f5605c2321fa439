"""Render a delivery snapshot as a standalone Folium map."""

from __future__ import annotations

import logging

from tracker.geo import Bounds
from tracker.snapshot import Snapshot

logger = logging.getLogger(__name__)

BOUNDS_PADDING_RATIO = 0.1
FIT_PADDING_PX = 20
FIT_MAX_ZOOM = 18

PATH_COLOUR = "blue"

__all__ = ["build_delivery_map", "customer_popup_html"]


def customer_popup_html(address: str) -> str:
    """Popup text shown on the customer marker."""

    return f"🏠 Delivery Address<br><strong>{address}</strong>"


def _emoji_icon(folium, glyph: str, size: int) -> "folium.DivIcon":
    return folium.DivIcon(
        html=f'<div style="font-size: {size - 6}px; line-height: {size}px;">{glyph}</div>',
        icon_size=(size, size),
        icon_anchor=(size // 2, size // 2),
    )


def build_delivery_map(snapshot: Snapshot) -> "folium.Map":
    """Return a Folium map with the driver, customer, user and driver path.

    The map view is fitted the same way the live dashboard fits it: a 10%
    padded bounding box, a 20 px inset and a zoom cap of 18.
    """

    try:
        import folium
    except ImportError as exc:  # pragma: no cover - runtime dependency
        raise SystemExit("Folium not installed. Run: pip install folium") from exc

    snapshot.validate()
    points = snapshot.all_points()
    center = Bounds.from_points(points).center
    fmap = folium.Map(location=center.as_list(), zoom_start=13, control_scale=True)

    if len(snapshot.history) > 1:
        folium.PolyLine(
            [point.as_list() for point in snapshot.history],
            color=PATH_COLOUR,
            weight=3,
            opacity=0.7,
            tooltip="Driver path",
        ).add_to(fmap)

    folium.Marker(
        snapshot.driver.as_list(),
        popup="🚗 Driver Location",
        icon=_emoji_icon(folium, "🚗", 30),
        z_index_offset=1000,
    ).add_to(fmap)
    folium.Marker(
        snapshot.customer.point.as_list(),
        popup=customer_popup_html(snapshot.customer.address),
        icon=_emoji_icon(folium, "🏠", 30),
        z_index_offset=999,
    ).add_to(fmap)
    if snapshot.user is not None:
        folium.Marker(
            snapshot.user.as_list(),
            popup="📍 Your Location",
            icon=_emoji_icon(folium, "📍", 25),
            z_index_offset=998,
        ).add_to(fmap)

    # Driver and customer are always present, so there are at least two points.
    padded = Bounds.from_points(points).pad(BOUNDS_PADDING_RATIO)
    fmap.fit_bounds(
        padded.as_corners(),
        padding=(FIT_PADDING_PX, FIT_PADDING_PX),
        max_zoom=FIT_MAX_ZOOM,
    )

    logger.debug("Built delivery map with %d points", len(points))
    return fmap
