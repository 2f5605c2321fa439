"""Incremental map view for a single delivery.

The controller owns one map surface and a fixed set of overlays. Each new
snapshot moves the existing overlays instead of rebuilding the map, so the
viewer's pan and zoom survive a refresh. The viewport is re-fitted only when
one of the most recent driver positions has left the visible area.
"""
from __future__ import annotations

import enum
import logging
from typing import Optional, Sequence

from dashboard.components.map_surface import (
    DeckMapSurface,
    MapSurface,
    MarkerHandle,
    PolylineHandle,
    SurfaceFactory,
)
from tracker.geo import Bounds, Coordinate, midpoint
from tracker.route_map import BOUNDS_PADDING_RATIO, FIT_MAX_ZOOM, FIT_PADDING_PX, customer_popup_html
from tracker.snapshot import Snapshot

logger = logging.getLogger(__name__)

__all__ = [
    "MapViewController",
    "PreconditionError",
    "ViewLifecycle",
    "fit_to_points",
]

INITIAL_ZOOM = 13
SINGLE_POINT_ZOOM = 15
RECENTER_ZOOM = 16
ANIMATION_SECONDS = 0.5
REFIT_LOOKBACK = 3

DRIVER_Z_INDEX = 1000
CUSTOMER_Z_INDEX = 999
USER_Z_INDEX = 998

DRIVER_POPUP = "🚗 Driver Location"
USER_POPUP = "📍 Your Location"


class PreconditionError(RuntimeError):
    """Raised when the controller is used outside the INITIALIZED state."""


class ViewLifecycle(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    DISPOSED = "disposed"


def fit_to_points(surface: MapSurface, points: Sequence[Coordinate]) -> None:
    """Animate ``surface`` so every point in ``points`` is visible.

    A single point is centred at a close-up zoom. Otherwise the bounding box
    grows by 10% of its span on each side and is fitted with a pixel inset and
    a zoom cap, so coincident points never zoom in past street level.
    """

    if not points:
        raise ValueError("Cannot fit the map to an empty point set")
    if len(points) == 1:
        surface.set_view(points[0], SINGLE_POINT_ZOOM, duration=ANIMATION_SECONDS)
        return

    padded = Bounds.from_points(points).pad(BOUNDS_PADDING_RATIO)
    surface.fit_bounds(
        padded,
        max_zoom=FIT_MAX_ZOOM,
        padding_px=FIT_PADDING_PX,
        duration=ANIMATION_SECONDS,
    )


class MapViewController:
    """Keep one live map in step with incoming delivery snapshots.

    Lifecycle is ``UNINITIALIZED -> INITIALIZED -> DISPOSED`` with no way back.
    The user marker is only ever created by :meth:`initialize`; a user location
    that first appears in a later snapshot is ignored for this controller.
    """

    def __init__(self, surface_factory: SurfaceFactory = DeckMapSurface):
        self._surface_factory = surface_factory
        self.lifecycle = ViewLifecycle.UNINITIALIZED
        self.surface: Optional[MapSurface] = None
        self.driver_marker: Optional[MarkerHandle] = None
        self.customer_marker: Optional[MarkerHandle] = None
        self.user_marker: Optional[MarkerHandle] = None
        self.path: Optional[PolylineHandle] = None
        self.snapshot: Optional[Snapshot] = None
        self.user_location: Optional[Coordinate] = None

    @property
    def is_initialized(self) -> bool:
        return self.lifecycle is ViewLifecycle.INITIALIZED

    def _require_initialized(self) -> MapSurface:
        if self.lifecycle is ViewLifecycle.UNINITIALIZED:
            raise PreconditionError("Map view has not been initialized")
        if self.lifecycle is ViewLifecycle.DISPOSED:
            raise PreconditionError("Map view has been disposed")
        assert self.surface is not None
        return self.surface

    def _points(self, snapshot: Snapshot) -> list[Coordinate]:
        points = [snapshot.driver, snapshot.customer.point, *snapshot.history]
        if self.user_location is not None:
            points.append(self.user_location)
        return points

    def initialize(self, snapshot: Snapshot) -> None:
        if self.lifecycle is ViewLifecycle.INITIALIZED:
            return
        if self.lifecycle is ViewLifecycle.DISPOSED:
            raise PreconditionError("Map view has been disposed")

        snapshot.validate()
        surface = self._surface_factory(midpoint(snapshot.driver, snapshot.customer.point), INITIAL_ZOOM)

        self.driver_marker = surface.add_marker(
            snapshot.driver, label="🚗", popup=DRIVER_POPUP, z_index=DRIVER_Z_INDEX, colour="blue"
        )
        self.customer_marker = surface.add_marker(
            snapshot.customer.point,
            label="🏠",
            popup=customer_popup_html(snapshot.customer.address),
            z_index=CUSTOMER_Z_INDEX,
            colour="green",
        )
        if snapshot.user is not None:
            self.user_location = snapshot.user
            self.user_marker = surface.add_marker(
                snapshot.user, label="📍", popup=USER_POPUP, z_index=USER_Z_INDEX, colour="purple"
            )
        if len(snapshot.history) >= 2:
            self.path = surface.add_polyline(snapshot.history, colour="blue", weight=3)

        self.surface = surface
        self.snapshot = snapshot
        fit_to_points(surface, self._points(snapshot))
        self.lifecycle = ViewLifecycle.INITIALIZED
        logger.info(
            "Map view initialized with %d history points%s",
            len(snapshot.history),
            " and user location" if snapshot.user is not None else "",
        )

    def apply_snapshot(self, snapshot: Snapshot) -> bool:
        """Move the overlays to ``snapshot``; return whether the viewport was re-fitted."""

        surface = self._require_initialized()
        snapshot.validate()
        assert self.driver_marker is not None and self.customer_marker is not None

        self.driver_marker.set_position(snapshot.driver)
        self.customer_marker.set_position(snapshot.customer.point)
        self.customer_marker.set_popup(customer_popup_html(snapshot.customer.address))

        if snapshot.user is not None and self.user_marker is not None:
            self.user_marker.set_position(snapshot.user)
            self.user_location = snapshot.user

        if len(snapshot.history) >= 2:
            if self.path is not None:
                self.path.set_points(snapshot.history)
            else:
                self.path = surface.add_polyline(snapshot.history, colour="blue", weight=3)

        self.snapshot = snapshot
        refit = self.should_refit(snapshot.history)
        if refit:
            logger.debug("Recent driver positions left the view; re-fitting")
            fit_to_points(surface, self._points(snapshot))
        return refit

    def should_refit(self, history: Sequence[Coordinate]) -> bool:
        """True when any of the last three history points is outside the view."""

        surface = self._require_initialized()
        if len(history) < 2:
            return False
        bounds = surface.visible_bounds()
        return any(not bounds.contains(point) for point in history[-REFIT_LOOKBACK:])

    def fit_all_points(self) -> None:
        self._require_initialized()
        assert self.snapshot is not None
        fit_to_points(self.surface, self._points(self.snapshot))

    def _center_on(self, point: Coordinate) -> None:
        self._require_initialized().set_view(point, RECENTER_ZOOM, duration=ANIMATION_SECONDS)

    def center_on_driver(self) -> None:
        self._require_initialized()
        self._center_on(self.snapshot.driver)

    def center_on_customer(self) -> None:
        self._require_initialized()
        self._center_on(self.snapshot.customer.point)

    def center_on_user(self) -> None:
        self._require_initialized()
        if self.user_location is None:
            raise PreconditionError("No user location is known for this map view")
        self._center_on(self.user_location)

    def dispose(self) -> None:
        """Release the surface and every overlay handle. Safe to call repeatedly."""

        if self.lifecycle is ViewLifecycle.DISPOSED:
            return
        surface = self.surface
        self.surface = None
        self.driver_marker = None
        self.customer_marker = None
        self.user_marker = None
        self.path = None
        self.lifecycle = ViewLifecycle.DISPOSED
        if surface is not None:
            surface.release()
        logger.info("Map view disposed")
