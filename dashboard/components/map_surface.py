"""Map surface capability consumed by the map view, plus a pydeck implementation."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Protocol, Sequence, Tuple

import pydeck as pdk

from tracker.geo import Bounds, Coordinate

logger = logging.getLogger(__name__)

__all__ = [
    "DeckMapSurface",
    "DeckMarker",
    "DeckPolyline",
    "MapSurface",
    "MarkerHandle",
    "PolylineHandle",
    "SurfaceFactory",
    "SurfaceReleasedError",
]

TILE_SIZE = 256
MAX_MERCATOR_LAT = 85.05112878
OSM_TILE_URL = "https://tile.openstreetmap.org/{z}/{x}/{y}.png"


class SurfaceReleasedError(RuntimeError):
    """Raised when a released map surface or one of its overlays is used."""


class MarkerHandle(Protocol):
    position: Coordinate
    popup: str

    def set_position(self, point: Coordinate) -> None: ...

    def set_popup(self, text: str) -> None: ...


class PolylineHandle(Protocol):
    points: Tuple[Coordinate, ...]

    def set_points(self, points: Sequence[Coordinate]) -> None: ...


class MapSurface(Protocol):
    """Operations the map view needs from a rendering collaborator."""

    center: Coordinate
    zoom: float

    def add_marker(
        self, point: Coordinate, *, label: str, popup: str, z_index: int, colour: str = ...
    ) -> MarkerHandle: ...

    def add_polyline(self, points: Sequence[Coordinate], *, colour: str, weight: float) -> PolylineHandle: ...

    def visible_bounds(self) -> Bounds: ...

    def set_view(self, center: Coordinate, zoom: float, *, duration: float) -> None: ...

    def fit_bounds(self, bounds: Bounds, *, max_zoom: float, padding_px: int, duration: float) -> None: ...

    def release(self) -> None: ...


SurfaceFactory = Callable[[Coordinate, float], MapSurface]


def _project(point: Coordinate, zoom: float) -> Tuple[float, float]:
    """Web Mercator pixel coordinates of ``point`` at ``zoom``."""

    world = TILE_SIZE * 2 ** zoom
    lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, point.lat))
    x = (point.lng + 180.0) / 360.0 * world
    sin_lat = math.sin(math.radians(lat))
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * world
    return x, y


def _unproject(x: float, y: float, zoom: float) -> Coordinate:
    world = TILE_SIZE * 2 ** zoom
    lng = x / world * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / world))))
    return Coordinate(lat=lat, lng=lng)


_RGB = {
    "blue": [37, 99, 235],
    "green": [22, 163, 74],
    "purple": [147, 51, 234],
}


@dataclass
class DeckMarker:
    surface: "DeckMapSurface" = field(repr=False, compare=False)
    position: Coordinate
    label: str
    popup: str
    z_index: int
    colour: str = "blue"

    def set_position(self, point: Coordinate) -> None:
        self.surface._check_live()
        self.position = point

    def set_popup(self, text: str) -> None:
        self.surface._check_live()
        self.popup = text


@dataclass
class DeckPolyline:
    surface: "DeckMapSurface" = field(repr=False, compare=False)
    points: Tuple[Coordinate, ...]
    colour: str = "blue"
    weight: float = 3.0

    def set_points(self, points: Sequence[Coordinate]) -> None:
        self.surface._check_live()
        self.points = tuple(points)


@dataclass
class DeckMapSurface:
    """A viewport of fixed pixel size rendered through :mod:`pydeck`.

    Overlay and view state lives here between Streamlit reruns; ``to_deck``
    turns it into a :class:`pydeck.Deck` for ``st.pydeck_chart``. The chart
    must be drawn at ``width`` x ``height`` for the bounds math to hold.
    """

    center: Coordinate
    zoom: float
    width: int = 800
    height: int = 500
    markers: List[DeckMarker] = field(default_factory=list)
    polylines: List[DeckPolyline] = field(default_factory=list)
    transition_duration: float = 0.0
    released: bool = False

    def _check_live(self) -> None:
        if self.released:
            raise SurfaceReleasedError("Map surface has been released")

    def add_marker(
        self,
        point: Coordinate,
        *,
        label: str,
        popup: str,
        z_index: int,
        colour: str = "blue",
    ) -> DeckMarker:
        self._check_live()
        marker = DeckMarker(self, point, label, popup, z_index, colour)
        self.markers.append(marker)
        return marker

    def add_polyline(
        self,
        points: Sequence[Coordinate],
        *,
        colour: str = "blue",
        weight: float = 3.0,
    ) -> DeckPolyline:
        self._check_live()
        polyline = DeckPolyline(self, tuple(points), colour, weight)
        self.polylines.append(polyline)
        return polyline

    def visible_bounds(self) -> Bounds:
        self._check_live()
        cx, cy = _project(self.center, self.zoom)
        north_west = _unproject(cx - self.width / 2, cy - self.height / 2, self.zoom)
        south_east = _unproject(cx + self.width / 2, cy + self.height / 2, self.zoom)
        return Bounds(
            south=south_east.lat,
            west=north_west.lng,
            north=north_west.lat,
            east=south_east.lng,
        )

    def set_view(self, center: Coordinate, zoom: float, *, duration: float = 0.0) -> None:
        self._check_live()
        self.center = center
        self.zoom = zoom
        self.transition_duration = duration

    def fit_bounds(
        self,
        bounds: Bounds,
        *,
        max_zoom: float,
        padding_px: int = 0,
        duration: float = 0.0,
    ) -> None:
        """Centre on ``bounds`` at the largest whole zoom that shows all of it."""

        self._check_live()
        west, north = _project(Coordinate(bounds.north, bounds.west), 0)
        east, south = _project(Coordinate(bounds.south, bounds.east), 0)
        span_x = abs(east - west)
        span_y = abs(south - north)
        usable_w = max(self.width - 2 * padding_px, 1)
        usable_h = max(self.height - 2 * padding_px, 1)

        scales = []
        if span_x > 0:
            scales.append(usable_w / span_x)
        if span_y > 0:
            scales.append(usable_h / span_y)
        if scales:
            zoom = math.floor(math.log2(min(scales)))
            zoom = max(0, min(zoom, max_zoom))
        else:
            zoom = max_zoom

        center = _unproject((west + east) / 2, (north + south) / 2, 0)
        logger.debug("Fitting bounds %s at zoom %s", bounds, zoom)
        self.set_view(center, zoom, duration=duration)

    def release(self) -> None:
        self.markers.clear()
        self.polylines.clear()
        self.released = True

    def to_deck(self, *, tooltip: bool = True) -> pdk.Deck:
        """Build the pydeck chart for the current overlays and view."""

        self._check_live()
        base_map_layer = pdk.Layer(
            "TileLayer",
            data=OSM_TILE_URL,
            min_zoom=0,
            max_zoom=19,
            tile_size=TILE_SIZE,
        )
        layers: list[pdk.Layer] = [base_map_layer]

        path_data = [
            {
                "path": [[point.lng, point.lat] for point in polyline.points],
                "colour": _RGB.get(polyline.colour, _RGB["blue"]),
                "width": polyline.weight,
            }
            for polyline in self.polylines
        ]
        if path_data:
            layers.append(
                pdk.Layer(
                    "PathLayer",
                    data=path_data,
                    get_path="path",
                    get_color="colour",
                    get_width="width",
                    width_units="pixels",
                    opacity=0.7,
                )
            )

        # Later rows draw on top, so the highest z-index comes last.
        marker_data = [
            {
                "lon": marker.position.lng,
                "lat": marker.position.lat,
                "label": marker.label,
                "popup": marker.popup,
                "colour": _RGB.get(marker.colour, _RGB["blue"]),
            }
            for marker in sorted(self.markers, key=lambda item: item.z_index)
        ]
        if marker_data:
            layers.append(
                pdk.Layer(
                    "ScatterplotLayer",
                    data=marker_data,
                    get_position="[lon, lat]",
                    get_fill_color="colour",
                    get_radius=9,
                    radius_units="pixels",
                    pickable=True,
                )
            )
            layers.append(
                pdk.Layer(
                    "TextLayer",
                    data=marker_data,
                    get_position="[lon, lat]",
                    get_text="label",
                    get_size=22,
                    character_set="auto",
                    get_alignment_baseline="'bottom'",
                )
            )

        view_state = pdk.ViewState(
            latitude=self.center.lat,
            longitude=self.center.lng,
            zoom=self.zoom,
            transition_duration=int(self.transition_duration * 1000),
        )
        return pdk.Deck(
            layers=layers,
            initial_view_state=view_state,
            map_style=None,
            tooltip={"html": "{popup}"} if tooltip else None,
            width=self.width,
            height=self.height,
        )
