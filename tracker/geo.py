"""Coordinate and bounding-box helpers shared by the tracker components."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

__all__ = [
    "Bounds",
    "Coordinate",
    "MalformedCoordinateError",
    "midpoint",
]


class MalformedCoordinateError(ValueError):
    """Raised when a latitude/longitude pair is missing, non-numeric or out of range."""


def _coerce_degrees(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise MalformedCoordinateError(f"{name} must be numeric, got {value!r}")
    try:
        degrees = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedCoordinateError(f"{name} must be numeric, got {value!r}") from exc
    if not math.isfinite(degrees):
        raise MalformedCoordinateError(f"{name} must be finite, got {value!r}")
    return degrees


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in degrees.

    Construction does not validate so that a malformed snapshot can still be
    represented and rejected explicitly by :meth:`validate` at the boundary.
    """

    lat: float
    lng: float

    def validate(self) -> "Coordinate":
        """Return ``self`` or raise :class:`MalformedCoordinateError`."""

        lat = _coerce_degrees(self.lat, "latitude")
        lng = _coerce_degrees(self.lng, "longitude")
        if not -90.0 <= lat <= 90.0:
            raise MalformedCoordinateError(f"Latitude {lat} outside [-90, 90]")
        if not -180.0 <= lng <= 180.0:
            raise MalformedCoordinateError(f"Longitude {lng} outside [-180, 180]")
        return self

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "Coordinate":
        """Parse an upstream ``{"latitude": .., "longitude": ..}`` mapping.

        ``lat``/``lng``/``lon`` keys are accepted as well.
        """

        if not isinstance(payload, Mapping):
            raise MalformedCoordinateError(f"Expected a location mapping, got {payload!r}")
        lat = payload.get("latitude", payload.get("lat"))
        lng = payload.get("longitude", payload.get("lng", payload.get("lon")))
        coordinate = cls(
            lat=_coerce_degrees(lat, "latitude"),
            lng=_coerce_degrees(lng, "longitude"),
        )
        return coordinate.validate()

    @classmethod
    def parse(cls, text: str) -> "Coordinate":
        """Parse a ``"lat,lng"`` string such as ``"49.28,-123.12"``."""

        lat, sep, lng = str(text).partition(",")
        if not sep:
            raise MalformedCoordinateError(f"Expected 'lat,lng', got {text!r}")
        return cls(
            lat=_coerce_degrees(lat.strip(), "latitude"),
            lng=_coerce_degrees(lng.strip(), "longitude"),
        ).validate()

    def as_list(self) -> list[float]:
        """Return ``[lat, lng]`` as expected by Leaflet/Folium."""

        return [self.lat, self.lng]


def midpoint(a: Coordinate, b: Coordinate) -> Coordinate:
    """Arithmetic midpoint of two coordinates."""

    return Coordinate(lat=(a.lat + b.lat) / 2.0, lng=(a.lng + b.lng) / 2.0)


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned latitude/longitude box described by its corners."""

    south: float
    west: float
    north: float
    east: float

    @classmethod
    def from_points(cls, points: Iterable[Coordinate]) -> "Bounds":
        coords = list(points)
        if not coords:
            raise ValueError("Cannot compute bounds of an empty point set")
        lats = [point.lat for point in coords]
        lngs = [point.lng for point in coords]
        return cls(south=min(lats), west=min(lngs), north=max(lats), east=max(lngs))

    def pad(self, ratio: float) -> "Bounds":
        """Grow every side by ``ratio`` times the box span."""

        lat_buffer = abs(self.north - self.south) * ratio
        lng_buffer = abs(self.east - self.west) * ratio
        return Bounds(
            south=self.south - lat_buffer,
            west=self.west - lng_buffer,
            north=self.north + lat_buffer,
            east=self.east + lng_buffer,
        )

    def contains(self, point: Coordinate) -> bool:
        # Edges count as inside.
        return (
            self.south <= point.lat <= self.north
            and self.west <= point.lng <= self.east
        )

    @property
    def center(self) -> Coordinate:
        return Coordinate(lat=(self.south + self.north) / 2.0, lng=(self.west + self.east) / 2.0)

    def as_corners(self) -> list[list[float]]:
        """Return ``[[south, west], [north, east]]`` for Folium's ``fit_bounds``."""

        return [[self.south, self.west], [self.north, self.east]]
