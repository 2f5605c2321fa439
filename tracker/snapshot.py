"""Snapshot and location-history types fed into the map view."""
from __future__ import annotations

import os
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Iterator, Mapping, Optional, Sequence

import pandas as pd

from tracker.geo import Coordinate, MalformedCoordinateError

__all__ = [
    "CustomerLocation",
    "HISTORY_LIMIT",
    "LocationHistory",
    "Snapshot",
    "TrackedPosition",
]

HISTORY_LIMIT = int(os.environ.get("TRACKER_HISTORY_LIMIT", "500"))


@dataclass(frozen=True)
class CustomerLocation:
    """Delivery destination: a coordinate plus a display-only address."""

    point: Coordinate
    address: str = ""

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "CustomerLocation":
        point = Coordinate.from_mapping(payload)
        address = payload.get("address") if isinstance(payload, Mapping) else None
        return cls(point=point, address=str(address or ""))

    @property
    def lat(self) -> float:
        return self.point.lat

    @property
    def lng(self) -> float:
        return self.point.lng


@dataclass(frozen=True)
class Snapshot:
    """One observation of a delivery in progress.

    ``history`` is ordered oldest first and is never mutated by consumers.
    """

    driver: Coordinate
    customer: CustomerLocation
    history: tuple[Coordinate, ...] = ()
    user: Optional[Coordinate] = None
    planned_arrival: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.history, tuple):
            object.__setattr__(self, "history", tuple(self.history))

    def validate(self) -> "Snapshot":
        """Check every coordinate, raising :class:`MalformedCoordinateError` on the first bad one."""

        self.driver.validate()
        self.customer.point.validate()
        for index, point in enumerate(self.history):
            try:
                point.validate()
            except MalformedCoordinateError as exc:
                raise MalformedCoordinateError(f"History point {index}: {exc}") from exc
        if self.user is not None:
            self.user.validate()
        return self

    def all_points(self) -> list[Coordinate]:
        """Driver, customer, the full history and the user location when known."""

        points = [self.driver, self.customer.point, *self.history]
        if self.user is not None:
            points.append(self.user)
        return points


@dataclass(frozen=True)
class TrackedPosition:
    """A driver coordinate stamped with the time it was observed."""

    point: Coordinate
    recorded_at: datetime


@dataclass
class LocationHistory:
    """In-memory, append-only record of driver positions for one session."""

    limit: int = HISTORY_LIMIT
    _entries: deque = field(init=False, repr=False, default_factory=deque)

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("History limit must be at least 1")
        self._entries = deque(maxlen=self.limit)

    def append(self, point: Coordinate, *, recorded_at: Optional[datetime] = None) -> TrackedPosition:
        entry = TrackedPosition(point=point.validate(), recorded_at=recorded_at or datetime.now(UTC))
        self._entries.append(entry)
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TrackedPosition]:
        return iter(self._entries)

    def coordinates(self) -> tuple[Coordinate, ...]:
        return tuple(entry.point for entry in self._entries)

    def recent(self, count: int = 10) -> list[TrackedPosition]:
        """Return up to ``count`` entries, newest first."""

        if count <= 0:
            return []
        entries: Sequence[TrackedPosition] = list(self._entries)
        return list(reversed(entries[-count:]))

    def to_frame(self, count: int = 10) -> pd.DataFrame:
        """Return the most recent entries as a display-ready DataFrame."""

        rows = [
            {
                "lat": round(entry.point.lat, 6),
                "lng": round(entry.point.lng, 6),
                "recorded_at": entry.recorded_at,
            }
            for entry in self.recent(count)
        ]
        return pd.DataFrame(rows, columns=["lat", "lng", "recorded_at"])
