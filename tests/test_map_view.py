from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import pytest

from dashboard.components.map_surface import DeckMapSurface, SurfaceReleasedError
from dashboard.components.map_view import (
    ANIMATION_SECONDS,
    RECENTER_ZOOM,
    MapViewController,
    PreconditionError,
    ViewLifecycle,
    fit_to_points,
)
from tracker.geo import Bounds, Coordinate, MalformedCoordinateError
from tracker.snapshot import CustomerLocation, Snapshot


@dataclass
class _Marker:
    position: Coordinate
    label: str
    popup: str
    z_index: int

    def set_position(self, point: Coordinate) -> None:
        self.position = point

    def set_popup(self, text: str) -> None:
        self.popup = text


@dataclass
class _Polyline:
    points: Tuple[Coordinate, ...]

    def set_points(self, points: Sequence[Coordinate]) -> None:
        self.points = tuple(points)


@dataclass
class RecordingSurface:
    """Map surface double that records every call made by the controller."""

    center: Coordinate
    zoom: float
    bounds: Bounds = field(default_factory=lambda: Bounds(49.2, -123.2, 49.35, -123.05))
    markers: List[_Marker] = field(default_factory=list)
    polylines: List[_Polyline] = field(default_factory=list)
    views: List[Tuple[Coordinate, float, float]] = field(default_factory=list)
    fits: List[Tuple[Bounds, float, int, float]] = field(default_factory=list)
    released: bool = False

    def add_marker(self, point, *, label, popup, z_index, colour="blue"):
        if self.released:
            raise SurfaceReleasedError("released")
        marker = _Marker(point, label, popup, z_index)
        self.markers.append(marker)
        return marker

    def add_polyline(self, points, *, colour="blue", weight=3.0):
        polyline = _Polyline(tuple(points))
        self.polylines.append(polyline)
        return polyline

    def visible_bounds(self) -> Bounds:
        return self.bounds

    def set_view(self, center, zoom, *, duration=0.0):
        self.views.append((center, zoom, duration))

    def fit_bounds(self, bounds, *, max_zoom, padding_px=0, duration=0.0):
        self.fits.append((bounds, max_zoom, padding_px, duration))

    def release(self) -> None:
        self.released = True


class _Factory:
    def __init__(self) -> None:
        self.surfaces: List[RecordingSurface] = []

    def __call__(self, center: Coordinate, zoom: float) -> RecordingSurface:
        surface = RecordingSurface(center=center, zoom=zoom)
        self.surfaces.append(surface)
        return surface


def _snapshot(
    driver=(49.28, -123.12),
    customer=(49.30, -123.10),
    history: Sequence[Tuple[float, float]] = (),
    user: Optional[Tuple[float, float]] = None,
    address: str = "123 Main St",
) -> Snapshot:
    return Snapshot(
        driver=Coordinate(*driver),
        customer=CustomerLocation(Coordinate(*customer), address),
        history=tuple(Coordinate(*point) for point in history),
        user=Coordinate(*user) if user else None,
    )


@pytest.fixture
def factory() -> _Factory:
    return _Factory()


@pytest.fixture
def controller(factory) -> MapViewController:
    return MapViewController(surface_factory=factory)


def test_initialize_creates_mandatory_markers_centred_between_driver_and_customer(controller, factory):
    controller.initialize(_snapshot())

    assert len(factory.surfaces) == 1
    surface = factory.surfaces[0]
    assert surface.center.lat == pytest.approx(49.29)
    assert surface.center.lng == pytest.approx(-123.11)
    assert surface.zoom == 13
    assert [marker.label for marker in surface.markers] == ["🚗", "🏠"]
    assert surface.polylines == []
    assert controller.user_marker is None
    assert controller.path is None
    assert controller.lifecycle is ViewLifecycle.INITIALIZED
    assert len(surface.fits) == 1


def test_initialize_creates_optional_overlays_when_data_present(controller, factory):
    controller.initialize(_snapshot(history=[(49.28, -123.12), (49.281, -123.119)], user=(49.25, -123.1)))

    surface = factory.surfaces[0]
    assert len(surface.markers) == 3
    assert controller.user_marker is not None
    assert controller.path is not None
    assert len(controller.path.points) == 2


def test_marker_z_order_is_driver_customer_user(controller, factory):
    controller.initialize(_snapshot(user=(49.25, -123.1)))

    driver, customer, user = factory.surfaces[0].markers
    assert driver.z_index > customer.z_index > user.z_index


def test_initialize_twice_is_a_noop(controller, factory):
    snapshot = _snapshot(history=[(49.28, -123.12), (49.281, -123.119)])
    controller.initialize(snapshot)
    surface = factory.surfaces[0]
    markers_before = list(surface.markers)
    fits_before = list(surface.fits)

    controller.initialize(_snapshot(driver=(10.0, 10.0)))

    assert len(factory.surfaces) == 1
    assert surface.markers == markers_before
    assert surface.fits == fits_before
    assert controller.snapshot is snapshot


def test_apply_snapshot_before_initialize_raises(controller):
    with pytest.raises(PreconditionError):
        controller.apply_snapshot(_snapshot())
    assert controller.lifecycle is ViewLifecycle.UNINITIALIZED


def test_apply_snapshot_after_dispose_raises(controller, factory):
    controller.initialize(_snapshot())
    controller.dispose()

    assert factory.surfaces[0].released
    assert controller.lifecycle is ViewLifecycle.DISPOSED
    with pytest.raises(PreconditionError):
        controller.apply_snapshot(_snapshot())
    with pytest.raises(PreconditionError):
        controller.initialize(_snapshot())


def test_dispose_is_safe_to_repeat(controller, factory):
    controller.initialize(_snapshot())
    controller.dispose()
    controller.dispose()

    assert controller.surface is None
    assert controller.driver_marker is None


def test_apply_snapshot_moves_existing_overlays(controller, factory):
    controller.initialize(_snapshot())
    driver_marker = controller.driver_marker

    controller.apply_snapshot(_snapshot(driver=(49.285, -123.115), customer=(49.31, -123.09), address="9 New Rd"))

    surface = factory.surfaces[0]
    assert len(surface.markers) == 2
    assert controller.driver_marker is driver_marker
    assert driver_marker.position == Coordinate(49.285, -123.115)
    assert controller.customer_marker.position == Coordinate(49.31, -123.09)
    assert "9 New Rd" in controller.customer_marker.popup


def test_path_created_once_history_reaches_two_points(controller, factory):
    controller.initialize(_snapshot(history=[(49.28, -123.12)]))
    assert controller.path is None

    controller.apply_snapshot(_snapshot(history=[(49.28, -123.12), (49.281, -123.119)]))
    path = controller.path
    assert path is not None

    controller.apply_snapshot(_snapshot(history=[(49.28, -123.12), (49.281, -123.119), (49.282, -123.118)]))
    assert controller.path is path
    assert len(path.points) == 3
    assert len(factory.surfaces[0].polylines) == 1


def test_user_marker_never_created_after_initialize(controller, factory):
    controller.initialize(_snapshot())
    controller.apply_snapshot(_snapshot(user=(49.25, -123.1)))

    assert controller.user_marker is None
    assert len(factory.surfaces[0].markers) == 2
    with pytest.raises(PreconditionError):
        controller.center_on_user()


def test_user_marker_moves_when_present(controller):
    controller.initialize(_snapshot(user=(49.25, -123.1)))
    controller.apply_snapshot(_snapshot(user=(49.26, -123.2)))

    assert controller.user_marker.position == Coordinate(49.26, -123.2)


def test_malformed_snapshot_leaves_overlays_untouched(controller, factory):
    controller.initialize(_snapshot(history=[(49.28, -123.12), (49.281, -123.119)]))
    fits_before = list(factory.surfaces[0].fits)

    with pytest.raises(MalformedCoordinateError):
        controller.apply_snapshot(_snapshot(driver=(200.0, -123.12)))

    assert controller.driver_marker.position == Coordinate(49.28, -123.12)
    assert len(controller.path.points) == 2
    assert factory.surfaces[0].fits == fits_before
    assert controller.lifecycle is ViewLifecycle.INITIALIZED


def test_malformed_history_point_rejected_before_mutation(controller):
    controller.initialize(_snapshot())

    with pytest.raises(MalformedCoordinateError):
        controller.apply_snapshot(_snapshot(driver=(49.29, -123.11), history=[(49.28, -123.12), (49.28, 190.0)]))

    assert controller.driver_marker.position == Coordinate(49.28, -123.12)
    assert controller.path is None


def test_malformed_initial_snapshot_creates_no_surface(controller, factory):
    with pytest.raises(MalformedCoordinateError):
        controller.initialize(_snapshot(customer=(49.3, -200.0)))

    assert factory.surfaces == []
    assert controller.lifecycle is ViewLifecycle.UNINITIALIZED


@pytest.mark.parametrize("history", [[], [(80.0, 80.0)]])
def test_should_refit_false_with_short_history(controller, history):
    controller.initialize(_snapshot(user=(0.0, 0.0)))

    assert controller.should_refit(tuple(Coordinate(*point) for point in history)) is False


def test_should_refit_only_looks_at_last_three_points(controller):
    controller.initialize(_snapshot())
    history = tuple(
        Coordinate(*point)
        for point in [(10.0, 10.0), (49.28, -123.12), (49.281, -123.119), (49.282, -123.118)]
    )

    assert controller.should_refit(history) is False


def test_should_refit_counts_edge_points_as_visible(controller, factory):
    controller.initialize(_snapshot())
    bounds = factory.surfaces[0].bounds
    history = (Coordinate(bounds.south, bounds.west), Coordinate(bounds.north, bounds.east))

    assert controller.should_refit(history) is False
    assert controller.should_refit(history + (Coordinate(bounds.north + 0.0001, bounds.east),)) is True


def test_far_point_triggers_refit_over_all_points(controller, factory):
    inside = [(49.28, -123.12), (49.281, -123.119), (49.282, -123.118)]
    controller.initialize(_snapshot(driver=(49.282, -123.118), history=inside))
    surface = factory.surfaces[0]

    assert controller.apply_snapshot(_snapshot(driver=(49.282, -123.118), history=inside)) is False
    assert len(surface.fits) == 1

    far = (49.40, -123.00)
    refit = controller.apply_snapshot(_snapshot(driver=far, history=inside + [far]))

    assert refit is True
    assert len(surface.fits) == 2
    bounds, max_zoom, padding_px, duration = surface.fits[-1]
    # Customer (49.30, -123.10) and history span 49.28..49.40 / -123.12..-123.00.
    assert bounds.south == pytest.approx(49.28 - 0.012)
    assert bounds.north == pytest.approx(49.40 + 0.012)
    assert bounds.west == pytest.approx(-123.12 - 0.012)
    assert bounds.east == pytest.approx(-123.00 + 0.012)
    assert max_zoom == 18
    assert padding_px == 20
    assert duration == ANIMATION_SECONDS


def test_duplicate_snapshot_is_harmless(controller, factory):
    snapshot = _snapshot(history=[(49.28, -123.12), (49.281, -123.119)])
    controller.initialize(snapshot)
    controller.apply_snapshot(snapshot)
    controller.apply_snapshot(snapshot)

    surface = factory.surfaces[0]
    assert len(surface.markers) == 2
    assert len(surface.polylines) == 1
    assert controller.driver_marker.position == snapshot.driver


def test_recenter_operations_use_fixed_zoom(controller, factory):
    controller.initialize(_snapshot(user=(49.25, -123.05)))
    surface = factory.surfaces[0]

    controller.center_on_driver()
    controller.center_on_customer()
    controller.center_on_user()

    assert surface.views == [
        (Coordinate(49.28, -123.12), RECENTER_ZOOM, ANIMATION_SECONDS),
        (Coordinate(49.30, -123.10), RECENTER_ZOOM, ANIMATION_SECONDS),
        (Coordinate(49.25, -123.05), RECENTER_ZOOM, ANIMATION_SECONDS),
    ]
    assert controller.driver_marker.position == Coordinate(49.28, -123.12)


def test_recenter_requires_initialized(controller):
    with pytest.raises(PreconditionError):
        controller.center_on_driver()
    with pytest.raises(PreconditionError):
        controller.fit_all_points()


def test_fit_all_points_refits_on_demand(controller, factory):
    controller.initialize(_snapshot())
    controller.fit_all_points()

    assert len(factory.surfaces[0].fits) == 2


def test_fit_to_single_point_centres_at_close_up_zoom():
    surface = RecordingSurface(center=Coordinate(0.0, 0.0), zoom=3)
    fit_to_points(surface, [Coordinate(49.28, -123.12)])

    assert surface.views == [(Coordinate(49.28, -123.12), 15, ANIMATION_SECONDS)]
    assert surface.fits == []


def test_fit_to_coincident_points_uses_zoom_cap():
    surface = RecordingSurface(center=Coordinate(0.0, 0.0), zoom=3)
    point = Coordinate(49.28, -123.12)
    fit_to_points(surface, [point, point])

    bounds, max_zoom, _, _ = surface.fits[0]
    assert bounds.south == bounds.north == 49.28
    assert max_zoom == 18


def test_surface_failure_propagates():
    controller = MapViewController(surface_factory=DeckMapSurface)
    controller.initialize(_snapshot())
    controller.surface.release()

    with pytest.raises(SurfaceReleasedError):
        controller.apply_snapshot(_snapshot(driver=(49.285, -123.115)))
