"""Dashboard package exposing the delivery tracker page and map view."""

from .components.map_view import MapViewController, PreconditionError

__all__ = ["MapViewController", "PreconditionError"]
