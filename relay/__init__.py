"""HTTP endpoints re-publishing upstream tracking data."""

from .app import create_app

__all__ = ["create_app"]
