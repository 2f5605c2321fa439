"""Smoke tests for the Streamlit dashboard package."""
from __future__ import annotations

import importlib


def test_dashboard_app_module_importable() -> None:
    module = importlib.import_module("dashboard.app")
    assert hasattr(module, "render_tracker_dashboard")
    assert module.REFRESH_SECONDS > 0


def test_streamlit_entrypoint_exposed() -> None:
    module = importlib.import_module("dashboard.app")
    render = getattr(module, "render_tracker_dashboard", None)
    assert callable(render)
    assert callable(getattr(module, "refresh_tracking", None))


def _tracker_page() -> None:
    import streamlit as st

    from dashboard.app import render_tracker_dashboard
    from tracker.geo import Coordinate
    from tracker.snapshot import CustomerLocation, Snapshot

    class _CountingClient:
        def fetch_snapshot(self, *, history=(), user=None):
            st.session_state["fetches"] = st.session_state.get("fetches", 0) + 1
            return Snapshot(
                driver=Coordinate(49.28, -123.12),
                customer=CustomerLocation(Coordinate(49.30, -123.10), "123 Main St"),
                user=user,
            )

    render_tracker_dashboard(_CountingClient())


def _button(app, label: str):
    return next(button for button in app.button if button.label == label)


def test_map_controls_do_not_refetch() -> None:
    from streamlit.testing.v1 import AppTest

    app = AppTest.from_function(_tracker_page, default_timeout=30)
    app.run()
    assert app.session_state["fetches"] == 1
    session = app.session_state["delivery_tracker"]
    assert len(session.history) == 1

    for label in ("🚗 Driver Location", "🏠 Customer Location", "📍 Fit All Points", "Reset map"):
        _button(app, label).click().run()

    assert not app.exception
    assert app.session_state["fetches"] == 1
    assert len(app.session_state["delivery_tracker"].history) == 1


def test_refresh_now_fetches_again() -> None:
    from streamlit.testing.v1 import AppTest

    app = AppTest.from_function(_tracker_page, default_timeout=30)
    app.run()
    _button(app, "Refresh now").click().run()

    assert app.session_state["fetches"] == 2
    assert len(app.session_state["delivery_tracker"].history) == 2
