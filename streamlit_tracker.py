"""Streamlit entrypoint for the delivery tracker dashboard."""
from __future__ import annotations

import logging
import os

import streamlit as st

from dashboard.app import render_tracker_dashboard

logging.basicConfig(
    level=os.environ.get("TRACKER_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

st.set_page_config(
    page_title="Delivery Tracker",
    page_icon="🚚",
    layout="wide",
)

render_tracker_dashboard()
