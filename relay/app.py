"""aiohttp endpoints that re-publish upstream tracking data for automation tools.

Three shapes of the same data are offered: a plain poll, a webhook that an
automation workflow can ``POST`` to, and a server-sent event stream.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import UTC, datetime
from typing import Any, Callable, Dict, Optional

from aiohttp import web

from tracker.upstream import TrackingApiClient, get_tracking_client

logger = logging.getLogger(__name__)

POLL_PATH = "/api/poll/tracking-data"
WEBHOOK_PATH = "/api/webhook/tracking-data"
STREAM_PATH = "/api/stream/tracking-data"
STREAM_INTERVAL = float(os.environ.get("RELAY_STREAM_INTERVAL", "10"))

SUCCESS_MESSAGE = "Driver location retrieved successfully"

STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET",
    "Access-Control-Allow-Headers": "Cache-Control",
}

__all__ = [
    "POLL_PATH",
    "STREAM_PATH",
    "WEBHOOK_PATH",
    "create_app",
]


def _timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


async def _fetch(app: web.Application) -> Dict[str, Any]:
    client_factory: Callable[[], TrackingApiClient] = app["tracking_client_factory"]
    # requests is blocking; keep it off the event loop.
    return await asyncio.to_thread(lambda: client_factory().fetch_payload())


def _success_body(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "success": True,
        "data": payload,
        "driverLocation": payload["driverLocation"],
        "timestamp": _timestamp(),
    }


def _error_body(exc: Exception) -> Dict[str, Any]:
    return {
        "success": False,
        "error": str(exc) or "Unknown error",
        "timestamp": _timestamp(),
    }


async def handle_poll(request: web.Request) -> web.Response:
    try:
        payload = await _fetch(request.app)
    except RuntimeError as exc:
        logger.error("Polling error: %s", exc)
        body = _error_body(exc)
        body["endpoint"] = POLL_PATH
        return web.json_response(body, status=500)

    body = _success_body(payload)
    body["message"] = SUCCESS_MESSAGE
    body["endpoint"] = POLL_PATH
    return web.json_response(body)


async def handle_webhook(request: web.Request) -> web.Response:
    try:
        payload = await _fetch(request.app)
    except RuntimeError as exc:
        logger.error("Webhook error: %s", exc)
        return web.json_response(_error_body(exc), status=500)

    body = _success_body(payload)
    body["message"] = SUCCESS_MESSAGE
    return web.json_response(body)


async def handle_webhook_usage(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "message": "Driver location webhook endpoint",
            "usage": "POST to this endpoint to trigger driver location fetch",
            "timestamp": _timestamp(),
        }
    )


async def stream_frame(app: web.Application) -> bytes:
    """One ``data: ...`` frame holding a ``tracking-update`` or ``error`` event."""

    try:
        payload = await _fetch(app)
    except RuntimeError as exc:
        logger.warning("Stream fetch failed: %s", exc)
        event = {"event": "error", "data": json.dumps(_error_body(exc))}
    else:
        event = {"event": "tracking-update", "data": json.dumps(_success_body(payload))}
    return f"data: {json.dumps(event)}\n\n".encode()


async def handle_stream(request: web.Request) -> web.StreamResponse:
    response = web.StreamResponse(headers=STREAM_HEADERS)
    await response.prepare(request)
    interval: float = request.app["stream_interval"]
    logger.info("Stream client connected from %s", request.remote)

    try:
        while request.transport is not None and not request.transport.is_closing():
            await response.write(await stream_frame(request.app))
            await asyncio.sleep(interval)
    except ConnectionResetError:
        logger.info("Stream client disconnected")
    return response


def create_app(
    client: Optional[TrackingApiClient] = None,
    *,
    stream_interval: float = STREAM_INTERVAL,
) -> web.Application:
    """Build the relay application.

    Without ``client`` the shared environment-configured client is used, and a
    missing token surfaces as a 500 on the first request.
    """

    app = web.Application()
    app["tracking_client_factory"] = lambda: get_tracking_client(client)
    app["stream_interval"] = stream_interval

    app.router.add_get(POLL_PATH, handle_poll)
    app.router.add_post(WEBHOOK_PATH, handle_webhook)
    app.router.add_get(WEBHOOK_PATH, handle_webhook_usage)
    app.router.add_get(STREAM_PATH, handle_stream)
    return app
