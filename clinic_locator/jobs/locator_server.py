"""HTTP entrypoint exposing clinic search sessions (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from clinic_locator.core.config import get_settings
from clinic_locator.core.geolocation import GeolocationError, PositionFeed, PositionReading, WatchOptions
from clinic_locator.core.session import SearchSession, validate_radius
from clinic_locator.models import Coordinate
from clinic_locator.vendors.google_places import GeocodeError

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
_executor = ThreadPoolExecutor(max_workers=4)
_sessions: Dict[str, Tuple[SearchSession, PositionFeed]] = {}
_last_touched: Dict[str, float] = {}
_sessions_lock = threading.Lock()

# ---------- Helpers ----------


def _new_session(radius: Optional[int] = None) -> Tuple[SearchSession, PositionFeed]:
    settings = get_settings()
    feed = PositionFeed()
    session = SearchSession(
        settings.google_api_key,
        keywords=settings.keywords,
        radius_miles=radius if radius is not None else settings.default_radius_miles,
        position_source=feed,
        executor=_executor,
        max_pages=settings.max_pages,
        detail_delay=settings.detail_delay,
        watch_options=WatchOptions(timeout=settings.watch_timeout),
    )
    return session, feed


def _close_entry(session_id: str, entry: Tuple[SearchSession, PositionFeed]) -> None:
    session, feed = entry
    session.close()
    feed.close()
    logger.info("Closed search session %s", session_id)


def _evict_idle(now: float) -> None:
    """Tear down sessions nobody has touched for ``session_idle_seconds``."""
    idle_after = get_settings().session_idle_seconds
    if idle_after <= 0:
        return
    with _sessions_lock:
        expired = [sid for sid, touched in _last_touched.items() if now - touched > idle_after]
        entries = [(sid, _sessions.pop(sid, None)) for sid in expired]
        for sid in expired:
            _last_touched.pop(sid, None)
    for sid, entry in entries:
        if entry is not None:
            logger.info("Evicting search session %s after %.0fs idle", sid, idle_after)
            _close_entry(sid, entry)


def _get_or_create(session_id: str) -> Tuple[SearchSession, PositionFeed]:
    now = time.monotonic()
    _evict_idle(now)
    with _sessions_lock:
        entry = _sessions.get(session_id)
        if entry is None:
            entry = _new_session()
            _sessions[session_id] = entry
            logger.info("Created search session %s", session_id)
        _last_touched[session_id] = now
        return entry


def _lookup(session_id: str) -> Optional[Tuple[SearchSession, PositionFeed]]:
    now = time.monotonic()
    _evict_idle(now)
    with _sessions_lock:
        entry = _sessions.get(session_id)
        if entry is not None:
            _last_touched[session_id] = now
        return entry


def _parse_radius(payload: Dict[str, Any]) -> Optional[int]:
    radius_raw = payload.get("radius")
    if radius_raw is None:
        return None
    return validate_radius(radius_raw)


def _run_postal_search(session: SearchSession, payload: Dict[str, Any]) -> Any:
    postal_code = str(payload.get("zip") or "").strip()
    if not postal_code:
        return jsonify({"error": "zip is required"}), 400
    try:
        radius = _parse_radius(payload)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    if radius is not None:
        session.radius_miles = radius

    try:
        session.search_postal_code(postal_code)
    except GeocodeError as exc:
        logger.warning("Geocode failed for %s: %s", postal_code, exc)
        return jsonify({"error": f"geocode failed: {exc}"}), 422

    return jsonify({"data": session.to_dict()}), 200


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    settings = get_settings()
    with _sessions_lock:
        session_count = len(_sessions)
    return (
        jsonify(
            {
                "status": "ok",
                "api_key_configured": bool(settings.google_api_key),
                "sessions": session_count,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/search")
def search_once() -> Any:
    """Run a single postal-code search without keeping any session state."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    session, _feed = _new_session()
    with session:
        return _run_postal_search(session, payload)


@app.post("/sessions/<session_id>/search")
def session_search(session_id: str) -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    session, _feed = _get_or_create(session_id)
    return _run_postal_search(session, payload)


@app.post("/sessions/<session_id>/watch")
def start_watch(session_id: str) -> Any:
    """Use my location: subscribe the session to its position feed."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        radius = _parse_radius(payload)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    session, _feed = _get_or_create(session_id)
    if radius is not None:
        session.radius_miles = radius
    try:
        watch_id = session.use_my_location()
    except GeolocationError as exc:
        return jsonify({"error": str(exc)}), 409
    return jsonify({"data": {"status": "watching", "watch_id": watch_id}}), 202


@app.delete("/sessions/<session_id>/watch")
def stop_watch(session_id: str) -> Any:
    entry = _lookup(session_id)
    if entry is None:
        return jsonify({"error": "unknown session"}), 404
    entry[0].stop_watching()
    return jsonify({"data": {"status": "stopped"}}), 200


@app.post("/sessions/<session_id>/position")
def publish_position(session_id: str) -> Any:
    """Feed a device reading into the session; a watching session searches in the background."""
    entry = _lookup(session_id)
    if entry is None:
        return jsonify({"error": "unknown session"}), 404

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    missing = [f for f in ("lat", "lng") if payload.get(f) is None]
    if missing:
        return jsonify({"error": f"missing fields: {', '.join(missing)}"}), 400
    try:
        coordinate = Coordinate(latitude=float(payload["lat"]), longitude=float(payload["lng"]))
        accuracy = float(payload["accuracy"]) if payload.get("accuracy") is not None else None
    except (TypeError, ValueError):
        return jsonify({"error": "lat, lng and accuracy must be numeric"}), 400

    session, feed = entry
    feed.publish(PositionReading(coordinate=coordinate, accuracy=accuracy))
    return jsonify({"data": {"status": "accepted", "watching": session.is_watching}}), 202


@app.post("/sessions/<session_id>/position-error")
def publish_position_error(session_id: str) -> Any:
    entry = _lookup(session_id)
    if entry is None:
        return jsonify({"error": "unknown session"}), 404
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    message = str(payload.get("message") or "position unavailable")
    entry[1].publish_error(message)
    return jsonify({"data": {"status": "accepted"}}), 202


@app.get("/sessions/<session_id>")
def session_state(session_id: str) -> Any:
    entry = _lookup(session_id)
    if entry is None:
        return jsonify({"error": "unknown session"}), 404
    return jsonify({"data": entry[0].to_dict()}), 200


@app.delete("/sessions/<session_id>")
def close_session(session_id: str) -> Any:
    with _sessions_lock:
        entry = _sessions.pop(session_id, None)
        _last_touched.pop(session_id, None)
    if entry is None:
        return jsonify({"error": "unknown session"}), 404
    _close_entry(session_id, entry)
    return jsonify({"data": {"status": "closed"}}), 200


def main() -> None:
    env_port = os.getenv("PORT")
    logger.info("[BOOT] ENV PORT=%s", env_port)

    port = int(env_port or get_settings().locator_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)

    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
