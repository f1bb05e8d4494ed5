"""Device position subscriptions.

A position source hands out *watches*: long-lived subscriptions that deliver
every new reading to ``on_position`` until cleared. ``PositionFeed`` is the
in-process implementation; readings are pushed into it by whatever talks to the
device (an HTTP client, a GPS track on stdin).
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from clinic_locator.models import Coordinate

logger = logging.getLogger(__name__)


class GeolocationError(RuntimeError):
    """Raised when the device position is unavailable."""


@dataclass(frozen=True)
class WatchOptions:
    enable_high_accuracy: bool = True
    maximum_age: float = 0.0
    timeout: float = 10.0


@dataclass(frozen=True)
class PositionReading:
    coordinate: Coordinate
    accuracy: Optional[float] = None
    timestamp: float = field(default_factory=time.time)


PositionCallback = Callable[[PositionReading], None]
ErrorCallback = Callable[[GeolocationError], None]


@dataclass
class _Watch:
    on_position: PositionCallback
    on_error: ErrorCallback
    options: WatchOptions
    timer: Optional[threading.Timer] = None


class PositionFeed:
    """Fan readings and errors out to the currently registered watches."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._watches: Dict[int, _Watch] = {}
        self._ids = itertools.count(1)
        self._last_reading: Optional[PositionReading] = None

    @property
    def active_watches(self) -> int:
        with self._lock:
            return len(self._watches)

    def options_for(self, watch_id: int) -> Optional[WatchOptions]:
        with self._lock:
            watch = self._watches.get(watch_id)
            return watch.options if watch else None

    def watch(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        options: Optional[WatchOptions] = None,
    ) -> int:
        options = options or WatchOptions()
        with self._lock:
            watch_id = next(self._ids)
            watch = _Watch(on_position=on_position, on_error=on_error, options=options)
            self._watches[watch_id] = watch
            cached = self._last_reading
            self._arm_timer(watch_id, watch)
        logger.info("Started position watch %d (high_accuracy=%s)", watch_id, options.enable_high_accuracy)

        if cached is not None and options.maximum_age > 0 and time.time() - cached.timestamp <= options.maximum_age:
            self._deliver(watch_id, cached)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        with self._lock:
            watch = self._watches.pop(watch_id, None)
            if watch is not None and watch.timer is not None:
                watch.timer.cancel()
        if watch is not None:
            logger.info("Cleared position watch %d", watch_id)

    def publish(self, reading: PositionReading) -> None:
        with self._lock:
            self._last_reading = reading
            watch_ids = list(self._watches)
        for watch_id in watch_ids:
            self._deliver(watch_id, reading)

    def publish_error(self, message: str) -> None:
        error = GeolocationError(message)
        with self._lock:
            watches = list(self._watches.values())
        for watch in watches:
            watch.on_error(error)

    def close(self) -> None:
        with self._lock:
            watch_ids = list(self._watches)
        for watch_id in watch_ids:
            self.clear_watch(watch_id)

    def _deliver(self, watch_id: int, reading: PositionReading) -> None:
        with self._lock:
            watch = self._watches.get(watch_id)
            if watch is None:
                return
            if watch.timer is not None:
                watch.timer.cancel()
                watch.timer = None
        watch.on_position(reading)

    def _arm_timer(self, watch_id: int, watch: _Watch) -> None:
        # Caller holds self._lock. Only the first reading is timed.
        if watch.options.timeout <= 0:
            return
        timer = threading.Timer(watch.options.timeout, self._on_timeout, args=(watch_id, watch))
        timer.daemon = True
        watch.timer = timer
        timer.start()

    def _on_timeout(self, watch_id: int, watch: _Watch) -> None:
        with self._lock:
            if self._watches.get(watch_id) is not watch:
                return
            watch.timer = None
        logger.warning("Position watch %d timed out after %.1fs", watch_id, watch.options.timeout)
        watch.on_error(GeolocationError(f"Timed out acquiring position after {watch.options.timeout:g}s"))
