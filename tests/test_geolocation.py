import threading
import time

from clinic_locator.core.geolocation import GeolocationError, PositionFeed, PositionReading, WatchOptions
from clinic_locator.models import Coordinate


def _reading(lat=33.1581, lng=-117.3506, **kwargs):
    return PositionReading(coordinate=Coordinate(lat, lng), **kwargs)


class Recorder:
    def __init__(self):
        self.positions = []
        self.errors = []
        self.error_event = threading.Event()

    def on_position(self, reading):
        self.positions.append(reading)

    def on_error(self, error):
        self.errors.append(error)
        self.error_event.set()


def test_watch_receives_every_reading_until_cleared():
    feed = PositionFeed()
    recorder = Recorder()
    watch_id = feed.watch(recorder.on_position, recorder.on_error, WatchOptions(timeout=0))

    feed.publish(_reading(1, 1))
    feed.publish(_reading(2, 2))
    feed.clear_watch(watch_id)
    feed.publish(_reading(3, 3))

    assert [r.coordinate.latitude for r in recorder.positions] == [1, 2]
    assert feed.active_watches == 0


def test_zero_maximum_age_never_replays_cached_reading():
    feed = PositionFeed()
    feed.publish(_reading())
    recorder = Recorder()

    feed.watch(recorder.on_position, recorder.on_error, WatchOptions(maximum_age=0, timeout=0))

    assert recorder.positions == []


def test_positive_maximum_age_replays_fresh_cached_reading():
    feed = PositionFeed()
    feed.publish(_reading())
    feed.publish(_reading(5, 5, timestamp=time.time() - 3600))
    fresh = Recorder()
    feed.watch(fresh.on_position, fresh.on_error, WatchOptions(maximum_age=60, timeout=0))
    assert fresh.positions == []

    feed.publish(_reading(6, 6))
    late = Recorder()
    feed.watch(late.on_position, late.on_error, WatchOptions(maximum_age=60, timeout=0))
    assert [r.coordinate.latitude for r in late.positions] == [6]


def test_errors_are_delivered_as_geolocation_errors():
    feed = PositionFeed()
    recorder = Recorder()
    feed.watch(recorder.on_position, recorder.on_error, WatchOptions(timeout=0))

    feed.publish_error("User denied Geolocation")

    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], GeolocationError)
    assert "denied" in str(recorder.errors[0])


def test_acquisition_timeout_reports_error():
    feed = PositionFeed()
    recorder = Recorder()
    feed.watch(recorder.on_position, recorder.on_error, WatchOptions(timeout=0.05))

    assert recorder.error_event.wait(2)
    assert "Timed out" in str(recorder.errors[0])


def test_first_reading_disarms_timeout():
    feed = PositionFeed()
    recorder = Recorder()
    feed.watch(recorder.on_position, recorder.on_error, WatchOptions(timeout=0.1))
    feed.publish(_reading())

    assert not recorder.error_event.wait(0.3)
    assert len(recorder.positions) == 1


def test_cleared_watch_does_not_time_out():
    feed = PositionFeed()
    recorder = Recorder()
    watch_id = feed.watch(recorder.on_position, recorder.on_error, WatchOptions(timeout=0.05))
    feed.clear_watch(watch_id)

    assert not recorder.error_event.wait(0.2)


def test_options_are_kept_per_watch_and_close_clears_all():
    feed = PositionFeed()
    recorder = Recorder()
    options = WatchOptions(enable_high_accuracy=True, maximum_age=0, timeout=0)
    watch_id = feed.watch(recorder.on_position, recorder.on_error, options)
    feed.watch(recorder.on_position, recorder.on_error, WatchOptions(timeout=0))

    assert feed.options_for(watch_id) == options
    feed.close()
    assert feed.active_watches == 0
    assert feed.options_for(watch_id) is None
