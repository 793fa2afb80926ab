import gc
import io
import re
import threading
import time
import weakref
from types import SimpleNamespace

import pytest
from PIL import Image

from eventscope import tracking
from eventscope.tracking import ANONYMOUS_ID_KEY, EventTracker, FlushScheduler


class RecordingSink:
    """Collects flushed batches; raises while ``failing`` is set."""

    def __init__(self):
        self.batches = []
        self.failing = False

    def __call__(self, events):
        if self.failing:
            raise RuntimeError("network down")
        self.batches.append(list(events))

    @property
    def events(self):
        return [event for batch in self.batches for event in batch]


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def tracker(sink):
    return EventTracker(sink, batch_size=50)


def make_upload(name="photo.png", file_type="image/png", content=b""):
    return SimpleNamespace(name=name, type=file_type, size=len(content), getvalue=lambda: content)


def png_bytes(width, height):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


# IDS

def test_id_formats():
    assert re.fullmatch(r"session_\d+_[0-9a-z]{9}", tracking.generate_session_id())
    assert re.fullmatch(r"anon_\d+_[0-9a-z]{9}", tracking.generate_anonymous_id())
    assert tracking.is_anonymous_id("anon_1_abc")
    assert not tracking.is_anonymous_id("0f8fad5b-d9cb")
    assert not tracking.is_anonymous_id(None)


def test_anonymous_id_is_stored_and_reused(sink):
    store = {}
    first = EventTracker(sink, id_store=store)
    second = EventTracker(sink, id_store=store)

    assert tracking.is_anonymous_id(first.user_id)
    assert store[ANONYMOUS_ID_KEY] == first.user_id
    assert second.user_id == first.user_id
    assert second.session_id != first.session_id


def test_authenticated_user_id_is_used(sink):
    assert EventTracker(sink, user_id="user-1").user_id == "user-1"


def test_get_element_text():
    assert tracking.get_element_text("  Save  ") == "Save"
    assert len(tracking.get_element_text("x" * 300)) == tracking.MAX_CAPTURED_TEXT_LENGTH
    assert tracking.get_element_text(None) == ""


# EVENT SHAPE

def test_track_event_fills_every_column(tracker):
    event = tracker.track_event("custom", metadata={"a": 1})

    assert event["event_type"] == "custom"
    assert event["event_category"] == "interaction"
    assert event["user_id"] == tracker.user_id
    assert event["session_id"] == tracker.session_id
    assert event["route_path"] == "/"
    assert event["metadata"] == {"a": 1}
    assert event["timestamp"]
    for column in ("element_type", "x_coordinate", "scroll_position", "duration_ms", "file_metadata"):
        assert column in event
    assert tracker.queue_size == 1


def test_track_event_defaults_type(tracker):
    event = tracker.track_event()
    assert event["event_type"] == "unknown"
    assert event["metadata"] == {}


def test_track_click(tracker):
    event = tracker.track_click("BUTTON", element_id="save", element_class="", text=" Save " + "y" * 300, x=3, y=4)

    assert event["event_type"] == "click"
    assert event["element_type"] == "button"
    assert event["element_id"] == "save"
    assert event["element_class"] is None
    assert len(event["element_text"]) <= tracking.MAX_CAPTURED_TEXT_LENGTH
    assert (event["x_coordinate"], event["y_coordinate"]) == (3, 4)


def test_track_hover_records_duration(tracker):
    event = tracker.track_hover("a", element_id="link", duration_ms=1200)
    assert event["event_type"] == "hover"
    assert event["duration_ms"] == 1200


def test_track_scroll_is_throttled(tracker, monkeypatch):
    clock = iter([100.0, 100.5, 101.6])
    monkeypatch.setattr(tracking, "time", SimpleNamespace(monotonic=lambda: next(clock), time=time.time))

    assert tracker.track_scroll(10)["scroll_position"] == 10
    assert tracker.track_scroll(20) is None
    assert tracker.track_scroll(30)["scroll_position"] == 30
    assert tracker.queue_size == 2


def test_track_navigation_sets_context(tracker):
    tracker.track_navigation("/explore", page_url="/explore", page_title="Explore")
    event = tracker.track_click("button", element_id="go")

    assert event["route_path"] == "/explore"
    assert event["page_title"] == "Explore"


def test_track_visibility_change(tracker):
    event = tracker.track_visibility_change(hidden=True)
    assert event["event_category"] == "system"
    assert event["metadata"] == {"hidden": True, "visibility_state": "hidden"}


# FILE UPLOADS

def test_extract_file_metadata_reads_image_dimensions():
    upload = make_upload(content=png_bytes(4, 3))

    metadata = tracking.extract_file_metadata(upload)

    assert metadata["file_name"] == "photo.png"
    assert metadata["mime_type"] == "image/png"
    assert metadata["file_size"] == upload.size
    assert metadata["dimensions"] == {"width": 4, "height": 3}


def test_extract_file_metadata_skips_non_images():
    metadata = tracking.extract_file_metadata(make_upload("notes.txt", "text/plain", b"hello"))
    assert "dimensions" not in metadata


def test_extract_file_metadata_logs_unreadable_images(caplog):
    metadata = tracking.extract_file_metadata(make_upload(content=b"not an image"))

    assert "dimensions" not in metadata
    assert "Could not extract image dimensions" in caplog.text


def test_track_file_upload(tracker):
    event = tracker.track_file_upload(make_upload(content=png_bytes(2, 2)), {"input_id": "avatar"})

    assert event["event_type"] == "file_upload"
    assert event["event_category"] == "file"
    assert event["file_metadata"]["dimensions"] == {"width": 2, "height": 2}
    assert event["metadata"] == {"input_id": "avatar"}


# FLUSHING

def test_full_queue_flushes_one_batch(sink):
    tracker = EventTracker(sink, batch_size=3)

    for i in range(3):
        tracker.track_event("click", element_id=str(i))

    assert len(sink.batches) == 1
    assert [e["element_id"] for e in sink.batches[0]] == ["0", "1", "2"]
    assert tracker.queue_size == 0


def test_failed_timed_flush_requeues_at_head(sink):
    tracker = EventTracker(sink, batch_size=2)
    sink.failing = True
    tracker.track_event("click", element_id="a")
    tracker.track_event("click", element_id="b")

    assert tracker.queue_size == 2

    sink.failing = False
    tracker.track_event("click", element_id="c")

    assert [e["element_id"] for e in sink.batches[0]] == ["a", "b"]
    assert tracker.queue_size == 1


def test_forced_flush_sends_everything(tracker, sink):
    for _ in range(5):
        tracker.track_event("click")

    assert tracker.flush() == 5
    assert len(sink.events) == 5
    assert tracker.flush() == 0


def test_failed_forced_flush_drops_events(tracker, sink, caplog):
    tracker.track_event("click")
    sink.failing = True

    assert tracker.flush() == 0
    assert tracker.queue_size == 0
    assert "Error flushing 1 user events" in caplog.text


def test_scheduler_flushes_in_background(sink):
    scheduler = FlushScheduler(flush_interval=0.05)
    tracker = EventTracker(sink, batch_size=50)
    scheduler.register(tracker)
    scheduler.start()
    try:
        tracker.track_event("click")
        deadline = time.monotonic() + 2
        while not sink.events and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        scheduler.close()

    assert len(sink.events) == 1


def test_scheduler_close_stops_thread_and_flushes(sink):
    scheduler = FlushScheduler(flush_interval=60)
    tracker = EventTracker(sink, batch_size=50)
    scheduler.register(tracker)
    scheduler.start()
    tracker.track_event("click")

    assert scheduler.close() == 1
    assert not scheduler._thread.is_alive()
    assert scheduler.tracker_count == 0


def test_scheduler_timed_flush_requeues_on_failure(sink):
    scheduler = FlushScheduler(flush_interval=60)
    tracker = EventTracker(sink, batch_size=50)
    scheduler.register(tracker)
    scheduler.register(tracker)
    tracker.track_event("click")
    sink.failing = True

    assert scheduler.run_once() == 0
    assert tracker.queue_size == 1
    assert scheduler.tracker_count == 1

    sink.failing = False
    assert scheduler.run_once() == 1


def test_abandoned_sessions_leave_no_threads_or_trackers(sink):
    threads_before = threading.active_count()
    scheduler = FlushScheduler(flush_interval=60)
    scheduler.start()

    connected = {}
    refs = []
    for n in range(5):
        tracker = EventTracker(sink, batch_size=50)
        tracker.track_click("button", element_id=f"b{n}")
        connected[n] = True
        scheduler.register(tracker, is_alive=lambda n=n: connected[n])
        refs.append(weakref.ref(tracker))
    del tracker

    # one shared thread no matter how many sessions
    assert threading.active_count() == threads_before + 1

    connected[0] = False
    scheduler.run_once()
    assert scheduler.tracker_count == 4

    for n in connected:
        connected[n] = False
    scheduler.run_once()
    gc.collect()

    assert scheduler.tracker_count == 0
    assert all(ref() is None for ref in refs)
    # queued clicks were sent before the trackers were released
    assert len(sink.events) == 5

    scheduler.close()
    assert threading.active_count() == threads_before


def test_unregister_stops_timed_flush(sink):
    scheduler = FlushScheduler(flush_interval=60)
    tracker = EventTracker(sink, batch_size=50)
    scheduler.register(tracker)
    scheduler.unregister(tracker)
    tracker.track_event("click")

    assert scheduler.run_once() == 0
    assert tracker.queue_size == 1


def test_broken_session_check_keeps_tracker(sink, caplog):
    def is_alive():
        raise RuntimeError("runtime gone")

    scheduler = FlushScheduler(flush_interval=60)
    scheduler.register(EventTracker(sink, batch_size=50), is_alive=is_alive)

    scheduler.run_once()

    assert scheduler.tracker_count == 1
    assert "Could not check session of tracker" in caplog.text


# IDENTITY CHANGES

def test_sign_in_migrates_queued_anonymous_events(tracker):
    anonymous_id = tracker.user_id
    tracker.track_click("button", element_id="one")
    tracker.track_click("button", element_id="two")

    tracker.on_signed_in("user-1")

    events = tracker._queue
    assert {e["user_id"] for e in events} == {"user-1"}

    authenticated = next(e for e in events if e["event_type"] == "user_authenticated")
    assert authenticated["event_category"] == "authentication"
    assert authenticated["metadata"] == {
        "previous_user_id": anonymous_id,
        "new_user_id": "user-1",
        "migration_occurred": True,
    }

    migrated = next(e for e in events if e["event_type"] == "events_migrated")
    assert migrated["event_category"] == "system"
    assert migrated["metadata"]["events_migrated"] == 2
    assert migrated["metadata"]["from_user_id"] == anonymous_id


def test_sign_in_between_accounts_does_not_migrate(sink):
    tracker = EventTracker(sink, user_id="user-1")

    tracker.on_signed_in("user-2")

    types = [e["event_type"] for e in tracker._queue]
    assert types == ["user_authenticated"]
    assert tracker._queue[0]["metadata"]["migration_occurred"] is False


def test_sign_out_starts_new_anonymous_identity(sink):
    store = {}
    tracker = EventTracker(sink, user_id="user-1", id_store=store)

    tracker.on_signed_out()

    assert tracking.is_anonymous_id(tracker.user_id)
    assert store[ANONYMOUS_ID_KEY] == tracker.user_id
    assert tracker._queue[-1]["event_type"] == "user_signed_out"


def test_update_user_id(tracker):
    anonymous_id = tracker.user_id
    tracker.track_event("click")

    tracker.update_user_id("user-1")
    assert tracker.user_id == "user-1"
    assert tracker._queue[0]["user_id"] == "user-1"

    tracker.update_user_id(None)
    assert tracker.user_id == "user-1"
    assert anonymous_id != tracker.user_id


def test_migrate_anonymous_events_counts_only_matching_events(tracker):
    tracker.track_event("click")
    tracker.track_event("click")
    other = tracker.track_event("click")
    other["user_id"] = "someone-else"

    assert tracker.migrate_anonymous_events(tracker.user_id, "user-1") == 2
