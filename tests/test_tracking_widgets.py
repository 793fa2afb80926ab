from types import SimpleNamespace

import pytest

from eventscope import tracking_widgets
from eventscope.tracking import EventTracker, FlushScheduler
from eventscope.tracking_widgets import TRACKER_KEY


@pytest.fixture
def mock_st(mocker):
    mock_st = mocker.patch("eventscope.tracking_widgets.st")
    mock_st.session_state = {}
    mock_st.secrets = {}
    return mock_st


@pytest.fixture
def scheduler(mocker):
    scheduler = FlushScheduler(flush_interval=60)
    mocker.patch("eventscope.tracking_widgets.get_flush_scheduler", return_value=scheduler)
    mocker.patch("eventscope.tracking_widgets._session_alive_check", return_value=None)
    return scheduler


@pytest.fixture
def sent():
    return []


@pytest.fixture
def tracker(mock_st, sent, scheduler):
    tracker = EventTracker(sent.extend, batch_size=50)
    mock_st.session_state[TRACKER_KEY] = tracker
    return tracker


def upload(name, size):
    return SimpleNamespace(name=name, type="text/csv", size=size, getvalue=lambda: b"")


def test_get_tracker_disabled_in_secrets(mock_st, mocker, scheduler):
    mock_st.secrets = {"tracking": {"enabled": False}}
    make_sink = mocker.patch("eventscope.tracking_widgets.db.make_user_events_sink")

    assert tracking_widgets.get_tracker() is None
    assert mock_st.session_state[TRACKER_KEY] is None
    make_sink.assert_not_called()
    assert scheduler.tracker_count == 0


def test_get_tracker_without_database(mock_st, mocker):
    mocker.patch("eventscope.tracking_widgets.db.make_user_events_sink", side_effect=RuntimeError("no secrets"))

    assert tracking_widgets.get_tracker() is None


def test_get_tracker_creates_one_tracker_per_session(mock_st, mocker, sent, scheduler):
    mock_st.secrets = {"tracking": {"batch_size": 10, "flush_interval": 30}}
    mocker.patch("eventscope.tracking_widgets.db.make_user_events_sink", return_value=sent.extend)
    mocker.patch("eventscope.tracking_widgets.auth.get_current_user_id", return_value=None)

    tracker = tracking_widgets.get_tracker()

    assert tracker.batch_size == 10
    assert tracker.user_id.startswith("anon_")
    # the anonymous id lives in session state
    assert tracker.user_id in mock_st.session_state.values()
    assert tracking_widgets.get_tracker() is tracker
    # every session shares the scheduler's thread
    assert scheduler.tracker_count == 1
    assert scheduler._thread is None


def test_released_tracker_is_registered_again(mock_st, scheduler, tracker):
    tracking_widgets.get_tracker()
    scheduler.unregister(tracker)

    assert tracking_widgets.get_tracker() is tracker
    assert scheduler.tracker_count == 1


def test_flush_scheduler_is_shared_and_started_once(mocker):
    mocker.patch("eventscope.tracking_widgets._tracking_settings", return_value={"flush_interval": 60.0})
    register = mocker.patch("eventscope.tracking_widgets.atexit.register")
    start = mocker.patch.object(FlushScheduler, "start")
    tracking_widgets.get_flush_scheduler.clear()

    scheduler = tracking_widgets.get_flush_scheduler()

    assert tracking_widgets.get_flush_scheduler() is scheduler
    assert scheduler.flush_interval == 60.0
    start.assert_called_once_with()
    register.assert_called_once_with(scheduler.close)
    tracking_widgets.get_flush_scheduler.clear()


def test_session_alive_check_outside_streamlit(mocker):
    mocker.patch("eventscope.tracking_widgets.get_script_run_ctx", return_value=None)

    assert tracking_widgets._session_alive_check() is None


def test_session_alive_check_asks_the_runtime(mocker):
    mocker.patch("eventscope.tracking_widgets.get_script_run_ctx", return_value=SimpleNamespace(session_id="s-1"))
    mock_runtime = mocker.patch("eventscope.tracking_widgets.runtime")
    mock_runtime.exists.return_value = True
    mock_runtime.get_instance.return_value.is_active_session.return_value = False

    is_alive = tracking_widgets._session_alive_check()

    assert is_alive() is False
    mock_runtime.get_instance.return_value.is_active_session.assert_called_once_with("s-1")


def test_track_custom_event(tracker):
    event = tracking_widgets.track("login_attempt", "authentication", metadata={"email_domain": "example.com"})

    assert event["event_type"] == "login_attempt"
    assert event["event_category"] == "authentication"
    assert tracker.queue_size == 1


def test_track_is_noop_without_tracker(mock_st):
    mock_st.session_state[TRACKER_KEY] = None
    assert tracking_widgets.track("anything") is None


def test_track_failures_are_logged(tracker, mocker, caplog):
    mocker.patch.object(tracker, "track_event", side_effect=RuntimeError("boom"))

    assert tracking_widgets.track("click") is None
    assert "Could not track click" in caplog.text


def test_tracked_button(mock_st, tracker):
    mock_st.button.return_value = False
    assert tracking_widgets.tracked_button("Save", key="save_btn") is False
    assert tracker.queue_size == 0

    mock_st.button.return_value = True
    assert tracking_widgets.tracked_button("Save", key="save_btn", element_class="primary") is True

    event = tracker._queue[0]
    assert event["event_type"] == "click"
    assert event["element_type"] == "button"
    assert event["element_id"] == "save_btn"
    assert event["element_class"] == "primary"
    assert event["element_text"] == "Save"


def test_tracked_file_uploader_records_each_new_file_once(mock_st, tracker):
    files = [upload("a.csv", 10), upload("b.csv", 20)]
    mock_st.file_uploader.return_value = files

    tracking_widgets.tracked_file_uploader("Data", key="data", accept_multiple_files=True)
    tracking_widgets.tracked_file_uploader("Data", key="data", accept_multiple_files=True)

    events = tracker._queue
    assert [e["file_metadata"]["file_name"] for e in events] == ["a.csv", "b.csv"]
    assert events[1]["metadata"] == {"input_id": "data", "input_name": "Data", "file_index": 1, "total_files": 2}


def test_tracked_file_uploader_without_file(mock_st, tracker):
    mock_st.file_uploader.return_value = None
    assert tracking_widgets.tracked_file_uploader("Avatar", key="avatar") is None
    assert tracker.queue_size == 0


def test_track_page_view_only_on_change(tracker):
    tracking_widgets.track_page_view("/explore", "Explore")
    tracking_widgets.track_page_view("/explore", "Explore")
    tracking_widgets.track_page_view("/", "Home")

    routes = [e["route_path"] for e in tracker._queue]
    assert routes == ["/explore", "/"]
    assert tracker.current_route == "/"
