import pytest

from eventscope import db
from tests.conftest import FakeSupabase


@pytest.fixture
def client(mocker):
    client = FakeSupabase(
        tables={
            "cities": [{"id": "c1", "name": "Gent"}],
            "events": [{"id": "e1", "title": "Jazz", "city_id": "c1", "category_id": "cat-music",
                        "event_date": "2024-12-27"}],
        },
    )
    mocker.patch("eventscope.db.get_client", return_value=client)
    mocker.patch("eventscope.db.st.error")
    return client


def test_reads_are_cached(client):
    assert db.get_cities() == [{"id": "c1", "name": "Gent"}]
    client.tables["cities"].append({"id": "c2", "name": "Antwerpen"})

    assert len(db.get_cities()) == 1


def test_read_errors_fall_back_to_empty_results(client):
    client.failing_tables.update({"cities", "events"})

    assert db.get_cities() == []
    assert db.get_events() == []
    assert db.get_event_by_id("e1") is None
    db.st.error.assert_called()


def test_submit_rating_refreshes_event_counters(client):
    client.rpc_values = {"get_event_review_count": {"e1": 0}}
    assert db.get_event_by_id("e1")["review_count"] == 0

    rating = db.submit_rating("e1", "u1", 4, "Good")
    client.rpc_values["get_event_review_count"]["e1"] = 1

    assert rating["score"] == 4
    assert db.get_event_by_id("e1")["review_count"] == 1
    assert len(db.get_user_ratings("u1")) == 1


def test_writes_need_a_user(client):
    assert db.submit_rating("e1", None, 4) is None
    assert db.check_in("e1", None) is None
    assert db.track_event_view("e1", None) is False
    assert "ratings" not in client.tables


def test_check_in_refreshes_visit_state(client):
    assert db.has_user_checked_in("e1", "u1") is False

    db.check_in("e1", "u1")

    assert db.has_user_checked_in("e1", "u1") is True
    assert len(db.get_user_visits("u1")) == 1


def test_failed_delete_returns_false(client):
    client.failing_tables.add("ratings")
    assert db.delete_rating("r1") is False


def test_profile_writes_refresh_cache(client):
    assert db.get_user_profile("u1") is None

    db.create_user_profile("u1", "alice@example.com", "Alice")
    assert db.get_user_profile("u1")["avatar"] == "AL"

    db.update_user_profile("u1", {"bio": "Jazz fan"})
    assert db.get_user_profile("u1")["bio"] == "Jazz fan"


def test_user_events_sink_writes_batches(client):
    sink = db.make_user_events_sink()
    sink([{"user_id": "u1", "session_id": "s", "event_type": "click"}])
    assert len(client.tables["user_events"]) == 1


def test_create_auth_client_is_never_cached(mocker):
    mocker.patch("eventscope.db.st.secrets", {"connections": {"supabase": {"url": "https://x.supabase.co", "key": "anon"}}})
    create = mocker.patch("eventscope.db.create_client", side_effect=lambda url, key: object())

    first = db.create_auth_client()
    second = db.create_auth_client()

    assert first is not second
    create.assert_called_with("https://x.supabase.co", "anon")


def test_create_auth_client_needs_credentials(mocker, monkeypatch):
    mocker.patch("eventscope.db.st.secrets", {})
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)

    with pytest.raises(ValueError):
        db.create_auth_client()
