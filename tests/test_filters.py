import pytest

from eventscope import filters


def ids(events):
    return [e["id"] for e in events]


def test_filter_home_events(events):
    assert ids(filters.filter_home_events(events, "city-gent")) == ["e1", "e2"]
    assert ids(filters.filter_home_events(events, "city-gent", "cat-food")) == ["e2"]
    assert filters.filter_home_events(events, "city-gent", "cat-art") == []


@pytest.mark.parametrize(
    "search, expected",
    [
        ("jazz", ["e1"]),
        ("  JAZZ ", ["e1"]),
        ("live", ["e1"]),           # subtitle
        ("eilandje", ["e3"]),       # neighborhood
        ("gent", ["e1", "e2"]),     # city name
        ("nothing matches", []),
    ],
)
def test_filter_explore_events_search(events, search, expected):
    result = filters.filter_explore_events(events, search=search, sort_by="date")
    assert sorted(ids(result)) == sorted(expected)


def test_filter_explore_events_combines_criteria(events):
    result = filters.filter_explore_events(
        events, city_id="city-gent", category_id=filters.ALL, min_rating=4, sort_by="visitors"
    )
    assert ids(result) == ["e2", "e1"]

    result = filters.filter_explore_events(events, category_id="cat-music", min_rating=4.5)
    assert ids(result) == ["e1"]


def test_filter_explore_events_defaults_keep_everything(events):
    assert len(filters.filter_explore_events(events)) == len(events)


@pytest.mark.parametrize(
    "sort_by, expected",
    [
        ("rating", ["e1", "e2", "e3", "e4"]),
        ("visitors", ["e2", "e1", "e3", "e4"]),
        ("reviews", ["e1", "e2", "e3", "e4"]),
        ("date", ["e3", "e1", "e2", "e4"]),
        ("unknown", ["e1", "e2", "e3", "e4"]),
    ],
)
def test_sort_events(events, sort_by, expected):
    assert ids(filters.sort_events(events, sort_by)) == expected


def test_filter_users():
    users = [
        {"id": "u1", "name": "Alice", "email": "alice@example.com", "city": "Gent"},
        {"id": "u2", "name": "Bob", "email": "bob@example.com", "city": "Antwerpen"},
        {"id": "anon_1_x", "name": "Anonymous User", "email": None, "city": None},
    ]

    assert ids(filters.filter_users(users, search="ALICE")) == ["u1"]
    assert ids(filters.filter_users(users, search="bob@")) == ["u2"]
    assert ids(filters.filter_users(users, search="anon_")) == ["anon_1_x"]
    assert ids(filters.filter_users(users, city="Antwerpen")) == ["u2"]
    assert len(filters.filter_users(users)) == 3


def test_filter_admin_events(events):
    assert ids(filters.filter_admin_events(events, category_id="cat-music")) == ["e1", "e4"]
    assert ids(filters.filter_admin_events(events, city_id="city-antwerp")) == ["e3", "e4"]
    assert ids(filters.filter_admin_events(events, date_start="2024-12-01", date_end="2024-12-28")) == ["e1", "e2"]
    assert len(filters.filter_admin_events(events, category_id=filters.ALL, city_id=filters.ALL)) == 4


def test_filter_ratings():
    ratings = [{"score": 1}, {"score": 3}, {"score": 5}]
    assert filters.filter_ratings(ratings, min_score=3) == [{"score": 3}, {"score": 5}]
    assert filters.filter_ratings(ratings) == ratings


def test_filter_session_keys_cover_every_page():
    keys = filters.get_filter_session_keys()
    assert "home_city" in keys
    assert "admin_min_score" in keys
    assert filters.EXPLORE_FILTER_KEYS == [
        "explore_search", "explore_city", "explore_category", "explore_min_rating", "explore_sort",
    ]


def test_session_state_helpers(mocker):
    mock_st = mocker.patch("eventscope.filters.st")
    mock_st.session_state = {"explore_search": "jazz"}

    filters.initialize_session_state()
    # existing selections survive
    assert mock_st.session_state["explore_search"] == "jazz"
    assert mock_st.session_state["explore_min_rating"] == 0.0
    assert filters.has_explore_filters()

    filters.reset_filters(filters.EXPLORE_FILTER_KEYS)
    assert mock_st.session_state["explore_search"] == ""
    assert not filters.has_explore_filters()
