import itertools
from types import SimpleNamespace

import pytest


class FakeQuery:
    """Minimal in-memory stand-in for the supabase-py query builder."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload = None
        self.on_conflict = None
        self.filters = []
        self.ordering = None
        self.row_limit = None

    # builder methods -------------------------------------------------------

    def select(self, columns="*"):
        self.action = "select"
        self.columns = columns
        return self

    def insert(self, payload):
        self.action = "insert"
        self.payload = payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.action = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        return self

    def update(self, payload):
        self.action = "update"
        self.payload = payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.ordering = (column, desc)
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    # execution -------------------------------------------------------------

    def _matches(self, row):
        return all(check(row) for check in self.filters)

    def execute(self):
        self.client.calls.append((self.table, self.action, self.payload))
        if self.table in self.client.failing_tables:
            raise RuntimeError(f"{self.table} unavailable")

        rows = self.client.tables.setdefault(self.table, [])

        if self.action == "select":
            data = [dict(row) for row in rows if self._matches(row)]
            if self.ordering:
                column, desc = self.ordering
                data.sort(key=lambda row: row.get(column) or "", reverse=desc)
            if self.row_limit is not None:
                data = data[:self.row_limit]
            return SimpleNamespace(data=data)

        if self.action == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            saved = [self.client.store(self.table, row) for row in payload]
            return SimpleNamespace(data=saved)

        if self.action == "upsert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            keys = (self.on_conflict or "id").split(",")
            saved = []
            for row in payload:
                existing = next(
                    (r for r in rows if all(r.get(k) == row.get(k) for k in keys)),
                    None,
                )
                if existing is not None:
                    existing.update(row)
                    saved.append(dict(existing))
                else:
                    saved.append(self.client.store(self.table, row))
            return SimpleNamespace(data=saved)

        if self.action == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self.payload)
                    updated.append(dict(row))
            return SimpleNamespace(data=updated)

        if self.action == "delete":
            removed = [dict(row) for row in rows if self._matches(row)]
            self.client.tables[self.table] = [row for row in rows if not self._matches(row)]
            return SimpleNamespace(data=removed)

        raise AssertionError(f"unknown action {self.action}")


class FakeRpc:
    def __init__(self, client, name, params):
        self.client = client
        self.name = name
        self.params = params

    def execute(self):
        self.client.rpc_calls.append((self.name, self.params))
        values = self.client.rpc_values.get(self.name, {})
        return SimpleNamespace(data=values.get(self.params.get("event_uuid")))


class FakeSupabase:
    """In-memory Supabase client: ``tables`` holds rows, ``rpc_values`` RPC results per event id."""

    def __init__(self, tables=None, rpc_values=None):
        self.tables = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
        self.rpc_values = rpc_values or {}
        self.failing_tables = set()
        self.calls = []
        self.rpc_calls = []
        self._ids = itertools.count(1)

    def store(self, table, row):
        row = dict(row)
        row.setdefault("id", f"{table}-{next(self._ids)}")
        self.tables.setdefault(table, []).append(row)
        return dict(row)

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeRpc(self, name, params)


@pytest.fixture
def fake_client():
    return FakeSupabase()


@pytest.fixture
def categories():
    return [
        {"id": "cat-music", "name": "Music", "color": "#FF6B5B"},
        {"id": "cat-food", "name": "Food", "color": "#FFD93D"},
        {"id": "cat-art", "name": "Art", "color": "#FFB5C5"},
    ]


@pytest.fixture
def cities():
    return [
        {"id": "city-gent", "name": "Gent"},
        {"id": "city-antwerp", "name": "Antwerpen"},
    ]


@pytest.fixture
def events(categories, cities):
    """Events in the shape returned by ``queries.get_events``."""
    by_category = {c["id"]: c for c in categories}
    by_city = {c["id"]: c for c in cities}

    def make(event_id, title, category_id, city_id, event_date, avg, reviews, visitors, views, **extra):
        event = {
            "id": event_id,
            "title": title,
            "subtitle": extra.pop("subtitle", None),
            "category_id": category_id,
            "city_id": city_id,
            "neighborhood": extra.pop("neighborhood", None),
            "event_date": event_date,
            "event_time": "20:00:00",
            "color": by_category[category_id]["color"],
            "category": by_category[category_id],
            "city": by_city[city_id],
            "avg_rating": avg,
            "review_count": reviews,
            "visitor_count": visitors,
            "view_count": views,
        }
        event.update(extra)
        return event

    return [
        # 2024-12-27 is a Friday, 2024-12-28 a Saturday, 2024-12-29 a Sunday
        make("e1", "Gentse Jazz Night", "cat-music", "city-gent", "2024-12-27", 4.8, 40, 1500, 200,
             subtitle="Live jazz", neighborhood="Patershol"),
        make("e2", "Street Food Market", "cat-food", "city-gent", "2024-12-28", 4.2, 10, 2500, 100),
        make("e3", "Harbour Art Walk", "cat-art", "city-antwerp", "2024-11-13", 3.9, 5, 300, 50,
             neighborhood="Eilandje"),
        make("e4", "Rock Werchter Warmup", "cat-music", "city-antwerp", "2024-12-29", 0, 0, 0, 0),
    ]


@pytest.fixture(autouse=True)
def clear_streamlit_caches():
    import streamlit as st

    st.cache_data.clear()
    yield
    st.cache_data.clear()
