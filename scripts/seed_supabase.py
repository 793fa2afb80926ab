"""
Seed Supabase with the demo categories, cities and events.

Usage:  python -m scripts.seed_supabase [--csv path/to/events.csv]

Credentials are read like in scripts.export_supabase_csv. Seeding is
idempotent: existing rows are upserted, not duplicated.
"""

import argparse
import logging
from pathlib import Path

import pandas as pd

from eventscope.formatting import CATEGORY_COLORS

from scripts.export_supabase_csv import create_supabase_client

logger = logging.getLogger(__name__)

SEED_CSV = Path(__file__).resolve().parent / "seed_data" / "events.csv"
REQUIRED_COLUMNS = {"title", "category", "city", "event_date", "event_time"}


def category_rows():
    """Category ids follow the ``cat-<name>`` convention used for icons."""
    return [
        {"id": f"cat-{name}", "name": name.capitalize(), "color": color}
        for name, color in CATEGORY_COLORS.items()
    ]


def load_seed_events(csv_path=SEED_CSV):
    """
    Read the seed CSV and check it has the columns the events table needs.
    Empty optional cells become None.
    """
    csv_path = Path(csv_path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Seed file not found: {csv_path}")

    df = pd.read_csv(csv_path, dtype=str)
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise RuntimeError(f"Missing columns in {csv_path}: {sorted(missing)}")

    df = df.astype(object).where(df.notna(), None)
    return df.to_dict(orient="records")


def build_event_rows(seed_events, city_ids):
    """Turn CSV rows into ``events`` rows, resolving city names to ids."""
    rows = []
    for seed in seed_events:
        city_id = city_ids.get(seed["city"])
        if city_id is None:
            logger.warning(f"Skipping '{seed['title']}': unknown city {seed['city']}")
            continue
        category = seed["category"].strip().lower()
        rows.append({
            "title": seed["title"],
            "subtitle": seed.get("subtitle"),
            "category_id": f"cat-{category}",
            "city_id": city_id,
            "neighborhood": seed.get("neighborhood"),
            "event_date": seed["event_date"],
            "event_time": seed["event_time"],
            "color": seed.get("color") or CATEGORY_COLORS.get(category),
        })
    return rows


def seed_database(client=None, csv_path=SEED_CSV):
    """
    Upsert categories, cities and events. Running it twice does not create
    duplicates (categories by id, cities by name, events by title/date/city).
    """
    client = client or create_supabase_client()
    seed_events = load_seed_events(csv_path)

    client.table("categories").upsert(category_rows(), on_conflict="id").execute()

    city_names = sorted({seed["city"] for seed in seed_events})
    client.table("cities").upsert([{"name": name} for name in city_names], on_conflict="name").execute()
    cities = client.table("cities").select("id, name").execute().data or []
    city_ids = {c["name"]: c["id"] for c in cities}

    events = build_event_rows(seed_events, city_ids)
    if events:
        client.table("events").upsert(events, on_conflict="title,event_date,city_id").execute()

    logger.info(f"Seeded {len(category_rows())} categories, {len(city_names)} cities, {len(events)} events")
    return len(events)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed Supabase with the demo events")
    parser.add_argument("--csv", default=str(SEED_CSV), help="Path to an events CSV")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    seeded = seed_database(csv_path=args.csv)
    print(f"{seeded} events in Supabase seeded from '{args.csv}'.")
