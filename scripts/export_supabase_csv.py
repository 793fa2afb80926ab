"""
Export events, ratings and users from Supabase as CSV files.

Usage:  python -m scripts.export_supabase_csv

Files are written to ``assets/exports``.
"""

import logging
import os
from pathlib import Path

import toml
from dotenv import load_dotenv
from supabase import create_client

from eventscope import queries
from eventscope.formatting import (
    dataframe_to_csv,
    events_to_dataframe,
    ratings_to_dataframe,
    users_to_dataframe,
)
from eventscope.stats import build_user_stats

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[1]
SECRETS_PATH = ROOT_DIR / ".streamlit" / "secrets.toml"
EXPORT_DIR = ROOT_DIR / "assets" / "exports"


def read_supabase_credentials():
    """
    Read the Supabase URL and key.

    Environment variables (also from a ``.env`` file) win:
        SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY or SUPABASE_KEY
    Otherwise the ``[connections.supabase]`` block of
    ``.streamlit/secrets.toml`` is used, so the scripts work with the same
    configuration as the app.
    """
    load_dotenv()
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_KEY")

    if (not url or not key) and SECRETS_PATH.exists():
        secrets = toml.load(SECRETS_PATH)
        supabase_secrets = secrets.get("connections", {}).get("supabase", {})
        url = url or supabase_secrets.get("url")
        key = key or supabase_secrets.get("key")

    if not url or not key:
        raise RuntimeError(
            "Supabase credentials not found. Set SUPABASE_URL and SUPABASE_KEY "
            "or fill [connections.supabase] in .streamlit/secrets.toml."
        )

    return url, key


def create_supabase_client():
    url, key = read_supabase_credentials()
    return create_client(url, key)


def export_all_csvs(client=None, export_dir=EXPORT_DIR):
    """
    Write the three admin exports to ``assets/exports``:

    1) users_export.csv    - everyone who rated, with counts and last activity
    2) events_export.csv   - all events with category, city and counters
    3) ratings_export.csv  - all ratings with the event title

    Returns the written paths.
    """
    export_dir = Path(export_dir)
    export_dir.mkdir(parents=True, exist_ok=True)
    client = client or create_supabase_client()

    events = queries.get_events(client)
    ratings = queries.get_all_ratings(client)
    users = build_user_stats(ratings, queries.get_users(client))

    exports = {
        "users_export.csv": users_to_dataframe(users),
        "events_export.csv": events_to_dataframe(events),
        "ratings_export.csv": ratings_to_dataframe(ratings),
    }

    paths = []
    for file_name, df in exports.items():
        path = export_dir / file_name
        path.write_bytes(dataframe_to_csv(df))
        logger.info(f"Wrote {len(df)} rows to {path}")
        paths.append(path)
    return paths


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    for written in export_all_csvs():
        print(f"- {written}")
