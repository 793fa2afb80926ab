#!/usr/bin/env python3
"""
Setup check for EventScope: secrets, migration file and Supabase tables.

Usage:  python -m scripts.check_setup
"""

import sys
from pathlib import Path

import toml

ROOT_DIR = Path(__file__).resolve().parents[1]
SECRETS_PATH = ROOT_DIR / ".streamlit" / "secrets.toml"
MIGRATION_PATH = ROOT_DIR / "supabase_migrations" / "001_schema.sql"

TABLES = ["cities", "categories", "events", "ratings", "visits", "event_views", "user_profiles", "user_events"]
PLACEHOLDERS = {"", "YOUR_SUPABASE_URL", "YOUR_SUPABASE_ANON_KEY"}


def check_secrets(secrets):
    """Return ``(errors, warnings)`` for a parsed secrets.toml."""
    errors, warnings = [], []

    supabase = secrets.get("connections", {}).get("supabase")
    if not supabase:
        errors.append("[connections.supabase] is missing")
    else:
        if supabase.get("url", "") in PLACEHOLDERS:
            errors.append("connections.supabase.url is not set")
        if supabase.get("key", "") in PLACEHOLDERS:
            errors.append("connections.supabase.key is not set")

    admin_emails = secrets.get("admin", {}).get("emails", [])
    if not admin_emails:
        warnings.append("[admin] emails is empty: nobody can open the Admin page")

    tracking = secrets.get("tracking", {})
    if tracking.get("batch_size") is not None and int(tracking["batch_size"]) < 1:
        errors.append("tracking.batch_size must be at least 1")
    if tracking.get("flush_interval") is not None and float(tracking["flush_interval"]) <= 0:
        errors.append("tracking.flush_interval must be positive")

    return errors, warnings


def check_tables(client):
    """Query each table once. Returns the names of tables that failed."""
    unreachable = []
    for table in TABLES:
        try:
            client.table(table).select("*").limit(1).execute()
        except Exception as e:
            print(f"   ⚠️  {table}: {e}")
            unreachable.append(table)
    return unreachable


def main():
    print("🧪 EventScope setup check\n")

    print("1️⃣  secrets.toml...")
    if not SECRETS_PATH.exists():
        print(f"   ❌ {SECRETS_PATH} not found (copy .streamlit/secrets.toml.example)")
        return 1
    try:
        secrets = toml.load(SECRETS_PATH)
    except Exception as e:
        print(f"   ❌ Could not parse secrets: {e}")
        return 1

    errors, warnings = check_secrets(secrets)
    for warning in warnings:
        print(f"   ⚠️  {warning}")
    for error in errors:
        print(f"   ❌ {error}")
    if errors:
        return 1
    print("   ✅ Secrets look good")

    print("\n2️⃣  Migration file...")
    if MIGRATION_PATH.exists():
        print("   ✅ supabase_migrations/001_schema.sql found")
    else:
        print("   ⚠️  Migration file not found")

    print("\n3️⃣  Supabase tables...")
    from supabase import create_client

    supabase = secrets["connections"]["supabase"]
    client = create_client(supabase["url"], supabase["key"])
    unreachable = check_tables(client)
    if unreachable:
        print(f"   ❌ {len(unreachable)} table(s) not reachable. Was the migration applied?")
        return 1
    print("   ✅ All tables reachable")

    print("\n🎉 Setup check finished. Start the app with: streamlit run streamlit_app.py\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
