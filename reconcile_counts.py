#!/usr/bin/env python3
"""
Recompute every marathon's ``totalRegistrationCount`` from its registrations.

Registration and count updates are two separate store operations, so a
crash between them can leave a marathon's cached count off by one.
This script repairs such drift.  It is idempotent and safe to run
while the server is up.

Usage:
    python reconcile_counts.py --db ./marathon_hub_api/marathon_hub.db
    python reconcile_counts.py --db ./marathon_hub.db --dry-run

If --db is omitted, the DATABASE_URL setting is used.
"""

import argparse
import asyncio
import os
import sys

from marathon_hub_api.app.core.config import settings
from marathon_hub_api.app.core.db import DocumentStore, get_database_path
from marathon_hub_api.app.core.errors import StoreError
from marathon_hub_api.app.core.logging_config import setup_logging
from marathon_hub_api.app.services.registration_service import RegistrationService


def report_drift(store: DocumentStore) -> int:
    """Print marathons whose count disagrees with their registrations."""
    _, drift = asyncio.run(RegistrationService.find_count_drift(store))
    for entry in drift:
        print(f"[~] {entry['_id']} ({entry['title']}): stored={entry['stored']} actual={entry['actual']}")
    return len(drift)


def main():
    ap = argparse.ArgumentParser(description="Repair marathon registration counts (SQLite).")
    ap.add_argument("--db", help="Path to SQLite DB file (defaults to DATABASE_URL)")
    ap.add_argument("--dry-run", action="store_true", help="Only report marathons whose count is off")
    args = ap.parse_args()

    setup_logging(
        settings.log_level,
        settings.log_file or None,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
    )
    db_path = args.db or get_database_path()
    if not os.path.exists(db_path):
        print(f"[!] DB not found: {db_path}", file=sys.stderr)
        sys.exit(1)

    store = DocumentStore(db_path)
    try:
        store.init_db()
        if args.dry_run:
            drifted = report_drift(store)
            print(f"[+] {drifted} marathon(s) need repair")
            return
        summary = asyncio.run(RegistrationService.reconcile_counts(store))
        print(f"[+] Checked {summary['checked']} marathon(s), repaired {summary['repaired']}")
    except StoreError as e:
        print(f"[!] Store error: {e}", file=sys.stderr)
        sys.exit(2)
    finally:
        store.close()


if __name__ == "__main__":
    main()
