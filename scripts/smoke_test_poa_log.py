#!/usr/bin/env python
"""Smoke-test: read the POA Log from Google Sheets and print the last 3 rows,
the watermark the next run would use, and the outstanding held items.

Usage
-----
1. Make sure the following env vars are set (or present in a .env file):

     POA_SPREADSHEET_ID=<your-sheet-id>
     GOOGLE_SERVICE_ACCOUNT_JSON_PATH=<path>   # or GOOGLE_OAUTH_TOKEN_PATH

2. Run from the repo root:

     python scripts/smoke_test_poa_log.py
"""

from __future__ import annotations

import asyncio
import os
import sys

# Ensure the repo root is on sys.path so imports resolve.
_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from poa_sync.audit_log import AuditLog, outstanding_held, watermark
from poa_sync.config import load_settings
from poa_sync.errors import BucketNotFoundError, PoaSyncError
from poa_sync.utils import build_credentials, load_env
from poa_sync.writers.sheets_store import GoogleSheetsStore

SEPARATOR = "-" * 60


async def _read(settings, env):
    sheets_creds, _ = build_credentials(env)
    store = GoogleSheetsStore.from_credentials(sheets_creds)
    tabs = [b.name for b in await store.get_structure(settings.spreadsheet_id)]
    print(f"\nAvailable tabs ({len(tabs)}): {tabs}")
    return await AuditLog(store, settings.spreadsheet_id, settings.log_bucket_name).read_entries()


def main() -> int:
    print(SEPARATOR)
    print("Smoke Test: POA Log")
    print(SEPARATOR)

    env = load_env()
    settings = load_settings(env)
    if not settings.spreadsheet_id:
        print("\n[FAIL] POA_SPREADSHEET_ID is not set")
        return 1

    try:
        entries = asyncio.run(_read(settings, env))
    except BucketNotFoundError:
        print(f"\n[WARN] '{settings.log_bucket_name}' does not exist yet; the next run fetches everything.")
        return 0
    except PoaSyncError as exc:
        print(f"\n[FAIL] {exc}")
        return 1

    print(f"\n'{settings.log_bucket_name}': {len(entries)} rows")
    print(SEPARATOR)
    for e in entries[-3:]:
        print(f"  {e.timestamp}  {e.message_id}  {e.status}  {e.organization}")
    print(SEPARATOR)

    mark = watermark(entries)
    print(f"\nNext run fetches emails after: {mark.isoformat() if mark else 'N/A (no timestamps)'}")
    held = outstanding_held(entries)
    print(f"Outstanding held items: {len(held)}")
    for e in held:
        print(f"  {e.message_id}  {e.organization} / {e.title}")

    print("\n[OK] Smoke test passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
