"""
Audit log – the append-only ``POA Log`` sheet.

One row per outcome: ``[timestamp, message id, status, organization, title]``.
The log doubles as the sync cursor: its newest timestamp is the next run's
lower bound and its message ids are the dedup set.
"""

import logging
from datetime import datetime, timezone

from dateutil import parser as date_parser

from poa_sync.labels import (
    LOG_STATUS_ERROR,
    LOG_STATUS_HELD,
    LOG_STATUS_PROCESSED,
    MONTHLY_HEADERS,
)
from poa_sync.models import AuditLogEntry
from poa_sync.writers.sheets_store import a1_range

log = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """``2025-07-17T03:22:11.123Z``"""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(raw) -> datetime | None:
    if raw is None or not str(raw).strip():
        return None
    try:
        dt = date_parser.parse(str(raw))
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _cell(row, idx):
    return str(row[idx]) if len(row) > idx and row[idx] is not None else ""


def row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        timestamp=parse_timestamp(_cell(row, 0)),
        message_id=_cell(row, 1),
        status=_cell(row, 2),
        organization=_cell(row, 3),
        title=_cell(row, 4),
    )


class AuditLog:
    def __init__(self, store, spreadsheet_id: str, sheet_name: str, clock=utc_now):
        self.store = store
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self._clock = clock

    async def read_entries(self) -> list[AuditLogEntry]:
        """All logged rows below the header.  Raises BucketNotFoundError on first run."""
        values = await self.store.read_values(self.spreadsheet_id, [a1_range(self.sheet_name, "A2:E")])
        rows = values[0] if values else []
        return [row_to_entry(r) for r in rows if r]

    def build_rows(self, successes=(), held=(), errors=()) -> list[list[str]]:
        """One row per outcome, stamped with the email's sent date.

        The write time stands in only when the sent date is unknown.
        """
        now = self._clock()

        def stamp(res):
            return format_timestamp(res.sent_date or now)

        rows = []
        for res in successes:
            rows.append([stamp(res), res.message_id, LOG_STATUS_PROCESSED,
                         res.record.organization, res.record.title])
        for res in held:
            rows.append([stamp(res), res.message_id, LOG_STATUS_HELD,
                         res.record.organization, res.record.title])
        for res in errors:
            rec = res.record
            rows.append([stamp(res), res.message_id, LOG_STATUS_ERROR,
                         rec.organization if rec else "", rec.title if rec else ""])
        return rows

    async def append(self, successes=(), held=(), errors=()) -> int:
        """Append one row per outcome; returns the number of rows written."""
        rows = self.build_rows(successes, held, errors)
        if rows:
            await self.store.append_values(self.spreadsheet_id, self.sheet_name, rows)
        return len(rows)


# ------------------------------------------------------------------
# Cursor helpers
# ------------------------------------------------------------------

def watermark(entries) -> datetime | None:
    stamps = [e.timestamp for e in entries if e.timestamp is not None]
    return max(stamps) if stamps else None


def logged_ids(entries) -> set[str]:
    return {e.message_id for e in entries if e.message_id}


def latest_by_id(entries) -> dict[str, AuditLogEntry]:
    """Last row per message id (log order wins over timestamp ties)."""
    latest: dict[str, AuditLogEntry] = {}
    for entry in entries:
        if entry.message_id:
            latest[entry.message_id] = entry
    return latest


def outstanding_held(entries) -> list[AuditLogEntry]:
    """Held entries that no later row has resolved."""
    return [e for e in latest_by_id(entries).values() if e.is_held]


def held_report(entries) -> str:
    """Human-readable remediation notice, or "" when nothing is held."""
    held = outstanding_held(entries)
    if not held:
        return ""
    items = "\n".join(
        f"• {e.organization or 'Unknown Org'} — {e.title or 'Untitled Activity'} (Message ID: {e.message_id})"
        for e in held
    )
    return "\n".join([
        "Action needed: Some items are on hold due to missing/invalid dates.",
        "Please review and specify the correct Start Date and End Date for each held item:",
        items,
        "Next steps:",
        "- Reply with corrected dates in the original email OR",
        f'- Manually add/update the dates for the activity in the appropriate monthly sheet '
        f'(columns "{MONTHLY_HEADERS[4]}" and "{MONTHLY_HEADERS[5]}").',
        "- Or list message_id,start_date,end_date in a CSV and run with --reprocess <csv>.",
        "- Then re-run the sync to include them.",
    ])
