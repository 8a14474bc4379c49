"""
Incremental cursor – decides which emails the next run asks for.

Lower bound, first match wins:
  1. manual start date (start of that day)
  2. newest audit-log timestamp (when the date filter is on)
  3. none – unfiltered query

The dedup set is every message id already in the audit log, whichever
lower bound is used.  A missing log sheet (first run) means an empty log;
any other log-read failure propagates.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time

from poa_sync.audit_log import logged_ids, watermark
from poa_sync.errors import BucketNotFoundError

log = logging.getLogger(__name__)


@dataclass
class CursorState:
    after: datetime | None = None
    seen_ids: set = field(default_factory=set)
    source: str = "none"  # manual | watermark | none


def build_query(sender: str, phrases, after: datetime | None = None) -> str:
    parts = [f"from:{sender}"]
    parts.extend(f'"{p}"' for p in phrases)
    if after is not None:
        parts.append(f"after:{int(after.timestamp())}")
    return " ".join(parts)


def start_of_day(value, tz=None) -> datetime | None:
    """Start of the given day in *tz* (local time when None)."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value.strip())
        except ValueError:
            log.warning("Ignoring invalid manual start date %r", value)
            return None
    if not isinstance(value, date):
        return None
    dt = datetime.combine(value, time.min)
    return dt.replace(tzinfo=tz) if tz is not None else dt.astimezone()


class IncrementalCursor:
    def __init__(self, audit_log, use_date_filter: bool = True, tz=None):
        self.audit_log = audit_log
        self.use_date_filter = use_date_filter
        self.tz = tz

    async def _read_log(self, status):
        try:
            return await self.audit_log.read_entries()
        except BucketNotFoundError:
            status(f"{self.audit_log.sheet_name} sheet not found. Fetching all emails...")
            log.warning("Audit log sheet %r absent; running unfiltered", self.audit_log.sheet_name)
            return []

    async def resolve(self, manual_start_date=None, status=None) -> CursorState:
        status = status or (lambda msg: None)
        entries = await self._read_log(status)
        state = CursorState(seen_ids=logged_ids(entries))

        manual = start_of_day(manual_start_date, self.tz) if manual_start_date else None
        if manual is not None:
            state.after, state.source = manual, "manual"
            status(f"Filtering emails after manual start date {manual.date().isoformat()}")
        elif self.use_date_filter:
            mark = watermark(entries)
            if mark is not None:
                state.after, state.source = mark, "watermark"
                status(f"Optimized: Fetching only emails after {mark.isoformat()}...")

        log.info("Cursor: source=%s after=%s seen_ids=%d",
                 state.source, state.after, len(state.seen_ids))
        return state
