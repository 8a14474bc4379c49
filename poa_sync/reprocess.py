"""
Held reprocess – re-run held emails with manually supplied dates.

Reads an overrides CSV with columns ``message_id,start_date,end_date``,
re-fetches those still on hold (the one path that re-fetches ids
already in the POA Log), substitutes the supplied dates and pushes them
through the normal classify → provision → write → log path.  A successful
write logs the id as ``Processed``, which clears it from the held report.
Any other id is marked skipped and never written.

Usage:
    python -m poa_sync.run --reprocess held_dates.csv
"""

import csv
import logging

from poa_sync.audit_log import outstanding_held
from poa_sync.errors import BucketNotFoundError, ConfigError
from poa_sync.models import EmailTask, SyncReport, TaskStatus

log = logging.getLogger(__name__)

CSV_COLUMNS = ("message_id", "start_date", "end_date")
NOT_HELD_REASON = "Not an outstanding held item"


def load_overrides_csv(csv_path: str) -> dict[str, tuple[str, str]]:
    """Read the overrides CSV into ``{message_id: (start_raw, end_raw)}``."""
    overrides = {}
    with open(csv_path, "r", encoding="utf-8", errors="replace") as f:
        reader = csv.DictReader(f)
        missing = [c for c in CSV_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            raise ConfigError(f"{csv_path}: missing column(s) {', '.join(missing)}")
        for row in reader:
            message_id = (row.get("message_id") or "").strip()
            if not message_id:
                continue
            overrides[message_id] = (
                (row.get("start_date") or "").strip(),
                (row.get("end_date") or "").strip(),
            )
    log.info("Loaded %d date overrides from %s", len(overrides), csv_path)
    return overrides


async def reprocess_held(pipeline, overrides, report: SyncReport | None = None) -> SyncReport:
    """Push each outstanding held id in *overrides* through *pipeline* with its
    supplied dates.  Ids that are not outstanding held items are skipped, so a
    logged success is never written twice."""
    if report is None:
        report = SyncReport()
    report.query = "reprocess"
    ids = list(overrides)
    if not ids:
        pipeline.observer.status("No held emails to reprocess.")
        return report

    try:
        entries = await pipeline.audit_log.read_entries()
    except BucketNotFoundError:
        entries = []
    held_ids = {e.message_id for e in outstanding_held(entries)}
    targets = [i for i in ids if i in held_ids]
    not_held = [i for i in ids if i not in held_ids]

    pipeline.observer.queue([EmailTask(id=message_id) for message_id in ids])
    if not_held:
        log.warning("Skipping %d id(s) that are not outstanding held items: %s",
                    len(not_held), not_held)
        pipeline.observer.update_tasks_bulk(not_held, {
            "status": TaskStatus.SKIPPED, "error": NOT_HELD_REASON,
        })
    report.skipped = len(not_held)
    report.candidates = len(targets)

    if not targets:
        pipeline.observer.status(
            f"No held emails to reprocess. Skipped {len(not_held)} id(s) that are not on hold."
        )
        return report

    pipeline.observer.status(f"Reprocessing {len(targets)} held emails with supplied dates...")
    await pipeline.process_ids(targets, report, date_overrides=overrides)

    skipped_msg = f"; skipped {len(not_held)} not on hold" if not_held else ""
    pipeline.observer.status(
        f"Reprocess complete. {report.processed} of {len(targets)} emails written; "
        f"{report.held} still held{skipped_msg}."
    )
    report.held_report = await pipeline.collect_held_report()
    return report
