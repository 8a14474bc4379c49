"""
Sync pipeline – drives candidate emails through

    fetch → parse → classify → provision → write → log

in fixed-size macro-batches.

  1) Resolve the cursor (manual start date / log watermark / none) and the
     dedup set from the POA Log
  2) Discover unseen candidate ids, then reverse them to oldest-first so log
     timestamps and the next watermark stay monotonic
  3) Per macro-batch (10 ids, strictly one after another):
     a) fetch + extract + resolve dates, 5 at a time with a full barrier
     b) classify: success / held (bad dates) / error
     c) ensure every touched month sheet and the log sheet exist
     d) read row counts fresh, write all rows as one batchUpdate
     e) append one log row per outcome
  4) Re-read the log and report outstanding held items

Per-task faults become task states and never stop the batch.  A
DestinationMutationError from steps c–e propagates and aborts the run;
later macro-batches do not execute.
"""

import asyncio
import logging

from poa_sync.audit_log import AuditLog, held_report, utc_now
from poa_sync.batch_planner import BatchPlanner
from poa_sync.cursor import IncrementalCursor, build_query
from poa_sync.dates import month_buckets, resolve_span
from poa_sync.errors import (
    ExtractionError,
    InvalidDateError,
    LogReadError,
    MissingRequiredFieldError,
    PoaSyncError,
)
from poa_sync.extractor import extract_activity
from poa_sync.gmail_reader import discover_message_ids, find_html_body, sent_date_of, subject_of
from poa_sync.link_builder import LinkBuilder
from poa_sync.models import (
    EmailTask,
    ParsedError,
    ParsedHeld,
    ParsedSuccess,
    SyncReport,
    TaskStatus,
)
from poa_sync.observers import ProgressObserver
from poa_sync.row_encoder import encode_row
from poa_sync.schema import SchemaProvisioner

log = logging.getLogger(__name__)


class SyncPipeline:
    """One spreadsheet, one sender, one run at a time."""

    def __init__(self, mail, store, settings, observer=None, link_builder=None, clock=utc_now, tz=None):
        self.mail = mail
        self.store = store
        self.settings = settings
        self.observer = observer or ProgressObserver()
        self.link_builder = link_builder or LinkBuilder(settings.link_base_url)

        self.audit_log = AuditLog(store, settings.spreadsheet_id, settings.log_bucket_name, clock=clock)
        self.cursor = IncrementalCursor(self.audit_log, use_date_filter=settings.use_date_filter, tz=tz)
        self.provisioner = SchemaProvisioner(
            store, settings.spreadsheet_id, settings.log_bucket_name, status=self.observer.status,
        )
        self.planner = BatchPlanner(store, settings.spreadsheet_id)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------
    async def run(self, manual_start_date=None, report: SyncReport | None = None) -> SyncReport:
        """Run one sync.  Totals accumulate in *report*, so a caller that
        passes its own keeps the partial counts when a later batch aborts."""
        s = self.settings
        if report is None:
            report = SyncReport()

        state = await self.cursor.resolve(manual_start_date, status=self.observer.status)
        report.query = build_query(s.sender, s.required_phrases, state.after)
        ids = await discover_message_ids(
            self.mail, report.query, state.seen_ids,
            page_size=s.page_size, max_messages=s.max_messages, status=self.observer.status,
        )
        ids.reverse()
        report.candidates = len(ids)

        if not ids:
            self.observer.status("No new emails to process.")
            return report

        self.observer.queue([EmailTask(id=message_id) for message_id in ids])
        await self.process_ids(ids, report)

        self.observer.status(
            f"Process complete. {report.processed} new emails were successfully "
            f"processed in {report.batches} batch(es)."
        )
        report.held_report = await self.collect_held_report()
        return report

    async def process_ids(self, ids, report: SyncReport, date_overrides=None):
        size = self.settings.macro_batch_size
        batches = [ids[i:i + size] for i in range(0, len(ids), size)]
        for index, batch in enumerate(batches, 1):
            await self.process_batch(batch, index, len(batches), report, date_overrides)

    # ------------------------------------------------------------------
    # One macro-batch
    # ------------------------------------------------------------------
    async def process_batch(self, batch, index, total, report: SyncReport, date_overrides=None):
        obs = self.observer
        obs.status(f"Processing batch {index} of {total} ({len(batch)} emails)...")

        results = await self.fetch_batch(batch, date_overrides)
        successes = [r for r in results if isinstance(r, ParsedSuccess)]
        held = [r for r in results if isinstance(r, ParsedHeld)]
        errors = [r for r in results if isinstance(r, ParsedError)]
        success_ids = [r.message_id for r in successes]
        log.info("Batch %d/%d: %d ok, %d held, %d errors",
                 index, total, len(successes), len(held), len(errors))

        if success_ids:
            obs.update_tasks_bulk(success_ids, {"status": TaskStatus.BUILDING_REQUEST})

        needed = [self.settings.log_bucket_name]
        for result in successes:
            needed.extend(result.month_buckets)
        buckets = await self.provisioner.ensure(needed)

        if successes:
            obs.status(f"Writing batch {index} of {total} to sheet...")
            obs.update_tasks_bulk(success_ids, {"status": TaskStatus.WRITING})
            await self.planner.write(successes, buckets)

        logged_errors = errors if self.settings.log_errors else ()
        report.log_rows += await self.audit_log.append(successes, held, logged_errors)

        if success_ids:
            obs.update_tasks_bulk(success_ids, {"status": TaskStatus.DONE})

        report.batches += 1
        report.processed += len(successes)
        report.held += len(held)
        report.errors += len(errors)
        held_msg = f", held {len(held)} for date review" if held else ""
        obs.status(
            f"Batch {index} complete. Processed {len(successes)} emails{held_msg} "
            f"(Total so far: {report.processed})."
        )

    async def fetch_batch(self, batch, date_overrides=None) -> list:
        """fetch_and_parse every id, at most ``fetch_concurrency`` at a time."""
        step = self.settings.fetch_concurrency
        results = []
        for start in range(0, len(batch), step):
            chunk = batch[start:start + step]
            results.extend(await asyncio.gather(
                *(self.fetch_and_parse(message_id, date_overrides) for message_id in chunk)
            ))
        return results

    # ------------------------------------------------------------------
    # One email
    # ------------------------------------------------------------------
    async def fetch_and_parse(self, message_id, date_overrides=None):
        """Fetch one email and classify it.  Never raises for per-email faults."""
        obs = self.observer
        subject = ""
        record = None
        sent_date = None
        try:
            obs.update_task(message_id, {"status": TaskStatus.FETCHING})
            message = await self.mail.get(message_id)
            subject = subject_of(message)
            sent_date = sent_date_of(message)
            obs.update_task(message_id, {"subject": subject, "status": TaskStatus.PARSING})

            html = find_html_body(message.payload)
            if not html:
                raise ExtractionError("HTML body not found.")
            record = extract_activity(html)
            if date_overrides and message_id in date_overrides:
                record.start_date_raw, record.end_date_raw = date_overrides[message_id]

            missing = record.missing_required()
            if missing:
                raise MissingRequiredFieldError(missing)
            span = resolve_span(record.start_date_raw, record.end_date_raw)
        except InvalidDateError as exc:
            obs.update_task(message_id, {
                "status": TaskStatus.HELD, "error": f"{' & '.join(exc.labels)} need review",
            })
            log.info("HELD %s: %s", message_id, exc)
            return ParsedHeld(message_id=message_id, subject=subject, reason=str(exc),
                              record=record, sent_date=sent_date)
        except PoaSyncError as exc:
            obs.update_task(message_id, {"status": TaskStatus.ERROR, "error": str(exc)})
            log.error("Task %s failed: %s", message_id, exc)
            return ParsedError(message_id=message_id, error=str(exc), subject=subject, record=record,
                               sent_date=sent_date)

        return ParsedSuccess(
            message_id=message_id,
            subject=subject,
            record=record,
            month_buckets=month_buckets(span.start, span.end),
            row_cells=encode_row(record, self.link_builder(record), self.settings.initial_status),
            sent_date=sent_date,
        )

    # ------------------------------------------------------------------
    # Held summary
    # ------------------------------------------------------------------
    async def collect_held_report(self) -> str:
        try:
            entries = await self.audit_log.read_entries()
        except LogReadError as exc:
            log.warning("Held summary skipped, audit log unreadable: %s", exc)
            return ""
        text = held_report(entries)
        if text:
            self.observer.status(text)
        return text
