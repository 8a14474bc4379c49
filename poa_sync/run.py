"""
POA sync – main entry point.

Pipeline:
  1) Load env / config/sync.yml / CLI overrides
  2) Build Gmail + Sheets clients from Google credentials
  3) Run the sync (or the held-date reprocess path)
  4) Write RUN LOG PACK to logs/runs/<run_id>/

Exits 1 when a destination error aborted the run, 2 on configuration errors.
"""

import argparse
import asyncio
import logging
import os
import sys
import time

from poa_sync.config import load_settings, validate_settings
from poa_sync.errors import ConfigError, DestinationMutationError, LogReadError, PoaSyncError
from poa_sync.gmail_reader import GmailSource
from poa_sync.models import SyncReport
from poa_sync.orchestrator import SyncPipeline
from poa_sync.reprocess import load_overrides_csv, reprocess_held
from poa_sync.run_logger import RunLogger
from poa_sync.utils import build_credentials, load_env
from poa_sync.writers.sheets_store import GoogleSheetsStore

log = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Sync POA approval emails from Gmail into monthly Google Sheets."
    )
    parser.add_argument("--spreadsheet-id", type=str, default=None, help="Destination spreadsheet id")
    parser.add_argument("--sender", type=str, default=None, help="Approval sender address")
    parser.add_argument("--start-date", type=str, default=None, metavar="YYYY-MM-DD",
                        help="Only fetch emails after this date (overrides the log watermark)")
    parser.add_argument("--no-date-filter", dest="use_date_filter", action="store_false", default=None,
                        help="Ignore the POA Log watermark (logged ids are still skipped)")
    parser.add_argument("--log-errors", action="store_true", default=None,
                        help="Record failed emails in the POA Log so later runs skip them")
    parser.add_argument("--reprocess", type=str, default=None, metavar="CSV",
                        help="Re-run held emails with dates from a message_id,start_date,end_date CSV")
    parser.add_argument("--debug", action="store_true", help="Enable debug output on the console")
    return parser


def apply_args(settings, args):
    if args.spreadsheet_id:
        settings.spreadsheet_id = args.spreadsheet_id
    if args.sender:
        settings.sender = args.sender
    if args.use_date_filter is not None:
        settings.use_date_filter = args.use_date_filter
    if args.log_errors is not None:
        settings.log_errors = args.log_errors
    return settings


async def run_sync(settings, env, observer, report, start_date=None, reprocess_csv=None) -> SyncReport:
    sheets_creds, gmail_creds = build_credentials(env)
    pipeline = SyncPipeline(
        mail=GmailSource.from_credentials(gmail_creds),
        store=GoogleSheetsStore.from_credentials(sheets_creds),
        settings=settings,
        observer=observer,
    )
    if reprocess_csv:
        return await reprocess_held(pipeline, load_overrides_csv(reprocess_csv), report=report)
    return await pipeline.run(manual_start_date=start_date, report=report)


def main(argv=None):
    args = build_parser().parse_args(argv)
    debug = args.debug or os.environ.get("DEBUG", "0") in ("1", "true", "True")
    t0 = time.time()

    # ---- Environment & logging ----
    env = load_env()
    run_logger = RunLogger(console_level=logging.DEBUG if debug else logging.INFO)
    log.info("=== POA sync – run %s ===", run_logger.run_id)

    try:
        settings = validate_settings(apply_args(load_settings(env), args))
    except ConfigError as exc:
        log.error("Configuration error: %s", exc)
        return 2

    # Filled in place, so batches written before an abort are still counted
    report = SyncReport()
    error = ""
    exit_code = 0
    try:
        asyncio.run(run_sync(settings, env, run_logger, report, args.start_date, args.reprocess))
    except ConfigError as exc:
        log.error("Configuration error: %s", exc)
        error, exit_code = str(exc), 2
    except (DestinationMutationError, LogReadError) as exc:
        log.error("Run aborted by destination error: %s", exc)
        error, exit_code = str(exc), 1
    except PoaSyncError as exc:
        log.error("Run aborted: %s", exc)
        error, exit_code = str(exc), 1
    finally:
        duration = time.time() - t0
        run_logger.set_summary(
            report,
            duration_sec=duration,
            args={
                "spreadsheet_id": settings.spreadsheet_id,
                "sender": settings.sender,
                "start_date": args.start_date,
                "use_date_filter": settings.use_date_filter,
                "log_errors": settings.log_errors,
                "reprocess": args.reprocess,
                "debug": debug,
            },
            error=error,
        )
        run_logger.flush()

    # Console summary
    held_review_path = os.path.abspath(os.path.join(run_logger.run_dir, "HELD_REVIEW.txt"))
    print(f"\n{'='*60}")
    print(f"  RUN {'ABORTED' if error else 'COMPLETE'}: {run_logger.run_id}")
    print(f"{'='*60}")
    print(f"  candidates={report.candidates}  processed={report.processed}  "
          f"held={report.held}  errors={report.errors}  skipped={report.skipped}  batches={report.batches}  "
          f"log_rows={report.log_rows}  duration={duration:.1f}s")
    if error:
        print(f"\n  ERROR: {error}")
    print(f"\n  HELD REVIEW:  {held_review_path}")
    print(f"  Run log pack: {os.path.abspath(run_logger.run_dir)}")
    print(f"{'='*60}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
