"""
Tabular store – the four spreadsheet operations the pipeline needs, and the
Google Sheets implementation behind them.

googleapiclient is synchronous and its httplib2 transport is not
thread-safe, so every call builds its own authorized Http and runs in a
worker thread; the event loop only ever awaits.

On HTTP 429 a call is retried with exponential backoff + jitter
(1 s → 60 s, up to 8 retries).  A 429 rejects the whole request, so a retry
never turns one atomic batchUpdate into a partial commit.
"""

import asyncio
import logging
import random

import google_auth_httplib2
import httplib2
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from poa_sync.api_shapes import (
    BatchGetResponse,
    BatchUpdateResponse,
    BucketRef,
    SpreadsheetResponse,
    validate,
)
from poa_sync.errors import BucketNotFoundError, DestinationMutationError, LogReadError
from poa_sync.utils import http_status, native_message

log = logging.getLogger(__name__)

# Tunables
MAX_RETRIES = 8
INITIAL_BACKOFF = 1.0        # seconds
MAX_BACKOFF = 60.0
JITTER_MAX = 0.25            # seconds

MISSING_SHEET_MARKER = "Unable to parse range"


def quote_sheet_name(name: str) -> str:
    return "'" + name.replace("'", "''") + "'"


def a1_range(sheet_name: str, cells: str = "") -> str:
    """``'July - 2025'!A:A`` style range; bare quoted name when *cells* is empty."""
    quoted = quote_sheet_name(sheet_name)
    return f"{quoted}!{cells}" if cells else quoted


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class TabularStore:
    """Operations against one spreadsheet-like destination."""

    async def get_structure(self, spreadsheet_id: str) -> list[BucketRef]:
        raise NotImplementedError

    async def batch_mutate(self, spreadsheet_id: str, requests: list[dict]) -> list[dict]:
        """Apply *requests* atomically; return the per-request replies."""
        raise NotImplementedError

    async def read_values(self, spreadsheet_id: str, ranges: list[str]) -> list[list[list]]:
        """Rows for each range, in request order."""
        raise NotImplementedError

    async def append_values(self, spreadsheet_id: str, sheet_name: str, rows: list[list]) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Google Sheets
# ---------------------------------------------------------------------------

class GoogleSheetsStore(TabularStore):
    """Sheets API v4 implementation with 429-resilient execution."""

    def __init__(self, service, http_factory=None, sleep=asyncio.sleep):
        self.service = service
        self._http_factory = http_factory
        self._sleep = sleep

    @classmethod
    def from_credentials(cls, creds):
        service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        return cls(
            service,
            http_factory=lambda: google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http()),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute_sync(self, request):
        if self._http_factory is None:
            return request.execute()
        return request.execute(http=self._http_factory())

    async def _execute(self, request, label: str):
        retry_count = 0
        while True:
            try:
                return await asyncio.to_thread(self._execute_sync, request)
            except HttpError as exc:
                if http_status(exc) == 429 and retry_count < MAX_RETRIES:
                    wait = min(INITIAL_BACKOFF * (2 ** retry_count), MAX_BACKOFF)
                    wait += random.uniform(0, JITTER_MAX)
                    log.warning("%s: 429 rate-limit, retrying in %.1fs (attempt %d/%d)",
                                label, wait, retry_count + 1, MAX_RETRIES)
                    await self._sleep(wait)
                    retry_count += 1
                    continue
                raise

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_structure(self, spreadsheet_id):
        request = self.service.spreadsheets().get(
            spreadsheetId=spreadsheet_id,
            fields="spreadsheetId,sheets.properties(sheetId,title)",
        )
        try:
            raw = await self._execute(request, "spreadsheets.get")
        except HttpError as exc:
            raise DestinationMutationError(native_message(exc), status=http_status(exc)) from exc
        shape = validate(SpreadsheetResponse, raw, "spreadsheets.get")
        return [BucketRef(name=s.properties.title, id=s.properties.sheet_id) for s in shape.sheets]

    async def batch_mutate(self, spreadsheet_id, requests):
        if not requests:
            return []
        request = self.service.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id, body={"requests": requests},
        )
        try:
            raw = await self._execute(request, "spreadsheets.batchUpdate")
        except HttpError as exc:
            log.error("batchUpdate of %d requests FAILED: %s", len(requests), native_message(exc))
            raise DestinationMutationError(native_message(exc), status=http_status(exc)) from exc
        log.debug("batchUpdate applied %d requests", len(requests))
        return validate(BatchUpdateResponse, raw, "spreadsheets.batchUpdate").replies

    async def read_values(self, spreadsheet_id, ranges):
        if not ranges:
            return []
        request = self.service.spreadsheets().values().batchGet(
            spreadsheetId=spreadsheet_id, ranges=list(ranges),
        )
        try:
            raw = await self._execute(request, "values.batchGet")
        except HttpError as exc:
            message = native_message(exc)
            status = http_status(exc)
            # Sheets answers a range on a missing sheet with 400 "Unable to parse range"
            if status == 400 and MISSING_SHEET_MARKER in message:
                raise BucketNotFoundError(message, status=status) from exc
            raise LogReadError(message, status=status) from exc
        shape = validate(BatchGetResponse, raw, "values.batchGet")
        rows = [vr.values for vr in shape.value_ranges]
        # one entry per requested range
        rows.extend([] for _ in range(len(ranges) - len(rows)))
        return rows

    async def append_values(self, spreadsheet_id, sheet_name, rows):
        if not rows:
            return
        request = self.service.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=a1_range(sheet_name),
            valueInputOption="USER_ENTERED",
            insertDataOption="INSERT_ROWS",
            body={"values": rows},
        )
        try:
            await self._execute(request, "values.append")
        except HttpError as exc:
            log.error("append of %d rows to %s FAILED: %s", len(rows), sheet_name, native_message(exc))
            raise DestinationMutationError(native_message(exc), status=http_status(exc)) from exc
        log.info("Appended %d rows to %s", len(rows), sheet_name)
