"""Shared fakes for the poa_sync tests: an in-memory mailbox, an in-memory
spreadsheet, a POA email builder and a ticking clock."""
from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
import re
import sys
from datetime import datetime, timedelta, timezone
from html import escape

import httplib2
import pytest
from googleapiclient.errors import HttpError

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from poa_sync.api_shapes import BucketRef, MessageListResponse, MessageResponse
from poa_sync.config import SyncSettings
from poa_sync.errors import BucketNotFoundError, DestinationMutationError, SourceFetchError
from poa_sync.observers import TaskBoard
from poa_sync.orchestrator import SyncPipeline


# =====================================================================
# POA email builder
# =====================================================================

def make_poa_html(
    organization="Computer Society",
    title="Hour of Code",
    start_date="July 15, 2025",
    end_date="September 2, 2025",
    description="Intro to programming for first-years.",
    time="3:00 PM - 5:00 PM",
    venue="Room 204",
    implementation_type="Face to Face",
    extra_rows=(),
    request_number="1042",
    status_label="Complete",
):
    """Approval email in the live template's shape.  ``None`` omits a row."""
    rows = [
        ("Requestor:", '<a href="mailto:jane@example.edu">jane@example.edu</a>'),
        ("Name of Organization:", organization),
        ("Title of Activity:", title),
        ("Start Date of Implementation:", start_date),
        ("End Date of Implementation:", end_date),
        ("Time of Implementation:", time),
        ("Rationale/Brief Description:", description),
        ("Venue/Platform:", venue),
        ("Type of Implementation (Online -Social Media Posting; Google Meet; Zoom etc)/Face to Face:",
         implementation_type),
    ]
    body = []
    cells = [(label, value if value is None or value.startswith("<") else escape(value))
             for label, value in rows]
    # extra rows are inserted as raw markup
    for label, value in cells + list(extra_rows):
        if value is None:
            continue
        body.append(
            f'<tr><td class="response-items-col1">{label}</td>'
            f'<td class="response-items-col2">{value}</td></tr>'
        )
    return f"""<html><body>
<table class="main"><tbody><tr>
<td class="content-wrap">
  REQUEST
  <a href="https://forms.example.edu/r/{request_number}">#{request_number}</a>
  | Jul 1, 2025
  <br>
  <table><tbody>
    <tr><td id="title">Student Activity Request</td></tr>
    <tr><td>
      <p>The request is now <strong>{status_label}</strong>.</p>
      <table class="approval-history"><tbody><tr><td>
        <table><tbody>
          <tr><td><span>Approved</span> by <a class="no-link">dean@example.edu</a>  </td></tr>
          <tr><td><span>Recommended</span> by <a class="no-link">adviser@example.edu</a>  </td></tr>
        </tbody></table>
      </td></tr></tbody></table>
      <table class="response-items"><tbody>
        {''.join(body)}
      </tbody></table>
    </td></tr>
  </tbody></table>
</td>
</tr></tbody></table>
</body></html>"""


def b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def make_message(message_id, html, subject="POA: The request is now complete.",
                 internal_date="1752710400000"):
    """users.messages.get payload: multipart/alternative with plain + html."""
    headers = [{"name": "From", "value": "forms@example.edu"}]
    if subject is not None:
        headers.append({"name": "Subject", "value": subject})
    parts = [{"mimeType": "text/plain", "body": {"data": b64url("plain text"), "size": 10}}]
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": b64url(html), "size": len(html)}})
    return {
        "id": message_id,
        "threadId": f"t-{message_id}",
        "internalDate": internal_date,
        "payload": {"mimeType": "multipart/alternative", "headers": headers, "body": {}, "parts": parts},
    }


# =====================================================================
# Fake mail source
# =====================================================================

class FakeMailSource:
    """Mailbox returning ids newest-first; tracks fetch concurrency.

    With ``honor_after`` the list query keeps only messages whose
    internalDate is strictly after the query's ``after:`` bound, as Gmail does.
    """

    def __init__(self, messages=(), delay=0.001, honor_after=False):
        self.messages = {}
        self.order = []  # oldest first
        for msg in messages:
            self.add(msg)
        self.fail_ids = {}
        self.queries = []
        self.fetched = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._delay = delay
        self._honor_after = honor_after

    def add(self, raw):
        self.messages[raw["id"]] = raw
        self.order.append(raw["id"])

    async def query(self, q, page_size, page_token=None):
        self.queries.append(q)
        newest_first = list(reversed(self.order))
        after = re.search(r"after:(\d+)", q) if self._honor_after else None
        if after:
            bound = int(after.group(1))
            newest_first = [i for i in newest_first
                            if int(self.messages[i]["internalDate"]) // 1000 > bound]
        start = int(page_token or 0)
        page = newest_first[start:start + page_size]
        nxt = start + page_size
        return MessageListResponse.model_validate({
            "messages": [{"id": i, "threadId": f"t-{i}"} for i in page],
            "nextPageToken": str(nxt) if nxt < len(newest_first) else None,
            "resultSizeEstimate": len(newest_first),
        })

    async def get(self, message_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._delay)
            self.fetched.append(message_id)
            if message_id in self.fail_ids:
                raise SourceFetchError(self.fail_ids[message_id])
            return MessageResponse.model_validate(self.messages[message_id])
        finally:
            self.in_flight -= 1


# =====================================================================
# Fake googleapiclient resource
# =====================================================================

class FakeRequest:
    def __init__(self, service, name, kwargs):
        self.service = service
        self.name = name
        self.kwargs = kwargs

    def execute(self, http=None):
        self.service.calls.append((self.name, self.kwargs))
        outcome = self.service.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeService:
    """Chains ``users().messages().list(...)`` style calls to canned outcomes."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __getattr__(self, name):
        def method(**kwargs):
            if kwargs:
                return FakeRequest(self, name, kwargs)
            return self
        return method


def http_error(status, message):
    content = json.dumps({"error": {"code": status, "message": message}}).encode("utf-8")
    return HttpError(httplib2.Response({"status": status}), content)


# =====================================================================
# Fake sheets store
# =====================================================================

_RANGE_RE = re.compile(r"^'((?:[^']|'')*)'(?:!(.*))?$")


def _cell_value(cell):
    entered = cell.get("userEnteredValue", {})
    if "formulaValue" in entered:
        return entered["formulaValue"]
    return entered.get("stringValue", "")


class FakeSheetsStore:
    """In-memory spreadsheet implementing the TabularStore operations.

    Each sheet is a list of rows (lists of rendered cell strings).  Writes
    that land on an occupied data row are recorded in ``collisions``.
    """

    def __init__(self):
        self.sheets = {}  # name -> {"id": int, "rows": list[list]}
        self.mutations = []  # one list of requests per batch_mutate call
        self.reads = []
        self.appends = []
        self.collisions = []
        self.fail_mutation_when = None  # callable(requests) -> str | None
        self.structure_calls = 0
        self._next_id = 100

    # -- helpers --------------------------------------------------------
    def add_sheet(self, name, rows=None):
        sheet_id = self._next_id
        self._next_id += 1
        self.sheets[name] = {"id": sheet_id, "rows": [list(r) for r in (rows or [])]}
        return sheet_id

    def rows(self, name):
        return self.sheets[name]["rows"]

    def data_rows(self, name):
        return self.sheets[name]["rows"][1:]

    def _by_id(self, sheet_id):
        for sheet in self.sheets.values():
            if sheet["id"] == sheet_id:
                return sheet
        raise DestinationMutationError(f"No grid with id: {sheet_id}", status=400)

    @staticmethod
    def _trimmed(rows):
        rows = [list(r) for r in rows]
        while rows and not any(str(c) for c in rows[-1]):
            rows.pop()
        return rows

    # -- TabularStore ---------------------------------------------------
    async def get_structure(self, spreadsheet_id):
        self.structure_calls += 1
        return [BucketRef(name=n, id=s["id"]) for n, s in self.sheets.items()]

    async def batch_mutate(self, spreadsheet_id, requests):
        if self.fail_mutation_when is not None:
            message = self.fail_mutation_when(requests)
            if message:
                raise DestinationMutationError(message, status=400)
        self.mutations.append(list(requests))
        replies = []
        for req in requests:
            if "addSheet" in req:
                title = req["addSheet"]["properties"]["title"]
                sheet_id = self.add_sheet(title)
                replies.append({"addSheet": {"properties": {"sheetId": sheet_id, "title": title}}})
            elif "updateCells" in req:
                body = req["updateCells"]
                sheet = self._by_id(body["start"]["sheetId"])
                row_index = body["start"]["rowIndex"]
                for offset, row in enumerate(body["rows"]):
                    idx = row_index + offset
                    while len(sheet["rows"]) <= idx:
                        sheet["rows"].append([])
                    if idx > 0 and any(sheet["rows"][idx]):
                        self.collisions.append((sheet["id"], idx))
                    sheet["rows"][idx] = [_cell_value(c) for c in row["values"]]
                replies.append({})
            else:
                replies.append({})
        return replies

    def _resolve(self, rng):
        m = _RANGE_RE.match(rng)
        if not m:
            raise BucketNotFoundError(f"Unable to parse range: {rng}", status=400)
        name = m.group(1).replace("''", "'")
        if name not in self.sheets:
            raise BucketNotFoundError(f"Unable to parse range: {rng}", status=400)
        return name, (m.group(2) or "")

    async def read_values(self, spreadsheet_id, ranges):
        self.reads.append(list(ranges))
        out = []
        for rng in ranges:
            name, cells = self._resolve(rng)
            rows = self.sheets[name]["rows"]
            if cells == "A:A":
                out.append(self._trimmed([[r[0] if r else ""] for r in rows]))
            elif cells.startswith("A2"):
                out.append([r for r in self._trimmed([r[:5] for r in rows[1:]]) if r])
            else:
                out.append(self._trimmed(rows))
        return out

    async def append_values(self, spreadsheet_id, sheet_name, rows):
        if sheet_name not in self.sheets:
            raise DestinationMutationError(f"Unable to parse range: {sheet_name}", status=400)
        self.appends.append((sheet_name, [list(r) for r in rows]))
        sheet = self.sheets[sheet_name]
        sheet["rows"] = self._trimmed(sheet["rows"]) + [list(r) for r in rows]


# =====================================================================
# Clock
# =====================================================================

class TickingClock:
    """UTC clock that advances one minute per call."""

    def __init__(self, start=datetime(2025, 7, 20, 8, 0, tzinfo=timezone.utc)):
        self.now = start
        self.calls = 0

    def __call__(self):
        value = self.now
        self.now = self.now + timedelta(minutes=1)
        self.calls += 1
        return value


# =====================================================================
# Fixtures
# =====================================================================

@pytest.fixture
def settings():
    return SyncSettings(
        spreadsheet_id="sheet-1",
        sender="forms@example.edu",
        link_base_url="https://poa.example.edu/pdf",
    )


@pytest.fixture
def store():
    return FakeSheetsStore()


@pytest.fixture
def mail():
    return FakeMailSource()


@pytest.fixture
def board():
    return TaskBoard(echo_status=False)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def make_pipeline(mail, store, settings, board, clock):
    def _make(**overrides):
        kwargs = dict(mail=mail, store=store, settings=settings, observer=board,
                      clock=clock, tz=timezone.utc)
        kwargs.update(overrides)
        return SyncPipeline(**kwargs)
    return _make


@pytest.fixture
def restore_root_logging():
    """RunLogger rewires the root logger; put pytest's handlers back afterwards."""
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for h in root.handlers[:]:
        if h not in before:
            root.removeHandler(h)
            h.close()
    for h in before:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
