"""Domain records passed between the sync pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from poa_sync.labels import SENTINEL


# ---------------------------------------------------------------------------
# Extracted records
# ---------------------------------------------------------------------------

@dataclass
class ActivityRecord:
    """Activity fields pulled from one approval email."""
    organization: str = SENTINEL
    title: str = SENTINEL
    description: str = SENTINEL
    start_date_raw: str = SENTINEL
    end_date_raw: str = SENTINEL
    time: str = SENTINEL
    venue: str = SENTINEL
    implementation_type: str = SENTINEL
    raw_html: str = ""

    def missing_required(self) -> List[str]:
        missing = []
        if self.organization == SENTINEL:
            missing.append("Organization")
        if self.title == SENTINEL:
            missing.append("Title")
        return missing


@dataclass
class ApprovalEntry:
    action: str  # e.g. "Approved", "Recommended", "Copy Sent"
    email: str


@dataclass
class ProgramFlowItem:
    time: str  # e.g. "3:00 - 3:05", empty for untimed lines
    activity: str
    in_charge: str


@dataclass
class InvitationLink:
    label: str
    url: str


@dataclass
class RequestDetails:
    """Everything the rich extractor recovers from the approval email."""
    record: ActivityRecord
    request_number: str = ""
    request_url: str = ""
    request_date: str = ""
    header_title: str = ""
    status_label: str = ""
    approval_history: List[ApprovalEntry] = field(default_factory=list)
    fields: Dict[str, str] = field(default_factory=dict)  # scalar labeled values
    lists: Dict[str, List[str]] = field(default_factory=dict)  # <br>-split values
    invitation_links: List[InvitationLink] = field(default_factory=list)
    program_flow: List[ProgramFlowItem] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Task state
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    QUEUED = "queued"
    FETCHING = "fetching"
    PARSING = "parsing"
    BUILDING_REQUEST = "building_request"
    WRITING = "writing"
    DONE = "done"
    HELD = "held"
    SKIPPED = "skipped"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    TaskStatus.DONE, TaskStatus.HELD, TaskStatus.SKIPPED, TaskStatus.ERROR,
})

# Forward order of the non-terminal path; terminal states rank last.
STATUS_RANK: Dict[TaskStatus, int] = {
    TaskStatus.QUEUED: 0,
    TaskStatus.FETCHING: 1,
    TaskStatus.PARSING: 2,
    TaskStatus.BUILDING_REQUEST: 3,
    TaskStatus.WRITING: 4,
    TaskStatus.DONE: 5,
    TaskStatus.HELD: 5,
    TaskStatus.SKIPPED: 5,
    TaskStatus.ERROR: 5,
}


@dataclass
class EmailTask:
    id: str
    subject: str = "In queue..."
    status: TaskStatus = TaskStatus.QUEUED
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d


# ---------------------------------------------------------------------------
# Per-message outcomes
# ---------------------------------------------------------------------------

@dataclass
class ParsedSuccess:
    message_id: str
    subject: str
    record: ActivityRecord
    month_buckets: List[str]
    row_cells: List[Any]
    sent_date: Optional[datetime] = None
    status: str = "success"


@dataclass
class ParsedHeld:
    message_id: str
    subject: str
    reason: str
    record: ActivityRecord
    sent_date: Optional[datetime] = None
    status: str = "held"


@dataclass
class ParsedError:
    message_id: str
    error: str
    subject: str = ""
    record: Optional[ActivityRecord] = None
    sent_date: Optional[datetime] = None
    status: str = "error"


ParsedResult = Union[ParsedSuccess, ParsedHeld, ParsedError]


# ---------------------------------------------------------------------------
# Destination state
# ---------------------------------------------------------------------------

@dataclass
class DestinationBucket:
    name: str
    id: int
    header_schema: List[str]
    last_row_index: int = 0  # read fresh per macro-batch


@dataclass
class AuditLogEntry:
    timestamp: Optional[datetime]
    message_id: str
    status: str
    organization: str = ""
    title: str = ""

    @property
    def is_held(self) -> bool:
        return self.status.lower().startswith("held")


@dataclass
class MonthSpan:
    """Resolved start/end pair for one record."""
    start: date
    end: date


@dataclass
class SyncReport:
    """Totals for one pipeline run."""
    candidates: int = 0
    processed: int = 0
    held: int = 0
    errors: int = 0
    batches: int = 0
    skipped: int = 0
    log_rows: int = 0
    query: str = ""
    held_report: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
