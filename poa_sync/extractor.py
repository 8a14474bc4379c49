"""
Record extractor – pulls activity fields out of the approval email's HTML.

The email is a fixed form-approval template: a ``.response-items`` table
whose rows hold ``<td>label</td><td>value</td>`` pairs.  Two entry points:

  * ``extract_activity``  – the eight fields the pipeline writes.
  * ``extract_request``   – everything else in the template as well
    (request header, approval history, list cells, invitation links,
    program flow).

Neither raises: markup faults are logged and whatever was read before the
fault is returned, with unread fields left at the sentinel.
"""

import logging
import re

from bs4 import BeautifulSoup, NavigableString, Tag

from poa_sync.labels import (
    ACTIVITY_LABELS,
    LIST_FIELDS,
    REQUEST_LABELS,
    normalise_label,
)
from poa_sync.models import (
    ActivityRecord,
    ApprovalEntry,
    InvitationLink,
    ProgramFlowItem,
    RequestDetails,
)

log = logging.getLogger(__name__)

PARSER = "html.parser"

_ROW_SELECTOR = ".response-items tr"

# "1. text", "2) text", "• text"
_ENUMERATOR_RE = re.compile(r"^\s*(?:\d+\s*[.)]|[•\-\*])\s*")

# Leading "HH:MM - HH:MM" (optional AM/PM on either side)
_FLOW_TIME_RE = re.compile(
    r"^\s*(\d{1,2}:\d{2}\s*(?:[AaPp]\.?[Mm]\.?)?\s*[-–—]\s*\d{1,2}:\d{2}\s*(?:[AaPp]\.?[Mm]\.?)?)\s*(.*)$"
)


def _label_rows(soup):
    """Yield (label, value_cell) for every 2+-cell row of the response table."""
    for row in soup.select(_ROW_SELECTOR):
        cells = row.find_all("td")
        if len(cells) < 2:
            continue
        yield cells[0].get_text().strip(), cells[1]


def extract_activity(html_body: str) -> ActivityRecord:
    """Return an ActivityRecord for *html_body*; unmatched labels stay SENTINEL."""
    record = ActivityRecord(raw_html=html_body or "")
    try:
        soup = BeautifulSoup(html_body or "", PARSER)
        for label, cell in _label_rows(soup):
            field = ACTIVITY_LABELS.get(label)
            if field is None:
                continue
            value = cell.get_text().strip()
            if value:
                setattr(record, field, value)
    except Exception as exc:
        log.warning("Failed to parse HTML: %s", exc)
    return record


# ------------------------------------------------------------------
# Rich variant
# ------------------------------------------------------------------

def cell_lines(cell: Tag) -> list[str]:
    """Split a cell on <br> markers into stripped, non-empty lines."""
    parts = []
    current = []
    for node in cell.descendants:
        if isinstance(node, Tag) and node.name == "br":
            parts.append("".join(current))
            current = []
        elif isinstance(node, NavigableString):
            current.append(str(node))
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def strip_enumerator(line: str) -> str:
    return _ENUMERATOR_RE.sub("", line, count=1).strip()


def split_assignee(text: str, participants: list[str]) -> tuple[str, str]:
    """Separate a trailing assignee name from *text*.

    The longest participant name that *text* ends with wins.  Returns
    ``(activity, assignee)``; assignee is empty when nobody matches.
    """
    lowered = text.rstrip().lower()
    best = ""
    for name in participants:
        candidate = name.strip()
        if not candidate or len(candidate) <= len(best):
            continue
        if lowered.endswith(candidate.lower()):
            best = candidate
    if not best:
        return text.strip(), ""
    activity = text.rstrip()[: -len(best)].strip()
    return activity, text.rstrip()[-len(best):]


def parse_program_flow(lines: list[str], participants: list[str]) -> list[ProgramFlowItem]:
    items = []
    for line in lines:
        m = _FLOW_TIME_RE.match(line)
        if not m:
            items.append(ProgramFlowItem(time="", activity=line, in_charge=""))
            continue
        activity, in_charge = split_assignee(m.group(2), participants)
        items.append(ProgramFlowItem(
            time=" ".join(m.group(1).split()),
            activity=activity,
            in_charge=in_charge,
        ))
    return items


def _parse_header(soup, details: RequestDetails):
    wrap = soup.select_one("td.content-wrap")
    if wrap is not None:
        for anchor in wrap.find_all("a", recursive=False):
            text = anchor.get_text().strip()
            if not text.startswith("#"):
                continue
            details.request_number = text.lstrip("#").strip()
            details.request_url = anchor.get("href", "")
            tail = []
            for sib in anchor.next_siblings:
                if isinstance(sib, Tag):
                    break
                tail.append(str(sib))
            details.request_date = "".join(tail).replace("|", " ").strip()
            break

    title = soup.select_one("#title")
    if title is not None:
        details.header_title = title.get_text().strip()

    for p in soup.find_all("p"):
        if "The request is now" in p.get_text():
            strong = p.find("strong")
            if strong is not None:
                details.status_label = strong.get_text().strip()
            break


def _parse_approval_history(soup) -> list[ApprovalEntry]:
    entries = []
    for table in soup.select("table.approval-history"):
        for anchor in table.select("a.no-link"):
            cell = anchor.find_parent("td")
            span = cell.find("span") if cell is not None else None
            action = span.get_text().strip() if span is not None else ""
            entries.append(ApprovalEntry(action=action, email=anchor.get_text().strip()))
    return entries


def extract_request(html_body: str) -> RequestDetails:
    """Return the full RequestDetails for *html_body*."""
    details = RequestDetails(record=ActivityRecord(raw_html=html_body or ""))
    flow_lines: list[str] = []
    try:
        soup = BeautifulSoup(html_body or "", PARSER)
        _parse_header(soup, details)
        details.approval_history = _parse_approval_history(soup)

        for label, cell in _label_rows(soup):
            field = REQUEST_LABELS.get(normalise_label(label))
            if field is None:
                continue
            if field in LIST_FIELDS:
                details.lists[field] = [
                    s for s in (strip_enumerator(line) for line in cell_lines(cell)) if s
                ]
            elif field == "invitation_links":
                details.invitation_links = [
                    InvitationLink(label=a.get_text().strip(), url=a.get("href", ""))
                    for a in cell.find_all("a")
                ]
            elif field == "program_flow":
                flow_lines = cell_lines(cell)
            else:
                value = cell.get_text().strip()
                if not value:
                    continue
                if field in ACTIVITY_LABELS.values():
                    setattr(details.record, field, value)
                else:
                    details.fields[field] = value
    except Exception as exc:
        log.warning("Failed to parse HTML (rich): %s", exc)

    if flow_lines:
        details.program_flow = parse_program_flow(
            flow_lines, details.lists.get("participants", [])
        )
    return details
