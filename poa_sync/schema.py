"""
Schema provisioner – makes sure every sheet a macro-batch touches exists and
is dressed: header row, header styling, frozen header, column widths, and
(for monthly sheets) the category validation + color rules on column A.

All work is issued as two grouped batchUpdate calls at most: one to add the
missing sheets, one to format all of them.
"""

import logging

from poa_sync.labels import (
    CATEGORY_COLORS,
    HEADER_BACKGROUND,
    HEADER_FOREGROUND,
    LOG_COLUMN_WIDTHS,
    LOG_HEADERS,
    MONTHLY_COLUMN_WIDTHS,
    MONTHLY_HEADERS,
)
from poa_sync.models import DestinationBucket
from poa_sync.row_encoder import category_validation_rule

log = logging.getLogger(__name__)


def header_requests(sheet_id: int, headers: list[str]) -> list[dict]:
    return [
        {"updateCells": {
            "start": {"sheetId": sheet_id, "rowIndex": 0, "columnIndex": 0},
            "rows": [{"values": [{"userEnteredValue": {"stringValue": h}} for h in headers]}],
            "fields": "userEnteredValue",
        }},
        {"repeatCell": {
            "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1},
            "cell": {"userEnteredFormat": {
                "backgroundColorStyle": {"rgbColor": HEADER_BACKGROUND},
                "textFormat": {"foregroundColorStyle": {"rgbColor": HEADER_FOREGROUND}, "bold": True},
                "horizontalAlignment": "CENTER",
                "verticalAlignment": "MIDDLE",
            }},
            "fields": "userEnteredFormat(backgroundColorStyle,textFormat,horizontalAlignment,verticalAlignment)",
        }},
        {"updateSheetProperties": {
            "properties": {"sheetId": sheet_id, "gridProperties": {"frozenRowCount": 1}},
            "fields": "gridProperties.frozenRowCount",
        }},
    ]


def column_width_requests(sheet_id: int, widths) -> list[dict]:
    return [
        {"updateDimensionProperties": {
            "range": {"sheetId": sheet_id, "dimension": "COLUMNS",
                      "startIndex": start, "endIndex": end},
            "properties": {"pixelSize": px},
            "fields": "pixelSize",
        }}
        for start, end, px in widths
    ]


def category_rule_requests(sheet_id: int) -> list[dict]:
    """Validation plus one conditional-format rule per category on column A."""
    column = {"sheetId": sheet_id, "startRowIndex": 1, "startColumnIndex": 0, "endColumnIndex": 1}
    requests = [{"setDataValidation": {"range": column, "rule": category_validation_rule()}}]
    for value, (bg, fg) in CATEGORY_COLORS.items():
        requests.append({"addConditionalFormatRule": {
            "rule": {
                "ranges": [column],
                "booleanRule": {
                    "condition": {"type": "TEXT_EQ", "values": [{"userEnteredValue": value}]},
                    "format": {
                        "textFormat": {"foregroundColorStyle": {"rgbColor": fg}},
                        "backgroundColorStyle": {"rgbColor": bg},
                    },
                },
            },
            "index": 0,
        }})
    return requests


def bucket_setup_requests(sheet_id: int, name: str, log_bucket_name: str) -> list[dict]:
    """Every formatting request a freshly created sheet needs."""
    if name == log_bucket_name:
        return header_requests(sheet_id, LOG_HEADERS) + column_width_requests(sheet_id, LOG_COLUMN_WIDTHS)
    return (
        header_requests(sheet_id, MONTHLY_HEADERS)
        + column_width_requests(sheet_id, MONTHLY_COLUMN_WIDTHS)
        + category_rule_requests(sheet_id)
    )


class SchemaProvisioner:
    """Creates and formats missing sheets for one spreadsheet."""

    def __init__(self, store, spreadsheet_id: str, log_bucket_name: str, status=None):
        self.store = store
        self.spreadsheet_id = spreadsheet_id
        self.log_bucket_name = log_bucket_name
        self._status = status or (lambda msg: None)

    def headers_for(self, name: str) -> list[str]:
        return LOG_HEADERS if name == self.log_bucket_name else MONTHLY_HEADERS

    async def ensure(self, needed_names) -> dict[str, DestinationBucket]:
        """Return ``{name: DestinationBucket}`` for every needed sheet, creating gaps.

        Structure is read fresh on every call so sheets created by an earlier
        macro-batch are seen.
        """
        needed = list(dict.fromkeys(needed_names))
        structure = await self.store.get_structure(self.spreadsheet_id)
        existing = {b.name: b.id for b in structure}

        to_create = [name for name in needed if name not in existing]
        if to_create:
            self._status(f"Creating {len(to_create)} new sheets...")
            log.info("Creating sheets: %s", to_create)
            replies = await self.store.batch_mutate(
                self.spreadsheet_id,
                [{"addSheet": {"properties": {"title": name}}} for name in to_create],
            )
            setup = []
            for reply in replies:
                props = reply.get("addSheet", {}).get("properties", {})
                title, sheet_id = props.get("title"), props.get("sheetId")
                if title is None or sheet_id is None:
                    continue
                existing[title] = sheet_id
                setup.extend(bucket_setup_requests(sheet_id, title, self.log_bucket_name))
            if setup:
                self._status("Applying headers and styles to new sheets...")
                log.debug("Applying %d setup requests", len(setup))
                await self.store.batch_mutate(self.spreadsheet_id, setup)

        return {
            name: DestinationBucket(name=name, id=existing[name], header_schema=self.headers_for(name))
            for name in needed
            if name in existing
        }
