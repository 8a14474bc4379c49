"""
Row encoder – turns an ActivityRecord into the 11 cells of a monthly-sheet
row and renders cells / rows as Sheets API ``CellData`` and request dicts.

A cell is one of:
  * ``str``        – written as a plain string value
  * ``Formula``    – written verbatim as a formula
  * ``Hyperlink``  – written as ``=HYPERLINK("url","text")`` with both parts
                     double-quote escaped
"""

import re
from dataclasses import dataclass

from poa_sync.labels import (
    CATEGORY_VALUES,
    DATA_ROW_HEIGHT,
    DESCRIPTION_COLUMN,
    LINK_COLUMN,
    LINK_TEXT,
)
from poa_sync.models import ActivityRecord

_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True)
class Formula:
    text: str


@dataclass(frozen=True)
class Hyperlink:
    url: str
    text: str = ""


def _quote(value: str) -> str:
    return str(value).replace('"', '""')


def hyperlink_formula(link: Hyperlink) -> str:
    text = link.text or link.url
    return f'=HYPERLINK("{_quote(link.url)}","{_quote(text)}")'


def encode_row(record: ActivityRecord, document_link: str, initial_status: str = "UNSET") -> list:
    """Return the ordered cells for *record* in MONTHLY_HEADERS order."""
    cells = [
        initial_status,
        record.organization,
        record.title,
        record.description,
        record.start_date_raw,
        record.end_date_raw,
        record.time,
        record.venue,
        record.implementation_type,
        Hyperlink(url=document_link, text=LINK_TEXT),
        "",
    ]
    return cells


def render_cell(value, column_index: int | None = None) -> dict:
    """Render one cell as Sheets ``CellData`` (userEnteredValue only)."""
    if isinstance(value, Formula):
        return {"userEnteredValue": {"formulaValue": value.text}}
    if isinstance(value, Hyperlink):
        return {"userEnteredValue": {"formulaValue": hyperlink_formula(value)}}
    if column_index == LINK_COLUMN and isinstance(value, str) and _URL_RE.match(value):
        formula = hyperlink_formula(Hyperlink(url=value, text=LINK_TEXT))
        return {"userEnteredValue": {"formulaValue": formula}}
    return {"userEnteredValue": {"stringValue": "" if value is None else str(value)}}


def render_row(cells: list) -> list[dict]:
    return [render_cell(v, idx) for idx, v in enumerate(cells)]


def category_validation_rule() -> dict:
    return {
        "condition": {
            "type": "ONE_OF_LIST",
            "values": [{"userEnteredValue": v} for v in CATEGORY_VALUES],
        },
        "showCustomUi": True,
        "strict": True,
    }


def row_write_requests(sheet_id: int, row_index: int, cells: list) -> list[dict]:
    """Requests that write *cells* at zero-based *row_index* and format the row."""
    row_range = {"sheetId": sheet_id, "startRowIndex": row_index, "endRowIndex": row_index + 1}
    return [
        {"updateCells": {
            "start": {"sheetId": sheet_id, "rowIndex": row_index, "columnIndex": 0},
            "rows": [{"values": render_row(cells)}],
            "fields": "userEnteredValue",
        }},
        {"updateDimensionProperties": {
            "range": {"sheetId": sheet_id, "dimension": "ROWS",
                      "startIndex": row_index, "endIndex": row_index + 1},
            "properties": {"pixelSize": DATA_ROW_HEIGHT},
            "fields": "pixelSize",
        }},
        {"repeatCell": {
            "range": row_range,
            "cell": {"userEnteredFormat": {
                "horizontalAlignment": "CENTER",
                "verticalAlignment": "MIDDLE",
                "wrapStrategy": "CLIP",
            }},
            "fields": "userEnteredFormat(horizontalAlignment,verticalAlignment,wrapStrategy)",
        }},
        {"repeatCell": {
            "range": {**row_range, "startColumnIndex": DESCRIPTION_COLUMN,
                      "endColumnIndex": DESCRIPTION_COLUMN + 1},
            "cell": {"userEnteredFormat": {"horizontalAlignment": "LEFT", "wrapStrategy": "WRAP"}},
            "fields": "userEnteredFormat(horizontalAlignment,wrapStrategy)",
        }},
        {"setDataValidation": {
            "range": {**row_range, "startColumnIndex": 0, "endColumnIndex": 1},
            "rule": category_validation_rule(),
        }},
    ]
