"""
Response shapes for the Gmail and Sheets endpoints the pipeline calls.

Raw JSON from googleapiclient is validated here, at the adapter boundary, so
the rest of the package works with typed objects instead of nested dicts.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from poa_sync.errors import ResponseShapeError


class _Shape(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ---------------------------------------------------------------------------
# Gmail
# ---------------------------------------------------------------------------

class MessageRef(_Shape):
    id: str
    thread_id: Optional[str] = Field(default=None, alias="threadId")


class MessageListResponse(_Shape):
    """users.messages.list"""
    messages: List[MessageRef] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")
    result_size_estimate: int = Field(default=0, alias="resultSizeEstimate")


class Header(_Shape):
    name: str
    value: str = ""


class PartBody(_Shape):
    data: Optional[str] = None
    size: int = 0


class MessagePart(_Shape):
    mime_type: str = Field(default="", alias="mimeType")
    headers: List[Header] = Field(default_factory=list)
    body: PartBody = Field(default_factory=PartBody)
    parts: List["MessagePart"] = Field(default_factory=list)


MessagePart.model_rebuild()


class MessageResponse(_Shape):
    """users.messages.get (format=full)"""
    id: str
    internal_date: Optional[str] = Field(default=None, alias="internalDate")
    payload: MessagePart = Field(default_factory=MessagePart)

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for h in self.payload.headers:
            if h.name.lower() == wanted:
                return h.value
        return None


# ---------------------------------------------------------------------------
# Sheets
# ---------------------------------------------------------------------------

class SheetProperties(_Shape):
    sheet_id: int = Field(alias="sheetId")
    title: str


class Sheet(_Shape):
    properties: SheetProperties


class SpreadsheetResponse(_Shape):
    """spreadsheets.get"""
    spreadsheet_id: str = Field(default="", alias="spreadsheetId")
    sheets: List[Sheet] = Field(default_factory=list)


class BatchUpdateResponse(_Shape):
    """spreadsheets.batchUpdate"""
    replies: List[dict] = Field(default_factory=list)


class ValueRange(_Shape):
    range: str = ""
    values: List[List[Any]] = Field(default_factory=list)


class BatchGetResponse(_Shape):
    """spreadsheets.values.batchGet"""
    value_ranges: List[ValueRange] = Field(default_factory=list, alias="valueRanges")


class BucketRef(_Shape):
    """A sheet as the pipeline sees it."""
    name: str
    id: int


def validate(shape, raw, endpoint: str):
    """Validate *raw* against *shape* or raise ResponseShapeError."""
    try:
        return shape.model_validate(raw or {})
    except ValidationError as exc:
        raise ResponseShapeError(f"{endpoint}: unexpected response shape: {exc}") from exc
