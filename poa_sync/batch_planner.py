"""
Batch planner – turns one macro-batch of parsed records into a single
atomic batchUpdate.

Per sheet: read the current row count (column A) fresh, emit one
``appendDimension`` for N rows, then N row writes at consecutive offsets
starting at that count.  Offsets are only valid for the batch they were
read for; nothing here is cached between macro-batches.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass

from poa_sync.errors import DestinationMutationError
from poa_sync.row_encoder import row_write_requests
from poa_sync.writers.sheets_store import a1_range

log = logging.getLogger(__name__)


@dataclass
class RowAllocation:
    bucket: str
    sheet_id: int
    row_index: int  # zero-based grid row
    message_id: str


def group_by_bucket(successes) -> "OrderedDict[str, list]":
    """Successful results keyed by month sheet, in first-seen order."""
    grouped: OrderedDict[str, list] = OrderedDict()
    for result in successes:
        for name in result.month_buckets:
            grouped.setdefault(name, []).append(result)
    return grouped


def plan_writes(grouped, buckets):
    """Return ``(requests, allocations)`` for *grouped* against *buckets*.

    *buckets* maps sheet name to a DestinationBucket whose ``last_row_index``
    was read for this macro-batch.
    """
    requests = []
    allocations = []
    for name, results in grouped.items():
        bucket = buckets.get(name)
        if bucket is None:
            raise DestinationMutationError(f"Sheet {name!r} is missing after provisioning")
        requests.append({"appendDimension": {
            "sheetId": bucket.id, "dimension": "ROWS", "length": len(results),
        }})
        for offset, result in enumerate(results):
            row_index = bucket.last_row_index + offset
            requests.extend(row_write_requests(bucket.id, row_index, result.row_cells))
            allocations.append(RowAllocation(
                bucket=name, sheet_id=bucket.id, row_index=row_index,
                message_id=result.message_id,
            ))
    return requests, allocations


class BatchPlanner:
    """Reads row counts and executes one macro-batch write."""

    def __init__(self, store, spreadsheet_id: str):
        self.store = store
        self.spreadsheet_id = spreadsheet_id

    async def refresh_row_counts(self, buckets) -> None:
        """Set ``last_row_index`` on every bucket from a fresh column-A read."""
        names = list(buckets)
        if not names:
            return
        values = await self.store.read_values(
            self.spreadsheet_id, [a1_range(name, "A:A") for name in names],
        )
        for name, rows in zip(names, values):
            buckets[name].last_row_index = len(rows)
            log.debug("Row count %s = %d", name, len(rows))

    async def write(self, successes, buckets) -> list[RowAllocation]:
        """Plan and apply all writes for *successes* as one request."""
        grouped = group_by_bucket(successes)
        if not grouped:
            return []
        await self.refresh_row_counts({name: buckets[name] for name in grouped if name in buckets})
        requests, allocations = plan_writes(grouped, buckets)
        log.info("Writing %d rows across %d sheets (%d requests)",
                 len(allocations), len(grouped), len(requests))
        await self.store.batch_mutate(self.spreadsheet_id, requests)
        return allocations
