"""Batch splitter — splits oversized batches to fit within PutLogEvents limits."""

import logging

from cloudwatch_buddy.config import MAX_REQUEST_BYTES
from cloudwatch_buddy.formatter import EVENT_OVERHEAD_BYTES
from cloudwatch_buddy.models import Record

logger = logging.getLogger(__name__)

MAX_REQUEST_EVENTS = 10000


def request_size(records: list[Record]) -> int:
    """Request size as CloudWatch Logs counts it: UTF-8 message bytes plus 26 per event."""
    return sum(len(r.message.encode("utf-8")) + EVENT_OVERHEAD_BYTES for r in records)


def split_records(
    records: list[Record],
    max_bytes: int = MAX_REQUEST_BYTES,
    max_events: int = MAX_REQUEST_EVENTS,
) -> list[list[Record]]:
    """Split *records* into ordered chunks that each fit in one PutLogEvents call.

    Uses a recursive binary-split approach: if the whole list exceeds either
    limit, split it in half and recurse on each half. Order is preserved.

    A single record that exceeds *max_bytes* on its own is returned as its
    own chunk with a warning; the service will reject it.
    """
    if not records:
        return []

    if len(records) <= max_events and request_size(records) <= max_bytes:
        return [records]

    if len(records) == 1:
        logger.warning(
            "Single log event exceeds max request size (%d bytes > %d). "
            "Cannot split further; sending oversized event.",
            request_size(records),
            max_bytes,
        )
        return [records]

    mid = len(records) // 2
    return split_records(records[:mid], max_bytes, max_events) + split_records(
        records[mid:], max_bytes, max_events
    )
