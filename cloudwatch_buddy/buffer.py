"""Stream buffers — per-stream record queues with a running size estimate."""

import threading
import logging
from dataclasses import dataclass, field

from cloudwatch_buddy.config import MAX_REQUEST_BYTES
from cloudwatch_buddy.formatter import EVENT_OVERHEAD_BYTES, estimate_append_cost, serialize_events
from cloudwatch_buddy.models import Record
from cloudwatch_buddy.splitter import request_size

logger = logging.getLogger(__name__)

# Leave room under the PutLogEvents limit of 10,000 events
MAX_QUEUED_RECORDS = 9000


@dataclass
class StreamBuffer:
    name: str
    records: list[Record] = field(default_factory=list)
    queued_bytes: int = 0


class StreamBuffers:
    """Thread-safe set of StreamBuffers keyed by stream name.

    Buffers are created on first append and kept for the life of the
    process, in creation order.
    """

    def __init__(
        self,
        flush_threshold: int,
        max_records: int = MAX_QUEUED_RECORDS,
        max_request_bytes: int = MAX_REQUEST_BYTES,
    ):
        self._flush_threshold = flush_threshold
        self._max_records = max_records
        self._max_request_bytes = max_request_bytes
        self._buffers: dict[str, StreamBuffer] = {}
        self._lock = threading.Lock()

    # Public API

    def append(self, stream: str, record: Record) -> bool:
        """Queue *record* on *stream*.

        Returns True when the stream has crossed the byte or record-count
        threshold and a flush is due.
        """
        with self._lock:
            buf = self._buffers.get(stream)
            if buf is None:
                logger.debug("Adding new local log stream: %s", stream)
                buf = self._buffers[stream] = StreamBuffer(stream)

            buf.records.append(record)
            buf.queued_bytes += estimate_append_cost(buf.records)

            if buf.queued_bytes >= self._flush_threshold or len(buf.records) > self._max_records:
                logger.debug(
                    "Queue for stream %s at %d bytes / %d records, over threshold of %d bytes",
                    stream,
                    buf.queued_bytes,
                    len(buf.records),
                    self._flush_threshold,
                )
                return True
            return False

    def snapshot(self) -> dict[str, list[Record]]:
        """Swap out every stream's records and zero its size.

        Returns the non-empty batches in stream creation order.
        """
        batches: dict[str, list[Record]] = {}
        with self._lock:
            for name, buf in self._buffers.items():
                if buf.records:
                    batches[name] = buf.records
                buf.records = []
                buf.queued_bytes = 0
        return batches

    def restore(self, stream: str, records: list[Record]) -> int:
        """Put undelivered *records* back in front of the live buffer.

        The combined buffer is trimmed, oldest first, to half the record cap.
        It is trimmed further to stay under half the flush threshold, but
        never below what fits in a single PutLogEvents request. Returns the
        number of records dropped.
        """
        if not records:
            return 0

        byte_limit = self._flush_threshold // 2
        count_limit = self._max_records // 2

        with self._lock:
            buf = self._buffers.get(stream)
            if buf is None:
                buf = self._buffers[stream] = StreamBuffer(stream)

            combined = list(records) + buf.records
            dropped = max(0, len(combined) - count_limit)
            combined = combined[dropped:]
            while (
                combined
                and self._estimate(combined) >= byte_limit
                and request_size(combined) > self._max_request_bytes
            ):
                combined.pop(0)
                dropped += 1

            buf.records = combined
            buf.queued_bytes = self._estimate(combined) if combined else 0

        if dropped:
            logger.warning(
                "Dropped %d undelivered records for stream %s to keep its buffer bounded",
                dropped,
                stream,
            )
        return dropped

    def pending_count(self, stream: str) -> int:
        """Number of records currently waiting on *stream*."""
        with self._lock:
            buf = self._buffers.get(stream)
            return len(buf.records) if buf else 0

    def queued_bytes(self, stream: str) -> int:
        with self._lock:
            buf = self._buffers.get(stream)
            return buf.queued_bytes if buf else 0

    def records(self, stream: str) -> list[Record]:
        with self._lock:
            buf = self._buffers.get(stream)
            return list(buf.records) if buf else []

    @property
    def streams(self) -> list[str]:
        with self._lock:
            return list(self._buffers)

    @staticmethod
    def _estimate(records: list[Record]) -> int:
        return EVENT_OVERHEAD_BYTES * len(records) + 2 * len(serialize_events(records))
