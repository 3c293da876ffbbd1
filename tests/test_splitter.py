"""Tests for the batch splitter."""

from cloudwatch_buddy.models import Record
from cloudwatch_buddy.splitter import request_size, split_records


def _records(count: int, size: int = 10) -> list[Record]:
    return [Record(timestamp=i, message="x" * size) for i in range(count)]


def test_small_batch_single_chunk():
    records = _records(5)
    assert split_records(records) == [records]


def test_empty_batch():
    assert split_records([]) == []


def test_request_size_counts_utf8_bytes_plus_overhead():
    records = [Record(timestamp=1, message="é"), Record(timestamp=2, message="ab")]
    assert request_size(records) == (2 + 26) + (2 + 26)


def test_split_by_event_count():
    records = _records(25)
    chunks = split_records(records, max_events=10)

    assert all(len(chunk) <= 10 for chunk in chunks)
    assert [r for chunk in chunks for r in chunk] == records


def test_split_by_bytes():
    records = _records(40, size=100)
    chunks = split_records(records, max_bytes=1000)

    assert len(chunks) > 1
    assert all(request_size(chunk) <= 1000 for chunk in chunks)
    assert [r for chunk in chunks for r in chunk] == records


def test_oversized_single_event_kept_alone():
    big = Record(timestamp=0, message="x" * 5000)
    small = Record(timestamp=1, message="y")
    chunks = split_records([big, small], max_bytes=1000)

    assert chunks == [[big], [small]]
