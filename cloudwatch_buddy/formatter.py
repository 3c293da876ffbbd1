"""Record formatter — turns raw messages into Records and estimates their queued cost."""

import datetime
import json

from cloudwatch_buddy.config import ShipperConfig
from cloudwatch_buddy.identity import InstanceIdentity
from cloudwatch_buddy.models import Record, now_millis, records_to_events

# Fixed per-event framing overhead charged by CloudWatch Logs
EVENT_OVERHEAD_BYTES = 26


def _iso_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds")


def serialize_events(records: list[Record]) -> str:
    """Compact JSON array of the wire events for *records*."""
    return json.dumps(records_to_events(records), separators=(",", ":"), ensure_ascii=False)


def estimate_append_cost(records: list[Record]) -> int:
    """Bytes to add to a stream's queued size after appending to *records*.

    Deliberately conservative: roughly two bytes per character of the whole
    serialized sequence, plus the per-event overhead. The result is meant
    for the flush threshold only, not as an exact request size.
    """
    return EVENT_OVERHEAD_BYTES + 2 * len(serialize_events(records))


class RecordFormatter:
    """Formats raw log messages according to the configured log format."""

    def __init__(self, config: ShipperConfig, identity: InstanceIdentity, clock=_iso_timestamp):
        self._format = config.log_format
        self._add_timestamp = config.add_timestamp
        self._add_instance_id = config.add_instance_id
        self._identity = identity
        self._clock = clock

    def format(self, message) -> Record:
        if self._format == "json":
            body = self._format_json(message)
        else:
            body = self._format_string(message)
        return Record(timestamp=now_millis(), message=body)

    def _format_string(self, message) -> str:
        if isinstance(message, (dict, list)):
            message = json.dumps(message, separators=(",", ":"), ensure_ascii=False, default=str)
        elif not isinstance(message, str):
            message = str(message)

        prefix = ""
        if self._add_timestamp:
            prefix += self._clock() + " "
        if self._add_instance_id:
            prefix += self._identity.value + " "
        return prefix + message

    def _format_json(self, message) -> str:
        envelope = {}
        if self._add_timestamp:
            envelope["timestamp"] = self._clock()
        if self._add_instance_id:
            envelope["instance_id"] = self._identity.value
        envelope["message"] = message
        # CloudWatch Logs only accepts string messages
        return json.dumps(envelope, indent=2, default=str)
