"""Log record and per-stream state models."""

import time
from dataclasses import dataclass, field
from typing import Optional


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Record:
    timestamp: int = field(default_factory=now_millis)
    message: str = ""

    def to_event(self) -> dict:
        """Convert to the event dict accepted by PutLogEvents."""
        return {"timestamp": self.timestamp, "message": self.message}


@dataclass
class StreamState:
    name: str
    known: bool = False
    sequence_token: Optional[str] = None


def records_to_events(records: list[Record]) -> list[dict]:
    return [record.to_event() for record in records]
