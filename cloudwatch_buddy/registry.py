"""Stream registry — known streams and their sequence tokens for this process."""

import threading

from cloudwatch_buddy.models import StreamState


class StreamRegistry:
    """In-memory map of stream name to StreamState.

    Entries are created lazily and never removed. Nothing is persisted, so a
    restarted process rediscovers streams with a fresh existence check.
    """

    def __init__(self):
        self._streams: dict[str, StreamState] = {}
        self._lock = threading.Lock()

    def touch(self, stream: str) -> StreamState:
        """Return the entry for *stream*, creating it if absent."""
        with self._lock:
            state = self._streams.get(stream)
            if state is None:
                state = self._streams[stream] = StreamState(stream)
            return state

    def is_known(self, stream: str) -> bool:
        with self._lock:
            state = self._streams.get(stream)
            return state is not None and state.known

    def mark_known(self, stream: str):
        with self._lock:
            state = self._streams.setdefault(stream, StreamState(stream))
            state.known = True

    def get_token(self, stream: str) -> str | None:
        with self._lock:
            state = self._streams.get(stream)
            return state.sequence_token if state else None

    def set_token(self, stream: str, token: str | None):
        """Store the token for the next append and mark the stream known."""
        with self._lock:
            state = self._streams.setdefault(stream, StreamState(stream))
            state.known = True
            state.sequence_token = token

    def get(self, stream: str) -> StreamState | None:
        """Return a copy of the entry for *stream*, or None."""
        with self._lock:
            state = self._streams.get(stream)
            if state is None:
                return None
            return StreamState(state.name, state.known, state.sequence_token)

    def __contains__(self, stream: str) -> bool:
        with self._lock:
            return stream in self._streams

    def __len__(self) -> int:
        with self._lock:
            return len(self._streams)
