"""Metrics collector — thread-safe counters and timings for log delivery."""

import threading
import time


class MetricsCollector:
    """Collects and reports metrics about flush cycles and PutLogEvents calls."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cycles: dict = {}
        self._batches_sent: int = 0
        self._events_sent: int = 0
        self._bytes_sent: int = 0
        self._failed_deliveries: int = 0
        self._token_retries: int = 0
        self._events_dropped: int = 0
        self._send_times: list[float] = []
        self._start_time = time.monotonic()

    def record_cycle(self, trigger: str) -> None:
        """Count a flush cycle by what triggered it ("size", "timer", ...)."""
        with self._lock:
            self._cycles[trigger] = self._cycles.get(trigger, 0) + 1

    def record_batch(self, event_count: int, bytes_sent: int, send_time_ms: float) -> None:
        """Record one successful PutLogEvents call.

        Args:
            event_count: Number of log events in the request.
            bytes_sent: Request size as counted by the service.
            send_time_ms: Time taken by the call, including a token retry.
        """
        with self._lock:
            self._batches_sent += 1
            self._events_sent += event_count
            self._bytes_sent += bytes_sent
            self._send_times.append(send_time_ms)

    def record_failure(self) -> None:
        with self._lock:
            self._failed_deliveries += 1

    def record_token_retry(self) -> None:
        with self._lock:
            self._token_retries += 1

    def record_dropped(self, count: int) -> None:
        with self._lock:
            self._events_dropped += count

    def snapshot(self) -> dict:
        """Return a point-in-time snapshot of all collected metrics."""
        with self._lock:
            send_times = list(self._send_times)
            avg_send = sum(send_times) / len(send_times) if send_times else 0.0

            return {
                "cycles": dict(self._cycles),
                "batches_sent": self._batches_sent,
                "events_sent": self._events_sent,
                "bytes_sent": self._bytes_sent,
                "failed_deliveries": self._failed_deliveries,
                "token_retries": self._token_retries,
                "events_dropped": self._events_dropped,
                "avg_send_time_ms": avg_send,
                "p95_send_time_ms": self._percentile(send_times, 95),
                "uptime_seconds": time.monotonic() - self._start_time,
            }

    @staticmethod
    def _percentile(data: list, pct: float) -> float:
        """Compute an interpolated percentile from a list of numeric values.

        Args:
            data: List of numeric values (will be sorted internally).
            pct: Desired percentile (0-100).

        Returns:
            Interpolated value at the given percentile, or 0.0 if data is empty.
        """
        if not data:
            return 0.0

        sorted_data = sorted(data)
        n = len(sorted_data)

        if n == 1:
            return float(sorted_data[0])

        idx = (pct / 100) * (n - 1)
        lower = int(idx)
        upper = lower + 1
        fraction = idx - lower

        if upper >= n:
            return float(sorted_data[-1])

        return float(sorted_data[lower] + fraction * (sorted_data[upper] - sorted_data[lower]))
