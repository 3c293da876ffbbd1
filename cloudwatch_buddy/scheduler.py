"""Flush scheduler — runs flush cycles on a timer or on demand, one at a time."""

import threading
import logging

logger = logging.getLogger(__name__)


class FlushScheduler:
    """Drives a flush cycle callback from two triggers.

    The timer fires *interval* seconds after the last cycle finished. An
    explicit trigger (e.g. a buffer crossing its threshold) cancels the
    pending timer and runs a cycle on the caller's thread.

    Only one cycle runs at a time. A trigger arriving while a cycle is in
    progress is coalesced: it returns immediately and the running thread
    performs a single follow-up cycle once the current one completes. The
    timer is re-armed after every cycle, whatever its outcome.
    """

    def __init__(self, interval: float, run_cycle):
        self._interval = interval
        self._run_cycle = run_cycle

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._timer: threading.Timer | None = None
        self._running = False
        self._pending: str | None = None
        self._stopped = False

    # Public API

    def start(self):
        """Arm the timer for the first cycle."""
        with self._lock:
            self._stopped = False
            self._arm_locked()

    def trigger(self, reason: str = "size") -> bool:
        """Run a flush cycle now.

        Returns True if this call ran the cycle, False if it was folded into
        the cycle already in progress.
        """
        with self._lock:
            self._cancel_locked()
            if self._running:
                self._pending = reason
                logger.debug("Flush cycle in progress, coalescing %s trigger", reason)
                return False
            self._running = True

        try:
            while True:
                self._safe_run(reason)
                with self._lock:
                    if self._pending is None:
                        break
                    reason = self._pending
                    self._pending = None
        finally:
            with self._lock:
                self._running = False
                self._pending = None
                self._idle.notify_all()
                if not self._stopped:
                    self._arm_locked()
        return True

    def stop(self):
        """Cancel the timer and stop re-arming it. A running cycle is not interrupted."""
        with self._lock:
            self._stopped = True
            self._cancel_locked()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no cycle is running. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._running, timeout=timeout)

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def armed(self) -> bool:
        with self._lock:
            return self._timer is not None

    # Internal helpers

    def _on_timer(self):
        logger.debug("Timer expired, starting flush cycle")
        self.trigger("timer")

    def _safe_run(self, reason: str):
        """Invoke the cycle callback so that a failing cycle never kills the scheduler."""
        try:
            self._run_cycle(reason)
        except Exception:
            logger.exception("Flush cycle (%s) failed", reason)

    def _arm_locked(self):
        """Must be called with self._lock held."""
        self._cancel_locked()
        timer = threading.Timer(self._interval, self._on_timer)
        timer.daemon = True
        timer.start()
        self._timer = timer

    def _cancel_locked(self):
        """Must be called with self._lock held."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
