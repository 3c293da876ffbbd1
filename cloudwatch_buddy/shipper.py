"""CloudWatch log shipper — orchestrates formatter, buffers, scheduler, delivery, and metrics."""

import logging

from cloudwatch_buddy.buffer import StreamBuffers
from cloudwatch_buddy.config import ShipperConfig
from cloudwatch_buddy.delivery import DeliveryEngine, DeliveryResult, create_logs_client
from cloudwatch_buddy.formatter import RecordFormatter
from cloudwatch_buddy.identity import InstanceIdentity
from cloudwatch_buddy.metrics import MetricsCollector
from cloudwatch_buddy.registry import StreamRegistry
from cloudwatch_buddy.scheduler import FlushScheduler

logger = logging.getLogger(__name__)


class CloudWatchLogShipper:
    """Buffers log messages per stream and ships them to a CloudWatch Logs group.

    Each instance owns its buffers, stream registry and flush timer, so
    several shippers can live in one process independently.
    """

    def __init__(
        self,
        config: ShipperConfig,
        logs_client=None,
        identity: InstanceIdentity | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self._config = config
        self._metrics = metrics or MetricsCollector()
        self._identity = identity or InstanceIdentity()
        self._registry = StreamRegistry()
        self._buffers = StreamBuffers(flush_threshold=config.flush_threshold)
        self._formatter = RecordFormatter(config, self._identity)
        self._engine = DeliveryEngine(
            logs_client if logs_client is not None else create_logs_client(config.region),
            config.log_group,
            self._registry,
            self._metrics,
        )
        self._scheduler = FlushScheduler(config.flush_interval, self._run_cycle)

        if config.add_instance_id:
            self._identity.resolve_in_background()

        self._scheduler.start()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, stream: str, message) -> None:
        """Queue *message* for *stream*. Never raises.

        Flushes every stream synchronously when this stream's buffer crosses
        its size or count threshold.
        """
        try:
            self._registry.touch(stream)
            record = self._formatter.format(message)
            over_threshold = self._buffers.append(stream, record)
        except Exception:
            logger.exception("Failed to queue log message for stream %s", stream)
            return

        if over_threshold:
            self._scheduler.trigger("size")

    log = append

    def flush(self) -> bool:
        """Run a flush cycle now. Returns False if folded into a running cycle."""
        return self._scheduler.trigger("manual")

    def stop(self, flush: bool = True, timeout: float | None = 30.0):
        """Stop the flush timer and, by default, ship whatever is still buffered."""
        self._scheduler.stop()
        if flush:
            self._scheduler.wait_idle(timeout)
            self._scheduler.trigger("shutdown")
            self._scheduler.wait_idle(timeout)
        logger.info("Shipper metrics: %s", self._metrics.snapshot())

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> ShipperConfig:
        return self._config

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def registry(self) -> StreamRegistry:
        return self._registry

    @property
    def buffers(self) -> StreamBuffers:
        return self._buffers

    @property
    def identity(self) -> InstanceIdentity:
        return self._identity

    # ------------------------------------------------------------------
    # Flush cycle (called by FlushScheduler)
    # ------------------------------------------------------------------

    def _run_cycle(self, trigger: str) -> list[DeliveryResult]:
        """Snapshot all buffers, deliver them, and requeue what failed."""
        logger.debug("Put logs called (%s)", trigger)
        self._metrics.record_cycle(trigger)

        batches = self._buffers.snapshot()
        results = self._engine.deliver_all(batches)

        for result in results:
            if result.ok:
                continue
            dropped = self._buffers.restore(result.stream, result.undelivered)
            if dropped:
                self._metrics.record_dropped(dropped)

        failed = sum(1 for r in results if not r.ok)
        logger.debug(
            "Finished putting logs for %d stream(s), %d failed. Resetting timer",
            len(results),
            failed,
        )
        return results
