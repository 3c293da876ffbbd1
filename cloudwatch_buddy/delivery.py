"""Delivery engine — ships snapshotted batches to CloudWatch Logs, one stream at a time."""

import time
import logging
from dataclasses import dataclass, field

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from cloudwatch_buddy.metrics import MetricsCollector
from cloudwatch_buddy.models import Record, records_to_events
from cloudwatch_buddy.registry import StreamRegistry
from cloudwatch_buddy.splitter import request_size, split_records

logger = logging.getLogger(__name__)

STALE_TOKEN_CODE = "InvalidSequenceTokenException"
ALREADY_ACCEPTED_CODE = "DataAlreadyAcceptedException"
ALREADY_EXISTS_CODE = "ResourceAlreadyExistsException"


def create_logs_client(region: str | None = None):
    """Create a boto3 CloudWatch Logs client."""
    return boto3.client("logs", region_name=region)


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def expected_token(exc: ClientError) -> str | None:
    """Extract the corrected sequence token carried by a token error.

    Prefers the structured ``expectedSequenceToken`` field and falls back to
    the text after the first colon of the message, e.g.
    "The given sequenceToken is invalid. The next expected sequenceToken is: 4959..."
    """
    token = exc.response.get("expectedSequenceToken")
    if token:
        return token

    message = exc.response.get("Error", {}).get("Message", "")
    _, sep, tail = message.partition(":")
    token = tail.strip()
    if not sep or not token or token == "null":
        return None
    return token


@dataclass
class DeliveryResult:
    stream: str
    ok: bool = True
    delivered: int = 0
    undelivered: list[Record] = field(default_factory=list)
    token_retried: bool = False
    error: str | None = None


class DeliveryEngine:
    """Delivers per-stream batches with sequence-token tracking.

    Streams are processed sequentially so only one request is in flight at a
    time. A failure on one stream is reported in its DeliveryResult and does
    not stop delivery of the others.
    """

    def __init__(
        self,
        client,
        log_group: str,
        registry: StreamRegistry,
        metrics: MetricsCollector | None = None,
    ):
        self._client = client
        self._log_group = log_group
        self._registry = registry
        self._metrics = metrics or MetricsCollector()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def deliver_all(self, batches: dict[str, list[Record]]) -> list[DeliveryResult]:
        """Deliver every non-empty batch, in the order given.

        An unexpected error on one stream fails only that stream; its
        records come back as undelivered.
        """
        results = []
        for stream, records in batches.items():
            if not records:
                continue
            try:
                result = self.deliver(stream, records)
            except Exception as exc:
                logger.exception("Unexpected error delivering logs for stream %s", stream)
                self._metrics.record_failure()
                result = DeliveryResult(stream, ok=False, undelivered=list(records), error=str(exc))
            results.append(result)
        return results

    def deliver(self, stream: str, records: list[Record]) -> DeliveryResult:
        """Ensure *stream* exists, then put *records* in as few requests as the limits allow."""
        result = DeliveryResult(stream)
        # PutLogEvents rejects a request whose events are not in chronological order
        records = sorted(records, key=lambda r: r.timestamp)

        try:
            self.ensure_stream(stream)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Error checking if log stream %s exists: %s", stream, exc)
            self._metrics.record_failure()
            result.ok = False
            result.error = str(exc)
            result.undelivered = list(records)
            return result

        chunks = split_records(records)
        for i, chunk in enumerate(chunks):
            try:
                retried = self._put_chunk(stream, chunk)
            except (ClientError, BotoCoreError) as exc:
                logger.error("Error putting logs for stream %s: %s", stream, exc)
                self._metrics.record_failure()
                result.ok = False
                result.error = str(exc)
                result.undelivered = [r for pending in chunks[i:] for r in pending]
                return result
            result.delivered += len(chunk)
            result.token_retried = result.token_retried or retried

        logger.debug("Successfully put %d logs for stream %s", result.delivered, stream)
        return result

    def ensure_stream(self, stream: str):
        """Make sure *stream* exists in the log group, creating it if needed.

        Streams already confirmed during this process lifetime are skipped.
        """
        if self._registry.is_known(stream):
            return

        if self._stream_exists(stream):
            logger.debug("Log stream exists: %s", stream)
            self._registry.mark_known(stream)
            return

        try:
            self._client.create_log_stream(logGroupName=self._log_group, logStreamName=stream)
            logger.info("Created log stream %s in group %s", stream, self._log_group)
        except ClientError as exc:
            if error_code(exc) != ALREADY_EXISTS_CODE:
                raise
            logger.debug("Log stream %s was created concurrently", stream)
        self._registry.mark_known(stream)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _stream_exists(self, stream: str) -> bool:
        """Look for an exact name match; the API only filters by prefix."""
        params = {"logGroupName": self._log_group, "logStreamNamePrefix": stream}
        while True:
            response = self._client.describe_log_streams(**params)
            for info in response.get("logStreams", []):
                if info.get("logStreamName") == stream:
                    return True
            next_token = response.get("nextToken")
            if not next_token:
                return False
            params["nextToken"] = next_token

    def _put_chunk(self, stream: str, chunk: list[Record]) -> bool:
        """Put one request's worth of records. Returns True if a token retry happened.

        An invalid token is corrected from the error and retried exactly once;
        any error from the retry propagates.
        """
        events = records_to_events(chunk)
        start = time.monotonic()
        retried = False

        try:
            response = self._put_events(stream, events, self._registry.get_token(stream))
        except ClientError as exc:
            code = error_code(exc)
            if code == STALE_TOKEN_CODE:
                logger.info("Invalid sequence token for stream %s, retrying: %s", stream, exc)
                self._metrics.record_token_retry()
                retried = True
                response = self._put_events(stream, events, expected_token(exc))
            elif code == ALREADY_ACCEPTED_CODE:
                logger.info("Batch for stream %s was already accepted: %s", stream, exc)
                response = {"nextSequenceToken": expected_token(exc)}
            else:
                raise

        rejected = response.get("rejectedLogEventsInfo")
        if rejected:
            logger.warning("Some log events for stream %s were rejected: %s", stream, rejected)

        self._registry.set_token(stream, response.get("nextSequenceToken"))
        self._metrics.record_batch(
            event_count=len(chunk),
            bytes_sent=request_size(chunk),
            send_time_ms=(time.monotonic() - start) * 1000,
        )
        return retried

    def _put_events(self, stream: str, events: list[dict], token: str | None) -> dict:
        params = {
            "logGroupName": self._log_group,
            "logStreamName": stream,
            "logEvents": events,
        }
        if token:
            params["sequenceToken"] = token
        return self._client.put_log_events(**params)
