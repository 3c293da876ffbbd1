"""Entry point: ships lines from stdin or a file to a CloudWatch Logs stream."""

import argparse
import logging
import os
import signal
import sys

from cloudwatch_buddy.config import load_config
from cloudwatch_buddy.shipper import CloudWatchLogShipper

logger = logging.getLogger(__name__)


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(description="CloudWatch Buddy log shipper")
    parser.add_argument("--stream", type=str, default=os.environ.get("LOG_STREAM", "default"))
    parser.add_argument("--input", type=str, default=None, help="file to read (default: stdin)")
    args, _unknown = parser.parse_known_args(argv)
    return args


def handle_signal(signum, frame):
    """Interrupt a blocking read so the final flush runs promptly."""
    logger.info("Received signal %d, shutting down...", signum)
    raise KeyboardInterrupt


def ship_lines(shipper: CloudWatchLogShipper, stream: str, source) -> int:
    """Append every non-empty line of *source* to *stream*. Returns the count shipped."""
    count = 0
    for line in source:
        line = line.rstrip("\n")
        if line:
            shipper.append(stream, line)
            count += 1
    return count


def main(argv=None):
    config = load_config(argv)
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not config.log_group:
        logger.error("No log group configured (set LOG_GROUP or --log-group)")
        return 2

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    shipper = CloudWatchLogShipper(config)
    logger.info(
        "Shipping to %s/%s: flush_interval=%ds, max_batch_bytes=%d, format=%s",
        config.log_group,
        args.stream,
        config.flush_interval,
        config.max_batch_bytes,
        config.log_format,
    )

    source = open(args.input, "r", encoding="utf-8") if args.input else sys.stdin
    try:
        ship_lines(shipper, args.stream, source)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if source is not sys.stdin:
            source.close()
        shipper.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
