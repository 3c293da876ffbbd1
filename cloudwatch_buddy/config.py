"""Configuration module — frozen dataclass validated from options, env vars, YAML and CLI args."""

import os
import argparse
from dataclasses import dataclass
from typing import Optional

import yaml

LOG_FORMATS = ("string", "json")

MIN_FLUSH_INTERVAL = 60
MAX_FLUSH_INTERVAL = 1800
MIN_BATCH_BYTES = 5000
# Hard per-request limit of PutLogEvents
MAX_REQUEST_BYTES = 1048576

# Option aliases accepted by from_options, mapped to field names
_OPTION_ALIASES = {
    "logGroup": "log_group",
    "timeout": "flush_interval",
    "flushInterval": "flush_interval",
    "maxSize": "max_batch_bytes",
    "maxBatchBytes": "max_batch_bytes",
    "logFormat": "log_format",
    "format": "log_format",
    "addTimestamp": "add_timestamp",
    "addInstanceId": "add_instance_id",
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except ValueError:
        return None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class ShipperConfig:
    log_group: str = ""
    flush_interval: int = 120
    max_batch_bytes: int = 200000
    log_format: str = "string"
    add_timestamp: bool = False
    add_instance_id: bool = False
    debug: bool = False
    region: Optional[str] = None

    @property
    def flush_threshold(self) -> int:
        """Estimated queued bytes at which a stream forces a flush."""
        return self.max_batch_bytes - 1000

    @classmethod
    def from_options(cls, options: Optional[dict]) -> "ShipperConfig":
        """Build a config from a loose options dict.

        Never raises: missing, wrong-typed or out-of-range values are
        replaced by the field defaults.
        """
        opts = {}
        for key, value in (options or {}).items():
            opts[_OPTION_ALIASES.get(key, key)] = value

        log_group = opts.get("log_group")
        flush_interval = opts.get("flush_interval")
        max_batch_bytes = opts.get("max_batch_bytes")
        log_format = opts.get("log_format")
        region = opts.get("region")

        return cls(
            log_group=log_group if isinstance(log_group, str) else cls.log_group,
            flush_interval=(
                flush_interval
                if _is_int(flush_interval)
                and MIN_FLUSH_INTERVAL <= flush_interval <= MAX_FLUSH_INTERVAL
                else cls.flush_interval
            ),
            max_batch_bytes=(
                max_batch_bytes
                if _is_int(max_batch_bytes)
                and MIN_BATCH_BYTES < max_batch_bytes < MAX_REQUEST_BYTES
                else cls.max_batch_bytes
            ),
            log_format=log_format if log_format in LOG_FORMATS else cls.log_format,
            add_timestamp=opts.get("add_timestamp") is True,
            add_instance_id=opts.get("add_instance_id") is True,
            debug=opts.get("debug") is True,
            region=region if isinstance(region, str) and region else cls.region,
        )


def load_yaml(path: str) -> dict:
    """Load the optional YAML config file at *path*.

    Settings may sit at the top level or under a ``shipper`` section.
    """
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    section = data.get("shipper", data)
    return section if isinstance(section, dict) else {}


def _env_options() -> dict:
    """Read shipper options from environment variables, converting types."""
    opts: dict = {}
    if "LOG_GROUP" in os.environ:
        opts["log_group"] = os.environ["LOG_GROUP"]
    if "FLUSH_INTERVAL" in os.environ:
        opts["flush_interval"] = _parse_int(os.environ["FLUSH_INTERVAL"])
    if "MAX_BATCH_BYTES" in os.environ:
        opts["max_batch_bytes"] = _parse_int(os.environ["MAX_BATCH_BYTES"])
    if "LOG_FORMAT" in os.environ:
        opts["log_format"] = os.environ["LOG_FORMAT"].strip().lower()
    for env_key, field_name in (
        ("ADD_TIMESTAMP", "add_timestamp"),
        ("ADD_INSTANCE_ID", "add_instance_id"),
        ("DEBUG", "debug"),
    ):
        if env_key in os.environ:
            opts[field_name] = _parse_bool(os.environ[env_key])
    if "AWS_REGION" in os.environ:
        opts["region"] = os.environ["AWS_REGION"]
    return opts


def load_config(argv=None) -> ShipperConfig:
    """Build ShipperConfig from defaults <- YAML file <- env vars <- CLI args.

    Pass argv for testability; when None, argparse reads sys.argv.
    Arguments this parser does not know are ignored.
    """
    parser = argparse.ArgumentParser(description="CloudWatch Buddy log shipper", add_help=False)
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--log-group", type=str, default=None)
    parser.add_argument("--flush-interval", type=int, default=None)
    parser.add_argument("--max-batch-bytes", type=int, default=None)
    parser.add_argument("--format", type=str, default=None, dest="log_format")
    parser.add_argument("--add-timestamp", action="store_true", default=None)
    parser.add_argument("--add-instance-id", action="store_true", default=None)
    parser.add_argument("--debug", action="store_true", default=None)
    parser.add_argument("--region", type=str, default=None)

    args, _unknown = parser.parse_known_args(argv)

    opts: dict = {}
    config_path = args.config or os.environ.get("CONFIG_PATH")
    if config_path:
        opts.update(load_yaml(config_path))

    opts.update(_env_options())

    # CLI flags override env vars
    for field_name in (
        "log_group",
        "flush_interval",
        "max_batch_bytes",
        "log_format",
        "add_timestamp",
        "add_instance_id",
        "debug",
        "region",
    ):
        value = getattr(args, field_name)
        if value is not None:
            opts[field_name] = value

    return ShipperConfig.from_options(opts)
