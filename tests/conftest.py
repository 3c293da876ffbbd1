import pytest
from botocore.exceptions import ClientError

from cloudwatch_buddy.config import ShipperConfig
from cloudwatch_buddy.identity import InstanceIdentity
from cloudwatch_buddy.shipper import CloudWatchLogShipper


def client_error(code: str, message: str = "", operation: str = "PutLogEvents", **extra) -> ClientError:
    """Build a botocore ClientError the way the service returns it."""
    response = {"Error": {"Code": code, "Message": message}}
    response.update(extra)
    return ClientError(response, operation)


def stale_token_error(expected: str) -> ClientError:
    return client_error(
        "InvalidSequenceTokenException",
        f"The given sequenceToken is invalid. The next expected sequenceToken is: {expected}",
        expectedSequenceToken=expected,
    )


class FakeLogsClient:
    """In-memory stand-in for a boto3 CloudWatch Logs client.

    Tests queue errors per operation in ``put_errors`` / ``describe_errors`` /
    ``create_errors``; each call pops one entry (None means succeed).
    """

    def __init__(self, existing_streams=()):
        self.streams: dict[str, list[dict]] = {name: [] for name in existing_streams}
        self.calls: list[tuple[str, dict]] = []
        self.put_errors: dict[str, list] = {}
        self.describe_errors: list = []
        self.create_errors: list = []
        self._token_counter = 0

    def describe_log_streams(self, **params):
        self.calls.append(("describe_log_streams", params))
        if self.describe_errors:
            error = self.describe_errors.pop(0)
            if error is not None:
                raise error
        prefix = params.get("logStreamNamePrefix", "")
        matches = sorted(name for name in self.streams if name.startswith(prefix))
        return {"logStreams": [{"logStreamName": name} for name in matches]}

    def create_log_stream(self, **params):
        self.calls.append(("create_log_stream", params))
        if self.create_errors:
            error = self.create_errors.pop(0)
            if error is not None:
                raise error
        self.streams.setdefault(params["logStreamName"], [])
        return {}

    def put_log_events(self, **params):
        self.calls.append(("put_log_events", params))
        stream = params["logStreamName"]
        errors = self.put_errors.get(stream)
        if errors:
            error = errors.pop(0)
            if error is not None:
                raise error
        timestamps = [event["timestamp"] for event in params["logEvents"]]
        if timestamps != sorted(timestamps):
            raise client_error(
                "InvalidParameterException",
                "Log events in a single PutLogEvents request must be in chronological order.",
            )
        self.streams.setdefault(stream, []).extend(params["logEvents"])
        self._token_counter += 1
        return {"nextSequenceToken": f"token-{self._token_counter}"}

    def operations(self, name: str | None = None) -> list[str]:
        """Operation names called, optionally only those for stream *name*."""
        return [
            op
            for op, params in self.calls
            if name is None
            or params.get("logStreamName") == name
            or params.get("logStreamNamePrefix") == name
        ]

    def puts(self, name: str) -> list[dict]:
        return [p for op, p in self.calls if op == "put_log_events" and p["logStreamName"] == name]


@pytest.fixture
def fake_client():
    return FakeLogsClient()


@pytest.fixture
def make_shipper(fake_client):
    """Factory for shippers wired to the fake client; stops them on teardown."""
    shippers = []

    def _make(**options):
        opts = {"log_group": "test-group", "flush_interval": 60}
        opts.update(options)
        shipper = CloudWatchLogShipper(
            ShipperConfig.from_options(opts),
            logs_client=fake_client,
            identity=InstanceIdentity(fetcher=lambda: "i-0abc123"),
        )
        shippers.append(shipper)
        return shipper

    yield _make

    for shipper in shippers:
        shipper.stop(flush=False)
