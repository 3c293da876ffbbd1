"""Instance identity — best-effort background lookup of the EC2 instance ID."""

import logging
import threading

import requests

logger = logging.getLogger(__name__)

UNKNOWN_INSTANCE_ID = "unknown"

IMDS_BASE_URL = "http://169.254.169.254"
IMDS_TOKEN_PATH = "/latest/api/token"
IMDS_INSTANCE_ID_PATH = "/latest/meta-data/instance-id"
IMDS_TOKEN_TTL_SECONDS = "21600"


def fetch_instance_id(base_url: str = IMDS_BASE_URL, timeout: float = 2.0) -> str:
    """Fetch the instance ID from the EC2 instance metadata service.

    Tries an IMDSv2 session token first and falls back to an unauthenticated
    IMDSv1 request when the token endpoint is unavailable.
    """
    headers = {}
    try:
        token_resp = requests.put(
            base_url + IMDS_TOKEN_PATH,
            headers={"X-aws-ec2-metadata-token-ttl-seconds": IMDS_TOKEN_TTL_SECONDS},
            timeout=timeout,
        )
        if token_resp.ok:
            headers["X-aws-ec2-metadata-token"] = token_resp.text
    except requests.RequestException as exc:
        logger.debug("IMDSv2 token request failed, trying IMDSv1: %s", exc)

    resp = requests.get(base_url + IMDS_INSTANCE_ID_PATH, headers=headers, timeout=timeout)
    resp.raise_for_status()
    return resp.text.strip()


class InstanceIdentity:
    """Lock-guarded cell holding the resolved instance ID.

    Reads "unknown" until a background resolution succeeds. Resolution runs
    at most once; a failure is logged and never retried.
    """

    def __init__(self, fetcher=fetch_instance_id):
        self._fetcher = fetcher
        self._value = UNKNOWN_INSTANCE_ID
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def value(self) -> str:
        with self._lock:
            return self._value

    @property
    def resolved(self) -> bool:
        return self.value != UNKNOWN_INSTANCE_ID

    def resolve_in_background(self) -> threading.Thread:
        """Start the one-shot resolution thread and return it."""
        with self._lock:
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._resolve, name="instance-identity", daemon=True
                )
                self._thread.start()
            return self._thread

    def _resolve(self):
        try:
            instance_id = self._fetcher()
        except Exception as exc:
            logger.warning("Error retrieving instance ID: %s", exc)
            return

        if not instance_id:
            logger.warning("Instance metadata returned an empty instance ID")
            return

        with self._lock:
            self._value = instance_id
        logger.info("Instance ID resolved: %s", instance_id)
