"""tcsignal.imds - Instance identity from the EC2 instance metadata service.

``InstanceMetadataResolver`` speaks IMDSv2 (session token) and falls back to
tokenless IMDSv1 when the token endpoint is not available. The endpoint can
be redirected with AWS_EC2_METADATA_SERVICE_ENDPOINT (e.g. a local metadata
mock) and lookups are refused when AWS_EC2_METADATA_DISABLED=true, matching
the AWS SDK settings of the same names.
"""

from __future__ import annotations

import http.client
import logging
import os
import socket
import urllib.error
import urllib.request
from typing import Mapping, Optional, Protocol

from tcsignal.deadline import Deadline
from tcsignal.errors import DeadlineExceeded, IdentityError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://169.254.169.254"
TOKEN_PATH = "/latest/api/token"
INSTANCE_ID_PATH = "/latest/meta-data/instance-id"
REGION_PATH = "/latest/meta-data/placement/region"
TOKEN_TTL_SECONDS = 21600
REQUEST_TIMEOUT_SECONDS = 2.0
MAX_ATTEMPTS = 3

# Token endpoint answers meaning "IMDSv2 not offered here"; anything else is a real failure.
_TOKEN_FALLBACK_CODES = {403, 404, 405}


class IdentityResolver(Protocol):
    def get_instance_id(self, deadline: Deadline) -> str:
        ...

    def get_region(self, deadline: Deadline) -> str:
        ...


class StaticResolver:
    """Returns fixed values; used for explicit configuration and tests."""

    def __init__(self, instance_id: str = "", region: str = ""):
        self.instance_id = instance_id
        self.region = region

    def get_instance_id(self, deadline: Deadline) -> str:
        if not self.instance_id:
            raise IdentityError("no static instance ID configured")
        return self.instance_id

    def get_region(self, deadline: Deadline) -> str:
        if not self.region:
            raise IdentityError("no static region configured")
        return self.region


class InstanceMetadataResolver:
    def __init__(
        self,
        endpoint: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        env = os.environ if environ is None else environ
        self.endpoint = (endpoint or env.get("AWS_EC2_METADATA_SERVICE_ENDPOINT") or DEFAULT_ENDPOINT).rstrip("/")
        self.disabled = str(env.get("AWS_EC2_METADATA_DISABLED", "")).strip().lower() == "true"
        self.request_timeout = request_timeout
        self.max_attempts = max(1, max_attempts)

    def get_instance_id(self, deadline: Deadline) -> str:
        return self._get_metadata(INSTANCE_ID_PATH, deadline)

    def get_region(self, deadline: Deadline) -> str:
        return self._get_metadata(REGION_PATH, deadline)

    # -------------------------------------------------------------------
    # HTTP plumbing
    # -------------------------------------------------------------------

    def _get_metadata(self, path: str, deadline: Deadline) -> str:
        if self.disabled:
            raise IdentityError("instance metadata lookups are disabled (AWS_EC2_METADATA_DISABLED)")

        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                token = self._fetch_token(deadline)
                headers = {"X-aws-ec2-metadata-token": token} if token else {}
                value = self._request("GET", path, headers, deadline).strip()
            except DeadlineExceeded as exc:
                raise IdentityError(f"metadata lookup for {path} timed out: {exc}") from exc
            except urllib.error.HTTPError as exc:
                # 4xx from IMDS (wrong path, bad token) will not improve on retry.
                if exc.code < 500:
                    raise IdentityError(f"metadata lookup for {path} failed: HTTP {exc.code}") from exc
                last_exc = exc
            except UnicodeDecodeError as exc:
                raise IdentityError(f"metadata service returned non-UTF-8 data for {path}") from exc
            except (urllib.error.URLError, http.client.HTTPException, socket.timeout, ConnectionError) as exc:
                # HTTPException covers truncated or malformed responses (IncompleteRead, BadStatusLine).
                last_exc = exc
            else:
                if not value:
                    raise IdentityError(f"metadata service returned an empty value for {path}")
                return value
            logger.debug("Metadata request failed (attempt %d/%d): %s", attempt, self.max_attempts, last_exc)

        raise IdentityError(f"metadata lookup for {path} failed after {self.max_attempts} attempts: {last_exc}") from last_exc

    def _fetch_token(self, deadline: Deadline) -> str:
        try:
            return self._request(
                "PUT",
                TOKEN_PATH,
                {"X-aws-ec2-metadata-token-ttl-seconds": str(TOKEN_TTL_SECONDS)},
                deadline,
            )
        except urllib.error.HTTPError as exc:
            if exc.code in _TOKEN_FALLBACK_CODES:
                logger.debug("IMDSv2 token unavailable (HTTP %d); using IMDSv1", exc.code)
                return ""
            raise

    def _request(self, method: str, path: str, headers: dict, deadline: Deadline) -> str:
        deadline.check(f"metadata request {method} {path}")
        req = urllib.request.Request(f"{self.endpoint}{path}", headers=headers, method=method)
        with urllib.request.urlopen(req, timeout=deadline.timeout(self.request_timeout)) as resp:
            return resp.read().decode("utf-8")
