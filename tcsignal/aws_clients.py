"""tcsignal.aws_clients - boto3 client construction.

The retry budget and timeouts vary per invocation, so clients are built on
demand rather than cached as module-level singletons.
"""

from __future__ import annotations

from typing import Any, Optional

import boto3
from botocore.config import Config

RETRY_MODE = "standard"


def _sqs_config(retries: int, timeout: Optional[float]) -> Config:
    kwargs = {
        # botocore counts attempts, not retries: the first send is not a retry.
        "retries": {"total_max_attempts": retries + 1, "mode": RETRY_MODE},
    }
    if timeout is not None:
        kwargs["connect_timeout"] = timeout
        kwargs["read_timeout"] = timeout
    return Config(**kwargs)


def _get_sqs(region: Optional[str] = None, *, retries: int = 3, timeout: Optional[float] = None) -> Any:
    """Create an SQS client.

    An empty region falls through to the ambient boto3 configuration
    (AWS_REGION, AWS_DEFAULT_REGION, shared config). Endpoint overrides such
    as AWS_ENDPOINT_URL_SQS are honoured by boto3 itself.
    """
    return boto3.client(
        "sqs",
        region_name=region or None,
        config=_sqs_config(retries, timeout),
    )
