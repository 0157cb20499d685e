"""tcsignal.runner - The signal-dispatch flow.

    DetermineStatus -> ResolveIdentity -> Publish -> Done

The signal is attempted even when the readiness command failed: an explicit
FAILURE lets the orchestrator fail fast, while silence looks like a slow
instance. Fatal errors (instance ID lookup, publish) propagate to the caller
as ``SignalError``. A failed region lookup of any kind is only a warning.

Exit-code contract:
    0  status SUCCESS (or any explicit --status) and the signal was published
    1  the command failed or could not launch, and FAILURE was published
    2  configuration, identity or publish failure (raised, mapped by the CLI)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from tcsignal import EXIT_COMMAND_FAILED, EXIT_OK, STATUS_FAILURE, STATUS_SUCCESS
from tcsignal.config import SignalConfig
from tcsignal.deadline import Deadline
from tcsignal.errors import IdentityError, PublishError, SignalError
from tcsignal.executor import Executor
from tcsignal.imds import IdentityResolver
from tcsignal.publisher import PublishInput, Publisher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    status: str
    should_exit_early: bool = False
    exit_code: int = EXIT_OK


def _determine_status(cfg: SignalConfig, executor: Executor, deadline: Deadline) -> RunResult:
    if cfg.status:
        logger.info("Using explicit status", extra={"status": cfg.status})
        return RunResult(status=cfg.status)

    exit_code, launch_error = executor.run(cfg.exec_command, deadline=deadline)
    if launch_error is not None:
        logger.error("Command could not be launched: %s", launch_error)
        return RunResult(status=STATUS_FAILURE, should_exit_early=True, exit_code=EXIT_COMMAND_FAILED)
    if exit_code != 0:
        logger.warning("Command exited non-zero", extra={"exit_code": exit_code})
        return RunResult(status=STATUS_FAILURE, should_exit_early=True, exit_code=EXIT_COMMAND_FAILED)

    logger.info("Command succeeded")
    return RunResult(status=STATUS_SUCCESS)


def _resolve_identity(cfg: SignalConfig, resolver: IdentityResolver, deadline: Deadline) -> Tuple[str, str]:
    if cfg.instance_id:
        instance_id = cfg.instance_id
    else:
        try:
            instance_id = resolver.get_instance_id(deadline)
        except Exception as exc:
            raise IdentityError(f"failed to get instance ID: {exc}") from exc

    region = cfg.region
    if not region:
        try:
            region = resolver.get_region(deadline)
        except Exception as exc:
            # Region is best effort; boto3 can still find one in its own config chain.
            logger.warning("Could not determine region from instance metadata; using SDK defaults: %s", exc)
            region = ""

    return instance_id, region


def run(
    deadline: Deadline,
    cfg: SignalConfig,
    executor: Executor,
    publisher: Publisher,
    resolver: IdentityResolver,
) -> RunResult:
    """Execute one signal run and return its outcome; fatal failures raise."""
    result = _determine_status(cfg, executor, deadline)

    instance_id, region = _resolve_identity(cfg, resolver, deadline)

    signal = PublishInput(
        queue_url=cfg.queue_url,
        signal_id=cfg.signal_id,
        instance_id=instance_id,
        status=result.status,
        region=region,
        publish_timeout=cfg.publish_timeout,
        retries=cfg.retries,
    )
    try:
        publisher.publish(deadline, signal)
    except SignalError as exc:
        raise PublishError(f"failed to publish signal: {exc}") from exc

    logger.info(
        "Successfully published signal",
        extra={
            "status": result.status,
            "signal_id": cfg.signal_id,
            "instance_id": instance_id,
            "region": region,
        },
    )
    return result
