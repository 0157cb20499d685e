"""tcsignal.cli - Process entry point for ``tcsignal-aws``.

Typical cloud-init usage:

    tcsignal-aws --queue-url "$QUEUE_URL" --id "$DEPLOY_ID" --exec "/opt/app/healthcheck.sh"
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence

from tcsignal import EXIT_INFRA_FAILURE, EXIT_OK
from tcsignal.config import parse_config
from tcsignal.deadline import Deadline
from tcsignal.errors import ConfigError, SignalError
from tcsignal.executor import ShellExecutor
from tcsignal.imds import InstanceMetadataResolver
from tcsignal.logging_config import configure_logging
from tcsignal.publisher import SQSPublisher
from tcsignal.runner import run

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        cfg = parse_config(sys.argv[1:] if argv is None else argv)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INFRA_FAILURE

    configure_logging(cfg.log_format, cfg.log_level)
    deadline = Deadline.after(cfg.timeout)

    try:
        result = run(deadline, cfg, ShellExecutor(), SQSPublisher(), InstanceMetadataResolver())
    except SignalError as exc:
        logger.error("Error: %s", exc)
        return EXIT_INFRA_FAILURE
    except Exception as exc:
        logger.error("Unexpected error: %s", exc, exc_info=True)
        return EXIT_INFRA_FAILURE

    if result.should_exit_early:
        return result.exit_code
    return EXIT_OK
