"""tcsignal.config - Invocation configuration.

Builds an immutable ``SignalConfig`` from an explicit argument list. Flag
defaults may come from the environment:

    TCSIGNAL_QUEUE_URL        default for --queue-url
    TCSIGNAL_RETRIES          default: 3
    TCSIGNAL_PUBLISH_TIMEOUT  default: 10s
    TCSIGNAL_TIMEOUT          default: 30s
    TCSIGNAL_LOG_FORMAT       default: console
    TCSIGNAL_LOG_LEVEL        default: info
"""

from __future__ import annotations

import argparse
import math
import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from tcsignal import VALID_STATUSES, __version__
from tcsignal.errors import ConfigError

PROG = "tcsignal-aws"

DEFAULT_RETRIES = 3
DEFAULT_PUBLISH_TIMEOUT = "10s"
DEFAULT_TIMEOUT = "30s"
DEFAULT_LOG_FORMAT = "console"
DEFAULT_LOG_LEVEL = "info"

VALID_LOG_FORMATS = ("console", "json")
VALID_LOG_LEVELS = ("debug", "info", "warn", "error")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # micro sign
    "μs": 1e-6,  # greek mu
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|μs|ms|s|m|h)")


@dataclass(frozen=True)
class SignalConfig:
    queue_url: str
    signal_id: str
    exec_command: str = ""
    status: str = ""
    instance_id: str = ""
    region: str = ""
    retries: int = DEFAULT_RETRIES
    publish_timeout: float = 10.0
    timeout: float = 30.0
    log_format: str = DEFAULT_LOG_FORMAT
    log_level: str = DEFAULT_LOG_LEVEL


def parse_duration(value: str) -> float:
    """Parse ``250us``, ``500ms``, ``10s``, ``1m30s``, ``1h`` or a bare number of seconds."""
    text = str(value).strip()
    if not text:
        raise ConfigError("duration must not be empty")
    try:
        seconds = float(text)
    except ValueError:
        pos = 0
        seconds = 0.0
        for match in _DURATION_PART_RE.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(text):
            raise ConfigError(f"invalid duration: {value!r}")
    if not math.isfinite(seconds) or seconds <= 0:
        raise ConfigError(f"duration must be positive: {value!r}")
    return seconds


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting on usage errors."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ConfigError(message)


def build_parser(environ: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    env = os.environ if environ is None else environ
    parser = _ArgumentParser(
        prog=PROG,
        description=(
            "Run a readiness command (or take an explicit status) and publish a "
            "SUCCESS/FAILURE signal for this instance to an SQS queue."
        ),
    )
    parser.add_argument("-u", "--queue-url", default=env.get("TCSIGNAL_QUEUE_URL", ""), help="(required) SQS queue URL")
    parser.add_argument("-i", "--id", dest="signal_id", default="", help="(required) unique signal ID for the deployment")
    parser.add_argument("-e", "--exec", dest="exec_command", default="", help="run this command and signal based on its exit code")
    parser.add_argument("-s", "--status", default="", help='shortcut: send "SUCCESS" or "FAILURE" without exec')
    parser.add_argument("-n", "--instance-id", default="", help="override instance ID (default: fetch from IMDS)")
    parser.add_argument("-r", "--region", default="", help="override region (default: fetch from IMDS)")
    parser.add_argument("--retries", default=env.get("TCSIGNAL_RETRIES", str(DEFAULT_RETRIES)), help="transient-error retries (default 3)")
    parser.add_argument(
        "--publish-timeout",
        default=env.get("TCSIGNAL_PUBLISH_TIMEOUT", DEFAULT_PUBLISH_TIMEOUT),
        help="timeout per SendMessage, retries included (default 10s)",
    )
    parser.add_argument("--timeout", default=env.get("TCSIGNAL_TIMEOUT", DEFAULT_TIMEOUT), help="total operation timeout (default 30s)")
    parser.add_argument("--log-format", default=env.get("TCSIGNAL_LOG_FORMAT", DEFAULT_LOG_FORMAT), help="log format: json or console")
    parser.add_argument("--log-level", default=env.get("TCSIGNAL_LOG_LEVEL", DEFAULT_LOG_LEVEL), help="log level: debug, info, warn, or error")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _parse_retries(raw: str) -> int:
    try:
        retries = int(str(raw).strip())
    except ValueError:
        raise ConfigError(f"--retries must be an integer, got {raw!r}") from None
    if retries < 0:
        raise ConfigError("--retries must not be negative")
    return retries


def parse_config(argv: Sequence[str], environ: Optional[Mapping[str, str]] = None) -> SignalConfig:
    """Build and validate a ``SignalConfig`` from ``argv`` (without the program name)."""
    args = build_parser(environ).parse_args(list(argv))

    queue_url = args.queue_url.strip()
    signal_id = args.signal_id.strip()
    status = args.status.strip()

    if not queue_url:
        raise ConfigError("--queue-url is required")
    if not signal_id:
        raise ConfigError("--id is required")
    if not args.exec_command and not status:
        raise ConfigError("either --exec or --status must be provided")
    if status and status not in VALID_STATUSES:
        raise ConfigError("--status must be either SUCCESS or FAILURE")
    if args.log_format not in VALID_LOG_FORMATS:
        raise ConfigError("--log-format must be either json or console")
    if args.log_level not in VALID_LOG_LEVELS:
        raise ConfigError("--log-level must be one of: debug, info, warn, error")

    retries = _parse_retries(args.retries)
    publish_timeout = parse_duration(args.publish_timeout)
    timeout = parse_duration(args.timeout)
    if publish_timeout > timeout:
        raise ConfigError(
            f"--publish-timeout ({args.publish_timeout}) must not exceed --timeout ({args.timeout})"
        )

    return SignalConfig(
        queue_url=queue_url,
        signal_id=signal_id,
        exec_command=args.exec_command,
        status=status,
        instance_id=args.instance_id.strip(),
        region=args.region.strip(),
        retries=retries,
        publish_timeout=publish_timeout,
        timeout=timeout,
        log_format=args.log_format,
        log_level=args.log_level,
    )
