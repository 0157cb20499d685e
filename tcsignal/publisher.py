"""tcsignal.publisher - Deliver the readiness signal to SQS.

All signal semantics travel in message attributes; the body is a fixed
placeholder. A publish (the first attempt plus every SDK retry) must finish
within ``publish_timeout``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from tcsignal.aws_clients import _get_sqs
from tcsignal.deadline import Deadline
from tcsignal.errors import DeadlineExceeded, PublishError

logger = logging.getLogger(__name__)

MESSAGE_BODY = "tcsignal message"
PUBLISH_THREAD_NAME = "tcsignal-publish"
SEND_MESSAGE_EVENT = "before-send.sqs.SendMessage"


@dataclass(frozen=True)
class PublishInput:
    queue_url: str
    signal_id: str
    instance_id: str
    status: str
    region: str = ""
    publish_timeout: float = 10.0
    retries: int = 3


class Publisher(Protocol):
    def publish(self, deadline: Deadline, signal: PublishInput) -> None:
        ...


def _string_attr(value: str) -> Dict[str, str]:
    return {"DataType": "String", "StringValue": value}


def build_message_attributes(signal: PublishInput) -> Dict[str, Dict[str, str]]:
    return {
        "signal_id": _string_attr(signal.signal_id),
        "instance_id": _string_attr(signal.instance_id),
        "status": _string_attr(signal.status),
    }


def _call_within(deadline: Deadline, call: Callable[[], Any]) -> Any:
    """Run ``call`` on a worker thread and wait at most until ``deadline``.

    botocore has no overall operation timeout: connect/read timeouts apply
    per attempt and retry backoff sleeps are unbounded by them. The worker is
    a daemon so a call still stuck in the SDK does not hold up process exit.
    """
    outcome: Dict[str, Any] = {}

    def _worker() -> None:
        try:
            outcome["result"] = call()
        except BaseException as exc:  # re-raised on the calling thread
            outcome["error"] = exc

    worker = threading.Thread(target=_worker, name=PUBLISH_THREAD_NAME, daemon=True)
    worker.start()
    worker.join(deadline.timeout())
    if worker.is_alive():
        raise DeadlineExceeded("SQS SendMessage did not complete before the publish deadline")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("result")


class SQSPublisher:
    def __init__(self, client_factory: Callable[..., Any] = _get_sqs):
        self._client_factory = client_factory

    def publish(self, deadline: Deadline, signal: PublishInput) -> None:
        """Send one SendMessage call; raise ``PublishError`` on any failure."""
        publish_deadline = deadline.child(signal.publish_timeout)

        try:
            client = self._client_factory(
                signal.region,
                retries=signal.retries,
                timeout=publish_deadline.timeout(),
            )
        except BotoCoreError as exc:
            raise PublishError(f"could not configure SQS client: {exc}") from exc

        def _enforce_budget(**_kwargs: Any) -> None:
            # Runs before every HTTP attempt, retries included.
            publish_deadline.check("SQS SendMessage attempt")

        client.meta.events.register(SEND_MESSAGE_EVENT, _enforce_budget)

        try:
            publish_deadline.check("SQS SendMessage")
            response = _call_within(
                publish_deadline,
                lambda: client.send_message(
                    QueueUrl=signal.queue_url,
                    MessageBody=MESSAGE_BODY,
                    MessageAttributes=build_message_attributes(signal),
                ),
            )
        except (DeadlineExceeded, ConnectTimeoutError, ReadTimeoutError) as exc:
            raise PublishError(
                f"publish timed out after {signal.publish_timeout:g}s (retries={signal.retries}): {exc}"
            ) from exc
        except (ClientError, BotoCoreError) as exc:
            logger.debug("SendMessage failed after up to %d retries: %s", signal.retries, exc)
            raise PublishError(f"SendMessage failed: {exc}") from exc

        message_id: Optional[str] = response.get("MessageId") if isinstance(response, dict) else None
        logger.info(
            "SQS message sent",
            extra={"message_id": message_id or "", "signal_id": signal.signal_id},
        )
