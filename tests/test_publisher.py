"""SQS publisher: message shape, retry/timeout budget, error mapping."""

from __future__ import annotations

import threading
import time
import unittest
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock, patch

import boto3
from botocore.exceptions import ClientError, NoRegionError, ReadTimeoutError

from tcsignal import aws_clients
from tcsignal.deadline import Deadline
from tcsignal.errors import DeadlineExceeded, PublishError
from tcsignal.publisher import (
    MESSAGE_BODY,
    SEND_MESSAGE_EVENT,
    PublishInput,
    SQSPublisher,
    build_message_attributes,
)

QUEUE_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/test-queue"


def _signal(**overrides) -> PublishInput:
    values = dict(
        queue_url=QUEUE_URL,
        signal_id="deploy-42",
        instance_id="i-0123456789abcdef0",
        status="SUCCESS",
        region="us-east-1",
        publish_timeout=10.0,
        retries=3,
    )
    values.update(overrides)
    return PublishInput(**values)


class _Factory:
    def __init__(self, client):
        self.client = client
        self.calls = []

    def __call__(self, region, **kwargs):
        self.calls.append((region, kwargs))
        return self.client


class SQSPublisherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = MagicMock()
        self.client.send_message.return_value = {"MessageId": "msg-1"}
        self.factory = _Factory(self.client)
        self.publisher = SQSPublisher(client_factory=self.factory)

    def test_sends_attributes_and_fixed_body(self) -> None:
        self.publisher.publish(Deadline.after(30), _signal())

        self.client.send_message.assert_called_once_with(
            QueueUrl=QUEUE_URL,
            MessageBody=MESSAGE_BODY,
            MessageAttributes={
                "signal_id": {"DataType": "String", "StringValue": "deploy-42"},
                "instance_id": {"DataType": "String", "StringValue": "i-0123456789abcdef0"},
                "status": {"DataType": "String", "StringValue": "SUCCESS"},
            },
        )

    def test_passes_region_retries_and_timeout_to_client(self) -> None:
        self.publisher.publish(Deadline.after(30), _signal(region="eu-central-1", retries=7, publish_timeout=4.0))

        region, kwargs = self.factory.calls[0]
        self.assertEqual(region, "eu-central-1")
        self.assertEqual(kwargs["retries"], 7)
        self.assertLessEqual(kwargs["timeout"], 4.0)
        self.assertGreater(kwargs["timeout"], 0)

    def test_timeout_is_capped_by_overall_deadline(self) -> None:
        self.publisher.publish(Deadline.after(2), _signal(publish_timeout=10.0))

        _, kwargs = self.factory.calls[0]
        self.assertLessEqual(kwargs["timeout"], 2.0)

    def test_empty_region_is_passed_through(self) -> None:
        self.publisher.publish(Deadline.after(30), _signal(region=""))
        self.assertEqual(self.factory.calls[0][0], "")

    def test_registers_budget_hook_that_stops_new_attempts(self) -> None:
        self.publisher.publish(Deadline.after(30), _signal())

        event_name, hook = self.client.meta.events.register.call_args[0]
        self.assertEqual(event_name, SEND_MESSAGE_EVENT)
        hook(request=None)  # budget still available

        clock = [0.0]
        publisher = SQSPublisher(client_factory=self.factory)
        publisher.publish(Deadline.after(30, clock=lambda: clock[0]), _signal(publish_timeout=5.0))
        _, hook = self.client.meta.events.register.call_args[0]
        clock[0] = 6.0
        with self.assertRaises(DeadlineExceeded):
            hook(request=None)

    def test_client_error_becomes_publish_error(self) -> None:
        self.client.send_message.side_effect = ClientError(
            {"Error": {"Code": "AWS.SimpleQueueService.NonExistentQueue", "Message": "queue missing"}},
            "SendMessage",
        )

        with self.assertRaisesRegex(PublishError, "SendMessage failed") as ctx:
            self.publisher.publish(Deadline.after(30), _signal())
        self.assertIsInstance(ctx.exception.__cause__, ClientError)

    def test_read_timeout_reports_timeout(self) -> None:
        self.client.send_message.side_effect = ReadTimeoutError(endpoint_url=QUEUE_URL)

        with self.assertRaisesRegex(PublishError, "timed out"):
            self.publisher.publish(Deadline.after(30), _signal())

    def test_budget_exhausted_inside_sdk_reports_timeout(self) -> None:
        self.client.send_message.side_effect = DeadlineExceeded("deadline exceeded before SQS SendMessage attempt")

        with self.assertRaisesRegex(PublishError, "timed out after 10s"):
            self.publisher.publish(Deadline.after(30), _signal())

    def test_expired_deadline_never_sends(self) -> None:
        with self.assertRaisesRegex(PublishError, "timed out"):
            self.publisher.publish(Deadline(0.0), _signal())
        self.client.send_message.assert_not_called()

    def test_client_construction_failure(self) -> None:
        def _no_region(region, **kwargs):
            raise NoRegionError()

        publisher = SQSPublisher(client_factory=_no_region)
        with self.assertRaisesRegex(PublishError, "could not configure SQS client"):
            publisher.publish(Deadline.after(30), _signal(region=""))


class MessageAttributeTests(unittest.TestCase):
    def test_only_three_string_attributes(self) -> None:
        attrs = build_message_attributes(_signal(status="FAILURE"))
        self.assertEqual(set(attrs), {"signal_id", "instance_id", "status"})
        self.assertTrue(all(a["DataType"] == "String" for a in attrs.values()))
        self.assertEqual(attrs["status"]["StringValue"], "FAILURE")


class SqsClientFactoryTests(unittest.TestCase):
    @patch.object(aws_clients.boto3, "client")
    def test_retry_budget_counts_first_attempt(self, mock_client) -> None:
        aws_clients._get_sqs("us-west-2", retries=3, timeout=5.0)

        args, kwargs = mock_client.call_args
        self.assertEqual(args, ("sqs",))
        self.assertEqual(kwargs["region_name"], "us-west-2")
        config = kwargs["config"]
        self.assertEqual(config.retries, {"total_max_attempts": 4, "mode": "standard"})
        self.assertEqual(config.connect_timeout, 5.0)
        self.assertEqual(config.read_timeout, 5.0)

    @patch.object(aws_clients.boto3, "client")
    def test_empty_region_defers_to_ambient_config(self, mock_client) -> None:
        aws_clients._get_sqs("", retries=0)

        kwargs = mock_client.call_args[1]
        self.assertIsNone(kwargs["region_name"])
        self.assertEqual(kwargs["config"].retries["total_max_attempts"], 1)


class PublishDeadlineTests(unittest.TestCase):
    def test_hung_send_is_abandoned_at_publish_timeout(self) -> None:
        client = MagicMock()
        client.send_message.side_effect = lambda **kwargs: time.sleep(2.0)
        publisher = SQSPublisher(client_factory=_Factory(client))

        started = time.monotonic()
        with self.assertRaisesRegex(PublishError, "timed out after 0.3s"):
            publisher.publish(Deadline.after(30), _signal(publish_timeout=0.3))
        self.assertLess(time.monotonic() - started, 1.5)

    def test_worker_exception_is_reraised_on_caller(self) -> None:
        client = MagicMock()
        client.send_message.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "SendMessage"
        )
        publisher = SQSPublisher(client_factory=_Factory(client))

        with self.assertRaisesRegex(PublishError, "SendMessage failed"):
            publisher.publish(Deadline.after(30), _signal(publish_timeout=5.0))


class _SlowFailingSqs(BaseHTTPRequestHandler):
    delay = 1.2

    def do_POST(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        self.rfile.read(length)
        time.sleep(self.delay)
        body = b'{"__type":"InternalError","message":"try again"}'
        self.send_response(500)
        self.send_header("Content-Type", "application/x-amz-json-1.0")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args) -> None:
        pass


class RetriesAgainstSlowEndpointTests(unittest.TestCase):
    """Each attempt fits the per-attempt timeout; the retries together do not."""

    def setUp(self) -> None:
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _SlowFailingSqs)
        self.server.daemon_threads = True
        threading.Thread(target=self.server.serve_forever, daemon=True).start()
        self.endpoint = f"http://127.0.0.1:{self.server.server_address[1]}"

    def tearDown(self) -> None:
        self.server.shutdown()
        self.server.server_close()

    def _factory(self, region, *, retries, timeout):
        return boto3.client(
            "sqs",
            region_name="us-east-1",
            endpoint_url=self.endpoint,
            aws_access_key_id="test",
            aws_secret_access_key="test",
            config=aws_clients._sqs_config(retries, timeout),
        )

    def test_total_publish_time_is_bounded_across_retries(self) -> None:
        publisher = SQSPublisher(client_factory=self._factory)

        started = time.monotonic()
        with self.assertRaisesRegex(PublishError, "timed out after 2s"):
            publisher.publish(
                Deadline.after(30),
                _signal(queue_url=f"{self.endpoint}/123456789012/test-queue", publish_timeout=2.0, retries=5),
            )
        self.assertLess(time.monotonic() - started, 3.0)
