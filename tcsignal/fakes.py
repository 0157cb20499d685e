"""tcsignal.fakes - Deterministic collaborators that record their calls.

Used by the test suite and by anyone embedding ``tcsignal.runner.run``
without real AWS services.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from tcsignal.deadline import Deadline
from tcsignal.errors import PublishError
from tcsignal.publisher import PublishInput


class FakeExecutor:
    def __init__(self, exit_code: int = 0, error: Optional[Exception] = None):
        self.exit_code = exit_code
        self.error = error
        self.calls: List[str] = []
        self._results: Dict[str, Tuple[int, Optional[Exception]]] = {}

    def set_result_for_command(self, command_line: str, exit_code: int, error: Optional[Exception] = None) -> None:
        self._results[command_line] = (exit_code, error)

    def run(self, command_line: str, deadline: Optional[Deadline] = None) -> Tuple[int, Optional[Exception]]:
        self.calls.append(command_line)
        if command_line in self._results:
            return self._results[command_line]
        if self.error is not None:
            return -1, self.error
        return self.exit_code, None

    @property
    def call_count(self) -> int:
        return len(self.calls)


class FakeResolver:
    def __init__(
        self,
        instance_id: str = "i-1234567890abcdef0",
        region: str = "us-east-1",
        instance_id_error: Optional[Exception] = None,
        region_error: Optional[Exception] = None,
    ):
        self.instance_id = instance_id
        self.region = region
        self.instance_id_error = instance_id_error
        self.region_error = region_error
        self.instance_id_calls = 0
        self.region_calls = 0

    def get_instance_id(self, deadline: Deadline) -> str:
        self.instance_id_calls += 1
        if self.instance_id_error is not None:
            raise self.instance_id_error
        return self.instance_id

    def get_region(self, deadline: Deadline) -> str:
        self.region_calls += 1
        if self.region_error is not None:
            raise self.region_error
        return self.region

    @property
    def call_count(self) -> int:
        return self.instance_id_calls + self.region_calls


class FakePublisher:
    def __init__(self, error: Optional[Exception] = None, fail_first: int = 0):
        self.error = error
        self.fail_first = fail_first
        self.calls: List[PublishInput] = []

    def publish(self, deadline: Deadline, signal: PublishInput) -> None:
        self.calls.append(signal)
        if len(self.calls) <= self.fail_first:
            raise PublishError("simulated transient error")
        if self.error is not None:
            raise self.error

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def last_call(self) -> Optional[PublishInput]:
        return self.calls[-1] if self.calls else None
