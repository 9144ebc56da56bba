"""Pytest configuration and fixtures for all tests."""

from typing import Any, AsyncIterator, Iterable, List, Optional

import pytest

from taskfork.core.config import ForkSettings
from taskfork.core.permissions import ApprovalRequest
from taskfork.core.task import Task
from taskfork.tools.fork_conversation_tool import ForkConversationTool


class FakeProvider:
    """Host runtime double that records fork requests."""

    def __init__(self, cwd: str = "/work/project", result: Any = None) -> None:
        self.cwd = cwd
        self.result = result if result is not None else {"taskId": "T2"}
        self.error: Optional[BaseException] = None
        self.calls: List[Any] = []

    async def fork_conversation(self, descriptor: Any) -> Any:
        self.calls.append(descriptor)
        if self.error is not None:
            raise self.error
        return self.result


class RecordingChannel:
    """Approval channel that answers every complete request the same way."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.requests: List[ApprovalRequest] = []

    async def __call__(self, request: ApprovalRequest) -> bool:
        self.requests.append(request)
        return self.answer

    @property
    def final_requests(self) -> List[ApprovalRequest]:
        return [request for request in self.requests if not request.partial]

    @property
    def partial_requests(self) -> List[ApprovalRequest]:
        return [request for request in self.requests if request.partial]


class CheckpointRecorder:
    def __init__(self) -> None:
        self.calls: List[bool] = []

    def __call__(self, is_pre_action: bool) -> None:
        self.calls.append(is_pre_action)


def seed_messages(task: Task, count: int) -> None:
    for idx in range(count):
        role = "user" if idx % 2 == 0 else "assistant"
        task.add_message(
            {"ts": 1000 + idx, "type": "say", "text": f"message {idx}"},
            {"role": role, "content": [{"type": "text", "text": f"message {idx}"}]},
        )


async def collect(agen: Any) -> List[Any]:
    return [item async for item in agen]


async def stream_chunks(chunks: Iterable[str]) -> AsyncIterator[str]:
    for chunk in chunks:
        yield chunk


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def checkpoints() -> CheckpointRecorder:
    return CheckpointRecorder()


@pytest.fixture
def task(provider: FakeProvider, channel: RecordingChannel, checkpoints: CheckpointRecorder) -> Task:
    forked = Task(provider, task_id="T1", approval_channel=channel, checkpoint=checkpoints)
    seed_messages(forked, 5)
    return forked


@pytest.fixture
def fork_tool() -> ForkConversationTool:
    return ForkConversationTool(settings=ForkSettings())


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep config lookups away from the real home directory."""
    from taskfork.core import config as config_module

    monkeypatch.setenv("TASKFORK_CONFIG_DIR", str(tmp_path / "global"))
    monkeypatch.setattr(config_module, "config_manager", config_module.ConfigManager())
    yield
