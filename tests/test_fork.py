"""Tests for fork point resolution, target directories and provider delegation."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from conftest import FakeProvider, seed_messages
from taskfork.core.fork import (
    ForkDescriptor,
    ForkResult,
    InvalidForkPoint,
    build_fork_descriptor,
    derive_target_directory,
    describe_fork_point,
    fork_timestamp,
    fork_via_provider,
    resolve_fork_index,
)
from taskfork.core.task import Task


@pytest.mark.parametrize("length", [0, 1, 5])
def test_missing_index_forks_from_current_point(length):
    assert resolve_fork_index(None, length) == length


@pytest.mark.parametrize("index", range(0, 6))
def test_index_within_bounds_is_kept(index):
    assert resolve_fork_index(index, 5) == index


@pytest.mark.parametrize("index", [-3, -1, 6, 100])
def test_index_out_of_bounds_raises(index):
    with pytest.raises(InvalidForkPoint) as excinfo:
        resolve_fork_index(index, 5)

    assert excinfo.value.index == index
    assert excinfo.value.length == 5
    assert str(excinfo.value) == f"Invalid message index: {index}. Must be between 0 and 5"


def test_describe_fork_point():
    assert describe_fork_point(5, 5) == "current"
    assert describe_fork_point(0, 5) == "message 0"
    assert describe_fork_point(0, 0) == "current"


def test_fork_timestamp_drops_colons_and_fractions():
    moment = datetime(2024, 3, 9, 14, 5, 7, 123456, tzinfo=timezone.utc)

    assert fork_timestamp(moment) == "2024-03-09T14-05-07"


def test_fork_timestamp_normalizes_to_utc():
    moment = datetime(2024, 3, 9, 16, 5, 7, tzinfo=timezone(timedelta(hours=2)))

    assert fork_timestamp(moment) == "2024-03-09T14-05-07"


def test_fork_timestamps_sort_chronologically():
    early = fork_timestamp(datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    late = fork_timestamp(datetime(2024, 1, 2, 3, 4, 6, tzinfo=timezone.utc))

    assert early < late


def test_requested_target_directory_is_used_verbatim():
    assert derive_target_directory("/work/project", "relative/dir") == "relative/dir"
    assert derive_target_directory("/work/project", "/abs/dir") == "/abs/dir"


def test_default_target_directory_is_sibling_of_workspace():
    moment = datetime(2024, 3, 9, 14, 5, 7, tzinfo=timezone.utc)

    target = derive_target_directory("/work/project", None, now=moment)

    assert Path(target) == Path("/work/project-fork-2024-03-09T14-05-07")


def test_empty_requested_directory_falls_back_to_default():
    target = derive_target_directory("/work/project", "")

    assert Path(target).parent == Path("/work")
    assert Path(target).name.startswith("project-fork-")


def test_default_target_directory_name_is_path_safe():
    target = Path(derive_target_directory("/work/project", suffix="my fork:1"))

    assert target.name.startswith("project-my-fork-1-")
    for char in ':*?"<>| ':
        assert char not in target.name


def test_descriptor_copies_log_prefixes():
    task = Task(task_id="parent")
    seed_messages(task, 4)

    descriptor = build_fork_descriptor(task, 2, "/tmp/fork")

    assert descriptor.parent_task_id == "parent"
    assert descriptor.messages == task.messages[:2]
    assert descriptor.api_messages == task.api_messages[:2]
    assert descriptor.messages[0] is not task.messages[0]
    assert descriptor.api_messages[1] is not task.api_messages[1]


def test_descriptor_is_frozen():
    descriptor = ForkDescriptor(parent_task_id="p", fork_index=0, target_directory="/t")

    with pytest.raises(ValidationError):
        descriptor.fork_index = 3


def test_descriptor_payload_uses_runtime_field_names():
    descriptor = ForkDescriptor(
        parent_task_id="p",
        fork_index=1,
        target_directory="/t",
        messages=[{"text": "hi"}],
        api_messages=[{"role": "user"}],
    )

    assert descriptor.to_payload() == {
        "parentTaskId": "p",
        "forkIndex": 1,
        "targetDirectory": "/t",
        "messages": [{"text": "hi"}],
        "apiMessages": [{"role": "user"}],
    }


def test_fork_result_accepts_both_spellings():
    assert ForkResult.model_validate({"taskId": "a"}).task_id == "a"
    assert ForkResult.model_validate({"task_id": "b", "target_directory": "/t"}).target_directory == "/t"


def test_fork_result_stringifies_numeric_ids_and_paths():
    result = ForkResult.model_validate({"taskId": 42, "targetDirectory": Path("/x/y")})

    assert result.task_id == "42"
    assert result.target_directory == "/x/y"


@pytest.mark.asyncio
async def test_fork_via_async_provider_returning_mapping():
    provider = FakeProvider(result={"taskId": "T2", "targetDirectory": "/x/y"})
    descriptor = ForkDescriptor(parent_task_id="T1", fork_index=0, target_directory="/x/y")

    result = await fork_via_provider(provider, descriptor)

    assert result == ForkResult(task_id="T2", target_directory="/x/y")
    assert provider.calls == [descriptor]


@pytest.mark.asyncio
async def test_fork_via_sync_provider_returning_object():
    class SyncProvider:
        cwd = "/work"

        def fork_conversation(self, descriptor):
            return SimpleNamespace(task_id="T3", target_directory=descriptor.target_directory)

    descriptor = ForkDescriptor(parent_task_id="T1", fork_index=0, target_directory="/z")

    result = await fork_via_provider(SyncProvider(), descriptor)

    assert result.task_id == "T3"
    assert result.target_directory == "/z"


@pytest.mark.asyncio
async def test_fork_via_provider_propagates_failures():
    provider = FakeProvider()
    provider.error = OSError("no space left on device")
    descriptor = ForkDescriptor(parent_task_id="T1", fork_index=0, target_directory="/z")

    with pytest.raises(OSError):
        await fork_via_provider(provider, descriptor)
