# tests/test_run_status.py
# 运行状态查询测试（Temporal Client 替换为 mock）

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from temporalio.client import WorkflowExecutionStatus, WorkflowFailureError
from temporalio.exceptions import ApplicationError, TerminatedError
from temporalio.service import RPCError, RPCStatusCode

from memeflow.core.exceptions import RunNotFound
from memeflow.services import run_status
from memeflow.services.run_status import RunStatusService
from memeflow.workflows.types import RunState, WorkflowResult


RUN_ID = "meme-1234"


def make_handle(status=None, result=None, error=None, query=None, describe_error=None):
    handle = MagicMock()
    handle.id = RUN_ID
    handle.describe = AsyncMock(
        return_value=MagicMock(status=status),
        side_effect=describe_error,
    )
    handle.result = AsyncMock(return_value=result, side_effect=error)
    handle.query = AsyncMock(return_value=query)
    return handle


@pytest.fixture
def service(fake_redis):
    from memeflow.core.redis import redis_client
    return RunStatusService(redis=redis_client, cache_ttl=60)


def patch_client(handle):
    client = MagicMock()
    client.get_workflow_handle_for = MagicMock(return_value=handle)
    return patch.object(run_status, "get_temporal_client", new=AsyncMock(return_value=client))


class TestRunStatusService:

    @pytest.mark.asyncio
    async def test_running_is_pending(self, service, fake_redis):
        handle = make_handle(
            status=WorkflowExecutionStatus.RUNNING,
            query={"phase": "awaiting_approval"},
        )

        with patch_client(handle):
            status = await service.get_status(RUN_ID)

        assert status.state == RunState.PENDING
        assert status.phase == "awaiting_approval"
        handle.result.assert_not_awaited()
        # 运行中的状态不缓存
        assert fake_redis.values == {}

    @pytest.mark.asyncio
    async def test_query_failure_still_pending(self, service):
        handle = make_handle(status=WorkflowExecutionStatus.RUNNING)
        handle.query = AsyncMock(side_effect=RuntimeError("no worker"))

        with patch_client(handle):
            status = await service.get_status(RUN_ID)

        assert status.state == RunState.PENDING
        assert status.phase is None

    @pytest.mark.asyncio
    async def test_completed(self, service, fake_redis):
        result = WorkflowResult("https://a/1.png", "https://a/2.png", 2)
        handle = make_handle(status=WorkflowExecutionStatus.COMPLETED, result=result)

        with patch_client(handle):
            status = await service.get_status(RUN_ID)

        assert status.state == RunState.COMPLETE
        assert status.result == result
        cached = json.loads(fake_redis.values[f"meme:run:{RUN_ID}"])
        assert cached["selectedVariant"] == 2
        assert fake_redis.ttls[f"meme:run:{RUN_ID}"] == 60

    @pytest.mark.asyncio
    async def test_failed_with_application_error(self, service):
        error = WorkflowFailureError(
            cause=ApplicationError("Approval not received within 600 seconds", type="ApprovalTimeout")
        )
        handle = make_handle(status=WorkflowExecutionStatus.FAILED, error=error)

        with patch_client(handle):
            status = await service.get_status(RUN_ID)

        assert status.state == RunState.ERROR
        assert status.error == "Approval not received within 600 seconds"
        assert status.error_type == "ApprovalTimeout"
        assert status.result is None

    @pytest.mark.asyncio
    async def test_terminated(self, service):
        error = WorkflowFailureError(cause=TerminatedError("terminated by operator", ()))
        handle = make_handle(status=WorkflowExecutionStatus.TERMINATED, error=error)

        with patch_client(handle):
            status = await service.get_status(RUN_ID)

        assert status.state == RunState.ERROR
        assert status.error_type == "TerminatedError"

    @pytest.mark.asyncio
    async def test_unknown_run(self, service):
        handle = make_handle(
            describe_error=RPCError("workflow not found", RPCStatusCode.NOT_FOUND, b""),
        )

        with patch_client(handle):
            with pytest.raises(RunNotFound):
                await service.get_status(RUN_ID)

    @pytest.mark.asyncio
    async def test_cached_status_skips_temporal(self, service, fake_redis):
        fake_redis.values[f"meme:run:{RUN_ID}"] = json.dumps({
            "status": "error",
            "error": "Invalid meme variant: 3",
            "errorType": "ApprovalRejected",
        })

        with patch.object(run_status, "get_temporal_client", new=AsyncMock()) as get_client:
            status = await service.get_status(RUN_ID)

        get_client.assert_not_awaited()
        assert status.state == RunState.ERROR
        assert status.error_type == "ApprovalRejected"
