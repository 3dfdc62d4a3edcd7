# tests/test_admission.py
# 准入队列测试
#
# 同一提交人的运行依次执行，不同提交人互不影响。

import pytest
from unittest.mock import AsyncMock, patch

from memeflow.core.admission import AdmissionGate
from memeflow.workflows.activities import admission as admission_activities
from memeflow.workflows.types import AdmissionTicket


@pytest.fixture
def gate(fake_redis):
    from memeflow.core.redis import redis_client
    return AdmissionGate(redis=redis_client, queue_ttl=120)


class TestAdmissionGate:

    @pytest.mark.asyncio
    async def test_first_member_admitted(self, gate, fake_redis):
        assert await gate.enqueue("alice", "meme-1") is True
        assert fake_redis.lists["admission:alice"] == ["meme-1"]
        assert fake_redis.ttls["admission:alice"] == 120

    @pytest.mark.asyncio
    async def test_second_member_waits(self, gate):
        await gate.enqueue("alice", "meme-1")

        assert await gate.enqueue("alice", "meme-2") is False
        assert await gate.position("alice", "meme-2") == 1

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, gate):
        await gate.enqueue("alice", "meme-1")

        assert await gate.enqueue("bob", "meme-2") is True

    @pytest.mark.asyncio
    async def test_enqueue_is_idempotent(self, gate, fake_redis):
        await gate.enqueue("alice", "meme-1")
        await gate.enqueue("alice", "meme-2")

        assert await gate.enqueue("alice", "meme-2") is False
        assert fake_redis.lists["admission:alice"] == ["meme-1", "meme-2"]

    @pytest.mark.asyncio
    async def test_release_returns_next_head(self, gate):
        await gate.enqueue("alice", "meme-1")
        await gate.enqueue("alice", "meme-2")

        assert await gate.release("alice", "meme-1") == "meme-2"
        assert await gate.head("alice") == "meme-2"

    @pytest.mark.asyncio
    async def test_release_last_member(self, gate):
        await gate.enqueue("alice", "meme-1")

        assert await gate.release("alice", "meme-1") is None
        assert await gate.position("alice", "meme-1") is None


class TestAdmissionActivities:
    """准入 Activity（Temporal 调用替换为 mock）"""

    @pytest.mark.asyncio
    async def test_release_signals_next(self, fake_redis):
        await admission_activities.enqueue_submission(AdmissionTicket("alice", "meme-1"))
        await admission_activities.enqueue_submission(AdmissionTicket("alice", "meme-2"))

        with patch.object(admission_activities, "signal_workflow", new=AsyncMock()) as signal:
            next_head = await admission_activities.release_submission(
                AdmissionTicket("alice", "meme-1")
            )

        assert next_head == "meme-2"
        signal.assert_awaited_once_with("meme-2", "admit")

    @pytest.mark.asyncio
    async def test_release_without_waiters(self, fake_redis):
        await admission_activities.enqueue_submission(AdmissionTicket("alice", "meme-1"))

        with patch.object(admission_activities, "signal_workflow", new=AsyncMock()) as signal:
            next_head = await admission_activities.release_submission(
                AdmissionTicket("alice", "meme-1")
            )

        assert next_head is None
        signal.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_check_admission_waits_for_running_head(self, fake_redis):
        await admission_activities.enqueue_submission(AdmissionTicket("alice", "meme-1"))
        await admission_activities.enqueue_submission(AdmissionTicket("alice", "meme-2"))

        with patch.object(admission_activities, "_is_running", new=AsyncMock(return_value=True)):
            admitted = await admission_activities.check_admission(AdmissionTicket("alice", "meme-2"))

        assert admitted is False

    @pytest.mark.asyncio
    async def test_check_admission_removes_finished_head(self, fake_redis):
        await admission_activities.enqueue_submission(AdmissionTicket("alice", "meme-1"))
        await admission_activities.enqueue_submission(AdmissionTicket("alice", "meme-2"))

        with patch.object(admission_activities, "_is_running", new=AsyncMock(return_value=False)):
            admitted = await admission_activities.check_admission(AdmissionTicket("alice", "meme-2"))

        assert admitted is True
        assert fake_redis.lists["admission:alice"] == ["meme-2"]

    @pytest.mark.asyncio
    async def test_check_admission_requeues_missing_member(self, fake_redis):
        admitted = await admission_activities.check_admission(AdmissionTicket("alice", "meme-9"))

        assert admitted is True
        assert fake_redis.lists["admission:alice"] == ["meme-9"]
