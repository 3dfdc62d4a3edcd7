# memeflow/services/run_status.py
# 运行状态服务层
#
# 功能说明：
# 1. 根据 run_id 查询梗图工作流状态（pending / complete / error）
# 2. 运行中时通过 Query 读取当前阶段
# 3. 已结束的运行把结果缓存到 Redis，轮询时不再访问 Temporal
#
# 使用方法：
#   from memeflow.services.run_status import run_status_service
#
#   status = await run_status_service.get_status(run_id)
#   return status.to_response()

import json
from typing import Optional

from temporalio.client import WorkflowExecutionStatus, WorkflowFailureError, WorkflowHandle
from temporalio.exceptions import ApplicationError, FailureError
from temporalio.service import RPCError, RPCStatusCode

from memeflow.core.config import settings
from memeflow.core.exceptions import RunNotFound
from memeflow.core.logging import get_logger
from memeflow.core.redis import RedisClient, redis_client
from memeflow.workflows.client import get_temporal_client
from memeflow.workflows.types import RunState, RunStatus

logger = get_logger(__name__)

# Redis 缓存 key 前缀
RUN_STATUS_KEY_PREFIX = "meme:run:"


def describe_failure(error: WorkflowFailureError) -> tuple[str, str]:
    """
    从工作流失败中取出错误信息和类型

    Returns:
        (message, error_type)，例如 ("Approval not received ...", "ApprovalTimeout")
    """
    cause = error.cause or error
    if isinstance(cause, ApplicationError):
        return cause.message, cause.type or type(cause).__name__
    if isinstance(cause, FailureError):
        return cause.message, type(cause).__name__
    return str(cause), type(cause).__name__


class RunStatusService:
    """
    运行状态服务

    Temporal 是状态的唯一来源，Redis 只缓存已结束的运行。
    Redis 未连接时直接查询 Temporal。
    """

    def __init__(self, redis: Optional[RedisClient] = None, cache_ttl: Optional[int] = None):
        self.redis = redis or redis_client
        self.cache_ttl = cache_ttl or settings.RUN_STATUS_CACHE_TTL

    @staticmethod
    def cache_key(run_id: str) -> str:
        return f"{RUN_STATUS_KEY_PREFIX}{run_id}"

    async def get_status(self, run_id: str) -> RunStatus:
        """
        查询运行状态

        Raises:
            RunNotFound: 运行不存在
        """
        cached = await self._get_cached(run_id)
        if cached is not None:
            return cached

        status = await self._fetch(run_id)
        if status.is_terminal:
            await self._cache(run_id, status)
        return status

    # ==================== Temporal 查询 ====================

    async def _fetch(self, run_id: str) -> RunStatus:
        # 延迟导入，避免 API 进程加载时就导入 Workflow 定义
        from memeflow.workflows.definitions.meme_generator import MemeGeneratorWorkflow

        client = await get_temporal_client()
        handle = client.get_workflow_handle_for(MemeGeneratorWorkflow.run, run_id)

        try:
            description = await handle.describe()
        except RPCError as e:
            if e.status == RPCStatusCode.NOT_FOUND:
                raise RunNotFound(run_id)
            raise

        if description.status == WorkflowExecutionStatus.RUNNING:
            return RunStatus(state=RunState.PENDING, phase=await self._query_phase(handle))

        try:
            result = await handle.result(follow_runs=False)
        except WorkflowFailureError as e:
            message, error_type = describe_failure(e)
            logger.info(f"运行已失败: {run_id}, type={error_type}, error={message}")
            return RunStatus(state=RunState.ERROR, error=message, error_type=error_type)

        return RunStatus(state=RunState.COMPLETE, result=result)

    async def _query_phase(self, handle: WorkflowHandle) -> Optional[str]:
        """读取当前阶段，Worker 不可用时返回 None"""
        from memeflow.workflows.definitions.meme_generator import MemeGeneratorWorkflow

        try:
            status = await handle.query(MemeGeneratorWorkflow.get_status)
        except Exception as e:
            logger.warning(f"查询运行阶段失败: {handle.id}, error={e}")
            return None
        return status.get("phase")

    # ==================== Redis 缓存 ====================

    async def _get_cached(self, run_id: str) -> Optional[RunStatus]:
        if not self.redis.is_connected:
            return None
        raw = await self.redis.get(self.cache_key(run_id))
        if not raw:
            return None
        return RunStatus.from_response(json.loads(raw))

    async def _cache(self, run_id: str, status: RunStatus) -> None:
        if not self.redis.is_connected:
            return
        await self.redis.set(
            self.cache_key(run_id),
            json.dumps(status.to_response(), ensure_ascii=False),
            ex=self.cache_ttl,
        )


# 全局服务实例
run_status_service = RunStatusService()
