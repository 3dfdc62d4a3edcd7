# memeflow/workflows/client.py
# Temporal Client 模块
#
# 功能说明：
# 1. 提供 Temporal Client 连接管理
# 2. 封装常用的 Workflow 操作（启动、获取句柄、发送信号）
# 3. 梗图工作流的启动和审批回调
#
# 使用方法：
#   from memeflow.workflows.client import start_meme_workflow, resolve_approval_token
#
#   run_id = await start_meme_workflow("cat wearing sunglasses", submitter_key="alice")
#   ack = await resolve_approval_token(ApprovalDecision(token_id=token_id, chosen_variant=1))

from datetime import timedelta
from typing import Any, Optional
import uuid

from temporalio.client import Client, WorkflowHandle, WorkflowUpdateFailedError
from temporalio.service import RPCError

from memeflow.core.config import settings
from memeflow.core.exceptions import TokenResolutionError
from memeflow.core.logging import get_logger
from memeflow.workflows.types import (
    ApprovalAck,
    ApprovalDecision,
    MemeRequest,
    workflow_id_from_token,
)

# 获取 logger
logger = get_logger(__name__)

# 全局 Client 实例
# 使用单例模式避免创建多个连接
_client: Optional[Client] = None

# 运行 ID 前缀
RUN_ID_PREFIX = "meme-"


async def get_temporal_client() -> Client:
    """
    获取 Temporal Client 实例（单例模式）

    首次调用时会创建连接，后续调用返回已有连接。

    Returns:
        Client: Temporal Client 实例

    Raises:
        Exception: 连接 Temporal Server 失败时抛出
    """
    global _client

    if _client is None:
        logger.info(f"连接 Temporal Server: {settings.TEMPORAL_HOST}")
        _client = await Client.connect(
            settings.TEMPORAL_HOST,
            namespace=settings.TEMPORAL_NAMESPACE,
        )
        logger.info("Temporal Client 连接成功")

    return _client


async def close_temporal_client():
    """
    关闭 Temporal Client 连接

    在应用关闭时调用，释放连接资源。
    """
    global _client

    if _client is not None:
        # Temporal Python SDK 的 Client 没有显式的 close 方法
        # 将引用置空让 GC 处理
        _client = None
        logger.info("Temporal Client 已关闭")


async def start_workflow(
    workflow: Any,
    args: tuple = (),
    id: Optional[str] = None,
    task_queue: Optional[str] = None,
    execution_timeout: Optional[timedelta] = None,
) -> WorkflowHandle:
    """
    启动一个新的 Workflow 执行

    Args:
        workflow: Workflow 的 run 方法（如 MemeGeneratorWorkflow.run）
        args: 传递给 Workflow 的参数元组
        id: Workflow ID（可选，默认生成 UUID）
        task_queue: 任务队列名称（可选，默认使用配置）
        execution_timeout: 整个 Workflow 执行的超时时间

    Returns:
        WorkflowHandle: Workflow 句柄，可用于查询状态、发送信号等
    """
    client = await get_temporal_client()

    # 生成 Workflow ID（如果未提供）
    workflow_id = id or f"wf-{uuid.uuid4()}"

    # 使用默认任务队列（如果未提供）
    queue = task_queue or settings.TEMPORAL_TASK_QUEUE

    logger.info(f"启动 Workflow: {workflow.__qualname__}")
    logger.info(f"  Workflow ID: {workflow_id}")
    logger.info(f"  Task Queue: {queue}")

    handle = await client.start_workflow(
        workflow,
        args=args,
        id=workflow_id,
        task_queue=queue,
        execution_timeout=execution_timeout,
    )

    logger.info(f"Workflow 已启动: {workflow_id}")
    return handle


async def get_workflow_handle(workflow_id: str) -> WorkflowHandle:
    """
    获取已存在的 Workflow 句柄

    Args:
        workflow_id: Workflow 的唯一标识符

    Returns:
        WorkflowHandle: Workflow 句柄
    """
    client = await get_temporal_client()
    return client.get_workflow_handle(workflow_id)


async def signal_workflow(
    workflow_id: str,
    signal_name: str,
    args: tuple = (),
) -> None:
    """
    向运行中的 Workflow 发送信号

    Args:
        workflow_id: Workflow 的唯一标识符
        signal_name: 信号名称（对应 Workflow 中的 @workflow.signal 方法）
        args: 传递给信号处理方法的参数

    Example:
        await signal_workflow("meme-12345", "admit")
    """
    client = await get_temporal_client()
    handle = client.get_workflow_handle(workflow_id)

    logger.info(f"发送信号到 Workflow: {workflow_id}")
    logger.info(f"  信号名称: {signal_name}")

    await handle.signal(signal_name, args=args)
    logger.info("信号发送成功")


# ==================== 梗图工作流 ====================

def build_meme_request(prompt: str, submitter_key: Optional[str] = None) -> MemeRequest:
    """根据配置组装工作流输入"""
    return MemeRequest(
        prompt=prompt,
        submitter_key=submitter_key or settings.DEFAULT_SUBMITTER_KEY,
        approval_timeout_seconds=settings.APPROVAL_TIMEOUT_MINUTES * 60,
        generation_max_attempts=settings.GENERATION_MAX_ATTEMPTS,
        dispatch_max_attempts=settings.DISPATCH_MAX_ATTEMPTS,
        admission_recheck_seconds=settings.ADMISSION_RECHECK_SECONDS,
    )


async def start_meme_workflow(prompt: str, submitter_key: Optional[str] = None) -> str:
    """
    启动梗图工作流

    同一个提交人的多次调用都会立即返回各自的 run_id，
    是否排队由工作流内部的准入控制决定。

    Args:
        prompt: 提示词（调用方已校验非空）
        submitter_key: 提交人标识，为空时使用 DEFAULT_SUBMITTER_KEY

    Returns:
        str: 运行 ID（即 Temporal workflow_id）
    """
    # 延迟导入，避免 API 进程加载时就导入 Workflow 定义
    from memeflow.workflows.definitions.meme_generator import MemeGeneratorWorkflow

    request = build_meme_request(prompt, submitter_key)
    run_id = f"{RUN_ID_PREFIX}{uuid.uuid4()}"

    await start_workflow(
        MemeGeneratorWorkflow.run,
        args=(request,),
        id=run_id,
    )
    return run_id


async def resolve_approval_token(decision: ApprovalDecision) -> ApprovalAck:
    """
    提交审批结果

    Args:
        decision: token 和审批人的选择

    Returns:
        ApprovalAck: accepted=True 表示审批生效

    Raises:
        TokenResolutionError:
            404 - token 格式错误
            409 - token 已处理或已过期
            410 - 运行已结束或不存在
    """
    from memeflow.workflows.definitions.meme_generator import MemeGeneratorWorkflow

    try:
        workflow_id = workflow_id_from_token(decision.token_id)
    except ValueError as e:
        raise TokenResolutionError(404, str(e))

    logger.info(f"提交审批结果: token={decision.token_id}, variant={decision.chosen_variant}")
    handle = await get_workflow_handle(workflow_id)

    try:
        ack = await handle.execute_update(MemeGeneratorWorkflow.resolve_token, decision)
    except WorkflowUpdateFailedError as e:
        reason = e.cause.message if getattr(e.cause, "message", None) else str(e)
        logger.warning(f"审批结果被拒绝: token={decision.token_id}, reason={reason}")
        raise TokenResolutionError(409, reason)
    except RPCError as e:
        logger.warning(f"审批回调找不到运行中的工作流: {workflow_id}, error={e}")
        raise TokenResolutionError(410, "Approval is no longer pending")

    logger.info(f"审批结果已提交: token={ack.token_id}, accepted={ack.accepted}")
    return ack
