# memeflow/workflows/activities/admission.py
# 准入控制 Activity
#
# 同一个提交人同时只允许一个工作流运行，其余排队。
# 队列本身放在 Redis（见 memeflow/core/admission.py），
# Workflow 只通过这三个 Activity 操作队列：
#
# 1. enqueue_submission - 入队，返回是否已位于队首
# 2. check_admission    - 排队中定期检查；队首的运行已经结束时把它移出队列
# 3. release_submission - 运行结束后出队，并通知新的队首（admit 信号）

from typing import Optional

from temporalio import activity
from temporalio.client import WorkflowExecutionStatus
from temporalio.service import RPCError, RPCStatusCode

from memeflow.core.admission import AdmissionGate
from memeflow.core.logging import get_logger
from memeflow.workflows.client import get_workflow_handle, signal_workflow
from memeflow.workflows.types import AdmissionTicket

logger = get_logger(__name__)

# 通知新队首时使用的信号名（MemeGeneratorWorkflow.admit）
ADMIT_SIGNAL = "admit"


async def _is_running(workflow_id: str) -> bool:
    """队列里的工作流是否仍在运行"""
    handle = await get_workflow_handle(workflow_id)
    try:
        description = await handle.describe()
    except RPCError as e:
        if e.status == RPCStatusCode.NOT_FOUND:
            return False
        raise
    return description.status == WorkflowExecutionStatus.RUNNING


async def _admit(workflow_id: str) -> None:
    """通知新的队首开始运行"""
    try:
        await signal_workflow(workflow_id, ADMIT_SIGNAL)
    except RPCError as e:
        # 对方已经结束，下一个排队者的定期检查会把它移出队列
        logger.warning(f"通知准入失败: {workflow_id}, error={e}")


@activity.defn(name="enqueue_submission")
async def enqueue_submission(ticket: AdmissionTicket) -> bool:
    """
    加入准入队列

    Returns:
        bool: True 表示可以立即运行
    """
    logger.info(f"[Activity] 申请准入: key={ticket.submitter_key}, workflow={ticket.workflow_id}")
    admitted = await AdmissionGate().enqueue(ticket.submitter_key, ticket.workflow_id)
    if not admitted:
        logger.info(f"  需要排队: {ticket.workflow_id}")
    return admitted


@activity.defn(name="check_admission")
async def check_admission(ticket: AdmissionTicket) -> bool:
    """
    检查是否轮到自己

    队首的工作流已经结束（被终止、崩溃未出队）时，把它移出队列并通知下一个。

    Returns:
        bool: True 表示可以运行
    """
    gate = AdmissionGate()
    key, me = ticket.submitter_key, ticket.workflow_id

    head = await gate.head(key)
    if head == me:
        return True

    # 自己不在队列里（队列过期被清理），重新入队
    if head is None or await gate.position(key, me) is None:
        logger.warning(f"准入队列中找不到自己，重新入队: key={key}, workflow={me}")
        return await gate.enqueue(key, me)

    if await _is_running(head):
        return False

    logger.warning(f"准入队首已结束但未出队，移除: key={key}, workflow={head}")
    next_head = await gate.release(key, head)
    if next_head and next_head != me:
        await _admit(next_head)
    return next_head == me


@activity.defn(name="release_submission")
async def release_submission(ticket: AdmissionTicket) -> Optional[str]:
    """
    离开准入队列并通知下一个

    Returns:
        Optional[str]: 被通知的下一个 workflow_id
    """
    logger.info(f"[Activity] 释放准入: key={ticket.submitter_key}, workflow={ticket.workflow_id}")
    next_head = await AdmissionGate().release(ticket.submitter_key, ticket.workflow_id)
    if next_head:
        logger.info(f"  通知下一个: {next_head}")
        await _admit(next_head)
    return next_head
