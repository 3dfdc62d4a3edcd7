# memeflow/workflows/worker.py
# Temporal Worker 模块
#
# 功能说明：
# 1. 创建和配置 Temporal Worker
# 2. 注册梗图工作流和所有 Activity
# 3. 管理 Worker 生命周期（Redis 连接、启动前配置检查）
#
# 运行方式：
#   python -m memeflow.workflows.worker
#
# 注意事项：
# - Worker 可以水平扩展，多个 Worker 可以监听同一个队列
# - 等待审批期间工作流不占用 Worker，Worker 重启后继续等待

import asyncio
from typing import List, Type

from temporalio.client import Client
from temporalio.worker import Worker, UnsandboxedWorkflowRunner

from memeflow.core.config import settings
from memeflow.core.logging import get_logger
from memeflow.core.redis import redis_client

# 导入 Workflow 定义
from memeflow.workflows.definitions.meme_generator import MemeGeneratorWorkflow

# 导入所有 Activity
from memeflow.workflows.activities import (
    enqueue_submission,
    check_admission,
    release_submission,
    generate_meme_image,
    send_slack_approval,
)

# 获取 logger
logger = get_logger(__name__)


# ==================== 注册列表 ====================

WORKFLOWS: List[Type] = [
    MemeGeneratorWorkflow,
]

ACTIVITIES = [
    # 准入控制
    enqueue_submission,
    check_admission,
    release_submission,
    # 生成与通知
    generate_meme_image,
    send_slack_approval,
]


async def create_worker(client: Client) -> Worker:
    """
    创建 Temporal Worker

    Args:
        client: Temporal Client 实例

    Returns:
        Worker: 配置好的 Worker 实例，调用 run() 后开始处理任务
    """
    logger.info(f"创建 Worker，任务队列: {settings.TEMPORAL_TASK_QUEUE}")
    logger.info(f"注册 Workflow: {[w.__name__ for w in WORKFLOWS]}")
    logger.info(f"注册 Activity: {[a.__name__ for a in ACTIVITIES]}")

    # 禁用 sandbox，Workflow 中的非确定性操作全部通过 workflow.now() / workflow.uuid4()
    worker = Worker(
        client=client,
        task_queue=settings.TEMPORAL_TASK_QUEUE,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,
        workflow_runner=UnsandboxedWorkflowRunner(),
    )

    return worker


async def run_worker():
    """
    运行 Temporal Worker

    1. 检查必需配置（缺少时直接退出，不处理任何任务）
    2. 连接 Redis（准入队列）
    3. 连接 Temporal Server 并开始监听任务队列
    """
    logger.info("="*60)
    logger.info("Temporal Worker 启动中...")
    logger.info(f"  Temporal Server: {settings.TEMPORAL_HOST}")
    logger.info(f"  Namespace: {settings.TEMPORAL_NAMESPACE}")
    logger.info(f"  Task Queue: {settings.TEMPORAL_TASK_QUEUE}")
    logger.info("="*60)

    settings.ensure_configured()

    try:
        await redis_client.connect()

        client = await Client.connect(
            settings.TEMPORAL_HOST,
            namespace=settings.TEMPORAL_NAMESPACE,
        )
        logger.info("成功连接到 Temporal Server")

        worker = await create_worker(client)

        logger.info("Worker 开始监听任务...")
        await worker.run()

    except KeyboardInterrupt:
        logger.info("收到停止信号，Worker 正在关闭...")
    except Exception as e:
        logger.error(f"Worker 运行失败: {e}")
        raise
    finally:
        await redis_client.disconnect()


# ==================== 入口点 ====================

if __name__ == "__main__":
    from memeflow.core.logging import setup_logging
    setup_logging()

    asyncio.run(run_worker())
