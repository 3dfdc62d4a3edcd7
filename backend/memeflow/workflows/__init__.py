# memeflow/workflows/__init__.py
# Temporal 工作流模块
#
# 目录结构：
# workflows/
# ├── __init__.py          # 模块初始化
# ├── types.py             # 共享数据类型（Workflow 和 Activity 都使用）
# ├── worker.py            # Temporal Worker（运行 Workflow 和 Activity）
# ├── client.py            # Temporal Client（启动工作流、提交审批结果）
# ├── activities/          # Activity 定义（实际执行的任务）
# │   ├── admission.py     # 准入队列
# │   ├── generation.py    # 生成候选图并上传
# │   └── notification.py  # Slack 审批消息
# └── definitions/         # Workflow 定义（流程编排）
#     └── meme_generator.py
#
# 此 __init__.py 只导出纯数据类型，不导入 worker / client，
# 避免 Workflow 定义的导入链带上配置加载和网络客户端。

from memeflow.workflows.types import (
    MemeRequest,
    CorrelationToken,
    TokenState,
    ApprovalDecision,
    ApprovalAck,
    WorkflowPhase,
    WorkflowResult,
    RunState,
    RunStatus,
)

__all__ = [
    "MemeRequest",
    "CorrelationToken",
    "TokenState",
    "ApprovalDecision",
    "ApprovalAck",
    "WorkflowPhase",
    "WorkflowResult",
    "RunState",
    "RunStatus",
]
