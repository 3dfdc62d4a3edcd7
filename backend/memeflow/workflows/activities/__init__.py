# memeflow/workflows/activities/__init__.py
# Activity 模块
#
# Activity 是 Temporal 中实际执行任务的单元。
# 与 Workflow 不同，Activity 可以包含：
# - I/O 操作（Redis、网络）
# - 外部 API 调用（Gemini、UploadThing、Slack）
# - 非确定性操作
#
# Activity 设计原则：
# 1. 每个 Activity 应该可以安全重试
# 2. Activity 应该有超时设置
# 3. 不可恢复的错误抛出 non_retryable 的 ApplicationError

from memeflow.workflows.activities.admission import (
    enqueue_submission,
    check_admission,
    release_submission,
)
from memeflow.workflows.activities.generation import generate_meme_image
from memeflow.workflows.activities.notification import send_slack_approval

__all__ = [
    "enqueue_submission",
    "check_admission",
    "release_submission",
    "generate_meme_image",
    "send_slack_approval",
]
