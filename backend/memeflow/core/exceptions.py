# memeflow/core/exceptions.py
# 错误类型定义
#
# 工作流相关的错误都继承 Temporal 的 ApplicationError：
# - 在 Activity 中抛出时，Temporal 按 non_retryable 决定是否重试
# - 在 Workflow 中抛出时，整个运行失败，type/message 会出现在运行结果里
#
# 错误分类：
#   ConfigurationError  缺少必需配置（不重试）
#   GenerationFailure   候选图片生成失败 / 响应里没有图片
#   UploadFailure       图片托管服务没有返回 URL
#   DispatchFailure     Slack 通知发送失败
#   ApprovalTimeout     等待审批超时（不重试）
#   ApprovalRejected    审批结果里的选项非法（不重试）
#
# HTTP 层使用的普通异常：
#   TokenResolutionError  审批回调无法解析 token
#   RunNotFound           查询的运行不存在

from typing import Optional

from temporalio.exceptions import ApplicationError


class MemeFlowError(ApplicationError):
    """工作流错误基类，type 取类名"""

    retryable: bool = True

    def __init__(self, message: str, *details, non_retryable: Optional[bool] = None):
        if non_retryable is None:
            non_retryable = not self.retryable
        super().__init__(
            message,
            *details,
            type=type(self).__name__,
            non_retryable=non_retryable,
        )


class ConfigurationError(MemeFlowError):
    retryable = False


class GenerationFailure(MemeFlowError):
    pass


class UploadFailure(MemeFlowError):
    pass


class DispatchFailure(MemeFlowError):
    pass


class ApprovalTimeout(MemeFlowError):
    retryable = False


class ApprovalRejected(MemeFlowError):
    retryable = False


class TokenResolutionError(Exception):
    """
    审批回调失败

    Attributes:
        status_code: 建议返回给调用方的 HTTP 状态码
        reason: 失败原因
    """

    def __init__(self, status_code: int, reason: str):
        super().__init__(reason)
        self.status_code = status_code
        self.reason = reason


class RunNotFound(Exception):
    """运行不存在"""

    def __init__(self, run_id: str):
        super().__init__(f"运行不存在: {run_id}")
        self.run_id = run_id
