# memeflow/workflows/types.py
# 工作流共享数据类型
#
# 这个文件定义了 Workflow、Activity、API 之间共享的数据类型。
# 放在单独的文件中是为了避免在 Workflow 中导入不允许的模块。
#
# 注意：这个文件不应该导入任何可能包含非确定性操作的模块
# （如 logging、pydantic-settings、random 等）

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from enum import Enum


# 合法的审批选项：两张候选图各对应一个
VALID_VARIANTS = (1, 2)

# token id 中 workflow_id 与随机部分之间的分隔符
TOKEN_SEPARATOR = "."


# ==================== 工作流输入 ====================

@dataclass
class MemeRequest:
    """
    工作流输入

    重试次数、超时等参数随输入传入，Workflow 代码不直接读取进程配置。

    Attributes:
        prompt: 用户输入的提示词
        submitter_key: 准入 Key，同一个 Key 同时只跑一个工作流
        approval_timeout_seconds: 等待审批的最长时间
        generation_max_attempts: 生成图片 Activity 的最大尝试次数
        dispatch_max_attempts: 发送通知 Activity 的最大尝试次数
        admission_recheck_seconds: 排队时重新检查队列的间隔
    """
    prompt: str
    submitter_key: str
    approval_timeout_seconds: int = 600
    generation_max_attempts: int = 3
    dispatch_max_attempts: int = 3
    admission_recheck_seconds: int = 60


# ==================== 图片生成 ====================

@dataclass
class GenerationRequest:
    """单张候选图的生成请求"""
    prompt: str


@dataclass(frozen=True)
class GenerationResult:
    """单张候选图的生成结果（公开可访问的 URL）"""
    image_url: str


# ==================== 准入控制 ====================

@dataclass
class AdmissionTicket:
    """准入队列里的一个位置"""
    submitter_key: str
    workflow_id: str


# ==================== 通知 ====================

@dataclass
class ApprovalNotification:
    """发送给审批人的 Slack 消息内容"""
    variant1_url: str
    variant2_url: str
    token_id: str
    prompt: str


# ==================== 审批 token ====================

class TokenState(str, Enum):
    """审批 token 状态"""
    PENDING = "pending"       # 等待审批
    RESOLVED = "resolved"     # 已收到审批结果
    EXPIRED = "expired"       # 已超时


class TokenAlreadySettled(Exception):
    """token 已经被处理过（审批或超时），不再接受新的结果"""

    def __init__(self, token_id: str, state: TokenState):
        super().__init__(f"审批 token 已处理，不能重复提交: {token_id} ({state.value})")
        self.token_id = token_id
        self.state = state


@dataclass
class CorrelationToken:
    """
    一次性审批 token

    每次运行只创建一个，只接受一次审批结果。
    超时或审批后都不能再次提交。

    Attributes:
        id: token 唯一标识，格式 <workflow_id>.<随机串>
        created_at: 创建时间（workflow.now()）
        timeout_seconds: 等待时间
        state: 当前状态
        chosen_variant: 审批人选择的选项（可能非法）
    """
    id: str
    created_at: datetime
    timeout_seconds: int
    state: TokenState = TokenState.PENDING
    chosen_variant: Optional[int] = None

    @classmethod
    def issue(
        cls,
        workflow_id: str,
        nonce: str,
        created_at: datetime,
        timeout_seconds: int,
    ) -> "CorrelationToken":
        """为某次运行创建 token"""
        return cls(
            id=f"{workflow_id}{TOKEN_SEPARATOR}{nonce}",
            created_at=created_at,
            timeout_seconds=timeout_seconds,
        )

    @property
    def timeout(self) -> timedelta:
        return timedelta(seconds=self.timeout_seconds)

    @property
    def deadline(self) -> datetime:
        return self.created_at + self.timeout

    @property
    def is_pending(self) -> bool:
        return self.state == TokenState.PENDING

    def ensure_pending(self, now: Optional[datetime] = None) -> None:
        """
        检查 token 是否还能接受审批结果

        Raises:
            TokenAlreadySettled: 已审批、已超时或已过截止时间
        """
        if not self.is_pending:
            raise TokenAlreadySettled(self.id, self.state)
        if now is not None and now >= self.deadline:
            raise TokenAlreadySettled(self.id, TokenState.EXPIRED)

    def resolve(self, chosen_variant: Optional[int], now: Optional[datetime] = None) -> None:
        """记录审批结果，之后 token 不再接受任何提交"""
        self.ensure_pending(now)
        self.state = TokenState.RESOLVED
        self.chosen_variant = chosen_variant

    def expire(self) -> None:
        """标记超时"""
        if not self.is_pending:
            raise TokenAlreadySettled(self.id, self.state)
        self.state = TokenState.EXPIRED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "deadline": self.deadline.isoformat(),
            "state": self.state.value,
            "chosen_variant": self.chosen_variant,
        }


def workflow_id_from_token(token_id: str) -> str:
    """
    从 token id 中取出所属的 workflow_id

    Raises:
        ValueError: token 格式不正确
    """
    workflow_id, sep, nonce = token_id.rpartition(TOKEN_SEPARATOR)
    if not sep or not workflow_id or not nonce:
        raise ValueError(f"无效的审批 token: {token_id}")
    return workflow_id


def is_valid_variant(variant: Optional[int]) -> bool:
    return variant in VALID_VARIANTS


@dataclass
class ApprovalDecision:
    """
    审批人的选择

    Attributes:
        token_id: 审批 token
        chosen_variant: 选择的候选图（1 或 2），缺失或非法时运行失败
    """
    token_id: str
    chosen_variant: Optional[int] = None


@dataclass
class ApprovalAck:
    """审批结果提交后的回执"""
    token_id: str
    accepted: bool
    chosen_variant: Optional[int] = None
    reason: Optional[str] = None


# ==================== 运行状态 ====================

class WorkflowPhase(str, Enum):
    """工作流所处阶段"""
    QUEUED = "queued"                         # 排队等待准入
    GENERATING = "generating"                 # 生成候选图
    DISPATCHING = "dispatching"               # 发送 Slack 通知
    AWAITING_APPROVAL = "awaiting_approval"   # 等待审批
    RESOLVED = "resolved"                     # 已完成
    TIMED_OUT = "timed_out"                   # 审批超时
    FAILED = "failed"                         # 失败


@dataclass(frozen=True)
class WorkflowResult:
    """
    工作流最终结果

    只有审批在超时前完成且选项合法时才会产生。
    """
    variant1_reference: str
    variant2_reference: str
    selected_variant: int
    approved: bool = True

    def to_response(self) -> dict:
        return {
            "variant1Reference": self.variant1_reference,
            "variant2Reference": self.variant2_reference,
            "selectedVariant": self.selected_variant,
            "approved": self.approved,
        }


class RunState(str, Enum):
    """对外暴露的运行状态"""
    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class RunStatus:
    """
    状态查询结果

    Attributes:
        state: pending / complete / error
        result: complete 时的最终结果
        error: error 时的错误信息
        error_type: error 时的错误类型（如 ApprovalTimeout）
        phase: pending 时的当前阶段
    """
    state: RunState
    result: Optional[WorkflowResult] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    phase: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state != RunState.PENDING

    def to_response(self) -> dict:
        response: dict = {"status": self.state.value}
        if self.state == RunState.COMPLETE and self.result is not None:
            response.update(self.result.to_response())
        elif self.state == RunState.ERROR:
            response["error"] = self.error or "Unknown error"
            if self.error_type:
                response["errorType"] = self.error_type
        elif self.phase:
            response["phase"] = self.phase
        return response

    @classmethod
    def from_response(cls, data: dict) -> "RunStatus":
        """从缓存的响应还原"""
        state = RunState(data["status"])
        if state == RunState.COMPLETE:
            return cls(
                state=state,
                result=WorkflowResult(
                    variant1_reference=data["variant1Reference"],
                    variant2_reference=data["variant2Reference"],
                    selected_variant=data["selectedVariant"],
                    approved=data.get("approved", True),
                ),
            )
        if state == RunState.ERROR:
            return cls(state=state, error=data.get("error"), error_type=data.get("errorType"))
        return cls(state=state, phase=data.get("phase"))
