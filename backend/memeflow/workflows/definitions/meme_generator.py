# memeflow/workflows/definitions/meme_generator.py
# 梗图生成 + 人工审批工作流
#
# 工作流流程：
# 1. 申请准入（同一个提交人同时只跑一个，其余排队）
# 2. 对同一个提示词并发生成两张候选图，两张都成功才继续
# 3. 创建一次性审批 token
# 4. 发送 Slack 审批消息（两个按钮各带 token + 选项）
# 5. 等待审批结果（默认 10 分钟，期间不占用 Worker）
# 6. 选项合法 → 返回结果；选项非法 → ApprovalRejected；超时 → ApprovalTimeout
# 7. 无论成功失败都释放准入，通知下一个排队者
#
# Signals:
#   - admit(): 准入队列轮到本次运行
#
# Updates:
#   - resolve_token(decision): 提交审批结果，只接受一次
#
# Queries:
#   - get_status(): 当前阶段、token 状态、候选图

import asyncio
from datetime import timedelta
from typing import Optional, Type

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, ApplicationError, FailureError

# 导入共享类型（这些不包含任何非确定性操作）
from memeflow.core.exceptions import (
    ApprovalRejected,
    ApprovalTimeout,
    ConfigurationError,
    DispatchFailure,
    GenerationFailure,
    MemeFlowError,
    UploadFailure,
)
from memeflow.workflows.types import (
    VALID_VARIANTS,
    AdmissionTicket,
    ApprovalAck,
    ApprovalDecision,
    ApprovalNotification,
    CorrelationToken,
    GenerationRequest,
    GenerationResult,
    MemeRequest,
    TokenAlreadySettled,
    WorkflowPhase,
    WorkflowResult,
    is_valid_variant,
)


# ==================== Activity 超时配置 ====================

# 单张图：模型生成 + 上传
GENERATION_TIMEOUT = timedelta(minutes=3)

# Slack 请求本身最长 120 秒
DISPATCH_TIMEOUT = timedelta(minutes=3)

# Redis 队列操作
ADMISSION_TIMEOUT = timedelta(seconds=30)

ADMISSION_RETRY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=30),
    backoff_coefficient=2.0,
    maximum_attempts=10,
)

# Activity 抛出的错误类型 → 工作流失败时使用的错误类
KNOWN_FAILURES: dict[str, Type[MemeFlowError]] = {
    cls.__name__: cls
    for cls in (ConfigurationError, GenerationFailure, UploadFailure, DispatchFailure)
}


def _retry_policy(maximum_attempts: int) -> RetryPolicy:
    return RetryPolicy(
        initial_interval=timedelta(seconds=1),
        maximum_interval=timedelta(seconds=30),
        backoff_coefficient=2.0,
        maximum_attempts=max(1, maximum_attempts),
    )


def _activity_failure(
    error: BaseException,
    default: Type[MemeFlowError],
    message: str,
) -> MemeFlowError:
    """
    把 Activity 的失败转换成工作流错误

    Activity 里抛出的已知错误（如 UploadFailure）保留原类型，
    其它错误（超时、未知异常）使用 default。
    """
    cause = error.cause if isinstance(error, ActivityError) and error.cause else error
    detail = cause.message if isinstance(cause, FailureError) else str(cause)

    failure_cls = default
    if isinstance(cause, ApplicationError) and cause.type in KNOWN_FAILURES:
        failure_cls = KNOWN_FAILURES[cause.type]
    return failure_cls(f"{message}: {detail}", non_retryable=True)


# ==================== Workflow 定义 ====================

@workflow.defn
class MemeGeneratorWorkflow:
    """
    梗图审批工作流

    使用方法：
        handle = await client.start_workflow(
            MemeGeneratorWorkflow.run,
            MemeRequest(prompt="cat wearing sunglasses", submitter_key="alice"),
            id=f"meme-{uuid4()}",
            task_queue="meme-generator-queue",
        )

        # 审批人点击按钮后
        ack = await handle.execute_update(
            MemeGeneratorWorkflow.resolve_token,
            ApprovalDecision(token_id=token_id, chosen_variant=2),
        )

        result = await handle.result()
    """

    def __init__(self):
        """初始化 Workflow 状态"""
        self._phase: WorkflowPhase = WorkflowPhase.QUEUED
        # 是否收到准入信号
        self._admitted: bool = False
        # 审批 token（生成完两张图后创建）
        self._token: Optional[CorrelationToken] = None
        # 两张候选图 URL
        self._variants: list[str] = []

    # ==================== 主流程 ====================

    @workflow.run
    async def run(self, request: MemeRequest) -> WorkflowResult:
        """
        工作流主函数

        Args:
            request: 提示词、提交人和各项超时参数

        Returns:
            WorkflowResult: 两张候选图和审批人选中的那一张
        """
        workflow_id = workflow.info().workflow_id
        ticket = AdmissionTicket(submitter_key=request.submitter_key, workflow_id=workflow_id)

        workflow.logger.info(f"梗图工作流启动: {workflow_id}")
        workflow.logger.info(f"  提示词: {request.prompt}")
        workflow.logger.info(f"  提交人: {request.submitter_key}")

        try:
            await self._wait_for_admission(ticket, request)
            return await self._generate_and_approve(request, workflow_id)
        except Exception:
            if self._phase != WorkflowPhase.TIMED_OUT:
                self._phase = WorkflowPhase.FAILED
            raise
        finally:
            await self._release_admission(ticket)

    async def _release_admission(self, ticket: AdmissionTicket) -> None:
        """
        出队并通知下一个排队的运行

        成功、失败、取消都要出队，否则同一提交人的后续请求会一直排队。
        出队失败只记日志，不影响本次运行的结果；
        留在队首的记录由下一个运行的 check_admission 清理。
        """
        try:
            await workflow.execute_activity(
                "release_submission",
                ticket,
                start_to_close_timeout=ADMISSION_TIMEOUT,
                retry_policy=ADMISSION_RETRY,
            )
        except ActivityError as e:
            workflow.logger.error(f"释放准入失败: {ticket.workflow_id}, error={e}")

    async def _wait_for_admission(self, ticket: AdmissionTicket, request: MemeRequest) -> None:
        """排队直到本次运行位于准入队列队首"""
        admitted = await workflow.execute_activity(
            "enqueue_submission",
            ticket,
            result_type=bool,
            start_to_close_timeout=ADMISSION_TIMEOUT,
            retry_policy=ADMISSION_RETRY,
        )

        recheck = timedelta(seconds=request.admission_recheck_seconds)
        while not (admitted or self._admitted):
            workflow.logger.info(f"排队等待准入: {ticket.submitter_key}")
            try:
                await workflow.wait_condition(lambda: self._admitted, timeout=recheck)
            except TimeoutError:
                # 没等到信号，主动检查一次（前一个运行可能异常退出）
                admitted = await workflow.execute_activity(
                    "check_admission",
                    ticket,
                    result_type=bool,
                    start_to_close_timeout=ADMISSION_TIMEOUT,
                    retry_policy=ADMISSION_RETRY,
                )

        workflow.logger.info(f"已获得准入: {ticket.workflow_id}")

    async def _generate_and_approve(self, request: MemeRequest, workflow_id: str) -> WorkflowResult:
        # 1. 并发生成两张候选图，全部成功才继续
        self._phase = WorkflowPhase.GENERATING
        outcomes = await asyncio.gather(
            *[
                workflow.execute_activity(
                    "generate_meme_image",
                    GenerationRequest(prompt=request.prompt),
                    result_type=GenerationResult,
                    start_to_close_timeout=GENERATION_TIMEOUT,
                    retry_policy=_retry_policy(request.generation_max_attempts),
                )
                for _ in VALID_VARIANTS
            ],
            return_exceptions=True,
        )

        for index, outcome in enumerate(outcomes, start=1):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                workflow.logger.error(f"候选图 {index} 生成失败: {outcome}")
                raise _activity_failure(
                    outcome, GenerationFailure, "Failed to generate memes"
                ) from outcome
            if not outcome or not outcome.image_url:
                raise GenerationFailure(
                    f"Failed to generate memes: 候选图 {index} 没有返回 URL",
                    non_retryable=True,
                )
            self._variants.append(outcome.image_url)

        variant1_url, variant2_url = self._variants
        workflow.logger.info(f"候选图已生成: {variant1_url}, {variant2_url}")

        # 2. 创建审批 token（必须在发送消息之前，保证按钮链接有效）
        token = CorrelationToken.issue(
            workflow_id=workflow_id,
            nonce=workflow.uuid4().hex,
            created_at=workflow.now(),
            timeout_seconds=request.approval_timeout_seconds,
        )
        self._token = token
        workflow.logger.info(f"审批 token 已创建: {token.id}, 超时 {token.timeout_seconds} 秒")

        # 3. 发送 Slack 审批消息
        # 失败时 token 不做清理，随本次运行结束一起失效
        self._phase = WorkflowPhase.DISPATCHING
        try:
            await workflow.execute_activity(
                "send_slack_approval",
                ApprovalNotification(
                    variant1_url=variant1_url,
                    variant2_url=variant2_url,
                    token_id=token.id,
                    prompt=request.prompt,
                ),
                start_to_close_timeout=DISPATCH_TIMEOUT,
                retry_policy=_retry_policy(request.dispatch_max_attempts),
            )
        except ActivityError as e:
            workflow.logger.error(f"Slack 通知发送失败: {e}")
            raise _activity_failure(e, DispatchFailure, "Failed to send Slack notification") from e

        workflow.logger.info("Slack 审批消息已发送，等待审批")

        # 4. 等待审批结果或超时
        self._phase = WorkflowPhase.AWAITING_APPROVAL
        if not await self._wait_for_resolution(token):
            token.expire()
            self._phase = WorkflowPhase.TIMED_OUT
            workflow.logger.warning(f"审批超时: {token.id}")
            raise ApprovalTimeout(
                f"Approval not received within {token.timeout_seconds} seconds"
            )

        # 5. 校验审批选项
        chosen = token.chosen_variant
        if not is_valid_variant(chosen):
            workflow.logger.warning(f"审批选项非法: {chosen!r}")
            raise ApprovalRejected(f"Invalid meme variant: {chosen!r} (expected 1 or 2)")

        self._phase = WorkflowPhase.RESOLVED
        workflow.logger.info(f"审批完成，选中候选图 {chosen}")

        return WorkflowResult(
            variant1_reference=variant1_url,
            variant2_reference=variant2_url,
            selected_variant=chosen,
            approved=True,
        )

    async def _wait_for_resolution(self, token: CorrelationToken) -> bool:
        """
        等待审批结果，直到 token 截止时间

        截止时间从 token 创建时算起，发送 Slack 消息的耗时也计入审批窗口，
        与 validator 判断过期的时间点一致。

        Returns:
            bool: 截止前收到了审批结果
        """
        remaining = token.deadline - workflow.now()
        if remaining > timedelta(0):
            try:
                await workflow.wait_condition(lambda: not token.is_pending, timeout=remaining)
            except TimeoutError:
                pass
        # 同一批次里审批先到达时以审批为准
        return not token.is_pending

    # ==================== Signal 处理 ====================

    @workflow.signal
    def admit(self) -> None:
        """准入队列轮到本次运行"""
        workflow.logger.info("收到准入信号")
        self._admitted = True

    # ==================== Update 处理 ====================

    @workflow.update
    def resolve_token(self, decision: ApprovalDecision) -> ApprovalAck:
        """
        提交审批结果

        token 只接受一次提交，非法选项也会消耗掉 token（本次运行随后失败）。
        重复提交、过期提交在 validator 阶段被拒绝，不会进入工作流历史。

        Args:
            decision: token 和审批人选择的候选图

        Returns:
            ApprovalAck: 是否被接受
        """
        try:
            self._token.resolve(decision.chosen_variant)
        except TokenAlreadySettled as e:
            # 同一批次里两个提交都通过了 validator，后到的一个失败
            raise ApplicationError(str(e), type="TokenAlreadySettled", non_retryable=True) from e
        accepted = is_valid_variant(decision.chosen_variant)
        workflow.logger.info(
            f"收到审批结果: token={decision.token_id}, variant={decision.chosen_variant}, accepted={accepted}"
        )
        return ApprovalAck(
            token_id=decision.token_id,
            accepted=accepted,
            chosen_variant=decision.chosen_variant,
            reason=None if accepted else "Invalid meme variant",
        )

    @resolve_token.validator
    def validate_resolve_token(self, decision: ApprovalDecision) -> None:
        """拒绝：token 未创建、token 不匹配、已处理、已过截止时间"""
        if self._token is None:
            raise ValueError("审批 token 尚未创建")
        if decision.token_id != self._token.id:
            raise ValueError(f"审批 token 不匹配: {decision.token_id}")
        self._token.ensure_pending(workflow.now())

    # ==================== Query 处理 ====================

    @workflow.query
    def get_status(self) -> dict:
        """
        查询当前状态

        Query 是只读操作，不会影响 Workflow 执行。
        """
        return {
            "phase": self._phase.value,
            "admitted": self._admitted,
            "variants": list(self._variants),
            "token": self._token.to_dict() if self._token else None,
        }
