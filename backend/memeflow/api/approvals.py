# memeflow/api/approvals.py
# 审批回调 API 端点
#
# Slack 消息中的两个按钮都指向这里，一个 token 只接受一次结果。
#
# API 列表：
# - GET  /endpoints/{token_id}?variant=N   - 按钮链接（浏览器打开，返回确认页面）
# - POST /api/slack/interactions           - Slack 交互回调（Interactivity Request URL）
#
# 状态码：
#   200 审批生效
#   400 选项非法（运行随之失败）
#   401 Slack 签名校验失败
#   404 token 格式错误
#   409 token 已处理或已过期
#   410 运行已结束或不存在

import html
import json
from typing import Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import HTMLResponse, JSONResponse

from memeflow.adapters.slack import parse_interaction_payload
from memeflow.core.config import settings
from memeflow.core.exceptions import TokenResolutionError
from memeflow.core.logging import get_logger
from memeflow.core.security import verify_slack_signature
from memeflow.workflows.client import resolve_approval_token
from memeflow.workflows.types import ApprovalAck, ApprovalDecision

# 获取 logger
logger = get_logger(__name__)

# 创建路由
router = APIRouter(tags=["Approvals"])


PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{title}</title>
  <style>
    body {{ font-family: -apple-system, sans-serif; text-align: center; padding: 48px; }}
    h1 {{ font-size: 28px; }}
    p {{ color: #555; }}
  </style>
</head>
<body>
  <h1>{title}</h1>
  <p>{message}</p>
</body>
</html>
"""


def render_page(title: str, message: str, status_code: int = status.HTTP_200_OK) -> HTMLResponse:
    """渲染审批结果页面"""
    content = PAGE_TEMPLATE.format(title=html.escape(title), message=html.escape(message))
    return HTMLResponse(content=content, status_code=status_code)


def parse_variant(raw: Optional[str]) -> Optional[int]:
    """查询参数中的 variant，无法解析时返回 None（由工作流判定为非法选项）"""
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


async def submit_decision(decision: ApprovalDecision) -> ApprovalAck:
    """提交审批结果，失败时抛出 TokenResolutionError"""
    ack = await resolve_approval_token(decision)
    if not ack.accepted:
        raise TokenResolutionError(
            status.HTTP_400_BAD_REQUEST,
            f"Invalid meme variant: {decision.chosen_variant!r}",
        )
    return ack


# ==================== API 端点 ====================

@router.get(
    "/endpoints/{token_id}",
    response_class=HTMLResponse,
    summary="审批按钮回调",
)
async def resolve_from_link(token_id: str, variant: Optional[str] = None):
    """
    审批人点击 Slack 按钮后打开的页面

    选项非法时 token 同样被消耗，运行以 ApprovalRejected 结束。
    """
    decision = ApprovalDecision(token_id=token_id, chosen_variant=parse_variant(variant))

    try:
        ack = await submit_decision(decision)
    except TokenResolutionError as e:
        logger.warning(f"审批回调失败: token={token_id}, status={e.status_code}, reason={e.reason}")
        return render_page("Approval not recorded", e.reason, status_code=e.status_code)

    return render_page(
        "Thanks! 🎉",
        f"Meme variant {ack.chosen_variant} has been selected. You can close this page.",
    )


@router.post(
    "/api/slack/interactions",
    summary="Slack 交互回调",
)
async def slack_interactions(request: Request):
    """
    Slack Interactivity 回调

    Slack 以表单形式 POST，payload 字段是 JSON 字符串。
    配置了 SLACK_SIGNING_SECRET 时校验请求签名。
    """
    body = await request.body()

    if settings.SLACK_SIGNING_SECRET:
        valid = verify_slack_signature(
            settings.SLACK_SIGNING_SECRET,
            request.headers.get("X-Slack-Request-Timestamp", ""),
            request.headers.get("X-Slack-Signature", ""),
            body,
        )
        if not valid:
            logger.warning("Slack 交互回调签名校验失败")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Invalid Slack signature"},
            )

    form = await request.form()
    try:
        payload = json.loads(form.get("payload") or "")
        decision = parse_interaction_payload(payload)
    except (TypeError, ValueError) as e:
        logger.warning(f"Slack 交互回调格式错误: {e}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": f"Invalid interaction payload: {e}"},
        )

    try:
        ack = await submit_decision(decision)
    except TokenResolutionError as e:
        logger.warning(
            f"Slack 审批失败: token={decision.token_id}, status={e.status_code}, reason={e.reason}"
        )
        return JSONResponse(status_code=e.status_code, content={"error": e.reason})

    return {"ok": True, "tokenId": ack.token_id, "chosenVariant": ack.chosen_variant}
