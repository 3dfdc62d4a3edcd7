# memeflow/adapters/slack.py
# Slack 审批消息
#
# 功能说明：
# 1. build_approval_message - 构建带两个选择按钮的 Block Kit 消息
# 2. SlackWebhookClient - 通过 Incoming Webhook 发送消息
# 3. parse_interaction_payload - 解析 Slack 交互回调里点击的按钮
#
# 两个按钮都携带同一个 token 和各自的选项：
#   value: {"tokenId": "<token>", "chosenVariant": 1}
#   url:   <APP_BASE_URL>/endpoints/<token>?variant=1
# 回调端点拿到 token 就能直接定位到对应的工作流，无需额外查询。
#
# Block Kit 参考：https://api.slack.com/block-kit

import json
from typing import Optional
from urllib.parse import quote

import httpx

from memeflow.core.config import settings
from memeflow.core.exceptions import DispatchFailure
from memeflow.core.logging import get_logger
from memeflow.workflows.types import VALID_VARIANTS, ApprovalDecision

logger = get_logger(__name__)

MESSAGE_TITLE = "Choose the funniest meme"


def build_action_url(app_base_url: str, token_id: str, variant: int) -> str:
    """审批按钮跳转的回调地址"""
    return f"{app_base_url.rstrip('/')}/endpoints/{quote(token_id, safe='')}?variant={variant}"


def build_approval_message(
    variant1_url: str,
    variant2_url: str,
    token_id: str,
    prompt: str,
    app_base_url: Optional[str] = None,
) -> dict:
    """
    构建审批消息

    消息结构：header → 提示词 → divider → 两张候选图 → 两个按钮

    Args:
        variant1_url: 候选图 1
        variant2_url: 候选图 2
        token_id: 审批 token
        prompt: 用户输入的提示词
        app_base_url: 回调站点根地址，默认取配置

    Returns:
        dict: 可直接 POST 给 Webhook 的消息体
    """
    base_url = app_base_url if app_base_url is not None else settings.APP_BASE_URL

    buttons = [
        {
            "type": "button",
            "text": {
                "type": "plain_text",
                "text": f"Select Variant {variant}",
                "emoji": True,
            },
            "style": "primary",
            "value": json.dumps({"tokenId": token_id, "chosenVariant": variant}),
            "action_id": f"meme_approve_{variant}",
            "url": build_action_url(base_url, token_id, variant),
        }
        for variant in VALID_VARIANTS
    ]

    return {
        "text": MESSAGE_TITLE,
        "blocks": [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"🎭 {MESSAGE_TITLE}",
                    "emoji": True,
                },
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Prompt:*\n{prompt}"},
            },
            {"type": "divider"},
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Meme Variants:*\n1. {variant1_url}\n2. {variant2_url}",
                },
            },
            {"type": "actions", "elements": buttons},
        ],
    }


def parse_interaction_payload(payload: dict) -> ApprovalDecision:
    """
    从 Slack 交互回调中取出审批选择

    Slack 会把 payload 作为表单字段 POST 过来，
    actions[0].value 就是 build_approval_message 写入的 JSON。

    Raises:
        ValueError: payload 中没有可识别的按钮
    """
    actions = payload.get("actions") or []
    if not actions:
        raise ValueError("交互回调中没有 actions")

    raw_value = actions[0].get("value")
    try:
        value = json.loads(raw_value) if raw_value else {}
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError(f"按钮 value 不是合法 JSON: {raw_value!r}") from e

    token_id = value.get("tokenId")
    if not token_id:
        raise ValueError("按钮 value 中缺少 tokenId")

    variant = value.get("chosenVariant")
    if not isinstance(variant, int) or isinstance(variant, bool):
        variant = None

    return ApprovalDecision(token_id=token_id, chosen_variant=variant)


class SlackWebhookClient:
    """
    Slack Incoming Webhook 客户端

    只发送一次，不在内部重试；重试由 Temporal 的 RetryPolicy 负责。
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if webhook_url is None:
            settings.ensure_configured("SLACK_WEBHOOK_URL")
            webhook_url = settings.SLACK_WEBHOOK_URL
        self.webhook_url = webhook_url
        self.timeout = timeout if timeout is not None else settings.SLACK_TIMEOUT_SECONDS
        self._transport = transport

    async def post(self, message: dict) -> None:
        """
        发送消息

        Raises:
            DispatchFailure: 网络错误或非 200 响应（4xx 不重试）
        """
        body_size = len(json.dumps(message).encode())
        logger.info(f"发送 Slack 消息: {body_size} bytes")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=message)
        except httpx.HTTPError as e:
            logger.error(f"Slack 请求失败: {e}")
            raise DispatchFailure(f"Failed to send Slack notification: {e}") from e

        logger.info(f"Slack 响应: {response.status_code} {response.text[:200]}")

        if response.status_code != 200:
            raise DispatchFailure(
                f"Failed to send Slack notification: {response.status_code} - {response.text[:200]}",
                non_retryable=400 <= response.status_code < 500 and response.status_code != 429,
            )
