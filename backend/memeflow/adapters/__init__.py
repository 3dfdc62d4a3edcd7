# memeflow/adapters/__init__.py
# 外部服务适配器
#
# - gemini.py: 图片生成（Google Gemini）
# - slack.py:  审批消息（Slack Incoming Webhook / 交互回调）

from memeflow.adapters.gemini import GeminiImageClient, GeneratedImage, extract_image
from memeflow.adapters.slack import (
    SlackWebhookClient,
    build_approval_message,
    parse_interaction_payload,
)

__all__ = [
    "GeminiImageClient",
    "GeneratedImage",
    "extract_image",
    "SlackWebhookClient",
    "build_approval_message",
    "parse_interaction_payload",
]
