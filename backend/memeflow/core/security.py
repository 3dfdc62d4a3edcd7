# memeflow/core/security.py
# Slack 请求签名校验
#
# Slack 会在交互请求上附带：
#   X-Slack-Request-Timestamp: 请求时间戳（秒）
#   X-Slack-Signature:         v0=HMAC_SHA256(signing_secret, "v0:{timestamp}:{body}")
#
# 参考：https://api.slack.com/authentication/verifying-requests-from-slack

import hashlib
import hmac
import time
from typing import Optional

# 时间戳允许的最大偏差（秒），超过视为重放
MAX_REQUEST_AGE_SECONDS = 60 * 5

SIGNATURE_VERSION = "v0"


def compute_slack_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    """计算 Slack 请求签名"""
    basestring = f"{SIGNATURE_VERSION}:{timestamp}:".encode() + body
    digest = hmac.new(signing_secret.encode(), basestring, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_slack_signature(
    signing_secret: str,
    timestamp: Optional[str],
    signature: Optional[str],
    body: bytes,
    now: Optional[float] = None,
) -> bool:
    """
    校验 Slack 请求签名

    Args:
        signing_secret: Slack App 的 Signing Secret
        timestamp: X-Slack-Request-Timestamp 请求头
        signature: X-Slack-Signature 请求头
        body: 原始请求体
        now: 当前时间（测试用）

    Returns:
        bool: 签名有效且未过期返回 True
    """
    if not timestamp or not signature:
        return False

    try:
        request_time = int(timestamp)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - request_time) > MAX_REQUEST_AGE_SECONDS:
        return False

    expected = compute_slack_signature(signing_secret, timestamp, body)
    return hmac.compare_digest(expected, signature)
