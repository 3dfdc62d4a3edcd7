# memeflow/workflows/activities/notification.py
# 审批通知 Activity
#
# 把两张候选图和审批 token 发送到 Slack。
# Activity 本身只发一次，失败后是否重试由 Workflow 的 RetryPolicy 决定。

from temporalio import activity

from memeflow.adapters.slack import SlackWebhookClient, build_approval_message
from memeflow.core.config import settings
from memeflow.core.logging import get_logger
from memeflow.workflows.types import ApprovalNotification

logger = get_logger(__name__)


@activity.defn(name="send_slack_approval")
async def send_slack_approval(notification: ApprovalNotification) -> bool:
    """
    发送审批消息

    Args:
        notification: 候选图 URL、token、提示词

    Returns:
        bool: 发送成功返回 True

    Raises:
        ConfigurationError: 缺少 SLACK_WEBHOOK_URL / APP_BASE_URL
        DispatchFailure: Webhook 返回非 200 或网络错误

    配置建议：
        start_to_close_timeout 要大于 SLACK_TIMEOUT_SECONDS
    """
    info = activity.info()
    logger.info(f"[Activity] 发送 Slack 审批消息")
    logger.info(f"  Workflow ID: {info.workflow_id}")
    logger.info(f"  Token: {notification.token_id}")

    settings.ensure_configured("SLACK_WEBHOOK_URL", "APP_BASE_URL")

    message = build_approval_message(
        variant1_url=notification.variant1_url,
        variant2_url=notification.variant2_url,
        token_id=notification.token_id,
        prompt=notification.prompt,
    )

    try:
        await SlackWebhookClient().post(message)
    except Exception as e:
        logger.error(f"Slack 通知发送失败: {e}")
        raise

    logger.info("[Activity] Slack 审批消息已发送")
    return True
