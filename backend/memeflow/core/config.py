# memeflow/core/config.py
# 配置管理模块
#
# 功能说明：
# 1. 使用 Pydantic Settings 从环境变量加载配置
# 2. 支持 .env 文件读取
# 3. 启动/首次使用时校验必需配置，缺失时立即失败
#
# 使用方法：
#   from memeflow.core.config import settings
#   settings.ensure_configured()   # 校验全部必需配置
#   print(settings.SLACK_WEBHOOK_URL)

from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Literal

from memeflow.core.exceptions import ConfigurationError


# 必需配置项：缺少任意一项都不允许开始工作
REQUIRED_SETTINGS = (
    "GEMINI_API_KEY",
    "SLACK_WEBHOOK_URL",
    "APP_BASE_URL",
    "UPLOADTHING_TOKEN",
)


class Settings(BaseSettings):
    """
    应用配置类

    所有配置项都可以通过环境变量覆盖，环境变量名与属性名相同（大写）
    例如：设置 APPROVAL_TIMEOUT_MINUTES=5 会把审批等待时间改为 5 分钟
    """

    # ==================== 应用基础配置 ====================
    APP_NAME: str = "Meme Approval Flow"   # 应用名称，显示在日志和API文档中
    DEBUG: bool = False                     # 调试模式

    # ==================== 日志配置 ====================
    # 日志级别：DEBUG < INFO < WARNING < ERROR < CRITICAL
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # 日志格式：console（彩色控制台输出）或 json（结构化JSON，适合生产环境）
    LOG_FORMAT: Literal["console", "json"] = "console"

    # ==================== Redis 配置 ====================
    # 用于按提交人排队（准入队列）和缓存已结束的运行结果
    REDIS_URL: str = "redis://localhost:6379/0"

    # ==================== Temporal 配置 ====================
    # Temporal Server 地址
    # 开发环境：temporal server start-dev 默认监听 localhost:7233
    TEMPORAL_HOST: str = "localhost:7233"

    # Temporal 命名空间
    TEMPORAL_NAMESPACE: str = "default"

    # 任务队列名称，Worker 监听这个队列来执行 Workflow 和 Activity
    TEMPORAL_TASK_QUEUE: str = "meme-generator-queue"

    # ==================== 图片生成（Gemini）====================
    # 获取方式：https://ai.google.dev
    GEMINI_API_KEY: str = ""

    # 支持图片输出的模型
    GEMINI_IMAGE_MODEL: str = "gemini-2.0-flash-preview-image-generation"

    # ==================== 图片托管（UploadThing）====================
    # UploadThing 控制台提供的 UPLOADTHING_TOKEN（base64 JSON），
    # 也可以直接填写 sk_ 开头的 API Key
    UPLOADTHING_TOKEN: str = ""
    UPLOADTHING_API_URL: str = "https://api.uploadthing.com"

    # ==================== Slack 通知 ====================
    # Incoming Webhook 地址
    SLACK_WEBHOOK_URL: str = ""

    # Slack App 的 Signing Secret（可选）
    # 配置后 /api/slack/interactions 会校验请求签名
    SLACK_SIGNING_SECRET: str = ""

    # Webhook 请求超时（秒）
    SLACK_TIMEOUT_SECONDS: float = 120.0

    # 审批按钮链接的站点根地址，例如 https://memes.example.com
    APP_BASE_URL: str = ""

    # ==================== 工作流参数 ====================
    # 等待审批的最长时间（分钟），超时后运行失败
    APPROVAL_TIMEOUT_MINUTES: int = 10

    # 未指定提交人时使用的准入 Key（同一个 Key 同时只跑一个工作流）
    DEFAULT_SUBMITTER_KEY: str = "default"

    # 排队中的工作流重新检查准入队列的间隔（秒）
    ADMISSION_RECHECK_SECONDS: int = 60

    # 已结束运行的状态缓存时间（秒）
    RUN_STATUS_CACHE_TTL: int = 3600

    # Activity 最大尝试次数（包含第一次）
    GENERATION_MAX_ATTEMPTS: int = 3
    DISPATCH_MAX_ATTEMPTS: int = 3

    class Config:
        """Pydantic 配置类"""
        env_file = ".env"              # 从 .env 文件读取环境变量
        env_file_encoding = "utf-8"    # 文件编码
        case_sensitive = True          # 环境变量名区分大小写
        extra = "ignore"               # .env 中的无关变量直接忽略

    def missing_settings(self, *names: str) -> list[str]:
        """
        返回未配置（空字符串）的配置项名称

        Args:
            names: 要检查的配置项，不传则检查全部必需配置
        """
        names = names or REQUIRED_SETTINGS
        return [name for name in names if not str(getattr(self, name, "") or "").strip()]

    def ensure_configured(self, *names: str) -> None:
        """
        校验必需配置

        Raises:
            ConfigurationError: 任意一项缺失时抛出，消息中列出全部缺失项
        """
        missing = self.missing_settings(*names)
        if missing:
            raise ConfigurationError(
                f"缺少必需配置: {', '.join(missing)}（请在环境变量或 .env 中设置）"
            )


@lru_cache()
def get_settings() -> Settings:
    """
    获取配置实例（单例模式）

    Returns:
        Settings: 配置实例
    """
    return Settings()


# 导出配置实例，方便其他模块使用
# 使用方式：from memeflow.core.config import settings
settings = get_settings()
