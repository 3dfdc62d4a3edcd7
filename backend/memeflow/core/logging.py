# memeflow/core/logging.py
# 日志配置模块
#
# 功能说明：
# 1. 统一管理 API 进程和 Worker 进程的日志输出
# 2. 支持两种格式：彩色控制台（开发）和 JSON（生产）
# 3. 自动记录请求信息（中间件）
# 4. 与 Temporal、uvicorn、httpx 等库兼容
#
# 使用方法：
#   from memeflow.core.logging import get_logger
#   logger = get_logger(__name__)
#   logger.info("这是一条日志")
#
# 注意：Workflow 代码里使用 workflow.logger，不要使用这里的 logger

import logging
import sys
import json
import time
from datetime import datetime
from typing import Optional, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from temporalio import activity

from memeflow.core.config import settings


# ==================== 彩色输出支持 ====================

class Colors:
    """终端颜色代码"""
    RESET = "\033[0m"
    RED = "\033[31m"       # ERROR
    GREEN = "\033[32m"     # INFO
    YELLOW = "\033[33m"    # WARNING
    BLUE = "\033[34m"      # DEBUG
    MAGENTA = "\033[35m"   # CRITICAL
    CYAN = "\033[36m"      # 时间戳
    GRAY = "\033[90m"      # 位置信息


# 日志级别对应的颜色
LEVEL_COLORS = {
    "DEBUG": Colors.BLUE,
    "INFO": Colors.GREEN,
    "WARNING": Colors.YELLOW,
    "ERROR": Colors.RED,
    "CRITICAL": Colors.MAGENTA,
}


# ==================== Temporal 上下文 ====================

class TemporalContextFilter(logging.Filter):
    """
    给日志记录补上所属运行的 workflow_id / run_id

    来源依次为：
    1. workflow.logger 附加的 temporal_workflow
    2. activity.logger 附加的 temporal_activity
    3. 当前 Activity 上下文（Activity 里用 get_logger 打的日志）
    """

    def filter(self, record: logging.LogRecord) -> bool:
        workflow_id, run_id = None, None

        workflow_extra = getattr(record, "temporal_workflow", None)
        activity_extra = getattr(record, "temporal_activity", None)
        if workflow_extra:
            workflow_id = workflow_extra.get("workflow_id")
            run_id = workflow_extra.get("run_id")
        elif activity_extra:
            workflow_id = activity_extra.get("workflow_id")
            run_id = activity_extra.get("workflow_run_id")
        else:
            try:
                info = activity.info()
                workflow_id, run_id = info.workflow_id, info.workflow_run_id
            except RuntimeError:
                # 不在 Activity 里（API 进程、Worker 启动日志等）
                pass

        record.workflow_id = workflow_id
        record.run_id = run_id
        return True


# ==================== 自定义 Formatter ====================

class ColoredFormatter(logging.Formatter):
    """
    彩色日志格式化器（开发环境使用）

    输出格式：
    2026-01-30 12:00:00 | INFO     | memeflow.api.memes:generate_meme:98 - 梗图工作流已启动: meme-1234

    Workflow / Activity 内的日志在位置后附带 workflow_id：
    2026-01-30 12:00:05 | INFO     | memeflow.workflows.activities.generation:generate_meme_image:55 [meme-1234] - [Activity] 生成候选图
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        level_name = record.levelname
        level_color = LEVEL_COLORS.get(level_name, Colors.RESET)

        # 模块名:函数名:行号
        location = f"{record.name}:{record.funcName}:{record.lineno}"
        workflow_id = getattr(record, "workflow_id", None)
        if workflow_id:
            location += f" [{workflow_id}]"

        formatted = (
            f"{Colors.CYAN}{timestamp}{Colors.RESET} | "
            f"{level_color}{level_name:8}{Colors.RESET} | "
            f"{Colors.GRAY}{location}{Colors.RESET} - "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


class JSONFormatter(logging.Formatter):
    """
    JSON 日志格式化器（生产环境使用）

    每行一个 JSON 对象，便于 ELK、Loki 等工具解析
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        # 由 TemporalContextFilter 注入，只在 Workflow / Activity 内存在
        for field in ("workflow_id", "run_id"):
            value = getattr(record, field, None)
            if value:
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # 通过 extra={"extra_data": {...}} 传入的上下文
        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False, default=str)


# ==================== Logger 工厂函数 ====================

def setup_logging() -> None:
    """
    初始化日志系统

    在 API 进程（memeflow/main.py）和 Worker 进程（memeflow/workflows/worker.py）
    启动时各调用一次
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL)

    # 清除已有的 handler（避免重复添加）
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(settings.LOG_LEVEL)

    if settings.LOG_FORMAT == "json":
        formatter = JSONFormatter()
    else:
        formatter = ColoredFormatter()

    console_handler.setFormatter(formatter)
    console_handler.addFilter(TemporalContextFilter())
    root_logger.addHandler(console_handler)

    # 第三方库日志级别
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    # Temporal SDK 在 DEBUG 模式下输出更多细节
    logging.getLogger("temporalio").setLevel(
        logging.DEBUG if settings.DEBUG else logging.INFO
    )


def get_logger(name: str) -> logging.Logger:
    """
    获取 logger 实例

    Args:
        name: logger 名称，通常传入 __name__

    Returns:
        logging.Logger: logger 实例
    """
    return logging.getLogger(name)


# ==================== 请求日志中间件 ====================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    HTTP 请求日志中间件

    输出示例：
    INFO | POST /api/generate-meme -> 200 (45ms)
    """

    def __init__(self, app, logger: Optional[logging.Logger] = None):
        super().__init__(app)
        self.logger = logger or get_logger("memeflow.request")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        method = request.method
        path = request.url.path
        query = str(request.url.query) if request.url.query else ""

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            duration = (time.time() - start_time) * 1000
            self.logger.error(
                f"{method} {path} -> 500 ERROR ({duration:.0f}ms) - {str(e)}"
            )
            raise

        duration = (time.time() - start_time) * 1000

        log_message = f"{method} {path}"
        if query:
            log_message += f"?{query}"
        log_message += f" -> {status_code} ({duration:.0f}ms)"

        # 200-299 INFO，400-499 WARNING，500+ ERROR
        if status_code >= 500:
            self.logger.error(log_message)
        elif status_code >= 400:
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)

        return response
