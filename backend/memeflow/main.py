# memeflow/main.py
# FastAPI 应用入口
#
# 功能说明：
# 1. 创建 FastAPI 应用实例
# 2. 配置中间件（CORS、日志）
# 3. 注册路由
# 4. 管理应用生命周期（Redis、Temporal Client）
#
# 启动命令：
#   uvicorn memeflow.main:app --reload --host 0.0.0.0 --port 8000
#
# Worker 单独运行：
#   python -m memeflow.workflows.worker

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from memeflow.core.config import settings
from memeflow.core.exceptions import ConfigurationError
from memeflow.core.redis import redis_client
from memeflow.core.logging import setup_logging, get_logger, RequestLoggingMiddleware
from memeflow.workflows.client import close_temporal_client

# 导入路由模块
from memeflow.api import health
from memeflow.api import memes
from memeflow.api import approvals


# 初始化日志系统（在应用启动前）
setup_logging()

# 获取当前模块的 logger
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理

    - 启动时：连接 Redis、检查配置
    - 关闭时：断开 Redis、释放 Temporal Client
    """
    # ==================== 启动阶段 ====================
    logger.info(f"正在启动 {settings.APP_NAME}...")

    missing = settings.missing_settings()
    if missing:
        # 不阻止启动，提交接口会在创建运行前返回 500
        logger.warning(f"缺少必需配置: {', '.join(missing)}")

    # 连接 Redis
    try:
        await redis_client.connect()
        logger.info("Redis 连接成功")
    except Exception as e:
        logger.error(f"Redis 连接失败: {e}")
        # Redis 不可用时状态查询不走缓存

    logger.info(f"{settings.APP_NAME} 启动完成")

    yield

    # ==================== 关闭阶段 ====================
    logger.info("正在关闭...")

    try:
        await redis_client.disconnect()
        logger.info("Redis 连接已断开")
    except Exception as e:
        logger.warning(f"Redis 断开连接时出错: {e}")

    await close_temporal_client()

    logger.info("清理完成，应用已关闭")


# ==================== 创建 FastAPI 应用 ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    MemeFlow - 梗图生成与人工审批

    - **POST /api/generate-meme**: 提交提示词，生成两张候选图并发到 Slack
    - **GET /api/generate-meme/result/{runId}**: 轮询结果
    - **GET /endpoints/{tokenId}?variant=N**: 审批按钮回调
    """,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ==================== 中间件配置 ====================

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 请求日志中间件
app.add_middleware(RequestLoggingMiddleware)


# ==================== 全局异常处理 ====================

@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    """缺少必需配置"""
    logger.error(f"配置错误: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": exc.message},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """处理 HTTP 异常"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """处理请求验证错误"""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Invalid request", "detail": exc.errors()},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """处理未捕获的异常"""
    logger.exception(f"未处理的异常: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": f"服务器内部错误: {str(exc)}"},
    )


# ==================== 注册路由 ====================

# 健康检查路由
# - GET /health - 基础健康检查
# - GET /health/detailed - Redis / Temporal / 配置状态
app.include_router(health.router)

# 梗图路由
# - POST /api/generate-meme - 提交提示词
# - GET /api/generate-meme/result/{run_id} - 查询结果
app.include_router(memes.router)

# 审批路由
# - GET /endpoints/{token_id} - 按钮链接
# - POST /api/slack/interactions - Slack 交互回调
app.include_router(approvals.router)


@app.get("/", tags=["Root"])
async def root():
    return {
        "name": settings.APP_NAME,
        "docs": "/docs",
        "health": "/health",
    }
