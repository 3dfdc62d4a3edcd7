# memeflow/api/memes.py
# 梗图生成 API 端点
#
# API 列表：
# - POST /api/generate-meme                   - 提交提示词，启动工作流
# - GET  /api/generate-meme/result/{run_id}   - 轮询运行状态

from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from memeflow.core.config import settings
from memeflow.core.exceptions import RunNotFound
from memeflow.core.logging import get_logger
from memeflow.services.run_status import run_status_service
from memeflow.workflows.client import start_meme_workflow

# 获取 logger
logger = get_logger(__name__)

# 创建路由
router = APIRouter(
    prefix="/api/generate-meme",
    tags=["Memes"],
)


# ==================== 请求/响应模型 ====================

class GenerateMemeRequest(BaseModel):
    """提交梗图请求"""
    prompt: Optional[str] = Field(None, description="提示词")
    submitter_key: Optional[str] = Field(
        None,
        alias="submitterKey",
        description="提交人标识，同一提交人的请求依次执行",
    )

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "prompt": "cat wearing sunglasses at a job interview",
                "submitterKey": "alice",
            }
        }


class GenerateMemeResponse(BaseModel):
    """提交结果"""
    success: bool = Field(..., description="是否已启动")
    run_id: str = Field(..., alias="runId", description="运行 ID，用于轮询结果")

    class Config:
        populate_by_name = True


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ==================== API 端点 ====================

@router.post(
    "",
    summary="生成梗图",
    description="生成两张候选梗图并发送到 Slack 等待审批，立即返回 runId",
)
async def generate_meme(request: Optional[GenerateMemeRequest] = None):
    """
    启动梗图工作流

    提示词缺失或为空时返回 400，不会创建任何运行。
    """
    prompt = (request.prompt if request else None) or ""
    if not prompt.strip():
        return error_response(status.HTTP_400_BAD_REQUEST, "Prompt is required")

    # 缺少配置时在启动前失败（由全局异常处理返回 500）
    settings.ensure_configured()

    try:
        run_id = await start_meme_workflow(prompt, submitter_key=request.submitter_key)
    except Exception as e:
        logger.error(f"启动梗图工作流失败: {e}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Failed to start meme workflow: {e}",
        )

    logger.info(f"梗图工作流已启动: {run_id}")
    return GenerateMemeResponse(success=True, run_id=run_id).model_dump(by_alias=True)


@router.get(
    "/result/{run_id}",
    summary="查询梗图结果",
    description="返回 pending / complete / error",
)
async def get_meme_result(run_id: str):
    """
    轮询运行状态

    只读操作，可以重复、并发调用。
    """
    try:
        run_status = await run_status_service.get_status(run_id)
    except RunNotFound as e:
        return error_response(status.HTTP_404_NOT_FOUND, str(e))
    except Exception as e:
        logger.error(f"查询运行状态失败: {run_id}, error={e}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Failed to get meme result: {e}",
        )

    return run_status.to_response()
