# memeflow/workflows/activities/generation.py
# 候选图生成 Activity
#
# 一次调用生成一张图：
# 1. 调用 Gemini 生成图片
# 2. 上传到 UploadThing
# 3. 返回公开 URL
#
# Workflow 会对同一个提示词并发调用两次，得到两张不同的候选图。

import time
import uuid

from temporalio import activity

from memeflow.adapters.gemini import GeminiImageClient
from memeflow.core.config import settings
from memeflow.core.logging import get_logger
from memeflow.storage.uploadthing import UploadThingClient
from memeflow.workflows.types import GenerationRequest, GenerationResult

logger = get_logger(__name__)

# MIME 类型对应的文件扩展名
EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


def build_filename(mime_type: str) -> str:
    """meme-<毫秒时间戳>-<随机串>.<扩展名>，两张图并发上传也不会重名"""
    extension = EXTENSIONS.get(mime_type, "png")
    return f"meme-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{extension}"


@activity.defn(name="generate_meme_image")
async def generate_meme_image(request: GenerationRequest) -> GenerationResult:
    """
    生成一张候选梗图

    Args:
        request: 包含提示词

    Returns:
        GenerationResult: 图片公开 URL

    Raises:
        ConfigurationError: 缺少 GEMINI_API_KEY / UPLOADTHING_TOKEN
        GenerationFailure: 模型调用失败或没有返回图片
        UploadFailure: 上传失败
    """
    info = activity.info()
    logger.info(f"[Activity] 生成候选图")
    logger.info(f"  Workflow ID: {info.workflow_id}")
    logger.info(f"  Attempt: {info.attempt}")

    settings.ensure_configured("GEMINI_API_KEY", "UPLOADTHING_TOKEN")

    try:
        image = await GeminiImageClient().generate(request.prompt)
        image_url = await UploadThingClient().upload(
            image.data,
            build_filename(image.mime_type),
            content_type=image.mime_type,
        )
    except Exception as e:
        logger.error(f"生成候选图失败: {e} (prompt={request.prompt!r})")
        raise

    logger.info(f"[Activity] 候选图已生成: {image_url}")
    return GenerationResult(image_url=image_url)
