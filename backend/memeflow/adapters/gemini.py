# memeflow/adapters/gemini.py
# Gemini 图片生成客户端
#
# 功能说明：
# 1. 调用 Gemini 支持图片输出的模型生成一张梗图
# 2. 从响应中找出第一张图片（inline_data，mime_type 以 image/ 开头）
#
# 使用方法：
#   client = GeminiImageClient(api_key="xxx")
#   image = await client.generate("cat wearing sunglasses")
#   image.data       # 图片二进制
#   image.mime_type  # image/png
#
# 注意：模型每次输出都不同，同一个提示词调用两次会得到两张不同的图

import base64
from dataclasses import dataclass
from typing import Any, Optional

from google import genai
from google.genai import types

from memeflow.core.config import settings
from memeflow.core.exceptions import GenerationFailure
from memeflow.core.logging import get_logger

logger = get_logger(__name__)

# 提示词模板
MEME_PROMPT_TEMPLATE = "Generate a meme image for the following prompt: {prompt}"


@dataclass
class GeneratedImage:
    """模型返回的一张图片"""
    data: bytes
    mime_type: str


def extract_image(response: Any) -> Optional[GeneratedImage]:
    """
    从 generate_content 响应中取出第一张图片

    只看第一个 candidate，文本 part 会被跳过。

    Returns:
        Optional[GeneratedImage]: 没有图片时返回 None
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None

    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []

    for part in parts:
        inline_data = getattr(part, "inline_data", None)
        if inline_data is None:
            continue
        mime_type = getattr(inline_data, "mime_type", None) or ""
        data = getattr(inline_data, "data", None)
        if not mime_type.startswith("image/") or not data:
            continue
        # SDK 一般直接给 bytes，兼容 base64 字符串
        if isinstance(data, str):
            data = base64.b64decode(data)
        return GeneratedImage(data=data, mime_type=mime_type)

    return None


class GeminiImageClient:
    """
    Gemini 图片生成客户端

    使用 google-genai 的异步接口（client.aio），不阻塞事件循环。
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[genai.Client] = None,
    ):
        self.model = model or settings.GEMINI_IMAGE_MODEL
        if client is not None:
            self._client = client
        else:
            settings.ensure_configured("GEMINI_API_KEY")
            self._client = genai.Client(api_key=api_key or settings.GEMINI_API_KEY)

    async def generate(self, prompt: str) -> GeneratedImage:
        """
        根据提示词生成一张梗图

        Args:
            prompt: 用户输入的提示词

        Returns:
            GeneratedImage: 生成的图片

        Raises:
            GenerationFailure: 调用失败或响应中没有图片
        """
        logger.info(f"调用 Gemini 生成图片: model={self.model}, prompt={prompt!r}")

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=MEME_PROMPT_TEMPLATE.format(prompt=prompt),
                config=types.GenerateContentConfig(
                    response_modalities=["TEXT", "IMAGE"],
                ),
            )
        except Exception as e:
            logger.error(f"Gemini 调用失败: {e}")
            raise GenerationFailure(f"Gemini 调用失败: {e}") from e

        image = extract_image(response)
        if image is None:
            raise GenerationFailure(
                "Failed to generate meme image - no image data found in response"
            )

        logger.info(f"Gemini 图片生成成功: {image.mime_type}, {len(image.data)} bytes")
        return image
