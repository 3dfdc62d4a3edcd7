# memeflow/storage/uploadthing.py
# UploadThing 文件托管模块
#
# 功能说明：
# 1. 把生成的图片上传到 UploadThing
# 2. 返回可公开访问的 URL（用于 Slack 消息和最终结果）
#
# 上传流程（REST API v6）：
# 1. POST /v6/uploadFiles 申请预签名上传地址
# 2. 按返回的 url/fields 把文件传到存储端
# 3. 使用返回的 ufsUrl / fileUrl 作为公开地址
#
# 使用方法：
#   from memeflow.storage.uploadthing import UploadThingClient
#   client = UploadThingClient()
#   url = await client.upload(image_bytes, "meme-123.png")
#
# 注意事项：
# - 需要配置 UPLOADTHING_TOKEN（控制台里的 base64 token 或 sk_ 开头的 API Key）

import base64
import binascii
import json
from typing import Optional

import httpx

from memeflow.core.config import settings
from memeflow.core.exceptions import ConfigurationError, UploadFailure
from memeflow.core.logging import get_logger

logger = get_logger(__name__)

# 申请预签名地址的接口
PRESIGN_PATH = "/v6/uploadFiles"

# 上传请求超时（秒）
UPLOAD_TIMEOUT = 60.0


def resolve_api_key(token: str) -> str:
    """
    从 UPLOADTHING_TOKEN 中取出 API Key

    新版控制台给的是 base64 编码的 JSON：{"apiKey": "sk_...", "appId": "...", "regions": [...]}
    旧版直接给 sk_ 开头的 Key。

    Raises:
        ConfigurationError: token 为空或无法解析
    """
    token = (token or "").strip()
    if not token:
        raise ConfigurationError("缺少必需配置: UPLOADTHING_TOKEN")

    if token.startswith("sk_"):
        return token

    try:
        # 补齐 base64 padding
        decoded = base64.b64decode(token + "=" * (-len(token) % 4))
        data = json.loads(decoded)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(f"UPLOADTHING_TOKEN 格式不正确: {e}") from e

    api_key = data.get("apiKey") if isinstance(data, dict) else None
    if not api_key:
        raise ConfigurationError("UPLOADTHING_TOKEN 中缺少 apiKey")
    return api_key


class UploadThingClient:
    """
    UploadThing 客户端封装

    属性说明：
    - api_url: UploadThing API 地址
    - _api_key: 从 token 中解析出的 sk_ Key
    - _transport: 可注入的 httpx transport（测试用）
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if token is None:
            settings.ensure_configured("UPLOADTHING_TOKEN")
            token = settings.UPLOADTHING_TOKEN
        self._api_key = resolve_api_key(token)
        self.api_url = (api_url or settings.UPLOADTHING_API_URL).rstrip("/")
        self._transport = transport

    async def upload(
        self,
        data: bytes,
        filename: str,
        content_type: str = "image/png",
    ) -> str:
        """
        上传文件

        Args:
            data: 文件内容
            filename: 文件名
            content_type: MIME 类型

        Returns:
            str: 文件的公开 URL

        Raises:
            UploadFailure: 上传失败或没有返回 URL
        """
        logger.info(f"上传文件到 UploadThing: {filename} ({len(data)} bytes)")

        try:
            async with httpx.AsyncClient(timeout=UPLOAD_TIMEOUT, transport=self._transport) as client:
                # 1. 申请预签名地址
                presign = await client.post(
                    f"{self.api_url}{PRESIGN_PATH}",
                    headers={"X-Uploadthing-Api-Key": self._api_key},
                    json={
                        "files": [{"name": filename, "size": len(data), "type": content_type}],
                        "acl": "public-read",
                        "contentDisposition": "inline",
                    },
                )
                presign.raise_for_status()
                items = presign.json().get("data") or []
                if not items:
                    raise UploadFailure("UploadThing 没有返回预签名地址")
                item = items[0]

                # 2. 上传文件
                upload_url = item.get("url")
                if not upload_url:
                    raise UploadFailure("UploadThing 没有返回上传地址")

                fields = item.get("fields")
                if fields:
                    # S3 表单上传
                    response = await client.post(
                        upload_url,
                        data=fields,
                        files={"file": (filename, data, content_type)},
                    )
                else:
                    response = await client.put(
                        upload_url,
                        files={"file": (filename, data, content_type)},
                    )
                response.raise_for_status()

        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"UploadThing 上传失败: {e}")
            raise UploadFailure(f"UploadThing 上传失败: {e}") from e

        # 3. 公开地址
        file_url = item.get("ufsUrl") or item.get("fileUrl") or item.get("appUrl")
        if not file_url:
            raise UploadFailure("UploadThing did not return a file URL")

        logger.info(f"上传成功: {file_url}")
        return file_url
