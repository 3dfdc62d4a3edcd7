# tests/test_uploadthing.py
# UploadThing 上传测试（HTTP 使用 httpx.MockTransport）

import base64
import json

import httpx
import pytest

from memeflow.core.exceptions import ConfigurationError, UploadFailure
from memeflow.storage.uploadthing import UploadThingClient, resolve_api_key


API_URL = "https://api.uploadthing.test"
PNG = b"\x89PNG\r\n\x1a\nfake"


def encode_token(data: dict) -> str:
    return base64.b64encode(json.dumps(data).encode()).decode().rstrip("=")


class TestResolveApiKey:

    def test_plain_key(self):
        assert resolve_api_key("sk_live_123") == "sk_live_123"

    def test_base64_token(self):
        token = encode_token({"apiKey": "sk_live_abc", "appId": "app1", "regions": ["sea1"]})

        assert resolve_api_key(token) == "sk_live_abc"

    @pytest.mark.parametrize("token", ["", "   ", "!!!not-base64!!!", encode_token({"appId": "x"})])
    def test_invalid_token(self, token):
        with pytest.raises(ConfigurationError):
            resolve_api_key(token)


class TestUploadThingClient:

    @pytest.mark.asyncio
    async def test_upload_with_presigned_fields(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path == "/v6/uploadFiles":
                return httpx.Response(200, json={"data": [{
                    "url": "https://bucket.s3.test/upload",
                    "fields": {"key": "abc", "policy": "xyz"},
                    "fileUrl": "https://utfs.io/f/abc",
                    "ufsUrl": "https://app1.ufs.sh/f/abc",
                }]})
            return httpx.Response(204)

        client = UploadThingClient(token="sk_live_123", api_url=API_URL, transport=httpx.MockTransport(handler))
        url = await client.upload(PNG, "meme-1.png")

        assert url == "https://app1.ufs.sh/f/abc"
        presign, upload = requests
        assert presign.headers["X-Uploadthing-Api-Key"] == "sk_live_123"
        assert json.loads(presign.content)["files"] == [
            {"name": "meme-1.png", "size": len(PNG), "type": "image/png"}
        ]
        assert upload.method == "POST"
        assert str(upload.url) == "https://bucket.s3.test/upload"

    @pytest.mark.asyncio
    async def test_upload_with_put(self):
        methods = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            if request.url.path == "/v6/uploadFiles":
                return httpx.Response(200, json={"data": [{
                    "url": "https://sea1.ingest.uploadthing.test/abc",
                    "fileUrl": "https://utfs.io/f/abc",
                }]})
            return httpx.Response(200, json={})

        client = UploadThingClient(token="sk_live_123", api_url=API_URL, transport=httpx.MockTransport(handler))
        url = await client.upload(PNG, "meme-1.png")

        assert url == "https://utfs.io/f/abc"
        assert methods == ["POST", "PUT"]

    @pytest.mark.asyncio
    async def test_missing_file_url(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/v6/uploadFiles":
                return httpx.Response(200, json={"data": [{"url": "https://bucket.s3.test/upload"}]})
            return httpx.Response(200)

        client = UploadThingClient(token="sk_live_123", api_url=API_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(UploadFailure) as exc_info:
            await client.upload(PNG, "meme-1.png")

        assert exc_info.value.message == "UploadThing did not return a file URL"

    @pytest.mark.asyncio
    async def test_presign_rejected(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "Invalid API key"}))
        client = UploadThingClient(token="sk_live_123", api_url=API_URL, transport=transport)

        with pytest.raises(UploadFailure):
            await client.upload(PNG, "meme-1.png")
