# tests/conftest.py
# Pytest 配置文件
#
# 功能：
# 1. 在导入 memeflow 之前设置测试用环境变量
# 2. 提供内存版 Redis（不依赖真实 Redis 服务）
# 3. 提供通用 fixtures

import os
import fnmatch
from typing import Optional

import pytest


# ==================== 环境配置 ====================
# settings 在首次导入时读取，必须先于任何 memeflow 导入

os.environ.setdefault("GEMINI_API_KEY", "test-gemini-key")
os.environ.setdefault("SLACK_WEBHOOK_URL", "https://hooks.slack.test/services/T000/B000/XXXX")
os.environ.setdefault("APP_BASE_URL", "https://memes.example.com")
os.environ.setdefault("UPLOADTHING_TOKEN", "sk_live_test")
os.environ.setdefault("SLACK_SIGNING_SECRET", "")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")


# ==================== Redis Fixtures ====================

class FakeRedis:
    """
    内存版 Redis

    只实现 memeflow 用到的命令，行为与 redis-py（decode_responses=True）一致。
    """

    def __init__(self):
        self.values: dict[str, str] = {}
        self.lists: dict[str, list[str]] = {}
        self.ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        pass

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False):
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None or self.lists.pop(key, None) is not None:
                removed += 1
        return removed

    async def expire(self, key: str, seconds: int) -> bool:
        if key not in self.values and key not in self.lists:
            return False
        self.ttls[key] = seconds
        return True

    async def rpush(self, key: str, *values: str) -> int:
        items = self.lists.setdefault(key, [])
        items.extend(values)
        return len(items)

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self.lists.get(key, [])
        stop = None if end == -1 else end + 1
        return list(items[start:stop])

    async def lindex(self, key: str, index: int) -> Optional[str]:
        items = self.lists.get(key, [])
        try:
            return items[index]
        except IndexError:
            return None

    async def lrem(self, key: str, count: int, value: str) -> int:
        items = self.lists.get(key, [])
        kept = [item for item in items if item != value]
        removed = len(items) - len(kept)
        if kept:
            self.lists[key] = kept
        else:
            self.lists.pop(key, None)
        return removed

    def keys_matching(self, pattern: str) -> list[str]:
        return [key for key in {**self.values, **self.lists} if fnmatch.fnmatch(key, pattern)]


@pytest.fixture
def fake_redis():
    """把全局 redis_client 换成内存版，测试结束后恢复"""
    from memeflow.core.redis import redis_client

    fake = FakeRedis()
    original = redis_client._client
    redis_client._client = fake
    yield fake
    redis_client._client = original


# ==================== API 客户端 Fixtures ====================

@pytest.fixture
def api_client(fake_redis, monkeypatch):
    """创建测试用 API 客户端（lifespan 中的 Redis 连接使用内存版）"""
    from fastapi.testclient import TestClient
    from memeflow.core.redis import redis_client
    from memeflow.main import app

    async def fake_connect():
        redis_client._client = fake_redis

    async def fake_disconnect():
        pass

    monkeypatch.setattr(redis_client, "connect", fake_connect)
    monkeypatch.setattr(redis_client, "disconnect", fake_disconnect)

    with TestClient(app) as client:
        yield client
