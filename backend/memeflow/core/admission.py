# memeflow/core/admission.py
# 按提交人排队的准入控制
#
# 功能说明：
# 同一个提交人（submitter key）同一时刻只允许一个工作流运行，
# 其余提交按到达顺序排队，避免给同一个审批人同时推送多条 Slack 消息。
# 不同 Key 之间互不影响。
#
# 实现方式：
# - 每个 Key 对应一个 Redis List：admission:<key>
# - List 里按顺序存放 workflow_id，队首即当前被准入的运行
# - 运行结束时从队列中移除自己，新的队首由调用方负责通知
#
# 使用方法：
#   gate = AdmissionGate(redis_client)
#   if await gate.enqueue("alice", workflow_id):
#       ...  # 立即准入
#   next_id = await gate.release("alice", workflow_id)

from typing import Optional

from memeflow.core.redis import RedisClient, redis_client
from memeflow.core.logging import get_logger

logger = get_logger(__name__)

# Redis Key 前缀
ADMISSION_KEY_PREFIX = "admission:"

# 队列过期时间（秒），每次入队时刷新
# 防止所有运行都异常消失后队列永久残留
DEFAULT_QUEUE_TTL = 24 * 3600


class AdmissionGate:
    """
    按 Key 排队的准入闸门

    队首成员被视为持有该 Key 的运行权。
    """

    def __init__(self, redis: Optional[RedisClient] = None, queue_ttl: int = DEFAULT_QUEUE_TTL):
        self._redis = redis or redis_client
        self._queue_ttl = queue_ttl

    @staticmethod
    def queue_key(submitter_key: str) -> str:
        return f"{ADMISSION_KEY_PREFIX}{submitter_key}"

    async def enqueue(self, submitter_key: str, member: str) -> bool:
        """
        加入队列

        重复入队（Activity 重试）不会产生重复成员。

        Returns:
            bool: True 表示已经位于队首，可以立即运行
        """
        key = self.queue_key(submitter_key)
        members = await self._redis.lrange(key)
        if member not in members:
            await self._redis.rpush(key, member)
            logger.info(f"加入准入队列: key={submitter_key}, member={member}, 前面还有 {len(members)} 个")
        await self._redis.expire(key, self._queue_ttl)
        return await self.head(submitter_key) == member

    async def head(self, submitter_key: str) -> Optional[str]:
        """当前持有运行权的成员"""
        return await self._redis.lindex(self.queue_key(submitter_key), 0)

    async def position(self, submitter_key: str, member: str) -> Optional[int]:
        """成员在队列中的位置（0 为队首），不在队列中返回 None"""
        members = await self._redis.lrange(self.queue_key(submitter_key))
        try:
            return members.index(member)
        except ValueError:
            return None

    async def release(self, submitter_key: str, member: str) -> Optional[str]:
        """
        从队列中移除成员

        Returns:
            Optional[str]: 移除后新的队首（需要被通知），队列为空返回 None
        """
        key = self.queue_key(submitter_key)
        removed = await self._redis.lrem(key, member)
        if removed:
            logger.info(f"离开准入队列: key={submitter_key}, member={member}")
        return await self.head(submitter_key)
