"""
Session-scoped balance cache on Redis.

The ledger stays the source of truth: a cached value is only a read-back of
the last computed balance, invalidated by every ledger write for the user and
by logout. Cache failures are logged and treated as a miss, never raised.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis.asyncio as redis

from softpoints.config import Settings

logger = logging.getLogger(__name__)

R = TypeVar("R")


def balance_key(user_id: int) -> str:
    return f"softpoints:balance:{user_id}"


class RedisService:
    def __init__(self, settings: Settings):
        self._settings = settings
        self._client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return self._settings.REDIS_ENABLED

    async def _connect(self) -> Optional[redis.Redis]:
        if not self.enabled:
            return None
        if self._client is not None:
            return self._client

        options: dict = {
            "host": self._settings.REDIS_HOST,
            "port": self._settings.REDIS_PORT,
            "db": self._settings.REDIS_DB,
            "decode_responses": True,
            "socket_connect_timeout": 2,
            "health_check_interval": 30,
        }
        if self._settings.REDIS_PASSWORD:
            options["password"] = self._settings.REDIS_PASSWORD

        client = redis.Redis(**options)
        try:
            await client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable, balance cache disabled for now: {e}")
            await client.aclose()
            return None
        self._client = client
        return client

    async def _run(
        self, op: str, user_id: int, call: Callable[[redis.Redis], Awaitable[R]], default: R
    ) -> R:
        client = await self._connect()
        if client is None:
            return default
        try:
            return await call(client)
        except redis.RedisError as e:
            logger.warning(f"Redis {op} failed for user {user_id}: {e}")
            return default

    async def get_cached_balance(self, user_id: int) -> Optional[int]:
        raw: Any = await self._run(
            "GET", user_id, lambda c: c.get(balance_key(user_id)), None
        )
        return int(raw) if raw is not None else None

    async def cache_balance(self, user_id: int, balance: int) -> bool:
        async def _set(client: redis.Redis) -> bool:
            await client.setex(
                balance_key(user_id), self._settings.BALANCE_CACHE_TTL_SECONDS, balance
            )
            return True

        return await self._run("SETEX", user_id, _set, False)

    async def invalidate_balance(self, user_id: int) -> bool:
        async def _delete(client: redis.Redis) -> bool:
            await client.delete(balance_key(user_id))
            return True

        return await self._run("DEL", user_id, _delete, False)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
