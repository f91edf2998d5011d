import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from docanalysis.models.schemas import AnalysisResult, AnalysisStatus
from docanalysis.utils.config import Settings

logger = logging.getLogger(__name__)

CACHEABLE = (AnalysisStatus.SUCCEEDED, AnalysisStatus.FAILED)


class ResultCache:
    """Redis store for terminal analysis results, keyed by model and result id.

    Every operation degrades to a miss when Redis cannot be reached.
    """

    KEY_PREFIX = "docanalysis:result"

    def __init__(self, redis_url: str, ttl: int = 3600):
        self.redis_url = redis_url
        self.ttl = ttl
        self._client: Optional[redis.Redis] = None
        self._is_connected = False

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ResultCache"]:
        if not settings.cache_enabled:
            return None
        return cls(settings.redis_url, settings.cache_ttl)

    def _key(self, model_id: str, result_id: str) -> str:
        return f"{self.KEY_PREFIX}:{model_id}:{result_id}"

    async def initialize(self) -> bool:
        if self._is_connected and self._client:
            return True
        try:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=10,
                health_check_interval=30,
            )
            await asyncio.wait_for(self._client.ping(), timeout=5)
            self._is_connected = True
            logger.info("✅ Redis result cache connected")
            return True
        except (redis.ConnectionError, redis.TimeoutError, asyncio.TimeoutError, OSError, ValueError) as e:
            logger.warning(f"Redis result cache unavailable, running without cache: {e}")
            self._client = None
            self._is_connected = False
            return False

    async def _get_client(self) -> Optional[redis.Redis]:
        if not self._client or not self._is_connected:
            await self.initialize()
        return self._client

    async def get(self, model_id: str, result_id: str) -> Optional[AnalysisResult]:
        try:
            client = await self._get_client()
            if not client:
                return None
            data = await client.get(self._key(model_id, result_id))
        except redis.RedisError as e:
            logger.warning(f"Redis get failed: {e}")
            self._is_connected = False
            return None
        if not data:
            return None
        try:
            result = AnalysisResult.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache entry for {result_id}: {e}")
            return None
        logger.debug(f"Cache hit for {model_id}/{result_id}")
        return result

    async def set(self, result: AnalysisResult) -> bool:
        if result.status not in CACHEABLE or not result.result_id or not result.model_id:
            return False
        try:
            client = await self._get_client()
            if not client:
                return False
            await client.setex(
                self._key(result.model_id, result.result_id),
                self.ttl,
                result.model_dump_json(),
            )
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis setex failed: {e}")
            self._is_connected = False
            return False

    async def health_check(self) -> bool:
        try:
            client = await self._get_client()
            if client:
                await client.ping()
                return True
            return False
        except redis.RedisError:
            self._is_connected = False
            return False

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None
            self._is_connected = False
            logger.info("Redis connection closed")
