import redis.asyncio as redis
from app.core.config import settings

class RedisClient:
    def __init__(self):
        self.redis = redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)

    async def set_service_duration(self, clinic_id: str, minutes: float, expire: int):
        await self.redis.set(f"service_duration:{clinic_id}", str(minutes), ex=expire)

    async def get_service_duration(self, clinic_id: str) -> float | None:
        value = await self.redis.get(f"service_duration:{clinic_id}")
        if value is None:
            return None
        return float(value)

    async def close(self):
        await self.redis.aclose()

redis_client = RedisClient()
