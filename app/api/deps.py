from app.core.redis import redis_client
from app.services.queue_service import QueueService
from app.services.service_duration import RedisServiceDurationSource

queue_service = QueueService(RedisServiceDurationSource(redis_client))

async def get_queue_service() -> QueueService:
    return queue_service
