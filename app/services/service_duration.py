from abc import ABC, abstractmethod
from typing import Optional

from redis.exceptions import RedisError

from app.core.config import settings
from app.core.logger import get_logger
from app.core.redis import RedisClient

logger = get_logger("service_duration")


class ServiceDurationSource(ABC):
    """
    Per-clinic average consultation length in minutes per patient.

    Subclasses provide storage through ``get_average``/``set_average``; a
    missing or non-positive value resolves to the configured fallback.
    """

    def __init__(self, fallback: Optional[float] = None, smoothing: Optional[float] = None):
        self.fallback = fallback if fallback is not None else settings.DEFAULT_SERVICE_DURATION_MINUTES
        self.smoothing = smoothing if smoothing is not None else settings.SERVICE_DURATION_SMOOTHING

    @abstractmethod
    async def get_average(self, clinic_id: str) -> Optional[float]:
        ...

    @abstractmethod
    async def set_average(self, clinic_id: str, minutes: float) -> None:
        ...

    async def average_for(self, clinic_id: str) -> float:
        value = await self.get_average(clinic_id)
        if value is None or value <= 0:
            return self.fallback
        return value

    async def record_service(self, clinic_id: str, minutes: float) -> float:
        """Fold one observed consultation length into the rolling average."""
        if minutes <= 0:
            raise ValueError("Service duration must be positive")
        current = await self.get_average(clinic_id)
        if current is None or current <= 0:
            updated = float(minutes)
        else:
            updated = current + self.smoothing * (minutes - current)
        await self.set_average(clinic_id, updated)
        return updated


class InMemoryServiceDurationSource(ServiceDurationSource):
    def __init__(self, averages: Optional[dict] = None, **kwargs):
        super().__init__(**kwargs)
        self._averages = dict(averages or {})

    async def get_average(self, clinic_id: str) -> Optional[float]:
        return self._averages.get(clinic_id)

    async def set_average(self, clinic_id: str, minutes: float) -> None:
        self._averages[clinic_id] = float(minutes)


class RedisServiceDurationSource(ServiceDurationSource):
    def __init__(self, client: RedisClient, ttl: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.client = client
        self.ttl = ttl if ttl is not None else settings.SERVICE_DURATION_TTL_SECONDS

    async def get_average(self, clinic_id: str) -> Optional[float]:
        try:
            return await self.client.get_service_duration(clinic_id)
        except ValueError:
            logger.warning(f"Unreadable service duration for clinic {clinic_id}; using fallback")
            return None
        except RedisError as exc:
            logger.warning(f"Service duration lookup failed for clinic {clinic_id}: {exc}")
            return None

    async def set_average(self, clinic_id: str, minutes: float) -> None:
        await self.client.set_service_duration(clinic_id, minutes, expire=self.ttl)
