from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.service_duration import (
    InMemoryServiceDurationSource,
    RedisServiceDurationSource,
    ServiceDurationSource,
)


@pytest.mark.asyncio
async def test_falls_back_when_missing():
    source = InMemoryServiceDurationSource(fallback=12.0)
    assert await source.average_for("unknown") == 12.0


@pytest.mark.asyncio
async def test_non_positive_average_uses_fallback():
    source = InMemoryServiceDurationSource({"c": 0}, fallback=12.0)
    assert await source.average_for("c") == 12.0


@pytest.mark.asyncio
async def test_rolling_average():
    source = InMemoryServiceDurationSource(fallback=12.0, smoothing=0.5)
    assert await source.record_service("c", 10) == 10.0
    assert await source.record_service("c", 20) == 15.0
    assert await source.average_for("c") == 15.0


@pytest.mark.asyncio
async def test_rejects_non_positive_sample():
    source = InMemoryServiceDurationSource()
    with pytest.raises(ValueError):
        await source.record_service("c", 0)


def test_base_source_needs_storage():
    with pytest.raises(TypeError):
        ServiceDurationSource(fallback=12.0)


def redis_mock(**methods):
    client = MagicMock()
    client.get_service_duration = AsyncMock(**methods)
    client.set_service_duration = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_redis_source_reads_and_writes():
    client = redis_mock(return_value=8.5)
    source = RedisServiceDurationSource(client, ttl=60, fallback=15.0)

    assert await source.average_for("c") == 8.5
    await source.set_average("c", 9.0)

    client.get_service_duration.assert_awaited_once_with("c")
    client.set_service_duration.assert_awaited_once_with("c", 9.0, expire=60)


@pytest.mark.asyncio
async def test_redis_failure_falls_back():
    client = redis_mock(side_effect=RedisConnectionError("down"))
    source = RedisServiceDurationSource(client, fallback=15.0)
    assert await source.average_for("c") == 15.0


@pytest.mark.asyncio
async def test_redis_garbage_falls_back():
    client = redis_mock(side_effect=ValueError("could not convert"))
    source = RedisServiceDurationSource(client, fallback=15.0)
    assert await source.average_for("c") == 15.0


@pytest.mark.asyncio
async def test_redis_client_keys():
    from app.core.redis import RedisClient

    client = RedisClient()
    client.redis = MagicMock()
    client.redis.get = AsyncMock(side_effect=["7.5", None])
    client.redis.set = AsyncMock()

    await client.set_service_duration("c", 7.5, expire=600)
    assert await client.get_service_duration("c") == 7.5
    assert await client.get_service_duration("c") is None
    client.redis.set.assert_awaited_once_with("service_duration:c", "7.5", ex=600)
