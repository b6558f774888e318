from __future__ import annotations

import time
from typing import Dict, Optional, Protocol, Tuple, Type, TypeVar

import redis.asyncio as redis
from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)


class Storage(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_sec: Optional[int] = None) -> None: ...

    async def delete(self, *keys: str) -> None: ...


class RedisStorage:
    def __init__(self, host: str, port: int):
        self.r = redis.Redis(host=host, port=port, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self.r.get(key)

    async def set(self, key: str, value: str, ttl_sec: Optional[int] = None) -> None:
        await self.r.set(key, value, ex=ttl_sec)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self.r.delete(*keys)

    async def close(self) -> None:
        await self.r.aclose()


class MemoryStorage:
    """Process-local storage with the same contract as RedisStorage."""

    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= time.monotonic():
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_sec: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_sec if ttl_sec else None
        self._data[key] = (value, expires_at)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


async def load_model(storage: Storage, key: str, model: Type[M]) -> Optional[M]:
    raw = await storage.get(key)
    if not raw:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError:
        return None


async def save_model(storage: Storage, key: str, value: BaseModel, ttl_sec: Optional[int] = None) -> None:
    await storage.set(key, value.model_dump_json(), ttl_sec=ttl_sec)
