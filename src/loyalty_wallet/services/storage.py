"""Key/value blob stores backing wallet persistence."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from redis.asyncio import Redis

from loyalty_wallet.core.settings import Settings, settings


class BlobStore(Protocol):
    """Async string key/value store supplied by the host."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...


class StorageError(RuntimeError):
    """Raised by in-memory stores configured to simulate an outage."""


@dataclass(frozen=True, slots=True)
class StorageKeys:
    """Namespaced keys for wallet blobs."""

    coupons_prefix: str = "coupons_v1"
    previous_tier_prefix: str = "previous_tier_v1"
    favorites: str = "coupon_favorites_v1"

    @classmethod
    def from_settings(cls, app_settings: Settings | None = None) -> "StorageKeys":
        resolved = app_settings or settings
        return cls(
            coupons_prefix=resolved.coupons_storage_prefix,
            previous_tier_prefix=resolved.previous_tier_storage_prefix,
            favorites=resolved.favorites_storage_key,
        )

    def coupons(self, user_id: str) -> str:
        return f"{self.coupons_prefix}:{user_id}"

    def previous_tier(self, user_id: str) -> str:
        return f"{self.previous_tier_prefix}:{user_id}"


class RedisBlobStore:
    """Blob store backed by Redis string values."""

    def __init__(self, redis_client: Redis | None = None, *, redis_url: str | None = None) -> None:
        self._redis = redis_client or Redis.from_url(
            redis_url or settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )

    async def get(self, key: str) -> str | None:
        raw = await self._redis.get(key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return str(raw)

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(key, value)
        logger.debug("Stored wallet blob", key=key, size=len(value))

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryBlobStore:
    """Dict-backed store for tests and offline hosts."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})
        self.fail_reads = False
        self.fail_writes = False
        self.writes: list[tuple[str, str]] = []

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise StorageError(f"read failed for {key}")
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageError(f"write failed for {key}")
        self.values[key] = value
        self.writes.append((key, value))


__all__ = ["BlobStore", "InMemoryBlobStore", "RedisBlobStore", "StorageError", "StorageKeys"]
