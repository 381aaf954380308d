from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from loguru import logger

from .exceptions import CapabilityLookupError
from .schema import BaseProviderConfig
from .shard import constants as C
from .shard.enums import ProviderType


class CapabilityRegistry:
    """Process-wide union of models seen per provider type.

    Created by the orchestrator and shared with every adapter's cache.
    """

    def __init__(self) -> None:
        self._models: dict[ProviderType, list[str]] = {}
        self._locks: dict[ProviderType, asyncio.Lock] = {}

    def _lock(self, provider: ProviderType) -> asyncio.Lock:
        lock = self._locks.get(provider)
        if lock is None:
            lock = self._locks[provider] = asyncio.Lock()
        return lock

    async def merge(self, provider: ProviderType, models: list[str]) -> list[str]:
        """Union ``models`` into the provider's entry; returns the sorted result."""
        async with self._lock(provider):
            merged = sorted(set(self._models.get(provider, [])) | set(models))
            self._models[provider] = merged
            return list(merged)

    def get(self, provider: ProviderType) -> list[str]:
        return list(self._models.get(provider, []))

    def snapshot(self) -> dict[str, list[str]]:
        return {str(p): list(models) for p, models in self._models.items()}

    def clear(self) -> None:
        self._models.clear()


@dataclass
class CacheEntry:
    models: list[str]
    timestamp: float = field(default_factory=time.monotonic)


class ModelCache:
    """TTL cache of model lists keyed by ``"{type}_{index}"``.

    A failed refresh never propagates: the stale entry is served when one
    exists, otherwise the provider's default list.
    """

    def __init__(
        self,
        provider: ProviderType,
        fetch: Callable[[BaseProviderConfig], Awaitable[list[str]]],
        default_models: Callable[[], list[str]],
        registry: CapabilityRegistry | None = None,
        *,
        ttl: float = C.MODEL_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.ttl = ttl
        self._fetch = fetch
        self._default_models = default_models
        self.registry = registry
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp < self.ttl

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def get_models(self, config: BaseProviderConfig) -> list[str]:
        key = config.cache_key
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            return list(entry.models)

        async with self._lock(key):
            # Another waiter may have refreshed while we were queued.
            entry = self._entries.get(key)
            if entry is not None and self._is_fresh(entry):
                return list(entry.models)

            try:
                models = await self._fetch(config)
            except Exception as e:
                err = CapabilityLookupError(f"Failed to get models for {key}: {e}")
                logger.warning(err.user_message)
                if entry is not None:
                    return list(entry.models)
                return list(self._default_models())

            models = list(models)
            if self.registry is not None:
                await self.registry.merge(self.provider, models)
            self._entries[key] = CacheEntry(models=models, timestamp=self._clock())
            return list(models)

    async def supports_model(self, config: BaseProviderConfig, model: str) -> bool:
        return model in await self.get_models(config)

    def invalidate(self, config: BaseProviderConfig) -> None:
        self._entries.pop(config.cache_key, None)

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["CapabilityRegistry", "CacheEntry", "ModelCache"]
